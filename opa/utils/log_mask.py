"""Masking for payout account numbers.

Phone and card numbers must never reach logs or the database in clear;
only these masked forms are stored on withdrawal requests.
"""


def mask_phone(phone: str | None) -> str:
    """'0712345678' -> '******5678'."""
    digits = "".join(ch for ch in phone or "" if ch.isdigit())
    if len(digits) <= 4:
        return "***"
    return "*" * (len(digits) - 4) + digits[-4:]


def mask_card_number(card_number: str | None) -> str:
    """'4111111111111111' -> '**** **** **** 1111'."""
    digits = "".join(ch for ch in card_number or "" if ch.isdigit())
    if len(digits) <= 4:
        return "***"
    return f"**** **** **** {digits[-4:]}"
