import re
from dataclasses import dataclass

from opa.exceptions import InvalidMethodDetails
from opa.models.enums import WithdrawalMethod
from opa.utils.log_mask import mask_card_number, mask_phone

# Kenyan mobile numbers: 07XXXXXXXX / 01XXXXXXXX, or 2547XXXXXXXX / 2541XXXXXXXX with optional "+".
_RE_KE_MOBILE_LOCAL = re.compile(r"^0[17]\d{8}$")
_RE_KE_MOBILE_INTL = re.compile(r"^\+?254[17]\d{8}$")
_RE_SEPARATORS = re.compile(r"[\s\-]")
_RE_CARD = re.compile(r"^\d{16,19}$")

MOBILE_MONEY_METHODS = frozenset({WithdrawalMethod.MPESA, WithdrawalMethod.AIRTEL_MONEY})


@dataclass(frozen=True)
class PayoutDestination:
    """A validated payout destination.

    ``account`` is the normalised clear value and is only ever handed to the
    payout processor; ``masked`` is what gets stored and logged.
    """

    method: WithdrawalMethod
    account: str
    masked: str
    account_name: str | None = None


def normalize_kenyan_phone(raw: str) -> str:
    """Return the number in 2547XXXXXXXX form, or raise InvalidMethodDetails."""
    compact = _RE_SEPARATORS.sub("", raw or "")
    if _RE_KE_MOBILE_LOCAL.match(compact):
        return "254" + compact[1:]
    if _RE_KE_MOBILE_INTL.match(compact):
        return compact.lstrip("+")
    raise InvalidMethodDetails("Enter a valid Kenyan mobile number (07XX XXX XXX or +254 7XX XXX XXX)")


def luhn_valid(digits: str) -> bool:
    total = 0
    for index, char in enumerate(reversed(digits)):
        value = int(char)
        if index % 2 == 1:
            value *= 2
            if value > 9:
                value -= 9
        total += value
    return total % 10 == 0


def validate_payout_destination(
    method: WithdrawalMethod,
    details: str,
    account_name: str | None = None,
) -> PayoutDestination:
    if method in MOBILE_MONEY_METHODS:
        phone = normalize_kenyan_phone(details)
        return PayoutDestination(method, phone, mask_phone(phone), account_name or None)

    if method == WithdrawalMethod.BANK_CARD:
        card = _RE_SEPARATORS.sub("", details or "")
        if not _RE_CARD.match(card) or not luhn_valid(card):
            raise InvalidMethodDetails("Enter a valid card number")
        name = (account_name or "").strip()
        if not name:
            raise InvalidMethodDetails("Cardholder name is required")
        return PayoutDestination(method, card, mask_card_number(card), name)

    raise InvalidMethodDetails(f"Unsupported withdrawal method: {method}")
