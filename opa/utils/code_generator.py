import secrets
import string
from datetime import datetime, timezone

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def generate_withdrawal_reference(now: datetime | None = None) -> str:
    """Human-quotable withdrawal reference, e.g. ``WD20260512093011K7Q2ZD``.

    Uniqueness comes from the random suffix; the unique index on
    ``withdrawal_requests.reference`` is the backstop.
    """
    now = now or datetime.now(timezone.utc)
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(6))
    return f"WD{now:%Y%m%d%H%M%S}{suffix}"
