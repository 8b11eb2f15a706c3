"""Fixed-point money stored as integer minor units (cents)."""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

MINOR_UNITS_PER_MAJOR = 100
_CURRENCY_SYMBOLS = {"KES": "KSh", "USD": "$"}


class CurrencyMismatch(ValueError):
    """Raised when combining amounts in different currencies."""


@dataclass(frozen=True)
class Money:
    amount_minor: int
    currency: str = "KES"

    def __post_init__(self) -> None:
        if isinstance(self.amount_minor, bool) or not isinstance(self.amount_minor, int):
            raise TypeError("amount_minor must be an int")
        if len(self.currency) != 3 or not self.currency.isalpha():
            raise ValueError(f"Invalid currency code: {self.currency!r}")
        object.__setattr__(self, "currency", self.currency.upper())

    @classmethod
    def zero(cls, currency: str = "KES") -> "Money":
        return cls(0, currency)

    @classmethod
    def from_major(cls, amount: Decimal | str | int, currency: str = "KES") -> "Money":
        """Build from a major-unit amount, e.g. ``Money.from_major("135.00")``.

        Binary floats are refused: ``0.1 + 0.2`` style drift has no place
        in settlement paths.
        """
        if isinstance(amount, float):
            raise TypeError("Use Decimal or str for money, not float")
        try:
            value = Decimal(amount)
        except (InvalidOperation, TypeError) as exc:
            raise ValueError(f"Invalid money amount: {amount!r}") from exc
        if not value.is_finite():
            raise ValueError(f"Invalid money amount: {amount!r}")
        minor = value * MINOR_UNITS_PER_MAJOR
        if minor != minor.to_integral_value():
            raise ValueError(f"Money amount {amount!r} has more than two decimal places")
        return cls(int(minor), currency)

    def to_major(self) -> Decimal:
        return (Decimal(self.amount_minor) / MINOR_UNITS_PER_MAJOR).quantize(Decimal("0.01"))

    def _check(self, other: "Money") -> None:
        if not isinstance(other, Money):
            raise TypeError(f"Cannot combine Money with {type(other).__name__}")
        if other.currency != self.currency:
            raise CurrencyMismatch(f"{self.currency} != {other.currency}")

    def __add__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.amount_minor + other.amount_minor, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.amount_minor - other.amount_minor, self.currency)

    def __lt__(self, other: "Money") -> bool:
        self._check(other)
        return self.amount_minor < other.amount_minor

    def __le__(self, other: "Money") -> bool:
        self._check(other)
        return self.amount_minor <= other.amount_minor

    def __gt__(self, other: "Money") -> bool:
        self._check(other)
        return self.amount_minor > other.amount_minor

    def __ge__(self, other: "Money") -> bool:
        self._check(other)
        return self.amount_minor >= other.amount_minor

    def is_negative(self) -> bool:
        return self.amount_minor < 0

    def is_positive(self) -> bool:
        return self.amount_minor > 0

    def format(self) -> str:
        """Render like the mobile app does: ``KSh 1,234.50``."""
        symbol = _CURRENCY_SYMBOLS.get(self.currency, self.currency)
        sign = "-" if self.amount_minor < 0 else ""
        return f"{sign}{symbol} {abs(self.to_major()):,.2f}"

    def __str__(self) -> str:
        return f"{self.to_major()} {self.currency}"
