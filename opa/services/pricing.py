import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_FLOOR, Decimal

from opa.config import settings
from opa.exceptions import InvalidAmount, InvalidSchedule
from opa.utils.money import Money


def split_commission(gross: Money, rate: Decimal) -> tuple[Money, Money]:
    """Split a gross amount into (commission, net).

    The commission is rounded down to the minor unit and the net absorbs the
    remainder, so ``commission + net == gross`` holds exactly for every input.
    """
    if not isinstance(rate, Decimal):
        raise TypeError("rate must be a Decimal")
    if not (Decimal("0") <= rate < Decimal("1")):
        raise ValueError(f"Commission rate must be in [0, 1), got {rate}")
    if gross.is_negative():
        raise ValueError("Gross amount must not be negative")

    commission_minor = int(
        (Decimal(gross.amount_minor) * rate).to_integral_value(rounding=ROUND_FLOOR)
    )
    commission = Money(commission_minor, gross.currency)
    return commission, gross - commission


def default_commission_rate() -> Decimal:
    return settings.COMMISSION_RATE


def rental_days(pickup_at: datetime, dropoff_at: datetime) -> int:
    """Whole days billed for a rental; any started day counts as a full day."""
    if dropoff_at <= pickup_at:
        raise InvalidSchedule("Drop-off must be after pick-up")
    return math.ceil((dropoff_at - pickup_at) / timedelta(days=1))


@dataclass(frozen=True)
class RentalQuote:
    days: int
    daily_rate: Money
    base: Money
    insurance: Money
    gross: Money
    commission_rate: Decimal
    commission: Money
    net: Money


def calculate_rental_quote(
    daily_rate: Money,
    pickup_at: datetime,
    dropoff_at: datetime,
    insurance: bool = False,
    commission_rate: Decimal | None = None,
) -> RentalQuote:
    """Price a rental the way the booking screen shows it.

    gross = daily_rate * days (+ insurance per day when requested).
    For pay-on-site rentals the commission is the booking fee the renter
    pays up front; the net is settled with the owner at pick-up.
    """
    if not daily_rate.is_positive():
        raise InvalidAmount("Daily rate must be positive")
    days = rental_days(pickup_at, dropoff_at)
    rate = commission_rate if commission_rate is not None else default_commission_rate()

    base = Money(daily_rate.amount_minor * days, daily_rate.currency)
    insurance_cost = Money.zero(daily_rate.currency)
    if insurance:
        per_day = Money.from_major(settings.INSURANCE_DAILY_RATE, daily_rate.currency)
        insurance_cost = Money(per_day.amount_minor * days, daily_rate.currency)
    gross = base + insurance_cost
    commission, net = split_commission(gross, rate)

    return RentalQuote(
        days=days,
        daily_rate=daily_rate,
        base=base,
        insurance=insurance_cost,
        gross=gross,
        commission_rate=rate,
        commission=commission,
        net=net,
    )
