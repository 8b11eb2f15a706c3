from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_FLOOR, Decimal

from opa.config import settings
from opa.models.booking import Booking
from opa.models.enums import ActorRole, BookingStatus, RefundTier
from opa.utils.money import Money


@dataclass(frozen=True)
class RefundDecision:
    tier: RefundTier
    amount: Money


def calculate_refund(booking: Booking, cancelled_by: ActorRole, now: datetime) -> RefundDecision:
    """Apply the cancellation policy to a booking being cancelled at ``now``.

    - Still pending, or cancelled by the provider or the system: full refund.
    - Renter cancels an accepted booking more than 48h before pick-up: full refund.
    - 24-48h before pick-up: part of the booking fee (commission) comes back,
      the rental amount is kept.
    - Less than 24h (or after pick-up): no refund.
    """
    gross = booking.gross
    if booking.status == BookingStatus.PENDING or cancelled_by != ActorRole.RENTER:
        return RefundDecision(RefundTier.FULL, gross)

    time_until_pickup = booking.pickup_at - now
    if time_until_pickup > timedelta(hours=settings.CANCELLATION_FULL_REFUND_HOURS):
        return RefundDecision(RefundTier.FULL, gross)
    if time_until_pickup > timedelta(hours=settings.CANCELLATION_PARTIAL_REFUND_HOURS):
        ratio = settings.CANCELLATION_PARTIAL_FEE_REFUND_RATIO
        refund_minor = int(
            (Decimal(booking.commission_minor) * ratio).to_integral_value(rounding=ROUND_FLOOR)
        )
        return RefundDecision(RefundTier.PARTIAL, Money(refund_minor, booking.currency))
    return RefundDecision(RefundTier.NONE, Money.zero(booking.currency))
