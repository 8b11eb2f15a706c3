"""Booking entity rules: creation, status transitions and financial derivation.

Everything here works on in-memory ``Booking`` objects and performs no I/O;
``opa.services.settlement`` loads, persists and notifies around it.
"""
import uuid
from datetime import datetime
from decimal import Decimal

from opa.exceptions import InvalidAmount, InvalidSchedule, InvalidTransition, NotBookingParty
from opa.models.booking import Booking, BookingStatusEvent
from opa.models.enums import ActorRole, BookingStatus, ProviderType
from opa.services.cancellation import calculate_refund
from opa.services.pricing import default_commission_rate, split_commission
from opa.utils.booking_state import validate_ride_start, validate_transition
from opa.utils.money import Money

RIDE_STARTED_NOTE = "ride_started"


def new_booking(
    renter_id: uuid.UUID,
    provider_id: uuid.UUID,
    provider_type: ProviderType,
    vehicle_id: uuid.UUID,
    pickup_at: datetime,
    dropoff_at: datetime,
    gross: Money,
    now: datetime,
    special_instructions: str | None = None,
    commission_rate: Decimal | None = None,
) -> Booking:
    if pickup_at.tzinfo is None or dropoff_at.tzinfo is None:
        raise InvalidSchedule("Pick-up and drop-off must include a timezone")
    if dropoff_at <= pickup_at:
        raise InvalidSchedule("Drop-off must be after pick-up")
    if not gross.is_positive():
        raise InvalidAmount("Booking amount must be greater than zero")
    if renter_id == provider_id:
        raise InvalidTransition("A provider cannot book their own vehicle")

    rate = commission_rate if commission_rate is not None else default_commission_rate()
    commission, net = split_commission(gross, rate)

    booking = Booking(
        id=uuid.uuid4(),
        renter_id=renter_id,
        provider_id=provider_id,
        provider_type=provider_type,
        vehicle_id=vehicle_id,
        pickup_at=pickup_at,
        dropoff_at=dropoff_at,
        status=BookingStatus.PENDING,
        currency=gross.currency,
        gross_minor=gross.amount_minor,
        commission_rate=rate,
        commission_minor=commission.amount_minor,
        net_minor=net.amount_minor,
        special_instructions=special_instructions,
        created_at=now,
        history=[],
    )
    _append_history(booking, BookingStatus.PENDING, renter_id, ActorRole.RENTER, now)
    return booking


def role_of(booking: Booking, actor_id: uuid.UUID) -> ActorRole:
    """Work out which side of the booking ``actor_id`` is on."""
    if actor_id == booking.provider_id:
        return ActorRole.PROVIDER
    if actor_id == booking.renter_id:
        return ActorRole.RENTER
    raise NotBookingParty()


def transition(
    booking: Booking,
    actor_id: uuid.UUID | None,
    role: ActorRole,
    target: BookingStatus,
    now: datetime,
    reason: str | None = None,
) -> Booking:
    """Move ``booking`` to ``target`` or raise InvalidTransition. Never a silent no-op."""
    validate_transition(booking.status, target, role, reason)

    if role == ActorRole.SYSTEM:
        if target == BookingStatus.CANCELLED and now < booking.pickup_at:
            raise InvalidTransition("Pending bookings only expire once pick-up time has passed")
        if target == BookingStatus.COMPLETED and now < booking.dropoff_at:
            raise InvalidTransition("Bookings only auto-complete after drop-off time")

    if target == BookingStatus.ACTIVE:
        booking.accepted_at = now
    elif target == BookingStatus.REJECTED:
        booking.rejection_reason = reason.strip()
        booking.rejected_at = now
    elif target == BookingStatus.COMPLETED:
        booking.completed_at = now
    elif target == BookingStatus.CANCELLED:
        decision = calculate_refund(booking, role, now)
        booking.cancelled_at = now
        booking.cancelled_by = role.value
        booking.refund_tier = decision.tier
        booking.refund_minor = decision.amount.amount_minor

    booking.status = target
    note = reason.strip() if reason and reason.strip() else None
    _append_history(booking, target, actor_id, role, now, note)
    return booking


def start_ride(booking: Booking, actor_id: uuid.UUID, role: ActorRole, now: datetime) -> Booking:
    validate_ride_start(booking.status, role, booking.ride_started_at is not None)
    booking.ride_started_at = now
    _append_history(booking, BookingStatus.ACTIVE, actor_id, role, now, RIDE_STARTED_NOTE)
    return booking


def recompute_financials(booking: Booking) -> Booking:
    """Re-derive commission and net from gross and rate. Idempotent."""
    commission, net = split_commission(booking.gross, Decimal(booking.commission_rate))
    if booking.commission_minor != commission.amount_minor:
        booking.commission_minor = commission.amount_minor
    if booking.net_minor != net.amount_minor:
        booking.net_minor = net.amount_minor
    return booking


def _append_history(
    booking: Booking,
    status: BookingStatus,
    actor_id: uuid.UUID | None,
    role: ActorRole,
    now: datetime,
    note: str | None = None,
) -> None:
    # History timestamps never go backwards, even if clocks do.
    created_at = now
    if booking.history and booking.history[-1].created_at > created_at:
        created_at = booking.history[-1].created_at
    booking.history.append(
        BookingStatusEvent(
            id=uuid.uuid4(),
            sequence=len(booking.history) + 1,
            status=status,
            actor_id=actor_id,
            actor_role=role.value,
            note=note,
            created_at=created_at,
        )
    )
