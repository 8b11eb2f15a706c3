"""Settlement service: the only code path that mutates persisted bookings and withdrawals.

Every operation works inside the caller's session (the request's ``get_db``
session or a scheduler job's own session) and flushes, never commits. A lost
optimistic-version race surfaces as ``ConflictingTransition``.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_FLOOR, Decimal

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from opa.config import settings
from opa.exceptions import (
    BelowMinimum,
    ConflictingTransition,
    InsufficientBalance,
    InvalidMethodDetails,
    NotFound,
    SettlementError,
)
from opa.metrics import (
    BOOKING_CONFLICTS,
    BOOKING_TRANSITIONS,
    BOOKINGS_CREATED,
    WITHDRAWAL_VERSION_RETRIES,
    WITHDRAWALS_REJECTED,
    WITHDRAWALS_REQUESTED,
    WITHDRAWALS_SETTLED,
)
from opa.models.booking import Booking
from opa.models.earnings_account import EarningsAccount
from opa.models.enums import (
    ActorRole,
    BookingStatus,
    EarningsPeriod,
    LedgerEntryType,
    NotificationType,
    ProviderType,
    WithdrawalMethod,
    WithdrawalStatus,
)
from opa.models.payout_method import PayoutMethod
from opa.models.withdrawal import WithdrawalRequest
from opa.services import booking_lifecycle, payouts
from opa.services.notifications import notify_booking_party, notify_withdrawal_owner
from opa.utils.code_generator import generate_withdrawal_reference
from opa.utils.money import Money
from opa.utils.payout_methods import validate_payout_destination
from opa.utils.withdrawal_state import validate_withdrawal_transition

logger = structlog.get_logger()

_STATUS_NOTIFICATIONS = {
    BookingStatus.ACTIVE: NotificationType.BOOKING_ACCEPTED,
    BookingStatus.REJECTED: NotificationType.BOOKING_REJECTED,
    BookingStatus.COMPLETED: NotificationType.BOOKING_COMPLETED,
    BookingStatus.CANCELLED: NotificationType.BOOKING_CANCELLED,
}

# Withdrawals that still hold funds against the balance.
_OUTSTANDING_WITHDRAWAL_STATUSES = (WithdrawalStatus.SUBMITTED, WithdrawalStatus.PROCESSING)


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def _flush_versioned(db: AsyncSession, entity: str, entity_id: uuid.UUID) -> None:
    try:
        await db.flush()
    except StaleDataError as exc:
        BOOKING_CONFLICTS.inc()
        logger.warning("version_conflict", entity=entity, entity_id=str(entity_id))
        raise ConflictingTransition() from exc


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


async def get_booking(db: AsyncSession, booking_id: uuid.UUID) -> Booking:
    result = await db.execute(select(Booking).where(Booking.id == booking_id))
    booking = result.scalar_one_or_none()
    if booking is None:
        raise NotFound("Booking not found")
    return booking


async def get_booking_for_party(db: AsyncSession, booking_id: uuid.UUID, actor_id: uuid.UUID) -> Booking:
    booking = await get_booking(db, booking_id)
    booking_lifecycle.role_of(booking, actor_id)
    return booking


async def list_bookings(
    db: AsyncSession,
    actor_id: uuid.UUID,
    role: ActorRole | None = None,
    status: BookingStatus | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[Booking]:
    """Bookings where the actor is renter and/or provider, newest first."""
    if role == ActorRole.RENTER:
        query = select(Booking).where(Booking.renter_id == actor_id)
    elif role == ActorRole.PROVIDER:
        query = select(Booking).where(Booking.provider_id == actor_id)
    else:
        query = select(Booking).where(
            (Booking.renter_id == actor_id) | (Booking.provider_id == actor_id)
        )
    if status is not None:
        query = query.where(Booking.status == status)
    result = await db.execute(
        query.order_by(Booking.created_at.desc(), Booking.id).offset(offset).limit(limit)
    )
    return list(result.scalars().all())


async def create_booking(
    db: AsyncSession,
    renter_id: uuid.UUID,
    provider_id: uuid.UUID,
    provider_type: ProviderType,
    vehicle_id: uuid.UUID,
    pickup_at: datetime,
    dropoff_at: datetime,
    gross: Money,
    special_instructions: str | None = None,
    now: datetime | None = None,
) -> Booking:
    now = now or _now()
    booking = booking_lifecycle.new_booking(
        renter_id=renter_id,
        provider_id=provider_id,
        provider_type=provider_type,
        vehicle_id=vehicle_id,
        pickup_at=pickup_at,
        dropoff_at=dropoff_at,
        gross=gross,
        now=now,
        special_instructions=special_instructions,
    )
    db.add(booking)
    await db.flush()

    BOOKINGS_CREATED.labels(provider_type=provider_type.value).inc()
    notify_booking_party(db, booking, booking.provider_id, NotificationType.BOOKING_CREATED)
    logger.info(
        "booking_created",
        booking_id=str(booking.id),
        renter_id=str(renter_id),
        provider_id=str(provider_id),
        gross_minor=booking.gross_minor,
        commission_minor=booking.commission_minor,
    )
    return booking


async def _transition(
    db: AsyncSession,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID,
    target: BookingStatus,
    reason: str | None = None,
    now: datetime | None = None,
) -> Booking:
    booking = await get_booking(db, booking_id)
    role = booking_lifecycle.role_of(booking, actor_id)
    previous = booking.status
    booking_lifecycle.transition(booking, actor_id, role, target, now or _now(), reason)
    await _flush_versioned(db, "booking", booking_id)

    BOOKING_TRANSITIONS.labels(to_status=target.value, actor_role=role.value).inc()
    counterparty = booking.renter_id if role == ActorRole.PROVIDER else booking.provider_id
    notify_booking_party(db, booking, counterparty, _STATUS_NOTIFICATIONS[target])
    logger.info(
        "booking_status_changed",
        booking_id=str(booking_id),
        from_status=previous.value,
        to_status=target.value,
        actor_role=role.value,
    )
    return booking


async def accept_booking(db: AsyncSession, booking_id: uuid.UUID, actor_id: uuid.UUID, now: datetime | None = None) -> Booking:
    return await _transition(db, booking_id, actor_id, BookingStatus.ACTIVE, now=now)


async def reject_booking(
    db: AsyncSession, booking_id: uuid.UUID, actor_id: uuid.UUID, reason: str, now: datetime | None = None
) -> Booking:
    return await _transition(db, booking_id, actor_id, BookingStatus.REJECTED, reason=reason, now=now)


async def complete_booking(db: AsyncSession, booking_id: uuid.UUID, actor_id: uuid.UUID, now: datetime | None = None) -> Booking:
    return await _transition(db, booking_id, actor_id, BookingStatus.COMPLETED, now=now)


async def cancel_booking(
    db: AsyncSession,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID,
    reason: str | None = None,
    now: datetime | None = None,
) -> Booking:
    booking = await _transition(db, booking_id, actor_id, BookingStatus.CANCELLED, reason=reason, now=now)
    logger.info(
        "booking_refund_decided",
        booking_id=str(booking_id),
        refund_tier=booking.refund_tier.value,
        refund_minor=booking.refund_minor,
    )
    return booking


async def start_ride(db: AsyncSession, booking_id: uuid.UUID, actor_id: uuid.UUID, now: datetime | None = None) -> Booking:
    booking = await get_booking(db, booking_id)
    role = booking_lifecycle.role_of(booking, actor_id)
    booking_lifecycle.start_ride(booking, actor_id, role, now or _now())
    await _flush_versioned(db, "booking", booking_id)

    notify_booking_party(db, booking, booking.renter_id, NotificationType.RIDE_STARTED)
    logger.info("ride_started", booking_id=str(booking_id))
    return booking


async def apply_system_transition(
    db: AsyncSession, booking: Booking, target: BookingStatus, now: datetime | None = None
) -> Booking:
    """Scheduler-driven expiry and auto-completion; both parties are told."""
    previous = booking.status
    booking_lifecycle.transition(booking, None, ActorRole.SYSTEM, target, now or _now())
    await _flush_versioned(db, "booking", booking.id)

    BOOKING_TRANSITIONS.labels(to_status=target.value, actor_role=ActorRole.SYSTEM.value).inc()
    for recipient in (booking.renter_id, booking.provider_id):
        notify_booking_party(db, booking, recipient, _STATUS_NOTIFICATIONS[target])
    logger.info(
        "booking_status_changed",
        booking_id=str(booking.id),
        from_status=previous.value,
        to_status=target.value,
        actor_role=ActorRole.SYSTEM.value,
    )
    return booking


# ---------------------------------------------------------------------------
# Balances
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BalanceBreakdown:
    total_earned: Money
    held: Money
    withdrawn: Money
    pending_withdrawals: Money
    available: Money


async def balance_breakdown(
    db: AsyncSession, owner_id: uuid.UUID, currency: str | None = None
) -> BalanceBreakdown:
    """Derive the owner's balance from completed bookings and withdrawals.

    Only ``LIQUID_BALANCE_RATIO`` of completed earnings is withdrawable; the
    rest is held. Failed withdrawals release their funds.
    """
    currency = currency or settings.CURRENCY
    earned_minor = int(
        await db.scalar(
            select(func.coalesce(func.sum(Booking.net_minor), 0)).where(
                Booking.provider_id == owner_id,
                Booking.status == BookingStatus.COMPLETED,
                Booking.currency == currency,
            )
        )
        or 0
    )
    withdrawn_minor = await _sum_withdrawals(db, owner_id, currency, (WithdrawalStatus.COMPLETED,))
    pending_minor = await _sum_withdrawals(db, owner_id, currency, _OUTSTANDING_WITHDRAWAL_STATUSES)

    liquid_minor = int(
        (Decimal(earned_minor) * settings.LIQUID_BALANCE_RATIO).to_integral_value(rounding=ROUND_FLOOR)
    )
    available_minor = max(0, liquid_minor - withdrawn_minor - pending_minor)
    return BalanceBreakdown(
        total_earned=Money(earned_minor, currency),
        held=Money(earned_minor - liquid_minor, currency),
        withdrawn=Money(withdrawn_minor, currency),
        pending_withdrawals=Money(pending_minor, currency),
        available=Money(available_minor, currency),
    )


async def _sum_withdrawals(
    db: AsyncSession, owner_id: uuid.UUID, currency: str, statuses: tuple[WithdrawalStatus, ...]
) -> int:
    total = await db.scalar(
        select(func.coalesce(func.sum(WithdrawalRequest.amount_minor), 0)).where(
            WithdrawalRequest.owner_id == owner_id,
            WithdrawalRequest.currency == currency,
            WithdrawalRequest.status.in_(statuses),
        )
    )
    return int(total or 0)


async def compute_available_balance(
    db: AsyncSession, owner_id: uuid.UUID, currency: str | None = None
) -> Money:
    return (await balance_breakdown(db, owner_id, currency)).available


# ---------------------------------------------------------------------------
# Withdrawals
# ---------------------------------------------------------------------------


async def _read_account_version(db: AsyncSession, owner_id: uuid.UUID) -> int:
    version = await db.scalar(
        select(EarningsAccount.version).where(EarningsAccount.owner_id == owner_id)
    )
    if version is not None:
        return version

    # Two first-time withdrawals may race to create the row; both end up reading it.
    insert = pg_insert if db.get_bind().dialect.name == "postgresql" else sqlite_insert
    await db.execute(
        insert(EarningsAccount)
        .values(owner_id=owner_id, version=0)
        .on_conflict_do_nothing(index_elements=["owner_id"])
    )
    return await db.scalar(
        select(EarningsAccount.version).where(EarningsAccount.owner_id == owner_id)
    )


async def _bump_account_version(
    db: AsyncSession, owner_id: uuid.UUID, seen_version: int, now: datetime
) -> bool:
    """Claim the owner's balance token. False means another writer got there first."""
    result = await db.execute(
        update(EarningsAccount)
        .where(EarningsAccount.owner_id == owner_id, EarningsAccount.version == seen_version)
        .values(version=seen_version + 1, last_withdrawal_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _resolve_destination(
    db: AsyncSession,
    owner_id: uuid.UUID,
    method: WithdrawalMethod | None,
    details: str | None,
    account_name: str | None,
    payout_method_id: uuid.UUID | None,
) -> tuple[WithdrawalMethod, str, str | None, str, uuid.UUID | None]:
    """Return ``(method, masked, account_name, destination_token, payout_method_id)``.

    Tokenizing talks to the processor, so it happens here, before the balance
    token is claimed.
    """
    if payout_method_id is not None:
        saved = await get_payout_method(db, payout_method_id, owner_id)
        return saved.method, saved.method_details, saved.account_name, saved.destination_token, saved.id
    if method is None or not details:
        raise InvalidMethodDetails("Choose a saved payout method or enter payout details")
    destination = validate_payout_destination(method, details, account_name)
    token = await payouts.tokenize_destination(owner_id, destination)
    return method, destination.masked, destination.account_name, token, None


async def request_withdrawal(
    db: AsyncSession,
    owner_id: uuid.UUID,
    amount: Money,
    method: WithdrawalMethod | None = None,
    details: str | None = None,
    account_name: str | None = None,
    now: datetime | None = None,
    payout_method_id: uuid.UUID | None = None,
) -> WithdrawalRequest:
    """Reserve ``amount`` from the owner's available balance as a submitted withdrawal.

    The destination is either raw ``method``/``details`` or a saved
    ``payout_method_id``. Amounts of zero or less fail the minimum check.
    """
    now = now or _now()
    try:
        minimum = Money.from_major(settings.MINIMUM_WITHDRAWAL, amount.currency)
        if amount < minimum:
            raise BelowMinimum(f"Minimum withdrawal amount is {minimum.format()}")
        method, masked, account_name, destination_token, payout_method_id = await _resolve_destination(
            db, owner_id, method, details, account_name, payout_method_id
        )

        for attempt in range(1, settings.WITHDRAWAL_MAX_ATTEMPTS + 1):
            seen_version = await _read_account_version(db, owner_id)
            available = await compute_available_balance(db, owner_id, amount.currency)
            if amount > available:
                raise InsufficientBalance(
                    f"Insufficient balance. Available: {available.format()}"
                )
            if await _bump_account_version(db, owner_id, seen_version, now):
                break
            WITHDRAWAL_VERSION_RETRIES.inc()
            logger.warning("withdrawal_version_conflict", owner_id=str(owner_id), attempt=attempt)
        else:
            raise ConflictingTransition()
    except SettlementError as exc:
        WITHDRAWALS_REJECTED.labels(code=exc.code).inc()
        logger.info("withdrawal_rejected", owner_id=str(owner_id), code=exc.code)
        raise

    withdrawal = WithdrawalRequest(
        id=uuid.uuid4(),
        owner_id=owner_id,
        amount_minor=amount.amount_minor,
        currency=amount.currency,
        method=method,
        method_details=masked,
        account_name=account_name,
        destination_token=destination_token,
        payout_method_id=payout_method_id,
        status=WithdrawalStatus.SUBMITTED,
        reference=generate_withdrawal_reference(now),
        created_at=now,
    )
    db.add(withdrawal)
    await db.flush()

    WITHDRAWALS_REQUESTED.labels(method=method.value).inc()
    logger.info(
        "withdrawal_requested",
        withdrawal_id=str(withdrawal.id),
        owner_id=str(owner_id),
        amount_minor=amount.amount_minor,
        method=method.value,
        account=masked,
    )
    return withdrawal


async def get_withdrawal(
    db: AsyncSession, withdrawal_id: uuid.UUID, owner_id: uuid.UUID | None = None
) -> WithdrawalRequest:
    query = select(WithdrawalRequest).where(WithdrawalRequest.id == withdrawal_id)
    if owner_id is not None:
        # Someone else's withdrawal looks the same as a missing one.
        query = query.where(WithdrawalRequest.owner_id == owner_id)
    withdrawal = (await db.execute(query)).scalar_one_or_none()
    if withdrawal is None:
        raise NotFound("Withdrawal not found")
    return withdrawal


async def find_withdrawal_for_payout(
    db: AsyncSession, payout_id: str | None = None, reference: str | None = None
) -> WithdrawalRequest | None:
    if payout_id:
        query = select(WithdrawalRequest).where(WithdrawalRequest.payout_id == payout_id)
    elif reference:
        query = select(WithdrawalRequest).where(WithdrawalRequest.reference == reference)
    else:
        return None
    return (await db.execute(query)).scalar_one_or_none()


async def list_withdrawals(
    db: AsyncSession, owner_id: uuid.UUID, limit: int = 20, offset: int = 0
) -> list[WithdrawalRequest]:
    result = await db.execute(
        select(WithdrawalRequest)
        .where(WithdrawalRequest.owner_id == owner_id)
        .order_by(WithdrawalRequest.created_at.desc(), WithdrawalRequest.id)
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all())


async def mark_withdrawal_processing(
    db: AsyncSession, withdrawal: WithdrawalRequest, payout_id: str, now: datetime | None = None
) -> WithdrawalRequest:
    validate_withdrawal_transition(withdrawal.status, WithdrawalStatus.PROCESSING)
    withdrawal.status = WithdrawalStatus.PROCESSING
    withdrawal.payout_id = payout_id
    withdrawal.processing_at = now or _now()
    await _flush_versioned(db, "withdrawal", withdrawal.id)
    logger.info("withdrawal_processing", withdrawal_id=str(withdrawal.id), payout_id=payout_id)
    return withdrawal


async def complete_withdrawal(
    db: AsyncSession, withdrawal: WithdrawalRequest, now: datetime | None = None
) -> WithdrawalRequest:
    validate_withdrawal_transition(withdrawal.status, WithdrawalStatus.COMPLETED)
    withdrawal.status = WithdrawalStatus.COMPLETED
    withdrawal.completed_at = now or _now()
    await _flush_versioned(db, "withdrawal", withdrawal.id)

    WITHDRAWALS_SETTLED.labels(status=WithdrawalStatus.COMPLETED.value).inc()
    notify_withdrawal_owner(db, withdrawal)
    logger.info("withdrawal_completed", withdrawal_id=str(withdrawal.id))
    return withdrawal


async def fail_withdrawal(
    db: AsyncSession, withdrawal: WithdrawalRequest, reason: str, now: datetime | None = None
) -> WithdrawalRequest:
    validate_withdrawal_transition(withdrawal.status, WithdrawalStatus.FAILED)
    withdrawal.status = WithdrawalStatus.FAILED
    withdrawal.failure_reason = (reason or "Payout failed")[:255]
    withdrawal.failed_at = now or _now()
    await _flush_versioned(db, "withdrawal", withdrawal.id)

    WITHDRAWALS_SETTLED.labels(status=WithdrawalStatus.FAILED.value).inc()
    notify_withdrawal_owner(db, withdrawal)
    logger.warning("withdrawal_failed", withdrawal_id=str(withdrawal.id), reason=withdrawal.failure_reason)
    return withdrawal


# ---------------------------------------------------------------------------
# Saved payout methods
# ---------------------------------------------------------------------------


async def add_payout_method(
    db: AsyncSession,
    owner_id: uuid.UUID,
    method: WithdrawalMethod,
    details: str,
    account_name: str | None = None,
    label: str | None = None,
    now: datetime | None = None,
) -> PayoutMethod:
    """Validate and tokenize a destination, then keep it for later withdrawals.

    Saving the same destination twice returns the method already on file.
    """
    destination = validate_payout_destination(method, details, account_name)
    token = await payouts.tokenize_destination(owner_id, destination)

    existing = await db.scalar(
        select(PayoutMethod).where(
            PayoutMethod.owner_id == owner_id, PayoutMethod.destination_token == token
        )
    )
    if existing is not None:
        logger.info("payout_method_already_saved", payout_method_id=str(existing.id))
        return existing

    payout_method = PayoutMethod(
        id=uuid.uuid4(),
        owner_id=owner_id,
        method=method,
        label=(label or "").strip() or None,
        method_details=destination.masked,
        account_name=destination.account_name,
        destination_token=token,
        created_at=now or _now(),
    )
    db.add(payout_method)
    await db.flush()
    logger.info(
        "payout_method_saved",
        payout_method_id=str(payout_method.id),
        owner_id=str(owner_id),
        method=method.value,
        account=destination.masked,
    )
    return payout_method


async def list_payout_methods(db: AsyncSession, owner_id: uuid.UUID) -> list[PayoutMethod]:
    result = await db.execute(
        select(PayoutMethod)
        .where(PayoutMethod.owner_id == owner_id)
        .order_by(PayoutMethod.created_at.desc(), PayoutMethod.id)
    )
    return list(result.scalars().all())


async def get_payout_method(
    db: AsyncSession, payout_method_id: uuid.UUID, owner_id: uuid.UUID
) -> PayoutMethod:
    payout_method = await db.scalar(
        select(PayoutMethod).where(
            PayoutMethod.id == payout_method_id, PayoutMethod.owner_id == owner_id
        )
    )
    if payout_method is None:
        raise NotFound("Payout method not found")
    return payout_method


async def delete_payout_method(
    db: AsyncSession, payout_method_id: uuid.UUID, owner_id: uuid.UUID
) -> None:
    # Past withdrawals keep their own copy of the destination.
    payout_method = await get_payout_method(db, payout_method_id, owner_id)
    await db.delete(payout_method)
    await db.flush()
    logger.info("payout_method_deleted", payout_method_id=str(payout_method_id), owner_id=str(owner_id))


# ---------------------------------------------------------------------------
# Earnings reporting
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EarningsSummary:
    period: EarningsPeriod
    start: datetime
    end: datetime
    total_earned: Money
    completed_bookings: int
    average_per_booking: Money


@dataclass(frozen=True)
class LedgerEntry:
    id: uuid.UUID
    type: LedgerEntryType
    amount: Money
    status: str
    reference: str
    description: str
    occurred_at: datetime


def period_start(period: EarningsPeriod, now: datetime) -> datetime:
    """Start of the current calendar week (Monday), month or year, in UTC."""
    day = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    if period == EarningsPeriod.WEEK:
        return day - timedelta(days=day.weekday())
    if period == EarningsPeriod.MONTH:
        return day.replace(day=1)
    return day.replace(month=1, day=1)


async def earnings_summary(
    db: AsyncSession,
    owner_id: uuid.UUID,
    period: EarningsPeriod,
    currency: str | None = None,
    now: datetime | None = None,
) -> EarningsSummary:
    currency = currency or settings.CURRENCY
    now = now or _now()
    start = period_start(period, now)
    row = (
        await db.execute(
            select(func.count(Booking.id), func.coalesce(func.sum(Booking.net_minor), 0)).where(
                Booking.provider_id == owner_id,
                Booking.status == BookingStatus.COMPLETED,
                Booking.currency == currency,
                Booking.completed_at >= start,
                Booking.completed_at <= now,
            )
        )
    ).one()
    count, total_minor = int(row[0]), int(row[1])
    average_minor = total_minor // count if count else 0
    return EarningsSummary(
        period=period,
        start=start,
        end=now,
        total_earned=Money(total_minor, currency),
        completed_bookings=count,
        average_per_booking=Money(average_minor, currency),
    )


async def list_transactions(
    db: AsyncSession, owner_id: uuid.UUID, limit: int = 50, offset: int = 0
) -> list[LedgerEntry]:
    """Earnings and withdrawals merged into one ledger, newest first."""
    window = offset + limit
    bookings = (
        await db.execute(
            select(Booking)
            .where(Booking.provider_id == owner_id, Booking.status == BookingStatus.COMPLETED)
            .order_by(Booking.completed_at.desc())
            .limit(window)
        )
    ).scalars().all()
    withdrawals = (
        await db.execute(
            select(WithdrawalRequest)
            .where(WithdrawalRequest.owner_id == owner_id)
            .order_by(WithdrawalRequest.created_at.desc())
            .limit(window)
        )
    ).scalars().all()

    entries = [
        LedgerEntry(
            id=booking.id,
            type=LedgerEntryType.EARNED,
            amount=booking.net,
            status=booking.status.value,
            reference=str(booking.id),
            description="Booking earnings",
            occurred_at=booking.completed_at,
        )
        for booking in bookings
    ]
    entries.extend(
        LedgerEntry(
            id=withdrawal.id,
            type=LedgerEntryType.WITHDRAWAL,
            amount=withdrawal.amount,
            status=withdrawal.status.value,
            reference=withdrawal.reference,
            description=f"Withdrawal to {withdrawal.method_details}",
            occurred_at=withdrawal.created_at,
        )
        for withdrawal in withdrawals
    )
    entries.sort(key=lambda entry: entry.occurred_at, reverse=True)
    return entries[offset:window]
