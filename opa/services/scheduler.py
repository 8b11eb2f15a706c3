"""Background jobs that move bookings and withdrawals forward without a user request.

Each job opens its own session and commits per item, so one bad row never
blocks the rest of the batch. When ``REDIS_URL`` is set a short Redis lock
keeps multiple workers from running the same job at once.
"""
from datetime import datetime, timedelta, timezone

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import select

from opa.config import settings
from opa.database import async_session
from opa.exceptions import PayoutProcessorError, SettlementError
from opa.metrics import SCHEDULER_JOB_RUNS
from opa.models.booking import Booking
from opa.models.enums import BookingStatus, WithdrawalStatus
from opa.models.withdrawal import WithdrawalRequest
from opa.services import payouts, settlement

logger = structlog.get_logger()

scheduler = AsyncIOScheduler()


async def _acquire_scheduler_lock(job_name: str, ttl: int = 300) -> bool:
    """Try to acquire a distributed Redis lock for a scheduler job.

    Returns True if this worker should run the job, including when Redis is
    not configured or unreachable (single-worker mode).
    """
    if not settings.REDIS_URL:
        return True
    try:
        import redis.asyncio as aioredis

        r = aioredis.from_url(settings.REDIS_URL, socket_connect_timeout=2)
        acquired = await r.set(f"scheduler_lock:{job_name}", "1", nx=True, ex=ttl)
        await r.aclose()
        return bool(acquired)
    except Exception as exc:
        logger.warning("scheduler_lock_unavailable", job_name=job_name, error=str(exc))
        return True


async def dispatch_submitted_withdrawals() -> None:
    """Send submitted withdrawals to the payout processor (submitted -> processing).

    A processor error leaves the withdrawal submitted; the next run retries it
    with the same idempotency key.
    """
    if not await _acquire_scheduler_lock("dispatch_submitted_withdrawals"):
        return
    async with async_session() as db:
        result = await db.execute(
            select(WithdrawalRequest.id)
            .where(WithdrawalRequest.status == WithdrawalStatus.SUBMITTED)
            .order_by(WithdrawalRequest.created_at)
            .limit(settings.SCHEDULER_BATCH_SIZE)
        )
        withdrawal_ids = result.scalars().all()

        # Ids only: a rollback expires every loaded object in the session.
        for withdrawal_id in withdrawal_ids:
            try:
                withdrawal = await settlement.get_withdrawal(db, withdrawal_id)
                payout = await payouts.create_payout(
                    reference=withdrawal.reference,
                    amount=withdrawal.amount,
                    method=withdrawal.method.value,
                    destination_token=withdrawal.destination_token,
                )
                await settlement.mark_withdrawal_processing(db, withdrawal, payout["id"])
                await db.commit()
                SCHEDULER_JOB_RUNS.labels(job_name="dispatch_submitted_withdrawals", status="success").inc()
            except (PayoutProcessorError, SettlementError) as exc:
                await db.rollback()
                SCHEDULER_JOB_RUNS.labels(job_name="dispatch_submitted_withdrawals", status="error").inc()
                logger.warning(
                    "withdrawal_dispatch_failed",
                    withdrawal_id=str(withdrawal_id),
                    error_type=type(exc).__name__,
                )


async def expire_pending_bookings(now: datetime | None = None) -> None:
    """Cancel pending bookings whose pick-up time passed without acceptance."""
    if not await _acquire_scheduler_lock("expire_pending_bookings"):
        return
    now = now or datetime.now(timezone.utc)
    async with async_session() as db:
        result = await db.execute(
            select(Booking.id)
            .where(Booking.status == BookingStatus.PENDING, Booking.pickup_at <= now)
            .order_by(Booking.pickup_at)
            .limit(settings.SCHEDULER_BATCH_SIZE)
        )
        await _apply_to_batch(db, result.scalars().all(), BookingStatus.CANCELLED, now, "expire_pending_bookings")


async def auto_complete_overdue_bookings(now: datetime | None = None) -> None:
    """Complete active bookings still open a grace period after drop-off."""
    if not await _acquire_scheduler_lock("auto_complete_overdue_bookings"):
        return
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(hours=settings.BOOKING_AUTO_COMPLETE_GRACE_HOURS)
    async with async_session() as db:
        result = await db.execute(
            select(Booking.id)
            .where(Booking.status == BookingStatus.ACTIVE, Booking.dropoff_at <= cutoff)
            .order_by(Booking.dropoff_at)
            .limit(settings.SCHEDULER_BATCH_SIZE)
        )
        await _apply_to_batch(db, result.scalars().all(), BookingStatus.COMPLETED, now, "auto_complete_overdue_bookings")


async def _apply_to_batch(db, booking_ids, target: BookingStatus, now: datetime, job_name: str) -> None:
    # Ids only: a rollback expires every loaded object in the session.
    for booking_id in booking_ids:
        try:
            booking = await settlement.get_booking(db, booking_id)
            await settlement.apply_system_transition(db, booking, target, now)
            await db.commit()
            SCHEDULER_JOB_RUNS.labels(job_name=job_name, status="success").inc()
        except SettlementError as exc:
            # A user got there first (e.g. accepted at the last second); skip it.
            await db.rollback()
            SCHEDULER_JOB_RUNS.labels(job_name=job_name, status="skipped").inc()
            logger.info("scheduler_booking_skipped", job_name=job_name, booking_id=str(booking_id), code=exc.code)


def start_scheduler() -> None:
    """Start the APScheduler with the recurring settlement jobs."""
    scheduler.add_job(
        dispatch_submitted_withdrawals,
        "interval",
        seconds=settings.PAYOUT_DISPATCH_INTERVAL_SECONDS,
        id="dispatch_submitted_withdrawals",
        replace_existing=True,
        misfire_grace_time=300,
    )
    scheduler.add_job(
        expire_pending_bookings,
        "interval",
        minutes=settings.BOOKING_SWEEP_INTERVAL_MINUTES,
        id="expire_pending_bookings",
        replace_existing=True,
        misfire_grace_time=300,
    )
    scheduler.add_job(
        auto_complete_overdue_bookings,
        "interval",
        minutes=settings.BOOKING_SWEEP_INTERVAL_MINUTES,
        id="auto_complete_overdue_bookings",
        replace_existing=True,
        misfire_grace_time=300,
    )
    scheduler.start()
    logger.info("scheduler_started")
