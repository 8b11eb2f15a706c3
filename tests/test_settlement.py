import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from opa.exceptions import (
    BelowMinimum,
    ConflictingTransition,
    InsufficientBalance,
    InvalidMethodDetails,
    InvalidTransition,
    NotBookingParty,
    NotFound,
)
from opa.models.earnings_account import EarningsAccount
from opa.models.enums import (
    ActorRole,
    BookingStatus,
    EarningsPeriod,
    LedgerEntryType,
    ProviderType,
    RefundTier,
    WithdrawalMethod,
    WithdrawalStatus,
)
from opa.models.notification import Notification
from opa.services import settlement
from opa.utils.money import Money
from tests.conftest import add_completed_booking, test_session, utcnow


async def _notifications_for(db, user_id):
    await db.flush()
    result = await db.execute(select(Notification).where(Notification.user_id == user_id))
    return result.scalars().all()


async def _create(db, renter_id, owner_id, pickup_in=timedelta(days=3), gross="135.00"):
    pickup_at = utcnow() + pickup_in
    return await settlement.create_booking(
        db,
        renter_id=renter_id,
        provider_id=owner_id,
        provider_type=ProviderType.OWNER,
        vehicle_id=uuid.uuid4(),
        pickup_at=pickup_at,
        dropoff_at=pickup_at + timedelta(days=2),
        gross=Money.from_major(gross),
    )


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_booking_persists_and_notifies_provider(db, renter_id, owner_id):
    booking = await _create(db, renter_id, owner_id)
    await db.commit()

    loaded = await settlement.get_booking(db, booking.id)
    assert loaded.status == BookingStatus.PENDING
    assert loaded.version == 1
    assert loaded.commission_minor + loaded.net_minor == loaded.gross_minor

    notifications = await _notifications_for(db, owner_id)
    assert [n.type for n in notifications] == ["booking_created"]
    assert notifications[0].data["booking_id"] == str(booking.id)


@pytest.mark.asyncio
async def test_accept_then_complete_notifies_renter(db, renter_id, owner_id):
    booking = await _create(db, renter_id, owner_id)

    await settlement.accept_booking(db, booking.id, owner_id)
    await settlement.complete_booking(db, booking.id, owner_id)

    assert booking.status == BookingStatus.COMPLETED
    assert booking.version == 3
    assert [event.status for event in booking.history] == [
        BookingStatus.PENDING,
        BookingStatus.ACTIVE,
        BookingStatus.COMPLETED,
    ]
    types = sorted(n.type for n in await _notifications_for(db, renter_id))
    assert types == ["booking_accepted", "booking_completed"]


@pytest.mark.asyncio
async def test_outsider_cannot_touch_booking(db, renter_id, owner_id):
    booking = await _create(db, renter_id, owner_id)
    stranger = uuid.uuid4()

    with pytest.raises(NotBookingParty):
        await settlement.get_booking_for_party(db, booking.id, stranger)
    with pytest.raises(NotBookingParty):
        await settlement.accept_booking(db, booking.id, stranger)
    assert booking.status == BookingStatus.PENDING


@pytest.mark.asyncio
async def test_unknown_booking_is_not_found(db, owner_id):
    with pytest.raises(NotFound):
        await settlement.accept_booking(db, uuid.uuid4(), owner_id)


@pytest.mark.asyncio
async def test_renter_cannot_accept_own_request(db, renter_id, owner_id):
    booking = await _create(db, renter_id, owner_id)
    with pytest.raises(InvalidTransition):
        await settlement.accept_booking(db, booking.id, renter_id)


@pytest.mark.asyncio
async def test_reject_records_reason(db, renter_id, owner_id):
    booking = await _create(db, renter_id, owner_id)

    await settlement.reject_booking(db, booking.id, owner_id, "  Car is in the garage  ")

    assert booking.status == BookingStatus.REJECTED
    assert booking.rejection_reason == "Car is in the garage"
    assert booking.history[-1].note == "Car is in the garage"
    with pytest.raises(InvalidTransition):
        await settlement.cancel_booking(db, booking.id, renter_id)


@pytest.mark.asyncio
async def test_renter_cancellation_inside_partial_window(db, renter_id, owner_id):
    booking = await _create(db, renter_id, owner_id, pickup_in=timedelta(hours=36), gross="1000.00")
    await settlement.accept_booking(db, booking.id, owner_id)

    await settlement.cancel_booking(db, booking.id, renter_id, reason="Plans changed")

    assert booking.status == BookingStatus.CANCELLED
    assert booking.cancelled_by == "renter"
    assert booking.refund_tier == RefundTier.PARTIAL
    assert booking.refund.to_major() == Decimal("75.00")
    assert sorted(n.type for n in await _notifications_for(db, owner_id)) == [
        "booking_cancelled",
        "booking_created",
    ]


@pytest.mark.asyncio
async def test_start_ride_only_once(db, renter_id, owner_id):
    booking = await _create(db, renter_id, owner_id)
    await settlement.accept_booking(db, booking.id, owner_id)

    await settlement.start_ride(db, booking.id, owner_id)
    assert booking.ride_started_at is not None
    with pytest.raises(InvalidTransition):
        await settlement.start_ride(db, booking.id, owner_id)


@pytest.mark.asyncio
async def test_concurrent_accepts_one_wins(db, renter_id, owner_id):
    """Two sessions accept the same version: the second write is refused."""
    booking = await _create(db, renter_id, owner_id)
    await db.commit()

    async with test_session() as other:
        # Held so the identity map keeps the version-1 copy for the second accept.
        stale = await settlement.get_booking(other, booking.id)

        await settlement.accept_booking(db, booking.id, owner_id)
        await db.commit()
        assert stale.version == 1

        with pytest.raises(ConflictingTransition):
            await settlement.accept_booking(other, booking.id, owner_id)
        await other.rollback()

    async with test_session() as fresh:
        stored = await settlement.get_booking(fresh, booking.id)
        assert stored.status == BookingStatus.ACTIVE
        assert stored.version == 2
        assert len(stored.history) == 2


@pytest.mark.asyncio
async def test_list_bookings_by_role_and_status(db, renter_id, owner_id):
    first = await _create(db, renter_id, owner_id)
    second = await _create(db, owner_id, renter_id)
    await settlement.accept_booking(db, first.id, owner_id)

    as_provider = await settlement.list_bookings(db, owner_id, role=ActorRole.PROVIDER)
    assert [b.id for b in as_provider] == [first.id]

    either = await settlement.list_bookings(db, owner_id)
    assert {b.id for b in either} == {first.id, second.id}

    pending = await settlement.list_bookings(db, owner_id, status=BookingStatus.PENDING)
    assert [b.id for b in pending] == [second.id]


# ---------------------------------------------------------------------------
# Balances and withdrawals
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_balance_counts_only_completed_bookings(db, renter_id, owner_id):
    await add_completed_booking(db, renter_id, owner_id, "1428.57")
    await _create(db, renter_id, owner_id, gross="5000.00")  # still pending

    breakdown = await settlement.balance_breakdown(db, owner_id)

    assert breakdown.total_earned.amount_minor == 121429
    assert breakdown.available.to_major() == Decimal("850.00")
    assert breakdown.held.amount_minor == 121429 - 85000
    assert breakdown.withdrawn.amount_minor == 0


@pytest.mark.asyncio
async def test_withdrawal_against_available_balance(db, renter_id, owner_id):
    await add_completed_booking(db, renter_id, owner_id, "1428.57")

    with pytest.raises(InsufficientBalance):
        await settlement.request_withdrawal(db, owner_id, Money.from_major("900.00"), WithdrawalMethod.MPESA, "0712345678")
    with pytest.raises(BelowMinimum):
        await settlement.request_withdrawal(db, owner_id, Money.from_major("5.00"), WithdrawalMethod.MPESA, "0712345678")

    withdrawal = await settlement.request_withdrawal(
        db, owner_id, Money.from_major("500.00"), WithdrawalMethod.MPESA, "0712 345 678"
    )

    assert withdrawal.status == WithdrawalStatus.SUBMITTED
    assert withdrawal.method_details == "********5678"
    assert withdrawal.destination_token.startswith("dest_mock_")
    assert withdrawal.reference.startswith("WD")
    assert (await settlement.compute_available_balance(db, owner_id)).to_major() == Decimal("350.00")


@pytest.mark.asyncio
async def test_withdrawal_rejects_bad_amounts_and_details(db, renter_id, owner_id):
    await add_completed_booking(db, renter_id, owner_id, "1428.57")

    with pytest.raises(BelowMinimum):
        await settlement.request_withdrawal(db, owner_id, Money(0), WithdrawalMethod.MPESA, "0712345678")
    with pytest.raises(BelowMinimum):
        await settlement.request_withdrawal(db, owner_id, Money(-500), WithdrawalMethod.MPESA, "0712345678")
    with pytest.raises(InvalidMethodDetails):
        await settlement.request_withdrawal(db, owner_id, Money.from_major("50.00"), WithdrawalMethod.MPESA, "12345")
    with pytest.raises(InvalidMethodDetails):
        await settlement.request_withdrawal(
            db, owner_id, Money.from_major("50.00"), WithdrawalMethod.BANK_CARD, "4111111111111111"
        )
    assert await settlement.list_withdrawals(db, owner_id) == []


@pytest.mark.asyncio
async def test_each_withdrawal_bumps_account_version(db, renter_id, owner_id):
    await add_completed_booking(db, renter_id, owner_id, "1428.57")

    await settlement.request_withdrawal(db, owner_id, Money.from_major("100.00"), WithdrawalMethod.MPESA, "0712345678")
    await settlement.request_withdrawal(
        db, owner_id, Money.from_major("100.00"), WithdrawalMethod.BANK_CARD, "4111111111111111", account_name="Jane"
    )

    version = await db.scalar(select(EarningsAccount.version).where(EarningsAccount.owner_id == owner_id))
    assert version == 2


@pytest.mark.asyncio
async def test_withdrawal_gives_up_after_repeated_version_conflicts(db, renter_id, owner_id):
    await add_completed_booking(db, renter_id, owner_id, "1428.57")

    with patch("opa.services.settlement._bump_account_version", new=AsyncMock(return_value=False)) as bump:
        with pytest.raises(ConflictingTransition):
            await settlement.request_withdrawal(
                db, owner_id, Money.from_major("100.00"), WithdrawalMethod.MPESA, "0712345678"
            )
    assert bump.await_count == 3
    assert await settlement.list_withdrawals(db, owner_id) == []


@pytest.mark.asyncio
async def test_withdrawal_retries_after_one_lost_race(db, renter_id, owner_id):
    await add_completed_booking(db, renter_id, owner_id, "1428.57")

    with patch("opa.services.settlement._bump_account_version", new=AsyncMock(side_effect=[False, True])) as bump:
        withdrawal = await settlement.request_withdrawal(
            db, owner_id, Money.from_major("100.00"), WithdrawalMethod.MPESA, "0712345678"
        )
    assert bump.await_count == 2
    assert withdrawal.status == WithdrawalStatus.SUBMITTED


@pytest.mark.asyncio
async def test_destination_is_tokenized_before_balance_token_is_claimed(db, renter_id, owner_id):
    await add_completed_booking(db, renter_id, owner_id, "1428.57")
    await settlement.request_withdrawal(db, owner_id, Money.from_major("100.00"), WithdrawalMethod.MPESA, "0712345678")
    versions_during_tokenize = []

    async def tokenize(owner, destination):
        versions_during_tokenize.append(
            await db.scalar(select(EarningsAccount.version).where(EarningsAccount.owner_id == owner))
        )
        return "dest_test_ordering"

    with patch("opa.services.settlement.payouts.tokenize_destination", new=AsyncMock(side_effect=tokenize)):
        withdrawal = await settlement.request_withdrawal(
            db, owner_id, Money.from_major("100.00"), WithdrawalMethod.MPESA, "0712345678"
        )

    assert versions_during_tokenize == [1]
    assert withdrawal.destination_token == "dest_test_ordering"
    assert await db.scalar(select(EarningsAccount.version).where(EarningsAccount.owner_id == owner_id)) == 2


@pytest.mark.asyncio
async def test_stale_account_version_cannot_be_claimed(db, renter_id, owner_id):
    await add_completed_booking(db, renter_id, owner_id, "1428.57")
    seen = await settlement._read_account_version(db, owner_id)

    await settlement.request_withdrawal(db, owner_id, Money.from_major("100.00"), WithdrawalMethod.MPESA, "0712345678")

    assert await settlement._bump_account_version(db, owner_id, seen, utcnow()) is False
    assert await settlement._bump_account_version(db, owner_id, seen + 1, utcnow()) is True


@pytest.mark.asyncio
async def test_interleaved_withdrawals_cannot_overdraw(db, renter_id, owner_id):
    """Both sessions see 850.00 available; only the first 500.00 goes through."""
    await add_completed_booking(db, renter_id, owner_id, "1428.57")
    await db.commit()

    async with test_session() as other:
        seen = await settlement.compute_available_balance(other, owner_id)
        assert seen.to_major() == Decimal("850.00")

        await settlement.request_withdrawal(
            db, owner_id, Money.from_major("500.00"), WithdrawalMethod.MPESA, "0712345678"
        )
        await db.commit()

        with pytest.raises(InsufficientBalance):
            await settlement.request_withdrawal(
                other, owner_id, Money.from_major("500.00"), WithdrawalMethod.AIRTEL_MONEY, "0112345678"
            )
        await other.rollback()

    withdrawals = await settlement.list_withdrawals(db, owner_id)
    assert [w.method for w in withdrawals] == [WithdrawalMethod.MPESA]
    assert (await settlement.compute_available_balance(db, owner_id)).to_major() == Decimal("350.00")


@pytest.mark.asyncio
async def test_saved_payout_method_round_trip(db, renter_id, owner_id):
    await add_completed_booking(db, renter_id, owner_id, "1428.57")

    saved = await settlement.add_payout_method(
        db, owner_id, WithdrawalMethod.BANK_CARD, "4111 1111 1111 1111", account_name="Jane Wanjiru", label=" Visa "
    )
    assert saved.method_details == "**** **** **** 1111"
    assert saved.label == "Visa"
    assert saved.destination_token.startswith("dest_mock_")

    again = await settlement.add_payout_method(
        db, owner_id, WithdrawalMethod.BANK_CARD, "4111111111111111", account_name="Jane Wanjiru"
    )
    assert again.id == saved.id
    assert [m.id for m in await settlement.list_payout_methods(db, owner_id)] == [saved.id]

    with patch("opa.services.settlement.payouts.tokenize_destination", new=AsyncMock()) as tokenize:
        withdrawal = await settlement.request_withdrawal(
            db, owner_id, Money.from_major("200.00"), payout_method_id=saved.id
        )
    tokenize.assert_not_awaited()
    assert withdrawal.method == WithdrawalMethod.BANK_CARD
    assert withdrawal.method_details == saved.method_details
    assert withdrawal.account_name == "Jane Wanjiru"
    assert withdrawal.destination_token == saved.destination_token
    assert withdrawal.payout_method_id == saved.id

    await settlement.delete_payout_method(db, saved.id, owner_id)
    assert await settlement.list_payout_methods(db, owner_id) == []
    assert (await settlement.get_withdrawal(db, withdrawal.id)).method_details == "**** **** **** 1111"


@pytest.mark.asyncio
async def test_saved_payout_method_belongs_to_its_owner(db, renter_id, owner_id):
    await add_completed_booking(db, renter_id, owner_id, "1428.57")
    stranger = uuid.uuid4()
    saved = await settlement.add_payout_method(db, stranger, WithdrawalMethod.MPESA, "0712345678")

    with pytest.raises(NotFound):
        await settlement.request_withdrawal(db, owner_id, Money.from_major("100.00"), payout_method_id=saved.id)
    with pytest.raises(NotFound):
        await settlement.delete_payout_method(db, saved.id, owner_id)
    with pytest.raises(InvalidMethodDetails):
        await settlement.request_withdrawal(db, owner_id, Money.from_major("100.00"))
    with pytest.raises(InvalidMethodDetails):
        await settlement.add_payout_method(db, owner_id, WithdrawalMethod.AIRTEL_MONEY, "0812345678")
    assert await settlement.list_withdrawals(db, owner_id) == []


@pytest.mark.asyncio
async def test_withdrawal_lifecycle_and_failed_payout_releases_funds(db, renter_id, owner_id):
    await add_completed_booking(db, renter_id, owner_id, "1428.57")
    withdrawal = await settlement.request_withdrawal(
        db, owner_id, Money.from_major("500.00"), WithdrawalMethod.AIRTEL_MONEY, "0112345678"
    )

    with pytest.raises(InvalidTransition):
        await settlement.complete_withdrawal(db, withdrawal)

    await settlement.mark_withdrawal_processing(db, withdrawal, "po_123")
    assert (await settlement.compute_available_balance(db, owner_id)).to_major() == Decimal("350.00")

    await settlement.fail_withdrawal(db, withdrawal, "Recipient account closed")
    assert withdrawal.status == WithdrawalStatus.FAILED
    assert withdrawal.failure_reason == "Recipient account closed"
    assert (await settlement.compute_available_balance(db, owner_id)).to_major() == Decimal("850.00")

    with pytest.raises(InvalidTransition):
        await settlement.complete_withdrawal(db, withdrawal)
    assert [n.type for n in await _notifications_for(db, owner_id)] == ["withdrawal_failed"]


@pytest.mark.asyncio
async def test_completed_withdrawal_counts_as_withdrawn(db, renter_id, owner_id):
    await add_completed_booking(db, renter_id, owner_id, "1428.57")
    withdrawal = await settlement.request_withdrawal(
        db, owner_id, Money.from_major("200.00"), WithdrawalMethod.MPESA, "0712345678"
    )
    await settlement.mark_withdrawal_processing(db, withdrawal, "po_456")
    await settlement.complete_withdrawal(db, withdrawal)

    breakdown = await settlement.balance_breakdown(db, owner_id)
    assert breakdown.withdrawn.to_major() == Decimal("200.00")
    assert breakdown.pending_withdrawals.amount_minor == 0
    assert breakdown.available.to_major() == Decimal("650.00")

    found = await settlement.find_withdrawal_for_payout(db, payout_id="po_456")
    assert found.id == withdrawal.id
    assert await settlement.find_withdrawal_for_payout(db) is None


@pytest.mark.asyncio
async def test_withdrawals_are_private_to_owner(db, renter_id, owner_id):
    await add_completed_booking(db, renter_id, owner_id, "1428.57")
    withdrawal = await settlement.request_withdrawal(
        db, owner_id, Money.from_major("50.00"), WithdrawalMethod.MPESA, "0712345678"
    )

    assert (await settlement.get_withdrawal(db, withdrawal.id, owner_id=owner_id)).id == withdrawal.id
    with pytest.raises(NotFound):
        await settlement.get_withdrawal(db, withdrawal.id, owner_id=renter_id)


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


def test_period_start_uses_calendar_boundaries():
    now = datetime(2026, 3, 18, 15, 30, tzinfo=timezone.utc)  # a Wednesday
    assert settlement.period_start(EarningsPeriod.WEEK, now) == datetime(2026, 3, 16, tzinfo=timezone.utc)
    assert settlement.period_start(EarningsPeriod.MONTH, now) == datetime(2026, 3, 1, tzinfo=timezone.utc)
    assert settlement.period_start(EarningsPeriod.YEAR, now) == datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_earnings_summary_per_period(db, renter_id, owner_id):
    now = datetime(2026, 3, 18, 12, 0, tzinfo=timezone.utc)
    for completed_at in (
        datetime(2026, 3, 17, 9, 0, tzinfo=timezone.utc),
        datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc),
        datetime(2026, 1, 10, 9, 0, tzinfo=timezone.utc),
        datetime(2025, 12, 20, 9, 0, tzinfo=timezone.utc),
    ):
        await add_completed_booking(db, renter_id, owner_id, "100.00", completed_at=completed_at)

    week = await settlement.earnings_summary(db, owner_id, EarningsPeriod.WEEK, now=now)
    month = await settlement.earnings_summary(db, owner_id, EarningsPeriod.MONTH, now=now)
    year = await settlement.earnings_summary(db, owner_id, EarningsPeriod.YEAR, now=now)

    assert (week.completed_bookings, week.total_earned.to_major()) == (1, Decimal("85.00"))
    assert (month.completed_bookings, month.total_earned.to_major()) == (2, Decimal("170.00"))
    assert (year.completed_bookings, year.total_earned.to_major()) == (3, Decimal("255.00"))
    assert year.average_per_booking.to_major() == Decimal("85.00")


@pytest.mark.asyncio
async def test_earnings_summary_with_no_bookings(db, owner_id):
    summary = await settlement.earnings_summary(db, owner_id, EarningsPeriod.MONTH)
    assert summary.completed_bookings == 0
    assert summary.average_per_booking.amount_minor == 0


@pytest.mark.asyncio
async def test_transactions_merge_earnings_and_withdrawals_newest_first(db, renter_id, owner_id):
    booking = await add_completed_booking(
        db, renter_id, owner_id, "1428.57", completed_at=utcnow() - timedelta(days=2)
    )
    withdrawal = await settlement.request_withdrawal(
        db, owner_id, Money.from_major("100.00"), WithdrawalMethod.MPESA, "0712345678"
    )

    entries = await settlement.list_transactions(db, owner_id)

    assert [(e.type, e.id) for e in entries] == [
        (LedgerEntryType.WITHDRAWAL, withdrawal.id),
        (LedgerEntryType.EARNED, booking.id),
    ]
    assert entries[1].amount.amount_minor == 121429
    assert entries[0].reference == withdrawal.reference

    assert [e.id for e in await settlement.list_transactions(db, owner_id, limit=1, offset=1)] == [booking.id]
