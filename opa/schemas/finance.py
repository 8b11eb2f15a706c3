import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from opa.models.enums import EarningsPeriod, LedgerEntryType
from opa.services.settlement import BalanceBreakdown, EarningsSummary, LedgerEntry


class BalanceResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    currency: str
    total_earned: Decimal
    held: Decimal
    withdrawn: Decimal
    pending_withdrawals: Decimal
    available: Decimal
    minimum_withdrawal: Decimal

    @classmethod
    def from_breakdown(cls, breakdown: BalanceBreakdown, minimum_withdrawal: Decimal) -> "BalanceResponse":
        return cls(
            currency=breakdown.available.currency,
            total_earned=breakdown.total_earned.to_major(),
            held=breakdown.held.to_major(),
            withdrawn=breakdown.withdrawn.to_major(),
            pending_withdrawals=breakdown.pending_withdrawals.to_major(),
            available=breakdown.available.to_major(),
            minimum_withdrawal=minimum_withdrawal,
        )


class EarningsSummaryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    period: EarningsPeriod
    start: datetime
    end: datetime
    currency: str
    total_earned: Decimal
    completed_bookings: int
    average_per_booking: Decimal

    @classmethod
    def from_summary(cls, summary: EarningsSummary) -> "EarningsSummaryResponse":
        return cls(
            period=summary.period,
            start=summary.start,
            end=summary.end,
            currency=summary.total_earned.currency,
            total_earned=summary.total_earned.to_major(),
            completed_bookings=summary.completed_bookings,
            average_per_booking=summary.average_per_booking.to_major(),
        )


class TransactionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    type: LedgerEntryType
    amount: Decimal
    currency: str
    status: str
    reference: str
    description: str
    occurred_at: datetime

    @classmethod
    def from_entry(cls, entry: LedgerEntry) -> "TransactionResponse":
        return cls(
            id=entry.id,
            type=entry.type,
            amount=entry.amount.to_major(),
            currency=entry.amount.currency,
            status=entry.status,
            reference=entry.reference,
            description=entry.description,
            occurred_at=entry.occurred_at,
        )


class TransactionListResponse(BaseModel):
    transactions: list[TransactionResponse]
