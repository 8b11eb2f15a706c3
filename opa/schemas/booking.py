import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, model_validator

from opa.models.booking import Booking, BookingStatusEvent
from opa.models.enums import BookingStatus, ProviderType, RefundTier
from opa.services.pricing import RentalQuote


class BookingQuoteRequest(BaseModel):
    daily_rate: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    pickup_at: AwareDatetime
    dropoff_at: AwareDatetime
    insurance: bool = False


class BookingQuoteResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    currency: str
    days: int
    daily_rate: Decimal
    base_amount: Decimal
    insurance_amount: Decimal
    gross_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    net_amount: Decimal

    @classmethod
    def from_quote(cls, quote: RentalQuote) -> "BookingQuoteResponse":
        return cls(
            currency=quote.gross.currency,
            days=quote.days,
            daily_rate=quote.daily_rate.to_major(),
            base_amount=quote.base.to_major(),
            insurance_amount=quote.insurance.to_major(),
            gross_amount=quote.gross.to_major(),
            commission_rate=quote.commission_rate,
            commission_amount=quote.commission.to_major(),
            net_amount=quote.net.to_major(),
        )


class BookingCreateRequest(BaseModel):
    """Either a fixed ``gross_amount`` or a ``daily_rate`` to price from."""

    provider_id: uuid.UUID
    provider_type: ProviderType
    vehicle_id: uuid.UUID
    pickup_at: AwareDatetime
    dropoff_at: AwareDatetime
    gross_amount: Decimal | None = Field(None, max_digits=12, decimal_places=2)
    daily_rate: Decimal | None = Field(None, gt=0, max_digits=12, decimal_places=2)
    insurance: bool = False
    special_instructions: str | None = Field(None, max_length=1000)

    @model_validator(mode="after")
    def check_price_source(self) -> "BookingCreateRequest":
        if (self.gross_amount is None) == (self.daily_rate is None):
            raise ValueError("Provide exactly one of gross_amount or daily_rate")
        return self


class BookingRejectRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class BookingCancelRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class BookingStatusEventResponse(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    sequence: int
    status: BookingStatus
    actor_id: uuid.UUID | None
    actor_role: str
    note: str | None
    created_at: datetime


class BookingResponse(BaseModel):
    """Read-only snapshot of a booking; amounts are in major units."""

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    renter_id: uuid.UUID
    provider_id: uuid.UUID
    provider_type: ProviderType
    vehicle_id: uuid.UUID
    pickup_at: datetime
    dropoff_at: datetime
    status: BookingStatus
    currency: str
    gross_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    net_amount: Decimal
    special_instructions: str | None
    rejection_reason: str | None
    cancelled_by: str | None
    refund_tier: RefundTier | None
    refund_amount: Decimal | None
    accepted_at: datetime | None
    ride_started_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    rejected_at: datetime | None
    version: int
    created_at: datetime
    history: list[BookingStatusEventResponse]

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        refund = booking.refund
        return cls(
            id=booking.id,
            renter_id=booking.renter_id,
            provider_id=booking.provider_id,
            provider_type=booking.provider_type,
            vehicle_id=booking.vehicle_id,
            pickup_at=booking.pickup_at,
            dropoff_at=booking.dropoff_at,
            status=booking.status,
            currency=booking.currency,
            gross_amount=booking.gross.to_major(),
            commission_rate=booking.commission_rate,
            commission_amount=booking.commission.to_major(),
            net_amount=booking.net.to_major(),
            special_instructions=booking.special_instructions,
            rejection_reason=booking.rejection_reason,
            cancelled_by=booking.cancelled_by,
            refund_tier=booking.refund_tier,
            refund_amount=refund.to_major() if refund is not None else None,
            accepted_at=booking.accepted_at,
            ride_started_at=booking.ride_started_at,
            completed_at=booking.completed_at,
            cancelled_at=booking.cancelled_at,
            rejected_at=booking.rejected_at,
            version=booking.version,
            created_at=booking.created_at,
            history=[BookingStatusEventResponse.model_validate(event) for event in _ordered(booking.history)],
        )


def _ordered(history: list[BookingStatusEvent]) -> list[BookingStatusEvent]:
    return sorted(history, key=lambda event: event.sequence)
