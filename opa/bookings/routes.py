import uuid

import structlog
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from opa.config import settings
from opa.database import get_db
from opa.dependencies import get_current_actor
from opa.models.enums import ActorRole, BookingStatus
from opa.schemas.booking import (
    BookingCancelRequest,
    BookingCreateRequest,
    BookingQuoteRequest,
    BookingQuoteResponse,
    BookingRejectRequest,
    BookingResponse,
)
from opa.services import settlement
from opa.services.pricing import calculate_rental_quote
from opa.utils.money import Money
from opa.utils.rate_limit import LIST_RATE_LIMIT, WRITE_RATE_LIMIT, limiter

logger = structlog.get_logger()
router = APIRouter()


@router.post("/quote", response_model=BookingQuoteResponse)
@limiter.limit(LIST_RATE_LIMIT)
async def quote_booking(
    request: Request,
    body: BookingQuoteRequest,
    actor_id: uuid.UUID = Depends(get_current_actor),
):
    """Price a rental before booking: days, insurance, booking fee and owner net."""
    quote = calculate_rental_quote(
        Money.from_major(body.daily_rate, settings.CURRENCY),
        body.pickup_at,
        body.dropoff_at,
        insurance=body.insurance,
    )
    return BookingQuoteResponse.from_quote(quote)


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(WRITE_RATE_LIMIT)
async def create_booking(
    request: Request,
    body: BookingCreateRequest,
    actor_id: uuid.UUID = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Create a pending booking request; the caller is the renter."""
    if body.daily_rate is not None:
        gross = calculate_rental_quote(
            Money.from_major(body.daily_rate, settings.CURRENCY),
            body.pickup_at,
            body.dropoff_at,
            insurance=body.insurance,
        ).gross
    else:
        gross = Money.from_major(body.gross_amount, settings.CURRENCY)

    booking = await settlement.create_booking(
        db,
        renter_id=actor_id,
        provider_id=body.provider_id,
        provider_type=body.provider_type,
        vehicle_id=body.vehicle_id,
        pickup_at=body.pickup_at,
        dropoff_at=body.dropoff_at,
        gross=gross,
        special_instructions=body.special_instructions,
    )
    return BookingResponse.from_booking(booking)


@router.get("/me", response_model=list[BookingResponse])
@limiter.limit(LIST_RATE_LIMIT)
async def list_my_bookings(
    request: Request,
    role: ActorRole | None = Query(None),
    status_filter: BookingStatus | None = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0, le=10000),
    actor_id: uuid.UUID = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Bookings where the caller is renter (``role=renter``), provider (``role=provider``) or either."""
    bookings = await settlement.list_bookings(
        db, actor_id, role=role, status=status_filter, limit=limit, offset=offset
    )
    return [BookingResponse.from_booking(b) for b in bookings]


@router.get("/{booking_id}", response_model=BookingResponse)
@limiter.limit(LIST_RATE_LIMIT)
async def get_booking(
    request: Request,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    booking = await settlement.get_booking_for_party(db, booking_id, actor_id)
    return BookingResponse.from_booking(booking)


@router.patch("/{booking_id}/accept", response_model=BookingResponse)
@limiter.limit(WRITE_RATE_LIMIT)
async def accept_booking(
    request: Request,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    booking = await settlement.accept_booking(db, booking_id, actor_id)
    return BookingResponse.from_booking(booking)


@router.patch("/{booking_id}/reject", response_model=BookingResponse)
@limiter.limit(WRITE_RATE_LIMIT)
async def reject_booking(
    request: Request,
    booking_id: uuid.UUID,
    body: BookingRejectRequest,
    actor_id: uuid.UUID = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    booking = await settlement.reject_booking(db, booking_id, actor_id, body.reason)
    return BookingResponse.from_booking(booking)


@router.patch("/{booking_id}/start", response_model=BookingResponse)
@limiter.limit(WRITE_RATE_LIMIT)
async def start_ride(
    request: Request,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    booking = await settlement.start_ride(db, booking_id, actor_id)
    return BookingResponse.from_booking(booking)


@router.patch("/{booking_id}/complete", response_model=BookingResponse)
@limiter.limit(WRITE_RATE_LIMIT)
async def complete_booking(
    request: Request,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    booking = await settlement.complete_booking(db, booking_id, actor_id)
    return BookingResponse.from_booking(booking)


@router.patch("/{booking_id}/cancel", response_model=BookingResponse)
@limiter.limit(WRITE_RATE_LIMIT)
async def cancel_booking(
    request: Request,
    booking_id: uuid.UUID,
    body: BookingCancelRequest | None = None,
    actor_id: uuid.UUID = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Cancel as renter or provider; the response carries the refund decision."""
    reason = body.reason if body else None
    booking = await settlement.cancel_booking(db, booking_id, actor_id, reason=reason)
    return BookingResponse.from_booking(booking)
