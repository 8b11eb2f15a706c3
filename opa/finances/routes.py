import uuid

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from opa.config import settings
from opa.database import get_db
from opa.dependencies import get_current_actor
from opa.models.enums import EarningsPeriod
from opa.schemas.finance import (
    BalanceResponse,
    EarningsSummaryResponse,
    TransactionListResponse,
    TransactionResponse,
)
from opa.services import settlement
from opa.utils.rate_limit import LIST_RATE_LIMIT, limiter

router = APIRouter()


@router.get("/balance", response_model=BalanceResponse)
@limiter.limit(LIST_RATE_LIMIT)
async def get_balance(
    request: Request,
    actor_id: uuid.UUID = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Earned, held, withdrawn and available amounts for the caller."""
    breakdown = await settlement.balance_breakdown(db, actor_id)
    return BalanceResponse.from_breakdown(breakdown, settings.MINIMUM_WITHDRAWAL)


@router.get("/summary", response_model=EarningsSummaryResponse)
@limiter.limit(LIST_RATE_LIMIT)
async def get_earnings_summary(
    request: Request,
    period: EarningsPeriod = Query(EarningsPeriod.MONTH),
    actor_id: uuid.UUID = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    summary = await settlement.earnings_summary(db, actor_id, period)
    return EarningsSummaryResponse.from_summary(summary)


@router.get("/transactions", response_model=TransactionListResponse)
@limiter.limit(LIST_RATE_LIMIT)
async def list_transactions(
    request: Request,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0, le=10000),
    actor_id: uuid.UUID = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    entries = await settlement.list_transactions(db, actor_id, limit=limit, offset=offset)
    return TransactionListResponse(transactions=[TransactionResponse.from_entry(e) for e in entries])
