import uuid

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from opa.database import get_db
from opa.dependencies import get_current_actor
from opa.schemas.payout_method import (
    PayoutMethodCreateRequest,
    PayoutMethodListResponse,
    PayoutMethodResponse,
)
from opa.services import settlement
from opa.utils.rate_limit import LIST_RATE_LIMIT, WRITE_RATE_LIMIT, limiter

router = APIRouter()


@router.post("", response_model=PayoutMethodResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(WRITE_RATE_LIMIT)
async def add_payout_method(
    request: Request,
    body: PayoutMethodCreateRequest,
    actor_id: uuid.UUID = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Save an M-PESA, Airtel Money or bank card destination for later withdrawals."""
    payout_method = await settlement.add_payout_method(
        db,
        owner_id=actor_id,
        method=body.method,
        details=body.method_details,
        account_name=body.account_name,
        label=body.label,
    )
    return PayoutMethodResponse.model_validate(payout_method)


@router.get("", response_model=PayoutMethodListResponse)
@limiter.limit(LIST_RATE_LIMIT)
async def list_payout_methods(
    request: Request,
    actor_id: uuid.UUID = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    payout_methods = await settlement.list_payout_methods(db, actor_id)
    return PayoutMethodListResponse(
        payout_methods=[PayoutMethodResponse.model_validate(m) for m in payout_methods]
    )


@router.delete("/{payout_method_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(WRITE_RATE_LIMIT)
async def delete_payout_method(
    request: Request,
    payout_method_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    await settlement.delete_payout_method(db, payout_method_id, actor_id)
