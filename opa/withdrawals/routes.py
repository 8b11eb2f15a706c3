import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from opa.config import settings
from opa.database import get_db
from opa.dependencies import get_current_actor
from opa.exceptions import InvalidAmount
from opa.models.webhook_event import ProcessedWebhookEvent
from opa.schemas.withdrawal import WithdrawalCreateRequest, WithdrawalListResponse, WithdrawalResponse
from opa.services import settlement
from opa.services.payouts import PayoutSignatureError, verify_webhook_signature
from opa.utils.money import Money
from opa.utils.rate_limit import LIST_RATE_LIMIT, WEBHOOK_RATE_LIMIT, WITHDRAWAL_RATE_LIMIT, limiter

logger = structlog.get_logger()
router = APIRouter()

MAX_WEBHOOK_PAYLOAD_BYTES = 65_536


@router.post("", response_model=WithdrawalResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(WITHDRAWAL_RATE_LIMIT)
async def request_withdrawal(
    request: Request,
    body: WithdrawalCreateRequest,
    actor_id: uuid.UUID = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Withdraw to M-PESA, Airtel Money or a bank card, given raw details or a saved payout method."""
    try:
        amount = Money.from_major(body.amount, settings.CURRENCY)
    except ValueError as exc:
        raise InvalidAmount(str(exc)) from exc
    withdrawal = await settlement.request_withdrawal(
        db,
        owner_id=actor_id,
        amount=amount,
        method=body.method,
        details=body.method_details,
        account_name=body.account_name,
        payout_method_id=body.payout_method_id,
    )
    return WithdrawalResponse.from_withdrawal(withdrawal)


@router.get("/me", response_model=WithdrawalListResponse)
@limiter.limit(LIST_RATE_LIMIT)
async def list_my_withdrawals(
    request: Request,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0, le=10000),
    actor_id: uuid.UUID = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    withdrawals = await settlement.list_withdrawals(db, actor_id, limit=limit, offset=offset)
    return WithdrawalListResponse(
        withdrawals=[WithdrawalResponse.from_withdrawal(w) for w in withdrawals]
    )


@router.get("/{withdrawal_id}", response_model=WithdrawalResponse)
@limiter.limit(LIST_RATE_LIMIT)
async def get_withdrawal(
    request: Request,
    withdrawal_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    withdrawal = await settlement.get_withdrawal(db, withdrawal_id, owner_id=actor_id)
    return WithdrawalResponse.from_withdrawal(withdrawal)


@router.post("/webhooks/payout")
@limiter.limit(WEBHOOK_RATE_LIMIT)
async def payout_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """Payout processor callback: ``payout.completed`` / ``payout.failed``."""
    content_length = request.headers.get("content-length")
    try:
        if content_length and int(content_length) > MAX_WEBHOOK_PAYLOAD_BYTES:
            raise HTTPException(status_code=413, detail="Payload too large")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid Content-Length header")

    payload = await request.body()
    if len(payload) > MAX_WEBHOOK_PAYLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Payload too large")

    try:
        event = verify_webhook_signature(payload, request.headers.get("x-payout-signature", ""))
    except PayoutSignatureError as e:
        logger.error("payout_webhook_signature_failed", error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature")

    event_id = str(event["id"])
    event_type = event["type"]

    existing = await db.execute(
        select(ProcessedWebhookEvent).where(ProcessedWebhookEvent.event_id == event_id)
    )
    if existing.scalar_one_or_none():
        logger.info("payout_webhook_duplicate_skipped", event_id=event_id)
        return {"status": "already_processed"}

    # Record the event before applying it: a redelivery is skipped rather than applied twice.
    try:
        db.add(ProcessedWebhookEvent(event_id=event_id))
        await db.flush()
    except IntegrityError:
        await db.rollback()
        logger.info("payout_webhook_duplicate_race", event_id=event_id)
        return {"status": "already_processed"}

    logger.info("payout_webhook_received", event_type=event_type, event_id=event_id)

    data = event.get("data") or {}
    withdrawal = await settlement.find_withdrawal_for_payout(
        db, payout_id=data.get("payout_id"), reference=data.get("reference")
    )
    if withdrawal is None:
        logger.warning("payout_webhook_unknown_withdrawal", event_id=event_id)
        return {"status": "ignored"}

    if event_type == "payout.completed":
        await settlement.complete_withdrawal(db, withdrawal)
    elif event_type == "payout.failed":
        await settlement.fail_withdrawal(db, withdrawal, data.get("failure_reason") or "Payout failed")
    else:
        logger.info("payout_webhook_unhandled_type", event_type=event_type, event_id=event_id)
        return {"status": "ignored"}

    return {"status": "processed"}
