import uuid

import structlog
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from opa.database import get_db
from opa.dependencies import get_current_actor
from opa.exceptions import NotFound
from opa.models.enums import NotificationType
from opa.models.notification import Notification
from opa.schemas.notification import NotificationListResponse, NotificationResponse
from opa.utils.rate_limit import LIST_RATE_LIMIT, WRITE_RATE_LIMIT, limiter

logger = structlog.get_logger()
router = APIRouter()


@router.get("", response_model=NotificationListResponse)
@limiter.limit(LIST_RATE_LIMIT)
async def list_notifications(
    request: Request,
    actor_id: uuid.UUID = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0, le=10000),
    type: NotificationType | None = Query(None),
):
    """List the caller's notifications, optionally of one type, with the overall unread count."""
    query = select(Notification).where(Notification.user_id == actor_id)
    if type is not None:
        query = query.where(Notification.type == type.value)
    result = await db.execute(
        query.order_by(Notification.created_at.desc(), Notification.id).limit(limit).offset(offset)
    )
    notifications = result.scalars().all()

    unread_count = (
        await db.execute(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == actor_id, Notification.is_read == False)  # noqa: E712
        )
    ).scalar_one()

    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        unread_count=unread_count,
    )


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
@limiter.limit(WRITE_RATE_LIMIT)
async def mark_notification_read(
    request: Request,
    notification_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    # Filter by owner too so other users' ids read as missing.
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == actor_id,
        )
    )
    notification = result.scalar_one_or_none()
    if not notification:
        raise NotFound("Notification not found")

    notification.is_read = True
    await db.flush()

    logger.info("notification_marked_read", notification_id=str(notification_id))
    return NotificationResponse.model_validate(notification)


@router.patch("/read-all")
@limiter.limit(WRITE_RATE_LIMIT)
async def mark_all_notifications_read(
    request: Request,
    actor_id: uuid.UUID = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == actor_id, Notification.is_read == False)  # noqa: E712
        .values(is_read=True)
        .execution_options(synchronize_session="fetch")
    )
    logger.info("notifications_marked_read", user_id=str(actor_id), count=result.rowcount)
    return {"updated": result.rowcount}
