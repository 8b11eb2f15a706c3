import asyncio
import uuid
from typing import Set

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from opa.config import settings
from opa.models.booking import Booking
from opa.models.enums import NotificationType, WithdrawalStatus
from opa.models.notification import Notification
from opa.models.withdrawal import WithdrawalRequest

logger = structlog.get_logger()

# Keep references to background tasks to prevent GC collection
_background_tasks: Set[asyncio.Task] = set()

_gateway_client: httpx.AsyncClient | None = None

_BOOKING_MESSAGES: dict[NotificationType, tuple[str, str]] = {
    NotificationType.BOOKING_CREATED: ("New booking request", "You have a new booking request for {pickup}."),
    NotificationType.BOOKING_ACCEPTED: ("Booking accepted", "Your booking for {pickup} has been accepted."),
    NotificationType.BOOKING_REJECTED: ("Booking declined", "Your booking for {pickup} was declined: {reason}"),
    NotificationType.RIDE_STARTED: ("Ride started", "Your ride has started. Enjoy the trip!"),
    NotificationType.BOOKING_COMPLETED: ("Booking completed", "Your booking for {pickup} is complete."),
    NotificationType.BOOKING_CANCELLED: ("Booking cancelled", "The booking for {pickup} has been cancelled."),
}


def _get_gateway_client() -> httpx.AsyncClient:
    global _gateway_client
    if _gateway_client is None or _gateway_client.is_closed:
        _gateway_client = httpx.AsyncClient(
            timeout=httpx.Timeout(connect=5.0, read=10.0, write=5.0, pool=5.0),
        )
    return _gateway_client


async def send_push(user_id: str, title: str, body: str, data: dict | None = None) -> bool:
    """Send a push notification through the notification gateway.

    If NOTIFICATION_API_URL is not configured, logs and returns True (dev mode).
    """
    if not settings.NOTIFICATION_API_URL:
        logger.info("push_send_dev_mode", user_id=user_id, title=title)
        return True

    # Push providers silently drop oversized payloads
    payload = {
        "user_id": user_id,
        "title": title[:50],
        "body": body[:200],
        "data": data or {},
        "channels": ["push", "email"],
    }
    try:
        client = _get_gateway_client()
        response = await client.post(
            f"{settings.NOTIFICATION_API_URL.rstrip('/')}/notifications",
            headers={"Authorization": f"Bearer {settings.NOTIFICATION_API_KEY}"},
            json=payload,
        )
        if response.is_success:
            logger.info("push_sent", user_id=user_id, title=title)
            return True
        logger.error("push_send_failed", user_id=user_id, status_code=response.status_code)
        return False
    except httpx.HTTPError as exc:
        logger.error("push_error", user_id=user_id, error=str(exc))
        return False


def create_notification(
    db: AsyncSession,
    user_id: uuid.UUID,
    notification_type: NotificationType,
    title: str,
    body: str,
    data: dict | None = None,
) -> Notification:
    """Add an in-app notification to the caller's session and push it in the background.

    The row is not flushed here: it is written with the caller's commit and
    disappears with the caller's rollback.
    """
    push_data = dict(data) if data else {}
    push_data.setdefault("type", notification_type.value)

    notification = Notification(
        id=uuid.uuid4(),
        user_id=user_id,
        type=notification_type.value,
        title=title,
        body=body,
        data=push_data,
        is_read=False,
    )
    db.add(notification)
    task = asyncio.create_task(send_push(str(user_id), title, body, data=push_data))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return notification


def notify_booking_party(
    db: AsyncSession,
    booking: Booking,
    recipient_id: uuid.UUID,
    notification_type: NotificationType,
) -> Notification | None:
    """Tell one side of a booking about a status change. Never raises."""
    try:
        title, template = _BOOKING_MESSAGES[notification_type]
        body = template.format(
            pickup=f"{booking.pickup_at:%d %b %Y %H:%M}",
            reason=booking.rejection_reason or "",
        )
        return create_notification(
            db,
            user_id=recipient_id,
            notification_type=notification_type,
            title=title,
            body=body,
            data={"booking_id": str(booking.id), "status": booking.status.value},
        )
    except Exception:
        logger.exception(
            "booking_notification_failed",
            booking_id=str(booking.id),
            notification_type=notification_type.value,
        )
        return None


def notify_withdrawal_owner(db: AsyncSession, withdrawal: WithdrawalRequest) -> Notification | None:
    """Tell the owner a withdrawal has settled. Never raises."""
    try:
        amount = withdrawal.amount.format()
        if withdrawal.status == WithdrawalStatus.COMPLETED:
            notification_type = NotificationType.WITHDRAWAL_COMPLETED
            title = "Withdrawal sent"
            body = f"{amount} has been sent to {withdrawal.method_details}."
        else:
            notification_type = NotificationType.WITHDRAWAL_FAILED
            title = "Withdrawal failed"
            body = f"Your withdrawal of {amount} could not be completed. The funds are back in your balance."
        return create_notification(
            db,
            user_id=withdrawal.owner_id,
            notification_type=notification_type,
            title=title,
            body=body,
            data={"withdrawal_id": str(withdrawal.id), "reference": withdrawal.reference},
        )
    except Exception:
        logger.exception("withdrawal_notification_failed", withdrawal_id=str(withdrawal.id))
        return None
