import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from opa.models.enums import NotificationType


class NotificationResponse(BaseModel):
    """In-app notification; ``data`` carries the booking or withdrawal id to deep-link to."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: uuid.UUID
    type: NotificationType
    title: str
    body: str
    data: dict[str, Any] | None = None
    is_read: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    unread_count: int
