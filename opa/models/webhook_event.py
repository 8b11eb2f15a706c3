from datetime import datetime

from sqlalchemy import String, func
from sqlalchemy.orm import Mapped, mapped_column

from opa.database import Base
from opa.models.types import UTCDateTime


class ProcessedWebhookEvent(Base):
    """Payout processor callbacks already applied, keyed by the processor's event id."""

    __tablename__ = "processed_webhook_events"

    event_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    processed_at: Mapped[datetime] = mapped_column(UTCDateTime(), server_default=func.now())
