import uuid
from datetime import datetime

from sqlalchemy import Integer, func
from sqlalchemy.orm import Mapped, mapped_column

from opa.database import Base
from opa.models.types import GUID, UTCDateTime


class EarningsAccount(Base):
    """Per-owner concurrency token for balance-changing operations.

    The balance itself is always derived from bookings and withdrawals;
    this row only carries ``version``, which every withdrawal bumps with a
    guarded ``UPDATE ... WHERE version = :seen``.
    """

    __tablename__ = "earnings_accounts"

    owner_id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_withdrawal_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), server_default=func.now())
