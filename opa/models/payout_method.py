import uuid
from datetime import datetime

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from opa.database import Base
from opa.models.enums import WithdrawalMethod
from opa.models.types import GUID, UTCDateTime, str_enum


class PayoutMethod(Base):
    """A payout destination an owner saved for later withdrawals.

    Like a withdrawal, it keeps the masked reference and the processor token,
    never the clear phone or card number.
    """

    __tablename__ = "payout_methods"
    __table_args__ = (
        UniqueConstraint("owner_id", "destination_token", name="uq_payout_method_owner_token"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False, index=True)
    method: Mapped[WithdrawalMethod] = mapped_column(str_enum(WithdrawalMethod), nullable=False)
    label: Mapped[str | None] = mapped_column(String(50), nullable=True)
    method_details: Mapped[str] = mapped_column(String(32), nullable=False)
    account_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    destination_token: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
