import uuid
from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from opa.database import Base
from opa.models.enums import WithdrawalMethod, WithdrawalStatus
from opa.models.types import GUID, UTCDateTime, str_enum
from opa.utils.money import Money


class WithdrawalRequest(Base):
    __tablename__ = "withdrawal_requests"
    __table_args__ = (
        CheckConstraint("amount_minor > 0", name="ck_withdrawal_amount_positive"),
        Index("ix_withdrawal_owner_created", "owner_id", "created_at"),
        Index("ix_withdrawal_owner_status", "owner_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False, index=True)
    amount_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    method: Mapped[WithdrawalMethod] = mapped_column(str_enum(WithdrawalMethod), nullable=False)
    # Only the masked account reference is ever stored.
    method_details: Mapped[str] = mapped_column(String(32), nullable=False)
    account_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # Processor-side token for the clear destination, issued at request time.
    destination_token: Mapped[str] = mapped_column(String(100), nullable=False)
    # Saved method the destination came from; no foreign key so the method can be deleted.
    payout_method_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)
    status: Mapped[WithdrawalStatus] = mapped_column(
        str_enum(WithdrawalStatus), nullable=False, default=WithdrawalStatus.SUBMITTED, index=True
    )
    reference: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    payout_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    failure_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    processing_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def amount(self) -> Money:
        return Money(self.amount_minor, self.currency)
