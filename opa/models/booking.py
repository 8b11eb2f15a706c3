import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Index, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from opa.database import Base
from opa.models.enums import BookingStatus, ProviderType, RefundTier
from opa.models.types import GUID, UTCDateTime, str_enum
from opa.utils.money import Money


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("dropoff_at > pickup_at", name="ck_booking_schedule_order"),
        CheckConstraint("gross_minor > 0", name="ck_booking_gross_positive"),
        CheckConstraint("commission_minor >= 0", name="ck_booking_commission_non_negative"),
        CheckConstraint("net_minor >= 0", name="ck_booking_net_non_negative"),
        CheckConstraint("commission_minor + net_minor = gross_minor", name="ck_booking_split_reconciles"),
        CheckConstraint("commission_rate >= 0 AND commission_rate < 1", name="ck_booking_commission_rate_range"),
        CheckConstraint("refund_minor IS NULL OR refund_minor >= 0", name="ck_booking_refund_non_negative"),
        Index("ix_booking_renter_created", "renter_id", "created_at"),
        Index("ix_booking_provider_status", "provider_id", "status"),
    )

    # Party and vehicle ids are weak references owned by other services.
    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    renter_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False, index=True)
    provider_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False, index=True)
    provider_type: Mapped[ProviderType] = mapped_column(str_enum(ProviderType, 10), nullable=False)
    vehicle_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False, index=True)
    pickup_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    dropoff_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        str_enum(BookingStatus), nullable=False, default=BookingStatus.PENDING, index=True
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    gross_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    commission_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    net_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    special_instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    # cancelled_by: "renter" | "provider" | "system" | NULL (not cancelled)
    cancelled_by: Mapped[str | None] = mapped_column(String(10), nullable=True)
    refund_tier: Mapped[RefundTier | None] = mapped_column(str_enum(RefundTier, 10), nullable=True)
    refund_minor: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    ride_started_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), onupdate=func.now()
    )

    history: Mapped[list["BookingStatusEvent"]] = relationship(
        "BookingStatusEvent",
        back_populates="booking",
        order_by="BookingStatusEvent.sequence",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    # Concurrent writers lose with StaleDataError instead of overwriting each other.
    __mapper_args__ = {"version_id_col": version}

    @property
    def gross(self) -> Money:
        return Money(self.gross_minor, self.currency)

    @property
    def commission(self) -> Money:
        return Money(self.commission_minor, self.currency)

    @property
    def net(self) -> Money:
        return Money(self.net_minor, self.currency)

    @property
    def refund(self) -> Money | None:
        if self.refund_minor is None:
            return None
        return Money(self.refund_minor, self.currency)


class BookingStatusEvent(Base):
    """Append-only audit trail of booking status changes, ordered by ``sequence``."""

    __tablename__ = "booking_status_events"
    __table_args__ = (
        Index("uq_booking_status_event_sequence", "booking_id", "sequence", unique=True),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[BookingStatus] = mapped_column(str_enum(BookingStatus), nullable=False)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)
    actor_role: Mapped[str] = mapped_column(String(10), nullable=False)
    note: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    booking: Mapped["Booking"] = relationship("Booking", back_populates="history", lazy="raise")
