"""Initial settlement schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=True)


def upgrade() -> None:
    # Bookings
    op.create_table(
        "bookings",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("renter_id", UUID, nullable=False, index=True),
        sa.Column("provider_id", UUID, nullable=False, index=True),
        sa.Column("provider_type", sa.String(10), nullable=False),
        sa.Column("vehicle_id", UUID, nullable=False, index=True),
        sa.Column("pickup_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("dropoff_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, index=True),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("gross_minor", sa.BigInteger(), nullable=False),
        sa.Column("commission_rate", sa.Numeric(5, 4), nullable=False),
        sa.Column("commission_minor", sa.BigInteger(), nullable=False),
        sa.Column("net_minor", sa.BigInteger(), nullable=False),
        sa.Column("special_instructions", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.String(500), nullable=True),
        sa.Column("cancelled_by", sa.String(10), nullable=True),
        sa.Column("refund_tier", sa.String(10), nullable=True),
        sa.Column("refund_minor", sa.BigInteger(), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ride_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("dropoff_at > pickup_at", name="ck_booking_schedule_order"),
        sa.CheckConstraint("gross_minor > 0", name="ck_booking_gross_positive"),
        sa.CheckConstraint("commission_minor >= 0", name="ck_booking_commission_non_negative"),
        sa.CheckConstraint("net_minor >= 0", name="ck_booking_net_non_negative"),
        sa.CheckConstraint("commission_minor + net_minor = gross_minor", name="ck_booking_split_reconciles"),
        sa.CheckConstraint("commission_rate >= 0 AND commission_rate < 1", name="ck_booking_commission_rate_range"),
        sa.CheckConstraint("refund_minor IS NULL OR refund_minor >= 0", name="ck_booking_refund_non_negative"),
    )
    op.create_index("ix_booking_renter_created", "bookings", ["renter_id", "created_at"])
    op.create_index("ix_booking_provider_status", "bookings", ["provider_id", "status"])

    # Booking status history
    op.create_table(
        "booking_status_events",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("booking_id", UUID, sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("actor_id", UUID, nullable=True),
        sa.Column("actor_role", sa.String(10), nullable=False),
        sa.Column("note", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "uq_booking_status_event_sequence", "booking_status_events", ["booking_id", "sequence"], unique=True
    )

    # Owner balance version tokens
    op.create_table(
        "earnings_accounts",
        sa.Column("owner_id", UUID, primary_key=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_withdrawal_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Withdrawals
    op.create_table(
        "withdrawal_requests",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("owner_id", UUID, nullable=False, index=True),
        sa.Column("amount_minor", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("method", sa.String(20), nullable=False),
        sa.Column("method_details", sa.String(32), nullable=False),
        sa.Column("account_name", sa.String(100), nullable=True),
        sa.Column("destination_token", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, index=True),
        sa.Column("reference", sa.String(32), nullable=False, unique=True),
        sa.Column("payout_id", sa.String(100), nullable=True, index=True),
        sa.Column("failure_reason", sa.String(255), nullable=True),
        sa.Column("processing_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount_minor > 0", name="ck_withdrawal_amount_positive"),
    )
    op.create_index("ix_withdrawal_owner_created", "withdrawal_requests", ["owner_id", "created_at"])
    op.create_index("ix_withdrawal_owner_status", "withdrawal_requests", ["owner_id", "status"])

    # Notifications
    op.create_table(
        "notifications",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, nullable=False, index=True),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_notification_user_created", "notifications", ["user_id", "created_at"])
    op.create_index("ix_notification_user_is_read", "notifications", ["user_id", "is_read"])

    # Payout webhook idempotency
    op.create_table(
        "processed_webhook_events",
        sa.Column("event_id", sa.String(255), primary_key=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("processed_webhook_events")
    op.drop_table("notifications")
    op.drop_table("withdrawal_requests")
    op.drop_table("earnings_accounts")
    op.drop_table("booking_status_events")
    op.drop_table("bookings")
