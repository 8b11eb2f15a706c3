"""Saved payout methods

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=True)


def upgrade() -> None:
    op.create_table(
        "payout_methods",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("owner_id", UUID, nullable=False, index=True),
        sa.Column("method", sa.String(20), nullable=False),
        sa.Column("label", sa.String(50), nullable=True),
        sa.Column("method_details", sa.String(32), nullable=False),
        sa.Column("account_name", sa.String(100), nullable=True),
        sa.Column("destination_token", sa.String(100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("owner_id", "destination_token", name="uq_payout_method_owner_token"),
    )
    op.add_column("withdrawal_requests", sa.Column("payout_method_id", UUID, nullable=True))


def downgrade() -> None:
    op.drop_column("withdrawal_requests", "payout_method_id")
    op.drop_table("payout_methods")
