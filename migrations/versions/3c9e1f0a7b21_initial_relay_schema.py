"""initial relay schema

Revision ID: 3c9e1f0a7b21
Revises:
Create Date: 2026-10-19 09:12:44.518203

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c9e1f0a7b21"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create binding, envelope and relay bookkeeping tables."""
    op.create_table(
        "push_subscription",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("endpoint", sa.Text(), nullable=False),
        sa.Column("p256dh", sa.Text(), nullable=False),
        sa.Column("auth", sa.Text(), nullable=False),
        sa.Column("user_pubkey", sa.String(length=44), nullable=False),
        sa.Column("target_pubkey", sa.String(length=44), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_push_subscription_user_pubkey"),
        "push_subscription",
        ["user_pubkey"],
        unique=False,
    )
    op.create_table(
        "relay_envelope",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("sender_pubkey", sa.String(length=44), nullable=False),
        sa.Column("boxes", sa.JSON(), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "feed_state",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("last_seen_id", sa.Text(), nullable=True),
        sa.Column("last_seen_hash", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "relay_config",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("vapid_public_key", sa.Text(), nullable=False),
        sa.Column("vapid_private_key", sa.Text(), nullable=False),
        sa.Column("vapid_subject", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    """Drop all relay tables."""
    op.drop_table("relay_config")
    op.drop_table("feed_state")
    op.drop_table("relay_envelope")
    op.drop_index(op.f("ix_push_subscription_user_pubkey"), table_name="push_subscription")
    op.drop_table("push_subscription")
