"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("tg_id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=True),
        sa.Column("file_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("base_limit", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("referral_reward", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("bonus_slots", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "referrals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("referrer_tg_id", sa.BigInteger(), nullable=False, index=True),
        sa.Column("referred_tg_id", sa.BigInteger(), nullable=False),
        sa.Column("reward", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("referred_tg_id", name="uq_referrals_referred"),
    )

    op.create_table(
        "app_settings",
        sa.Column("key", sa.String(length=128), primary_key=True),
        sa.Column("int_value", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "daily_stats",
        sa.Column("day", sa.Date(), primary_key=True),
        sa.Column("count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "daily_stat_users",
        sa.Column("day", sa.Date(), primary_key=True),
        sa.Column("tg_id", sa.BigInteger(), primary_key=True),
    )


def downgrade() -> None:
    op.drop_table("daily_stat_users")
    op.drop_table("daily_stats")
    op.drop_table("app_settings")
    op.drop_table("referrals")
    op.drop_table("users")
