"""initial savings schema

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=120)),
        sa.Column("image", sa.String(length=500)),
        sa.Column("password_hash", sa.String(length=255)),
        sa.Column(
            "provider", sa.Enum("credentials", "google", name="authprovider")
        ),
        sa.Column("provider_account_id", sa.String(length=255)),
        sa.Column(
            "email_verified", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "wallets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("slug", sa.String(length=50), nullable=False),
        sa.Column("logo", sa.String(length=255), nullable=False),
        sa.Column(
            "type",
            sa.Enum("EWALLET", "BANK", "CASH", "OTHER", name="wallettype"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("slug", name="uq_wallets_slug"),
    )

    op.create_table(
        "savings_goals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "wallet_id", sa.Integer(), sa.ForeignKey("wallets.id"), nullable=False
        ),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("target_amount_cents", sa.BigInteger()),
        sa.Column(
            "current_amount_cents", sa.BigInteger(), nullable=False, server_default="0"
        ),
        sa.Column(
            "is_completed", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_savings_goal_user_created", "savings_goals", ["user_id", "created_at"]
    )

    op.create_table(
        "savings_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "savings_goal_id",
            sa.Integer(),
            sa.ForeignKey("savings_goals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("note", sa.String(length=200)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_savings_entry_goal_created",
        "savings_entries",
        ["savings_goal_id", "created_at"],
    )

    for table in ("email_verification_tokens", "password_reset_tokens"):
        columns = [
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("token", sa.String(length=128), nullable=False),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.UniqueConstraint("token", name=f"uq_{table}_token"),
        ]
        if table == "password_reset_tokens":
            columns.insert(3, sa.Column("code", sa.String(length=6), nullable=False))
        op.create_table(table, *columns)
        op.create_index(f"ix_{table}_email", table, ["email"])

    op.create_table(
        "support_hearts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", name="uq_support_hearts_user"),
    )


def downgrade() -> None:
    op.drop_table("support_hearts")
    for table in ("password_reset_tokens", "email_verification_tokens"):
        op.drop_index(f"ix_{table}_email", table_name=table)
        op.drop_table(table)
    op.drop_index("ix_savings_entry_goal_created", table_name="savings_entries")
    op.drop_table("savings_entries")
    op.drop_index("ix_savings_goal_user_created", table_name="savings_goals")
    op.drop_table("savings_goals")
    op.drop_table("wallets")
    op.drop_table("users")
