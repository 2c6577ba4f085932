# ruff: noqa: I001
"""Wallet ledger core tables and seed categories.

Revision ID: 0001_wl_core
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_wl_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    # wl_users
    op.create_table(
        "wl_users",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("phone", sa.String(32), nullable=False, unique=True),
        sa.Column("default_wallet_id", sa.BigInteger(), nullable=True),
        *_timestamps(),
    )

    # wl_wallets
    op.create_table(
        "wl_wallets",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.BigInteger(),
            sa.ForeignKey("wl_users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(80), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("kind", sa.String(16), nullable=False),
        sa.Column("credit_limit_cents", sa.BigInteger(), nullable=True),
        sa.Column("billing_day", sa.Integer(), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "auto_provisioned", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        *_timestamps(),
        sa.CheckConstraint("kind IN ('debit','credit')", name="ck_wl_wallet_kind"),
        sa.CheckConstraint(
            "(kind = 'credit' AND credit_limit_cents > 0 AND billing_day BETWEEN 1 AND 31)"
            " OR (kind = 'debit' AND credit_limit_cents IS NULL AND billing_day IS NULL)",
            name="ck_wl_wallet_kind_fields",
        ),
    )
    op.create_index("ix_wl_wallets_user_id", "wl_wallets", ["user_id"])
    op.create_index(
        "uniq_wl_wallet_default_per_user",
        "wl_wallets",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("is_default AND is_active"),
    )
    op.create_index(
        "uniq_wl_wallet_auto_provisioned",
        "wl_wallets",
        ["user_id", "kind", sa.text("lower(name)")],
        unique=True,
        postgresql_where=sa.text("auto_provisioned AND is_active"),
    )

    # wl_transactions
    op.create_table(
        "wl_transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.BigInteger(),
            sa.ForeignKey("wl_users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "wallet_id",
            sa.BigInteger(),
            sa.ForeignKey("wl_wallets.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("direction", sa.String(8), nullable=False),
        sa.Column("payment_method", sa.String(16), nullable=False),
        sa.Column("occurred_on", sa.Date(), nullable=True),
        sa.Column(
            "occurred_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("original_message", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint("amount_cents > 0", name="ck_wl_tx_amount_positive"),
        sa.CheckConstraint("direction IN ('inflow','outflow')", name="ck_wl_tx_direction"),
        sa.CheckConstraint(
            "payment_method IN ('debit','credit')", name="ck_wl_tx_payment_method"
        ),
    )
    op.create_index("ix_wl_tx_user_occurred_on", "wl_transactions", ["user_id", "occurred_on"])
    op.create_index("ix_wl_transactions_wallet_id", "wl_transactions", ["wallet_id"])

    # wl_categories
    op.create_table(
        "wl_categories",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.BigInteger(),
            sa.ForeignKey("wl_users.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("color", sa.String(16), nullable=True),
        sa.Column(
            "direction_affinity",
            sa.String(8),
            nullable=False,
            server_default=sa.text("'outflow'"),
        ),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.CheckConstraint(
            "direction_affinity IN ('inflow','outflow','both')",
            name="ck_wl_category_affinity",
        ),
    )
    op.create_index("ix_wl_categories_user_id", "wl_categories", ["user_id"])
    op.create_index(
        "uniq_wl_category_user_name",
        "wl_categories",
        ["user_id", sa.text("lower(name)")],
        unique=True,
        postgresql_where=sa.text("user_id IS NOT NULL"),
    )
    op.create_index(
        "uniq_wl_category_default_name",
        "wl_categories",
        [sa.text("lower(name)"), "direction_affinity"],
        unique=True,
        postgresql_where=sa.text("user_id IS NULL"),
    )

    # Seed defaults from wallet_ledger.categories.DEFAULT_CATEGORIES (mirrored here)
    default_categories = (
        ("Food", "outflow", "#ef4444"),
        ("Transport", "outflow", "#f97316"),
        ("Housing", "outflow", "#eab308"),
        ("Health", "outflow", "#22c55e"),
        ("Education", "outflow", "#3b82f6"),
        ("Leisure", "outflow", "#a855f7"),
        ("Shopping", "outflow", "#ec4899"),
        ("Other", "outflow", "#6b7280"),
        ("Salary", "inflow", "#10b981"),
        ("Freelance", "inflow", "#06b6d4"),
        ("Investments", "inflow", "#8b5cf6"),
        ("Sales", "inflow", "#f59e0b"),
        ("Other", "inflow", "#9ca3af"),
    )
    op.bulk_insert(
        sa.table(
            "wl_categories",
            sa.column("name", sa.String()),
            sa.column("color", sa.String()),
            sa.column("direction_affinity", sa.String()),
            sa.column("is_default", sa.Boolean()),
        ),
        [
            {"name": n, "color": c, "direction_affinity": d, "is_default": True}
            for n, d, c in default_categories
        ],
    )


def downgrade() -> None:
    op.drop_table("wl_categories")
    op.drop_table("wl_transactions")
    op.drop_index("uniq_wl_wallet_auto_provisioned", table_name="wl_wallets")
    op.drop_index("uniq_wl_wallet_default_per_user", table_name="wl_wallets")
    op.drop_table("wl_wallets")
    op.drop_table("wl_users")
