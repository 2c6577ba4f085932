from __future__ import annotations

from datetime import UTC, date, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    and_,
    func,
    true,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import expression as sa_expr

# SQLite only auto-increments INTEGER PRIMARY KEY columns.
_ID = BigInteger().with_variant(Integer(), "sqlite")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    pass


# ---------------------------
# Identity: wl_users
# ---------------------------


class WlUser(Base):
    __tablename__ = "wl_users"

    id: Mapped[int] = mapped_column(_ID, primary_key=True, autoincrement=True)
    # Canonical digits-only phone (country code included).
    phone: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    # Cached pointer to the flagged default wallet. Not a FK: the pointer is
    # advisory and readers fall back to the wallets table.
    default_wallet_id: Mapped[int | None] = mapped_column(_ID, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )


# ---------------------------
# Wallets: wl_wallets
# ---------------------------


class WlWallet(Base):
    __tablename__ = "wl_wallets"

    id: Mapped[int] = mapped_column(_ID, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        _ID, ForeignKey("wl_users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(80), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    credit_limit_cents: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    billing_day: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_default: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sa_expr.false()
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=sa_expr.true()
    )
    # Created by the resolver rather than by the user.
    auto_provisioned: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sa_expr.false()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint("kind IN ('debit','credit')", name="ck_wl_wallet_kind"),
        CheckConstraint(
            "(kind = 'credit' AND credit_limit_cents > 0 AND billing_day BETWEEN 1 AND 31)"
            " OR (kind = 'debit' AND credit_limit_cents IS NULL AND billing_day IS NULL)",
            name="ck_wl_wallet_kind_fields",
        ),
    )


# At most one active default wallet per user.
Index(
    "uniq_wl_wallet_default_per_user",
    WlWallet.user_id,
    unique=True,
    postgresql_where=and_(WlWallet.is_default == true(), WlWallet.is_active == true()),
    sqlite_where=and_(WlWallet.is_default == true(), WlWallet.is_active == true()),
)

# Concurrent resolvers provisioning the same wallet collide here instead of
# creating duplicates.
Index(
    "uniq_wl_wallet_auto_provisioned",
    WlWallet.user_id,
    WlWallet.kind,
    func.lower(WlWallet.name),
    unique=True,
    postgresql_where=and_(WlWallet.auto_provisioned == true(), WlWallet.is_active == true()),
    sqlite_where=and_(WlWallet.auto_provisioned == true(), WlWallet.is_active == true()),
)


# ---------------------------
# Ledger: wl_transactions
# ---------------------------


class WlTransaction(Base):
    __tablename__ = "wl_transactions"

    id: Mapped[int] = mapped_column(_ID, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        _ID, ForeignKey("wl_users.id", ondelete="CASCADE"), nullable=False
    )
    # Nullable for legacy rows written before wallets existed.
    wallet_id: Mapped[int | None] = mapped_column(
        _ID, ForeignKey("wl_wallets.id", ondelete="SET NULL"), nullable=True, index=True
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    direction: Mapped[str] = mapped_column(String(8), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(16), nullable=False)
    occurred_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    original_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_wl_tx_amount_positive"),
        CheckConstraint("direction IN ('inflow','outflow')", name="ck_wl_tx_direction"),
        CheckConstraint("payment_method IN ('debit','credit')", name="ck_wl_tx_payment_method"),
        Index("ix_wl_tx_user_occurred_on", "user_id", "occurred_on"),
    )


# ---------------------------
# Reference: wl_categories
# ---------------------------


class WlCategory(Base):
    __tablename__ = "wl_categories"

    id: Mapped[int] = mapped_column(_ID, primary_key=True, autoincrement=True)
    # NULL for the global defaults shared by every user.
    user_id: Mapped[int | None] = mapped_column(
        _ID, ForeignKey("wl_users.id", ondelete="CASCADE"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str | None] = mapped_column(String(16), nullable=True)
    direction_affinity: Mapped[str] = mapped_column(
        String(8), nullable=False, default="outflow", server_default="outflow"
    )
    is_default: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sa_expr.false()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint(
            "direction_affinity IN ('inflow','outflow','both')",
            name="ck_wl_category_affinity",
        ),
    )


Index(
    "uniq_wl_category_user_name",
    WlCategory.user_id,
    func.lower(WlCategory.name),
    unique=True,
    postgresql_where=WlCategory.user_id.is_not(None),
    sqlite_where=WlCategory.user_id.is_not(None),
)

Index(
    "uniq_wl_category_default_name",
    func.lower(WlCategory.name),
    WlCategory.direction_affinity,
    unique=True,
    postgresql_where=WlCategory.user_id.is_(None),
    sqlite_where=WlCategory.user_id.is_(None),
)


__all__ = [
    "Base",
    "WlCategory",
    "WlTransaction",
    "WlUser",
    "WlWallet",
]
