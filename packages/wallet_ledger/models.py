"""Value types returned and accepted by ``wallet_ledger``.

Read models are frozen dataclasses built from ORM rows; amounts are exposed as
2-dp ``Decimal`` even though storage keeps integer cents. Inputs that arrive
as loose mappings (search filters, wallet updates) are validated once with
pydantic at the boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .money import to_decimal_2

ZERO = Decimal("0.00")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class WalletKind(StrEnum):
    DEBIT = "debit"
    CREDIT = "credit"


class Direction(StrEnum):
    INFLOW = "inflow"
    OUTFLOW = "outflow"


class CategoryAffinity(StrEnum):
    INFLOW = "inflow"
    OUTFLOW = "outflow"
    BOTH = "both"


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Wallet:
    id: int
    user_id: int
    name: str
    kind: WalletKind
    is_default: bool
    is_active: bool
    description: str | None = None
    credit_limit: Decimal | None = None
    billing_day: int | None = None
    auto_provisioned: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class LedgerTransaction:
    """A committed ledger entry joined with its wallet (when it has one).

    ``wallet_id`` is ``None`` only for legacy rows; such rows count as debit in
    every aggregate.
    """

    id: int
    user_id: int
    description: str
    amount: Decimal
    category: str
    direction: Direction
    payment_method: WalletKind
    occurred_at: datetime
    occurred_on: date | None = None
    wallet_id: int | None = None
    wallet_name: str | None = None
    wallet_kind: WalletKind | None = None
    original_message: str | None = None
    created_at: datetime | None = None

    @property
    def effective_date(self) -> date:
        return self.occurred_on or self.occurred_at.date()


class SearchResult(NamedTuple):
    items: list[LedgerTransaction]
    total: int


@dataclass(frozen=True, slots=True)
class StatementWindow:
    """Half-open billing window ``[start, end)``."""

    start: date
    end: date

    def __contains__(self, day: object) -> bool:
        return isinstance(day, date) and self.start <= day < self.end


@dataclass(frozen=True, slots=True)
class CreditUtilization:
    wallet_id: int
    limit: Decimal
    used: Decimal
    # Negative when the wallet is over its limit.
    available: Decimal
    window: StatementWindow


@dataclass(frozen=True, slots=True)
class StatisticsReport:
    view_kind: WalletKind
    total_outflow: Decimal = ZERO
    transaction_count: int = 0
    average_outflow: Decimal = ZERO
    max_outflow: Decimal = ZERO
    min_outflow: Decimal = ZERO
    today_outflow: Decimal = ZERO
    month_to_date_outflow: Decimal = ZERO
    credit_limit: Decimal | None = None
    credit_used: Decimal | None = None
    credit_available: Decimal | None = None

    @classmethod
    def zero(cls, view_kind: WalletKind) -> StatisticsReport:
        if view_kind is WalletKind.CREDIT:
            return cls(view_kind, credit_limit=ZERO, credit_used=ZERO, credit_available=ZERO)
        return cls(view_kind)


@dataclass(frozen=True, slots=True)
class DailyPoint:
    date: date
    inflow: Decimal = ZERO
    outflow: Decimal = ZERO

    @property
    def balance(self) -> Decimal:
        return self.inflow - self.outflow


@dataclass(frozen=True, slots=True)
class WalletBalance:
    wallet: Wallet
    inflow: Decimal
    outflow: Decimal
    utilization: CreditUtilization | None = None

    @property
    def balance(self) -> Decimal:
        return self.inflow - self.outflow


@dataclass(frozen=True, slots=True)
class BalanceSummary:
    user_id: int
    wallets: tuple[WalletBalance, ...] = ()
    # Wallet-less legacy rows, reported apart from any wallet.
    unassigned_inflow: Decimal = ZERO
    unassigned_outflow: Decimal = ZERO

    @property
    def total_inflow(self) -> Decimal:
        return sum((w.inflow for w in self.wallets), self.unassigned_inflow)

    @property
    def total_outflow(self) -> Decimal:
        return sum((w.outflow for w in self.wallets), self.unassigned_outflow)

    @property
    def total_balance(self) -> Decimal:
        return self.total_inflow - self.total_outflow


@dataclass(frozen=True, slots=True)
class Category:
    id: int
    name: str
    direction_affinity: CategoryAffinity
    is_default: bool
    user_id: int | None = None
    description: str | None = None
    color: str | None = None


@dataclass(frozen=True, slots=True)
class ErasureReport:
    user_id: int | None
    transactions: int = 0
    wallets: int = 0
    categories: int = 0
    users: int = 0

    @property
    def total(self) -> int:
        return self.transactions + self.wallets + self.categories + self.users


# ---------------------------------------------------------------------------
# Validated inputs
# ---------------------------------------------------------------------------


def _optional_amount(v: object) -> Decimal | None:
    if v is None or v == "":
        return None
    d = to_decimal_2(v)
    if d < 0:
        raise ValueError("amount bounds must be >= 0")
    return d


class SearchFilters(BaseModel):
    """Transaction search criteria.

    ``phone`` is the raw caller identity; it is resolved to a user before the
    query runs. ``limit`` is capped at ``MAX_PAGE_SIZE``.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, str_strip_whitespace=True)

    phone: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    description: str | None = None
    category: str | None = None
    wallet_ids: tuple[int, ...] | None = None
    direction: Direction | None = None
    payment_method: WalletKind | None = None
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)

    @field_validator("min_amount", "max_amount", mode="before")
    @classmethod
    def _amount_bounds(cls, v: object) -> Decimal | None:
        return _optional_amount(v)

    @field_validator("description", "category", "phone", mode="after")
    @classmethod
    def _blank_to_none(cls, v: str | None) -> str | None:
        return v or None

    @field_validator("limit", mode="after")
    @classmethod
    def _cap_limit(cls, v: int) -> int:
        return min(v, MAX_PAGE_SIZE)

    @field_validator("wallet_ids", mode="after")
    @classmethod
    def _empty_wallets(cls, v: tuple[int, ...] | None) -> tuple[int, ...] | None:
        return v or None

    @model_validator(mode="after")
    def _ranges(self) -> SearchFilters:
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date")
        if (
            self.min_amount is not None
            and self.max_amount is not None
            and self.min_amount > self.max_amount
        ):
            raise ValueError("min_amount must be <= max_amount")
        return self


class WalletUpdate(BaseModel):
    """Partial wallet update; only fields explicitly set are applied."""

    model_config = ConfigDict(extra="forbid", frozen=True, str_strip_whitespace=True)

    name: str | None = None
    description: str | None = None
    kind: WalletKind | None = None
    is_default: bool | None = None
    credit_limit: Decimal | None = None
    billing_day: int | None = None

    @field_validator("credit_limit", mode="before")
    @classmethod
    def _limit(cls, v: object) -> Decimal | None:
        if v is None:
            return None
        return to_decimal_2(v)

    def changes(self) -> dict[str, object]:
        return {k: getattr(self, k) for k in self.model_fields_set}


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "BalanceSummary",
    "Category",
    "CategoryAffinity",
    "CreditUtilization",
    "DailyPoint",
    "Direction",
    "ErasureReport",
    "LedgerTransaction",
    "SearchFilters",
    "SearchResult",
    "StatementWindow",
    "StatisticsReport",
    "Wallet",
    "WalletBalance",
    "WalletKind",
    "WalletUpdate",
]
