"""Transaction store: validated writes, lookups, search, and legacy backfill.

Every new row is bound to a wallet whose kind equals the row's payment
method; when the caller does not name a wallet the resolver picks or
provisions one (see ``wallet_ledger.wallet_resolver``).

Legacy rows
-----------
Rows written before wallets existed have ``wallet_id IS NULL`` and sometimes
no ``occurred_on``. Date filters therefore test ``occurred_on`` when present
and fall back to ``occurred_at``; wallet-less rows count as debit in every
aggregate (``debit_view_clause``).
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal

from db.models.ledger import WlTransaction, WlUser, WlWallet
from sqlalchemy import ColumnElement, and_, func, or_, select, true
from sqlalchemy.orm import Session

from .categories import normalize_name
from .config import LedgerSettings
from .errors import InvariantViolation, NotFoundError, PermissionDeniedError, ValidationError
from .logging_setup import get_logger
from .models import (
    Direction,
    LedgerTransaction,
    SearchFilters,
    SearchResult,
    Wallet,
    WalletKind,
)
from .money import from_cents, to_cents
from .wallet_resolver import resolve_for_transaction
from .wallets import coerce_kind, wallet_from_row

_logger = get_logger("wallet_ledger.transactions")

MAX_DESCRIPTION_LENGTH = 500
MAX_CATEGORY_LENGTH = 64
FALLBACK_CATEGORY = "Other"


# ---------------------------
# Query fragments
# ---------------------------


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=UTC)


def date_range_clause(
    start: date | None, end: date | None, *, end_exclusive: bool = False
) -> ColumnElement[bool]:
    """Date filter honoring rows without ``occurred_on``.

    ``end`` is inclusive unless ``end_exclusive`` is set.
    """

    on_conds: list[ColumnElement[bool]] = []
    at_conds: list[ColumnElement[bool]] = []
    if start is not None:
        on_conds.append(WlTransaction.occurred_on >= start)
        at_conds.append(WlTransaction.occurred_at >= _day_start(start))
    if end is not None:
        if end_exclusive:
            on_conds.append(WlTransaction.occurred_on < end)
            at_conds.append(WlTransaction.occurred_at < _day_start(end))
        else:
            on_conds.append(WlTransaction.occurred_on <= end)
            at_conds.append(WlTransaction.occurred_at < _day_start(end + timedelta(days=1)))
    if not on_conds:
        return true()
    return or_(
        and_(WlTransaction.occurred_on.is_not(None), *on_conds),
        and_(WlTransaction.occurred_on.is_(None), *at_conds),
    )


def debit_view_clause() -> ColumnElement[bool]:
    """Debit-kind wallets plus wallet-less legacy rows (needs an outer join to wallets)."""

    return or_(
        WlWallet.kind == WalletKind.DEBIT.value,
        WlTransaction.wallet_id.is_(None),
        WlWallet.id.is_(None),
    )


def view_clause(view_kind: WalletKind) -> ColumnElement[bool]:
    if view_kind is WalletKind.CREDIT:
        return WlWallet.kind == WalletKind.CREDIT.value
    return debit_view_clause()


def filter_conditions(filters: SearchFilters, *, user_id: int | None) -> list[ColumnElement[bool]]:
    conds: list[ColumnElement[bool]] = []
    if user_id is not None:
        conds.append(WlTransaction.user_id == user_id)
    if filters.start_date or filters.end_date:
        conds.append(date_range_clause(filters.start_date, filters.end_date))
    if filters.min_amount is not None:
        conds.append(WlTransaction.amount_cents >= int(filters.min_amount * 100))
    if filters.max_amount is not None:
        conds.append(WlTransaction.amount_cents <= int(filters.max_amount * 100))
    if filters.description:
        conds.append(WlTransaction.description.icontains(filters.description, autoescape=True))
    if filters.category:
        conds.append(func.lower(WlTransaction.category) == filters.category.lower())
    if filters.wallet_ids:
        conds.append(WlTransaction.wallet_id.in_(filters.wallet_ids))
    if filters.direction is not None:
        conds.append(WlTransaction.direction == filters.direction.value)
    if filters.payment_method is not None:
        conds.append(WlTransaction.payment_method == filters.payment_method.value)
    return conds


# ---------------------------
# Mapping and validation
# ---------------------------


def transaction_from_row(row: WlTransaction, wallet: WlWallet | Wallet | None) -> LedgerTransaction:
    return LedgerTransaction(
        id=row.id,
        user_id=row.user_id,
        description=row.description,
        amount=from_cents(row.amount_cents),
        category=row.category,
        direction=Direction(row.direction),
        payment_method=WalletKind(row.payment_method),
        occurred_at=row.occurred_at,
        occurred_on=row.occurred_on,
        wallet_id=row.wallet_id,
        wallet_name=wallet.name if wallet is not None else None,
        wallet_kind=WalletKind(wallet.kind) if wallet is not None else None,
        original_message=row.original_message,
        created_at=row.created_at,
    )


def _direction(value: object) -> Direction:
    try:
        return Direction(str(value).strip().lower())
    except ValueError as exc:
        raise ValidationError(f"direction must be 'inflow' or 'outflow', got {value!r}") from exc


def _description(value: object) -> str:
    if not isinstance(value, str):
        raise ValidationError("Description must be a string")
    d = value.strip()
    if not d:
        raise ValidationError("Description cannot be empty")
    if len(d) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters")
    return d


def _category(value: object) -> str:
    if value is None:
        return FALLBACK_CATEGORY
    if not isinstance(value, str):
        raise ValidationError("Category must be a string")
    c = normalize_name(value)
    if len(c) > MAX_CATEGORY_LENGTH:
        raise ValidationError(f"Category must be at most {MAX_CATEGORY_LENGTH} characters")
    return c or FALLBACK_CATEGORY


def _occurred_on(value: object) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError as exc:
            raise ValidationError(f"Invalid date: {value!r}") from exc
    raise ValidationError(f"Invalid date: {value!r}")


# ---------------------------
# Writes
# ---------------------------


def create_transaction(
    session: Session,
    *,
    user_id: int,
    description: str,
    amount: Decimal | str | int | float,
    direction: Direction | str,
    payment_method: WalletKind | str,
    settings: LedgerSettings,
    now: datetime,
    category: str | None = None,
    occurred_on: date | str | None = None,
    occurred_at: datetime | None = None,
    wallet_id: int | None = None,
    original_message: str | None = None,
    allow_future: bool = False,
) -> LedgerTransaction:
    """Validate and insert one transaction; returns the stored row.

    ``now`` is the caller's clock reading; it supplies the default
    ``occurred_at`` and the "no future dates" bound (lifted by
    ``allow_future`` for scheduled entries).
    """

    desc = _description(description)
    amount_cents = to_cents(amount)
    direction_v = _direction(direction)
    method = coerce_kind(payment_method, field="payment_method")
    category_v = _category(category)

    on = _occurred_on(occurred_on)
    if occurred_at is not None and occurred_at.tzinfo is None:
        occurred_at = occurred_at.replace(tzinfo=UTC)
    if on is None:
        on = occurred_at.date() if occurred_at is not None else now.date()
    if on > now.date() and not allow_future:
        raise ValidationError(f"Transaction date {on.isoformat()} is in the future")
    if occurred_at is None:
        occurred_at = now if on == now.date() else datetime.combine(on, now.timetz())

    if wallet_id is not None:
        wallet_row = session.get(WlWallet, wallet_id)
        if wallet_row is None or not wallet_row.is_active:
            raise NotFoundError(f"Wallet {wallet_id} not found")
        if wallet_row.user_id != user_id:
            raise PermissionDeniedError(f"Wallet {wallet_id} belongs to another user")
        wallet = wallet_from_row(wallet_row)
        if wallet.kind is not method:
            raise InvariantViolation(
                f"Wallet {wallet.id} is {wallet.kind}; cannot book a {method} transaction on it"
            )
    else:
        wallet = resolve_for_transaction(
            session, user_id=user_id, required_kind=method, settings=settings
        )

    row = WlTransaction(
        user_id=user_id,
        wallet_id=wallet.id,
        description=desc,
        amount_cents=amount_cents,
        category=category_v,
        direction=direction_v.value,
        payment_method=method.value,
        occurred_on=on,
        occurred_at=occurred_at,
        original_message=original_message,
    )
    session.add(row)
    session.flush()
    _logger.info(
        "tx:create id=%s user_id=%s wallet_id=%s direction=%s method=%s cents=%s",
        row.id,
        user_id,
        wallet.id,
        direction_v.value,
        method.value,
        amount_cents,
    )
    return transaction_from_row(row, wallet)


def _row_for(session: Session, transaction_id: int, user_id: int | None) -> WlTransaction:
    row = session.get(WlTransaction, transaction_id)
    if row is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    if user_id is not None and row.user_id != user_id:
        raise PermissionDeniedError(f"Transaction {transaction_id} belongs to another user")
    return row


def get_transaction(
    session: Session, transaction_id: int, *, user_id: int | None = None
) -> LedgerTransaction:
    row = _row_for(session, transaction_id, user_id)
    wallet = session.get(WlWallet, row.wallet_id) if row.wallet_id is not None else None
    return transaction_from_row(row, wallet)


def delete_transaction(session: Session, transaction_id: int, *, user_id: int | None = None) -> None:
    row = _row_for(session, transaction_id, user_id)
    session.delete(row)
    session.flush()
    _logger.info("tx:delete id=%s user_id=%s", transaction_id, row.user_id)


# ---------------------------
# Reads
# ---------------------------


def search_transactions(
    session: Session, filters: SearchFilters, *, user_id: int | None
) -> SearchResult:
    """Filtered page of transactions, newest first, plus the unpaged total."""

    conds = filter_conditions(filters, user_id=user_id)
    total = session.execute(
        select(func.count()).select_from(WlTransaction).where(*conds)
    ).scalar_one()
    rows = session.execute(
        select(WlTransaction, WlWallet)
        .outerjoin(WlWallet, WlTransaction.wallet_id == WlWallet.id)
        .where(*conds)
        .order_by(WlTransaction.occurred_at.desc(), WlTransaction.id.desc())
        .offset(filters.offset)
        .limit(filters.limit)
    ).all()
    return SearchResult([transaction_from_row(tx, w) for tx, w in rows], int(total))


# ---------------------------
# Legacy backfill
# ---------------------------


def backfill_wallets(
    session: Session,
    *,
    settings: LedgerSettings,
    user_id: int | None = None,
    limit: int = 100,
) -> int:
    """Attach up to ``limit`` wallet-less rows to a resolver-chosen wallet.

    Returns the number of rows updated. Safe to re-run: rows that already
    have a wallet are never selected again.
    """

    if limit < 1:
        raise ValidationError("limit must be >= 1")
    stmt = (
        select(WlTransaction)
        .join(WlUser, WlUser.id == WlTransaction.user_id)
        .where(WlTransaction.wallet_id.is_(None))
        .order_by(WlTransaction.id)
        .limit(limit)
    )
    if user_id is not None:
        stmt = stmt.where(WlTransaction.user_id == user_id)

    updated = 0
    for row in session.execute(stmt).scalars().all():
        wallet = resolve_for_transaction(
            session,
            user_id=row.user_id,
            required_kind=row.payment_method,
            settings=settings,
        )
        row.wallet_id = wallet.id
        updated += 1
    session.flush()
    if updated:
        _logger.info("tx:backfill updated=%s user_id=%s", updated, user_id)
    return updated


__all__ = [
    "backfill_wallets",
    "create_transaction",
    "date_range_clause",
    "debit_view_clause",
    "delete_transaction",
    "filter_conditions",
    "get_transaction",
    "search_transactions",
    "transaction_from_row",
    "view_clause",
]
