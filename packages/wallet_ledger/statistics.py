"""Dashboard aggregates: per-view statistics and the daily inflow/outflow series.

Both entry points degrade instead of raising when the store fails mid-query:
the failure is logged with a traceback and an all-zero report (or an empty
series) is returned. Input errors such as an unknown view kind still raise.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal

from db.models.ledger import WlTransaction, WlWallet
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .credit_cycle import utilization
from .errors import ValidationError
from .logging_setup import get_logger
from .models import ZERO, DailyPoint, Direction, SearchFilters, StatisticsReport, WalletKind
from .money import CENT, from_cents
from .transactions import date_range_clause, filter_conditions, view_clause
from .wallets import coerce_kind, list_wallets

_logger = get_logger("wallet_ledger.statistics")

MAX_SERIES_DAYS = 366


def _outflow_aggregates(session: Session, conds: list) -> tuple[int, int, int, int]:
    total, count, max_c, min_c = session.execute(
        select(
            func.coalesce(func.sum(WlTransaction.amount_cents), 0),
            func.count(WlTransaction.id),
            func.max(WlTransaction.amount_cents),
            func.min(WlTransaction.amount_cents),
        )
        .select_from(WlTransaction)
        .outerjoin(WlWallet, WlTransaction.wallet_id == WlWallet.id)
        .where(*conds, WlTransaction.direction == Direction.OUTFLOW.value)
    ).one()
    return int(total or 0), int(count or 0), int(max_c or 0), int(min_c or 0)


def _outflow_total(session: Session, conds: list) -> int:
    return int(
        session.execute(
            select(func.coalesce(func.sum(WlTransaction.amount_cents), 0))
            .select_from(WlTransaction)
            .outerjoin(WlWallet, WlTransaction.wallet_id == WlWallet.id)
            .where(*conds, WlTransaction.direction == Direction.OUTFLOW.value)
        ).scalar_one()
        or 0
    )


def _compute(
    session: Session,
    *,
    user_id: int,
    view_kind: WalletKind,
    filters: SearchFilters,
    today: date,
) -> StatisticsReport:
    base = filter_conditions(filters, user_id=user_id)
    scoped = [*base, view_clause(view_kind)]

    # Debit counts every matching row; credit counts credit-wallet rows only.
    count_conds = scoped if view_kind is WalletKind.CREDIT else base
    transaction_count = session.execute(
        select(func.count(WlTransaction.id))
        .select_from(WlTransaction)
        .outerjoin(WlWallet, WlTransaction.wallet_id == WlWallet.id)
        .where(*count_conds)
    ).scalar_one()

    total_c, outflow_n, max_c, min_c = _outflow_aggregates(session, scoped)
    today_c = _outflow_total(session, [*scoped, date_range_clause(today, today)])
    month_c = _outflow_total(session, [*scoped, date_range_clause(today.replace(day=1), today)])

    average = (
        (Decimal(total_c) / outflow_n / 100).quantize(CENT) if outflow_n else ZERO
    )
    report = StatisticsReport(
        view_kind=view_kind,
        total_outflow=from_cents(total_c),
        transaction_count=int(transaction_count or 0),
        average_outflow=average,
        max_outflow=from_cents(max_c),
        min_outflow=from_cents(min_c),
        today_outflow=from_cents(today_c),
        month_to_date_outflow=from_cents(month_c),
    )
    if view_kind is not WalletKind.CREDIT:
        return report

    wanted = set(filters.wallet_ids or ())
    limit = used = ZERO
    for wallet in list_wallets(session, user_id=user_id):
        if wallet.kind is not WalletKind.CREDIT or (wanted and wallet.id not in wanted):
            continue
        u = utilization(session, wallet, today=today)
        limit += u.limit
        used += u.used
    return replace(report, credit_limit=limit, credit_used=used, credit_available=limit - used)


def get_statistics(
    session: Session,
    *,
    user_id: int,
    view_kind: WalletKind | str,
    today: date,
    filters: SearchFilters | None = None,
) -> StatisticsReport:
    """Aggregate outflow statistics for one view (debit or credit).

    The debit view includes wallet-less legacy rows. ``filters`` narrows the
    rows considered (dates, amounts, wallets, ...); its identity and paging
    fields are ignored.
    """

    kind = coerce_kind(view_kind, field="view_kind")
    try:
        return _compute(
            session, user_id=user_id, view_kind=kind, filters=filters or SearchFilters(), today=today
        )
    except SQLAlchemyError:
        _logger.exception("stats:degraded user_id=%s view=%s", user_id, kind.value)
        session.rollback()
        return StatisticsReport.zero(kind)


def daily_series(
    session: Session,
    *,
    user_id: int,
    view_kind: WalletKind | str,
    today: date,
    days: int = 30,
) -> list[DailyPoint]:
    """One point per calendar day for the last ``days`` days (today included).

    Days without activity are present with zero totals; output is ascending.
    """

    kind = coerce_kind(view_kind, field="view_kind")
    if isinstance(days, bool) or not isinstance(days, int) or not 1 <= days <= MAX_SERIES_DAYS:
        raise ValidationError(f"days must be between 1 and {MAX_SERIES_DAYS}")
    start = today - timedelta(days=days - 1)

    try:
        rows = session.execute(
            select(
                WlTransaction.occurred_on,
                WlTransaction.occurred_at,
                WlTransaction.direction,
                WlTransaction.amount_cents,
            )
            .select_from(WlTransaction)
            .outerjoin(WlWallet, WlTransaction.wallet_id == WlWallet.id)
            .where(
                WlTransaction.user_id == user_id,
                view_clause(kind),
                date_range_clause(start, today),
            )
        ).all()
    except SQLAlchemyError:
        _logger.exception("stats:daily_degraded user_id=%s view=%s", user_id, kind.value)
        session.rollback()
        return []

    inflow: dict[date, int] = defaultdict(int)
    outflow: dict[date, int] = defaultdict(int)
    for occurred_on, occurred_at, direction, cents in rows:
        day = occurred_on or occurred_at.date()
        bucket = inflow if direction == Direction.INFLOW.value else outflow
        bucket[day] += int(cents)

    return [
        DailyPoint(
            date=start + timedelta(days=i),
            inflow=from_cents(inflow.get(start + timedelta(days=i), 0)),
            outflow=from_cents(outflow.get(start + timedelta(days=i), 0)),
        )
        for i in range(days)
    ]


__all__ = ["MAX_SERIES_DAYS", "daily_series", "get_statistics"]
