"""Credit-card billing windows and utilization."""

from __future__ import annotations

import calendar
from datetime import date

from db.models.ledger import WlTransaction
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .errors import ValidationError
from .models import CreditUtilization, Direction, StatementWindow, Wallet, WalletKind
from .money import from_cents
from .transactions import date_range_clause


def _clamped(year: int, month: int, day: int) -> date:
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    idx = year * 12 + (month - 1) + delta
    return idx // 12, idx % 12 + 1


def statement_window(billing_day: int, today: date) -> StatementWindow:
    """Return the ``[start, end)`` statement window containing ``today``.

    The billing day is clamped to each month's length (31 -> Feb 28/29), and
    ``today`` is compared against this month's clamped day, so the returned
    window always contains ``today``.
    """

    if isinstance(billing_day, bool) or not isinstance(billing_day, int):
        raise ValidationError("billing_day must be an integer")
    if not 1 <= billing_day <= 31:
        raise ValidationError("billing_day must be between 1 and 31")

    this_cycle = _clamped(today.year, today.month, billing_day)
    if today >= this_cycle:
        ny, nm = _shift_month(today.year, today.month, 1)
        return StatementWindow(this_cycle, _clamped(ny, nm, billing_day))
    py, pm = _shift_month(today.year, today.month, -1)
    return StatementWindow(_clamped(py, pm, billing_day), this_cycle)


def utilization(session: Session, wallet: Wallet, *, today: date) -> CreditUtilization:
    """Outflows booked on ``wallet`` inside the current statement window.

    ``available`` is ``limit - used`` and goes negative when over the limit.
    """

    if wallet.kind is not WalletKind.CREDIT or wallet.billing_day is None:
        raise ValidationError(f"Wallet {wallet.id} is not a credit wallet")
    window = statement_window(wallet.billing_day, today)
    used_cents = session.execute(
        select(func.coalesce(func.sum(WlTransaction.amount_cents), 0)).where(
            WlTransaction.wallet_id == wallet.id,
            WlTransaction.direction == Direction.OUTFLOW.value,
            date_range_clause(window.start, window.end, end_exclusive=True),
        )
    ).scalar_one()
    limit = wallet.credit_limit or from_cents(0)
    used = from_cents(used_cents)
    return CreditUtilization(
        wallet_id=wallet.id,
        limit=limit,
        used=used,
        available=limit - used,
        window=window,
    )


__all__ = ["statement_window", "utilization"]
