"""Per-wallet running balances for one user."""

from __future__ import annotations

from collections import defaultdict
from datetime import date

from db.models.ledger import WlTransaction
from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .credit_cycle import utilization
from .logging_setup import get_logger
from .models import BalanceSummary, Direction, WalletBalance, WalletKind
from .money import from_cents
from .wallets import list_wallets

_logger = get_logger("wallet_ledger.balances")


def _sums_by_wallet(session: Session, user_id: int) -> dict[int | None, tuple[int, int]]:
    inflow = func.coalesce(
        func.sum(
            case(
                (WlTransaction.direction == Direction.INFLOW.value, WlTransaction.amount_cents),
                else_=0,
            )
        ),
        0,
    )
    outflow = func.coalesce(
        func.sum(
            case(
                (WlTransaction.direction == Direction.OUTFLOW.value, WlTransaction.amount_cents),
                else_=0,
            )
        ),
        0,
    )
    rows = session.execute(
        select(WlTransaction.wallet_id, inflow, outflow)
        .where(WlTransaction.user_id == user_id)
        .group_by(WlTransaction.wallet_id)
    ).all()
    out: dict[int | None, tuple[int, int]] = defaultdict(lambda: (0, 0))
    for wallet_id, i, o in rows:
        out[wallet_id] = (int(i or 0), int(o or 0))
    return out


def compute_balances(session: Session, *, user_id: int, today: date) -> BalanceSummary:
    """Inflow, outflow and balance for each active wallet.

    Credit wallets also carry their current statement utilization. Rows on
    inactive wallets are left out; wallet-less legacy rows are reported as
    ``unassigned_*``. Storage failures degrade to an empty summary.
    """

    try:
        sums = _sums_by_wallet(session, user_id)
        entries: list[WalletBalance] = []
        for wallet in list_wallets(session, user_id=user_id):
            i, o = sums[wallet.id]
            util = (
                utilization(session, wallet, today=today)
                if wallet.kind is WalletKind.CREDIT
                else None
            )
            entries.append(WalletBalance(wallet, from_cents(i), from_cents(o), util))
    except SQLAlchemyError:
        _logger.exception("balances:degraded user_id=%s", user_id)
        session.rollback()
        return BalanceSummary(user_id=user_id)

    legacy_in, legacy_out = sums[None]
    return BalanceSummary(
        user_id=user_id,
        wallets=tuple(entries),
        unassigned_inflow=from_cents(legacy_in),
        unassigned_outflow=from_cents(legacy_out),
    )


__all__ = ["compute_balances"]
