"""Right-to-erasure: delete every row the ledger holds for one user."""

from __future__ import annotations

from db.models.ledger import WlCategory, WlTransaction, WlUser, WlWallet
from sqlalchemy import delete
from sqlalchemy.orm import Session

from .logging_setup import get_logger
from .models import ErasureReport

_logger = get_logger("wallet_ledger.erasure")


def erase_user_data(session: Session, *, user_id: int) -> ErasureReport:
    """Delete the user's transactions, wallets, categories and the user row.

    Deletes run child-first so the result does not depend on FK cascades
    being enabled (SQLite without ``PRAGMA foreign_keys``). Runs in the
    caller's transaction: either everything goes or nothing does.
    """

    counts: dict[str, int] = {}
    for label, model, column in (
        ("transactions", WlTransaction, WlTransaction.user_id),
        ("wallets", WlWallet, WlWallet.user_id),
        ("categories", WlCategory, WlCategory.user_id),
        ("users", WlUser, WlUser.id),
    ):
        result = session.execute(
            delete(model).where(column == user_id).execution_options(synchronize_session=False)
        )
        counts[label] = int(result.rowcount or 0)
    session.expire_all()

    report = ErasureReport(user_id=user_id, **counts)
    _logger.info(
        "erasure:done user_id=%s transactions=%s wallets=%s categories=%s users=%s",
        user_id,
        report.transactions,
        report.wallets,
        report.categories,
        report.users,
    )
    return report


__all__ = ["erase_user_data"]
