# ruff: noqa: E402, I001
from __future__ import annotations

import sys
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path

import pytest

# Make sure the workspace `packages/` dir is on sys.path so `wallet_ledger` is importable
_ROOT = Path(__file__).resolve().parents[2]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from db.client import dispose_engines, session_scope
from db.models.ledger import WlTransaction, WlWallet
from sqlalchemy import func, select

from wallet_ledger import Ledger, LedgerSettings
from wallet_ledger.errors import InvariantViolation
from wallet_ledger.models import WalletKind

from tests.helpers.clock import FrozenClock
from tests.helpers.db import bootstrap_sqlite_db, insert_legacy_transaction


def _assert_invariants(db_url: str) -> None:
    """At most one active default per user; bound rows match their wallet kind."""

    with session_scope(database_url=db_url) as s:
        defaults = s.execute(
            select(WlWallet.user_id, func.count())
            .where(WlWallet.is_default.is_(True), WlWallet.is_active.is_(True))
            .group_by(WlWallet.user_id)
        ).all()
        assert all(n == 1 for _, n in defaults)

        mismatched = s.execute(
            select(func.count())
            .select_from(WlTransaction)
            .join(WlWallet, WlTransaction.wallet_id == WlWallet.id)
            .where(WlTransaction.payment_method != WlWallet.kind)
        ).scalar_one()
        assert mismatched == 0

        bad_credit = s.execute(
            select(func.count())
            .select_from(WlWallet)
            .where(
                WlWallet.kind == "credit",
                (WlWallet.credit_limit_cents <= 0)
                | (WlWallet.billing_day < 1)
                | (WlWallet.billing_day > 31),
            )
        ).scalar_one()
        assert bad_credit == 0


def test_full_ledger_flow(tmp_path: Path) -> None:
    db_url = bootstrap_sqlite_db(tmp_path / "e2e.sqlite3")
    clock = FrozenClock(datetime(2024, 1, 15, 12, 0, tzinfo=UTC))
    ledger = Ledger(database_url=db_url, settings=LedgerSettings(), clock=clock)
    phone = "whatsapp:+55 11 91234-5678"

    try:
        # First outflow provisions the user's default debit wallet.
        first = ledger.record_transaction(
            phone,
            description="Lunch",
            amount="20.00",
            direction="outflow",
            payment_method="debit",
        )
        main = ledger.get_default_wallet(phone)
        assert main is not None
        assert (main.name, main.kind, main.is_default) == ("Main Wallet", WalletKind.DEBIT, True)
        assert first.wallet_id == main.id
        _assert_invariants(db_url)

        # Every spelling of the phone reaches the same user.
        uid = ledger.resolve_identity(phone)
        for spelling in ("+55 11 91234-5678", "5511912345678", "11912345678"):
            assert ledger.resolve_identity(spelling) == uid

        # A credit purchase gets a twin wallet; the default is untouched.
        card_tx = ledger.record_transaction(
            "11912345678",
            description="Headphones",
            amount="300",
            direction="outflow",
            payment_method="credit",
        )
        again = ledger.resolve_wallet(phone, "credit")
        assert again.id == card_tx.wallet_id
        assert (again.name, again.is_default) == ("Main Wallet", False)
        assert ledger.get_default_wallet(phone).id == main.id
        _assert_invariants(db_url)

        # Legacy rows without a wallet still count in the debit view.
        with session_scope(database_url=db_url) as s:
            insert_legacy_transaction(
                s, user_id=uid, amount_cents=1550, occurred_at=datetime(2024, 1, 12, tzinfo=UTC)
            )
        debit = ledger.get_statistics(phone, view_kind="debit")
        assert debit.total_outflow == Decimal("35.50")
        credit = ledger.get_statistics(phone, view_kind="credit")
        assert credit.total_outflow == Decimal("300.00")
        assert credit.credit_available == Decimal("700.00")

        util = ledger.get_credit_utilization(phone, again.id)
        assert (util.window.start.isoformat(), util.window.end.isoformat()) == (
            "2024-01-10",
            "2024-02-10",
        )

        # The default owns transactions; it cannot be deleted.
        with pytest.raises(InvariantViolation):
            ledger.delete_wallet(phone, main.id)
        assert ledger.delete_wallet(phone, again.id) is True
        _assert_invariants(db_url)

        # The backfill gives the legacy row a wallet.
        assert ledger.backfill_legacy_wallets(phone=phone) == 1
        assert ledger.get_balances(phone).unassigned_outflow == Decimal("0.00")

        report = ledger.erase_all_user_data(phone)
        assert report.users == 1 and report.transactions == 3
    finally:
        dispose_engines()
