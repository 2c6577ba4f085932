from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

import pytest
from db.client import session_scope
from wallet_ledger import Ledger
from wallet_ledger.credit_cycle import statement_window
from wallet_ledger.errors import ValidationError
from wallet_ledger.models import StatementWindow

from tests.helpers.clock import FrozenClock
from tests.helpers.db import insert_legacy_transaction

PHONE = "+55 11 91234-5678"


@pytest.mark.parametrize(
    ("billing_day", "today", "start", "end"),
    [
        (10, date(2024, 3, 15), date(2024, 3, 10), date(2024, 4, 10)),
        (10, date(2024, 3, 5), date(2024, 2, 10), date(2024, 3, 10)),
        (10, date(2024, 3, 10), date(2024, 3, 10), date(2024, 4, 10)),
        (10, date(2024, 3, 9), date(2024, 2, 10), date(2024, 3, 10)),
        (5, date(2024, 1, 2), date(2023, 12, 5), date(2024, 1, 5)),
        (20, date(2024, 12, 25), date(2024, 12, 20), date(2025, 1, 20)),
        # Short months clamp the billing day.
        (31, date(2024, 2, 15), date(2024, 1, 31), date(2024, 2, 29)),
        (31, date(2023, 2, 28), date(2023, 2, 28), date(2023, 3, 31)),
        (31, date(2024, 4, 30), date(2024, 4, 30), date(2024, 5, 31)),
        (30, date(2024, 3, 1), date(2024, 2, 29), date(2024, 3, 30)),
    ],
)
def test_statement_window(billing_day: int, today: date, start: date, end: date):
    assert statement_window(billing_day, today) == StatementWindow(start, end)


@pytest.mark.parametrize("billing_day", [0, 32, -1])
def test_statement_window_rejects_out_of_range_day(billing_day: int):
    with pytest.raises(ValidationError):
        statement_window(billing_day, date(2024, 3, 15))


def test_window_always_contains_today():
    day = date(2023, 1, 1)
    while day < date(2025, 1, 1):
        for bd in (1, 15, 28, 29, 30, 31):
            window = statement_window(bd, day)
            assert day in window
            assert window.end > window.start
        day += timedelta(days=1)


def test_utilization_counts_outflows_inside_window(ledger: Ledger, db_url: str):
    card = ledger.create_wallet(
        PHONE, name="Card", kind="credit", credit_limit="500", billing_day=10
    )
    ledger.record_transaction(
        PHONE, description="Shoes", amount="100", direction="outflow",
        payment_method="credit", occurred_on="2024-03-12",
    )
    # Previous window.
    ledger.record_transaction(
        PHONE, description="Gift", amount="50", direction="outflow",
        payment_method="credit", occurred_on="2024-03-05",
    )
    # Refunds do not reduce usage.
    ledger.record_transaction(
        PHONE, description="Refund", amount="30", direction="inflow",
        payment_method="credit", occurred_on="2024-03-13",
    )

    util = ledger.get_credit_utilization(PHONE, card.id)
    assert util.window == StatementWindow(date(2024, 3, 10), date(2024, 4, 10))
    assert util.limit == Decimal("500.00")
    assert util.used == Decimal("100.00")
    assert util.available == Decimal("400.00")

    ledger.record_transaction(
        PHONE, description="TV", amount="450", direction="outflow", payment_method="credit"
    )
    over = ledger.get_credit_utilization(PHONE, card.id)
    assert over.used == Decimal("550.00")
    assert over.available == Decimal("-50.00")


def test_utilization_window_moves_with_clock(ledger: Ledger, clock: FrozenClock):
    card = ledger.create_wallet(
        PHONE, name="Card", kind="credit", credit_limit="500", billing_day=10
    )
    ledger.record_transaction(
        PHONE, description="Shoes", amount="100", direction="outflow",
        payment_method="credit", occurred_on="2024-03-12",
    )
    clock.set(datetime(2024, 4, 10, 8, 0, tzinfo=UTC))
    util = ledger.get_credit_utilization(PHONE, card.id)
    assert util.window.start == date(2024, 4, 10)
    assert util.used == Decimal("0.00")


def test_utilization_of_debit_wallet_is_rejected(ledger: Ledger):
    wallet = ledger.create_wallet(PHONE, name="Checking")
    with pytest.raises(ValidationError):
        ledger.get_credit_utilization(PHONE, wallet.id)


def test_legacy_rows_are_never_credit_usage(ledger: Ledger, db_url: str):
    card = ledger.create_wallet(PHONE, name="Card", kind="credit", billing_day=10)
    uid = ledger.resolve_identity(PHONE)
    with session_scope(database_url=db_url) as s:
        insert_legacy_transaction(
            s,
            user_id=uid,
            amount_cents=9999,
            payment_method="credit",
            occurred_at=datetime(2024, 3, 12, tzinfo=UTC),
        )
    assert ledger.get_credit_utilization(PHONE, card.id).used == Decimal("0.00")
