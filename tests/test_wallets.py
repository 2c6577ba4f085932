from __future__ import annotations

from decimal import Decimal

import pytest
from db.models.ledger import WlTransaction, WlUser, WlWallet
from sqlalchemy import select
from sqlalchemy.orm import Session
from wallet_ledger import wallets as w
from wallet_ledger.config import LedgerSettings
from wallet_ledger.errors import (
    InvariantViolation,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from wallet_ledger.identity import IdentityResolver
from wallet_ledger.models import WalletKind, WalletUpdate
from wallet_ledger.transactions import create_transaction

from tests.helpers.clock import FIXED_NOW

SETTINGS = LedgerSettings()


def _user(session: Session, phone: str = "+55 11 91234-5678") -> int:
    return IdentityResolver().register(session, phone)


def _defaults(session: Session, user_id: int) -> list[int]:
    return list(
        session.execute(
            select(WlWallet.id).where(
                WlWallet.user_id == user_id,
                WlWallet.is_default.is_(True),
                WlWallet.is_active.is_(True),
            )
        ).scalars()
    )


def test_first_wallet_becomes_default(session: Session):
    uid = _user(session)
    wallet = w.create_wallet(session, user_id=uid, name="  Checking  ", settings=SETTINGS)
    assert wallet.is_default
    assert wallet.name == "Checking"
    assert wallet.kind is WalletKind.DEBIT
    assert wallet.credit_limit is None and wallet.billing_day is None
    assert session.get(WlUser, uid).default_wallet_id == wallet.id


def test_new_default_clears_previous_flag(session: Session):
    uid = _user(session)
    first = w.create_wallet(session, user_id=uid, name="Checking", settings=SETTINGS)
    second = w.create_wallet(
        session, user_id=uid, name="Savings", is_default=True, settings=SETTINGS
    )
    assert _defaults(session, uid) == [second.id]
    assert w.get_wallet(session, first.id, user_id=uid).is_default is False
    assert session.get(WlUser, uid).default_wallet_id == second.id

    w.set_default_wallet(session, first.id, user_id=uid)
    assert _defaults(session, uid) == [first.id]


def test_credit_wallet_gets_configured_defaults(session: Session):
    uid = _user(session)
    card = w.create_wallet(session, user_id=uid, name="Card", kind="credit", settings=SETTINGS)
    assert card.kind is WalletKind.CREDIT
    assert card.credit_limit == Decimal("1000.00")
    assert card.billing_day == 10


def test_debit_wallet_ignores_credit_fields(session: Session):
    uid = _user(session)
    wallet = w.create_wallet(
        session, user_id=uid, name="Cash", credit_limit="50", billing_day=3, settings=SETTINGS
    )
    assert wallet.credit_limit is None and wallet.billing_day is None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"name": ""},
        {"name": "   "},
        {"name": "x" * 81},
        {"name": "Card", "kind": "cash"},
        {"name": "Card", "kind": "credit", "credit_limit": "0"},
        {"name": "Card", "kind": "credit", "credit_limit": "-10"},
        {"name": "Card", "kind": "credit", "billing_day": 0},
        {"name": "Card", "kind": "credit", "billing_day": 32},
    ],
)
def test_create_wallet_validation(session: Session, kwargs):
    uid = _user(session)
    with pytest.raises(ValidationError):
        w.create_wallet(session, user_id=uid, settings=SETTINGS, **kwargs)


def test_list_orders_default_first_then_oldest(session: Session):
    uid = _user(session)
    a = w.create_wallet(session, user_id=uid, name="A", settings=SETTINGS)
    b = w.create_wallet(session, user_id=uid, name="B", settings=SETTINGS)
    c = w.create_wallet(session, user_id=uid, name="C", is_default=True, settings=SETTINGS)
    assert [x.id for x in w.list_wallets(session, user_id=uid)] == [c.id, a.id, b.id]


def test_cross_user_access_is_denied(session: Session):
    owner = _user(session)
    intruder = _user(session, "+55 21 98888-7777")
    wallet = w.create_wallet(session, user_id=owner, name="Mine", settings=SETTINGS)
    with pytest.raises(PermissionDeniedError):
        w.get_wallet(session, wallet.id, user_id=intruder)
    with pytest.raises(PermissionDeniedError):
        w.set_default_wallet(session, wallet.id, user_id=intruder)
    with pytest.raises(NotFoundError):
        w.get_wallet(session, 999_999, user_id=owner)


def test_soft_delete_default_clears_flag_and_pointer(session: Session):
    uid = _user(session)
    a = w.create_wallet(session, user_id=uid, name="A", settings=SETTINGS)
    b = w.create_wallet(session, user_id=uid, name="B", settings=SETTINGS)
    c = w.create_wallet(session, user_id=uid, name="C", settings=SETTINGS)
    w.set_default_wallet(session, b.id, user_id=uid)

    assert w.soft_delete_wallet(session, b.id, user_id=uid) is True
    assert _defaults(session, uid) == []
    assert session.get(WlUser, uid).default_wallet_id is None
    assert w.get_default_wallet(session, user_id=uid).id == a.id
    assert [x.id for x in w.list_wallets(session, user_id=uid)] == [a.id, c.id]
    # Inactive wallets are gone for reads and a second delete is a no-op.
    assert w.soft_delete_wallet(session, b.id, user_id=uid) is False
    with pytest.raises(NotFoundError):
        w.get_wallet(session, b.id, user_id=uid)


def test_deleting_last_wallet_leaves_no_default(session: Session):
    uid = _user(session)
    only = w.create_wallet(session, user_id=uid, name="Only", settings=SETTINGS)
    assert w.soft_delete_wallet(session, only.id, user_id=uid) is True
    assert w.get_default_wallet(session, user_id=uid) is None
    assert session.get(WlUser, uid).default_wallet_id is None


def test_default_falls_back_to_oldest_when_unflagged(session: Session):
    uid = _user(session)
    a = w.create_wallet(session, user_id=uid, name="A", settings=SETTINGS)
    w.create_wallet(session, user_id=uid, name="B", settings=SETTINGS)
    w.update_wallet(session, a.id, user_id=uid, changes={"is_default": False}, settings=SETTINGS)
    assert _defaults(session, uid) == []
    assert w.get_default_wallet(session, user_id=uid).id == a.id


def test_update_switch_to_credit_applies_defaults(session: Session):
    uid = _user(session)
    wallet = w.create_wallet(session, user_id=uid, name="Flex", settings=SETTINGS)
    updated = w.update_wallet(
        session, wallet.id, user_id=uid, changes={"kind": "credit"}, settings=SETTINGS
    )
    assert updated.kind is WalletKind.CREDIT
    assert updated.credit_limit == Decimal("1000.00")
    assert updated.billing_day == 10

    updated = w.update_wallet(
        session,
        wallet.id,
        user_id=uid,
        changes=WalletUpdate(credit_limit=Decimal("2500"), billing_day=28, name="Flex Card"),
        settings=SETTINGS,
    )
    assert (updated.name, updated.credit_limit, updated.billing_day) == (
        "Flex Card",
        Decimal("2500.00"),
        28,
    )

    back = w.update_wallet(
        session, wallet.id, user_id=uid, changes={"kind": "debit"}, settings=SETTINGS
    )
    assert back.credit_limit is None and back.billing_day is None


def test_update_rejects_clearing_credit_limit(session: Session):
    uid = _user(session)
    card = w.create_wallet(session, user_id=uid, name="Card", kind="credit", settings=SETTINGS)
    with pytest.raises(ValidationError):
        w.update_wallet(
            session, card.id, user_id=uid, changes={"credit_limit": None}, settings=SETTINGS
        )


@pytest.mark.parametrize(
    "changes",
    [
        {"billing_day": 0},
        {"billing_day": 32},
        {"credit_limit": "0"},
        {"credit_limit": "-5"},
        {"kind": "credit", "billing_day": 40},
    ],
)
def test_update_enforces_credit_field_bounds(session: Session, changes):
    uid = _user(session)
    card = w.create_wallet(
        session,
        user_id=uid,
        name="Card",
        kind="credit",
        credit_limit="800",
        billing_day=12,
        settings=SETTINGS,
    )
    with pytest.raises(ValidationError):
        w.update_wallet(session, card.id, user_id=uid, changes=changes, settings=SETTINGS)
    unchanged = w.get_wallet(session, card.id, user_id=uid)
    assert (unchanged.credit_limit, unchanged.billing_day) == (Decimal("800.00"), 12)


def test_update_rejects_unknown_fields(session: Session):
    uid = _user(session)
    wallet = w.create_wallet(session, user_id=uid, name="A", settings=SETTINGS)
    with pytest.raises(ValidationError):
        w.update_wallet(
            session, wallet.id, user_id=uid, changes={"colour": "red"}, settings=SETTINGS
        )


def test_kind_change_blocked_once_transactions_exist(session: Session):
    uid = _user(session)
    wallet = w.create_wallet(session, user_id=uid, name="A", settings=SETTINGS)
    create_transaction(
        session,
        user_id=uid,
        description="Coffee",
        amount="4.50",
        direction="outflow",
        payment_method="debit",
        settings=SETTINGS,
        now=FIXED_NOW,
    )
    with pytest.raises(InvariantViolation):
        w.update_wallet(
            session, wallet.id, user_id=uid, changes={"kind": "credit"}, settings=SETTINGS
        )


def _book(
    session: Session, user_id: int, method: str = "debit", wallet_id: int | None = None
) -> None:
    create_transaction(
        session,
        user_id=user_id,
        description="Coffee",
        amount="4.50",
        direction="outflow",
        payment_method=method,
        wallet_id=wallet_id,
        settings=SETTINGS,
        now=FIXED_NOW,
    )


def test_default_wallet_with_transactions_cannot_be_deleted(session: Session):
    uid = _user(session)
    main = w.create_wallet(session, user_id=uid, name="Main", settings=SETTINGS)
    _book(session, uid)
    with pytest.raises(InvariantViolation):
        w.soft_delete_wallet(session, main.id, user_id=uid)
    assert _defaults(session, uid) == [main.id]


def test_non_default_wallet_with_transactions_is_deactivated(session: Session):
    uid = _user(session)
    w.create_wallet(session, user_id=uid, name="Main", settings=SETTINGS)
    card = w.create_wallet(session, user_id=uid, name="Card", kind="credit", settings=SETTINGS)
    _book(session, uid, "credit", card.id)

    assert w.soft_delete_wallet(session, card.id, user_id=uid) is True
    tx_wallets = session.execute(select(WlTransaction.wallet_id)).scalars().all()
    assert tx_wallets == [card.id]
    assert session.get(WlWallet, card.id).is_active is False
