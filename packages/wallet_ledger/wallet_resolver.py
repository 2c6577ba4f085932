"""Pick (or provision) the wallet a new transaction is booked against.

The caller names a payment method (debit/credit) and the resolver guarantees
the returned wallet has exactly that kind:

- no wallets at all: provision ``MAIN_WALLET_NAME`` of the required kind and
  make it the default;
- default already has the required kind: use it;
- otherwise look for an active "twin" of the required kind whose name matches
  the default's name (case-insensitive, either containing the other);
- otherwise provision a twin named after the default, copying its description
  and, for credit twins, the default's credit settings when present.

Provisioning runs inside a SAVEPOINT. The partial unique indexes on
``wl_wallets`` make a concurrent duplicate fail; the loser rolls back to the
savepoint and re-reads the winner's wallet.
"""

from __future__ import annotations

from db.models.ledger import WlWallet
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .config import LedgerSettings
from .errors import InvariantViolation
from .logging_setup import get_logger
from .models import Wallet, WalletKind
from .wallets import coerce_kind, create_wallet, get_default_wallet, lock_user, wallet_from_row

_logger = get_logger("wallet_ledger.wallet_resolver")

MAIN_WALLET_NAME = "Main Wallet"


def _find_twin(session: Session, *, user_id: int, name: str, kind: WalletKind) -> Wallet | None:
    rows = session.execute(
        select(WlWallet)
        .where(
            WlWallet.user_id == user_id,
            WlWallet.is_active.is_(True),
            WlWallet.kind == kind.value,
        )
        .order_by(WlWallet.created_at.asc(), WlWallet.id.asc())
    ).scalars()
    target = name.lower()
    partial: WlWallet | None = None
    for row in rows:
        candidate = row.name.lower()
        if candidate == target:
            return wallet_from_row(row)
        if partial is None and (target in candidate or candidate in target):
            partial = row
    return wallet_from_row(partial) if partial is not None else None


def _lookup(session: Session, *, user_id: int, kind: WalletKind) -> Wallet | None:
    default = get_default_wallet(session, user_id=user_id)
    if default is None:
        return None
    if default.kind is kind:
        return default
    return _find_twin(session, user_id=user_id, name=default.name, kind=kind)


def _provision(
    session: Session,
    *,
    user_id: int,
    kind: WalletKind,
    settings: LedgerSettings,
    template: Wallet | None,
) -> Wallet:
    name = template.name if template is not None else MAIN_WALLET_NAME
    credit_limit = billing_day = None
    if template is not None and kind is WalletKind.CREDIT:
        credit_limit, billing_day = template.credit_limit, template.billing_day
    try:
        with session.begin_nested():
            wallet = create_wallet(
                session,
                user_id=user_id,
                name=name,
                kind=kind,
                description=template.description if template is not None else None,
                is_default=template is None,
                credit_limit=credit_limit,
                billing_day=billing_day,
                auto_provisioned=True,
                settings=settings,
            )
    except IntegrityError:
        _logger.info("resolver:provision_conflict user_id=%s kind=%s", user_id, kind.value)
        existing = _lookup(session, user_id=user_id, kind=kind)
        if existing is None:
            raise
        return existing
    _logger.info(
        "resolver:provisioned wallet_id=%s user_id=%s kind=%s name=%r",
        wallet.id,
        user_id,
        kind.value,
        wallet.name,
    )
    return wallet


def resolve_for_transaction(
    session: Session,
    *,
    user_id: int,
    required_kind: WalletKind | str,
    settings: LedgerSettings,
) -> Wallet:
    """Return an active wallet of ``required_kind`` for ``user_id``, creating one if needed."""

    kind = coerce_kind(required_kind, field="payment_method")
    # Serializes resolvers for the same user on PostgreSQL.
    lock_user(session, user_id)

    default = get_default_wallet(session, user_id=user_id)
    if default is None:
        wallet = _provision(session, user_id=user_id, kind=kind, settings=settings, template=None)
    elif default.kind is kind:
        wallet = default
    else:
        twin = _find_twin(session, user_id=user_id, name=default.name, kind=kind)
        wallet = twin or _provision(
            session, user_id=user_id, kind=kind, settings=settings, template=default
        )

    if wallet.kind is not kind:
        raise InvariantViolation(
            f"Resolved wallet {wallet.id} has kind {wallet.kind}, expected {kind}"
        )
    return wallet


__all__ = ["MAIN_WALLET_NAME", "resolve_for_transaction"]
