"""Wallet store: CRUD and default-wallet bookkeeping.

All functions take the caller's ``Session`` and never commit; callers own the
transaction (see ``db.client.session_scope``). Every write that can change
which wallet is the default first takes a row lock on the owning user, so two
concurrent "make X default" calls serialize instead of leaving two flags set.

Default resolution order
------------------------
1. the active wallet flagged ``is_default``;
2. the wallet named by the user's cached ``default_wallet_id`` if still active;
3. the oldest active wallet.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from decimal import Decimal

from db.models.ledger import WlTransaction, WlUser, WlWallet
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from .categories import normalize_name
from .config import LedgerSettings
from .errors import InvariantViolation, NotFoundError, PermissionDeniedError, ValidationError
from .logging_setup import get_logger
from .models import Wallet, WalletKind, WalletUpdate
from .money import from_cents, to_cents

_logger = get_logger("wallet_ledger.wallets")

MAX_NAME_LENGTH = 80

_ACTIVE_ORDER = (WlWallet.is_default.desc(), WlWallet.created_at.asc(), WlWallet.id.asc())


def wallet_from_row(row: WlWallet) -> Wallet:
    return Wallet(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        kind=WalletKind(row.kind),
        is_default=bool(row.is_default),
        is_active=bool(row.is_active),
        description=row.description,
        credit_limit=from_cents(row.credit_limit_cents) if row.credit_limit_cents else None,
        billing_day=row.billing_day,
        auto_provisioned=bool(row.auto_provisioned),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _now() -> datetime:
    return datetime.now(UTC)


def coerce_kind(value: object, *, field: str = "kind") -> WalletKind:
    try:
        return WalletKind(str(value).strip().lower())
    except ValueError as exc:
        raise ValidationError(f"{field} must be 'debit' or 'credit', got {value!r}") from exc


def validate_wallet_name(name: object) -> str:
    if not isinstance(name, str):
        raise ValidationError("Wallet name must be a string")
    n = normalize_name(name)
    if not n:
        raise ValidationError("Wallet name cannot be empty")
    if len(n) > MAX_NAME_LENGTH:
        raise ValidationError(f"Wallet name must be at most {MAX_NAME_LENGTH} characters")
    return n


def _billing_day(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("billing_day must be an integer")
    if not 1 <= value <= 31:
        raise ValidationError("billing_day must be between 1 and 31")
    return value


def credit_fields(
    kind: WalletKind,
    credit_limit: object,
    billing_day: object,
    *,
    settings: LedgerSettings,
) -> tuple[int | None, int | None]:
    """Return ``(credit_limit_cents, billing_day)`` for ``kind``.

    Credit wallets get the configured defaults for missing values; debit
    wallets always store ``NULL`` for both.
    """

    if kind is WalletKind.DEBIT:
        return None, None
    limit = settings.default_credit_limit if credit_limit is None else credit_limit
    day = settings.default_billing_day if billing_day is None else billing_day
    return to_cents(limit, maximum=None), _billing_day(day)


# ---------------------------
# Reads
# ---------------------------


def lock_user(session: Session, user_id: int) -> WlUser:
    """Return the user row locked ``FOR UPDATE`` (a no-op lock on SQLite)."""

    row = session.execute(
        select(WlUser).where(WlUser.id == user_id).with_for_update()
    ).scalar_one_or_none()
    if row is None:
        raise NotFoundError(f"User {user_id} not found")
    return row


def _owned_row(
    session: Session, wallet_id: int, user_id: int, *, include_inactive: bool = False
) -> WlWallet:
    row = session.get(WlWallet, wallet_id)
    if row is None or (not row.is_active and not include_inactive):
        raise NotFoundError(f"Wallet {wallet_id} not found")
    if row.user_id != user_id:
        raise PermissionDeniedError(f"Wallet {wallet_id} belongs to another user")
    return row


def get_wallet(session: Session, wallet_id: int, *, user_id: int) -> Wallet:
    return wallet_from_row(_owned_row(session, wallet_id, user_id))


def list_wallets(session: Session, *, user_id: int) -> list[Wallet]:
    """Active wallets, default first, then oldest first."""

    rows = session.execute(
        select(WlWallet)
        .where(WlWallet.user_id == user_id, WlWallet.is_active.is_(True))
        .order_by(*_ACTIVE_ORDER)
    ).scalars()
    return [wallet_from_row(r) for r in rows]


def _default_row(session: Session, user_id: int) -> WlWallet | None:
    flagged = (
        session.execute(
            select(WlWallet)
            .where(
                WlWallet.user_id == user_id,
                WlWallet.is_active.is_(True),
                WlWallet.is_default.is_(True),
            )
            .order_by(WlWallet.id)
        )
        .scalars()
        .first()
    )
    if flagged is not None:
        return flagged

    pointer = session.execute(
        select(WlUser.default_wallet_id).where(WlUser.id == user_id)
    ).scalar_one_or_none()
    if pointer is not None:
        row = session.get(WlWallet, pointer)
        if row is not None and row.is_active and row.user_id == user_id:
            return row

    return (
        session.execute(
            select(WlWallet)
            .where(WlWallet.user_id == user_id, WlWallet.is_active.is_(True))
            .order_by(WlWallet.created_at.asc(), WlWallet.id.asc())
        )
        .scalars()
        .first()
    )


def get_default_wallet(session: Session, *, user_id: int) -> Wallet | None:
    row = _default_row(session, user_id)
    return wallet_from_row(row) if row is not None else None


# ---------------------------
# Writes
# ---------------------------


def _clear_default_flags(session: Session, user_id: int, *, keep_id: int | None = None) -> None:
    stmt = (
        update(WlWallet)
        .where(WlWallet.user_id == user_id, WlWallet.is_default.is_(True))
        .values(is_default=False, updated_at=_now())
        .execution_options(synchronize_session="fetch")
    )
    if keep_id is not None:
        stmt = stmt.where(WlWallet.id != keep_id)
    session.execute(stmt)


def _make_default(session: Session, user: WlUser, row: WlWallet) -> None:
    _clear_default_flags(session, user.id, keep_id=row.id)
    # The partial unique index checks per statement, so siblings are cleared
    # and flushed before the new flag is written.
    session.flush()
    row.is_default = True
    user.default_wallet_id = row.id
    session.flush()


def create_wallet(
    session: Session,
    *,
    user_id: int,
    name: str,
    settings: LedgerSettings,
    kind: WalletKind | str = WalletKind.DEBIT,
    description: str | None = None,
    is_default: bool = False,
    credit_limit: Decimal | str | int | None = None,
    billing_day: int | None = None,
    auto_provisioned: bool = False,
) -> Wallet:
    """Insert a wallet for ``user_id``.

    A user's first wallet always becomes the default, whatever ``is_default``
    says, so a user with wallets never lacks one.
    """

    user = lock_user(session, user_id)
    kind_v = coerce_kind(kind)
    name_v = validate_wallet_name(name)
    limit_cents, day = credit_fields(kind_v, credit_limit, billing_day, settings=settings)

    has_active = session.execute(
        select(func.count())
        .select_from(WlWallet)
        .where(WlWallet.user_id == user_id, WlWallet.is_active.is_(True))
    ).scalar_one()

    row = WlWallet(
        user_id=user_id,
        name=name_v,
        description=(description or "").strip() or None,
        kind=kind_v.value,
        credit_limit_cents=limit_cents,
        billing_day=day,
        is_default=False,
        is_active=True,
        auto_provisioned=auto_provisioned,
    )
    session.add(row)
    session.flush()

    if is_default or not has_active:
        _make_default(session, user, row)

    _logger.info(
        "wallet:create id=%s user_id=%s kind=%s default=%s auto=%s",
        row.id,
        user_id,
        kind_v.value,
        row.is_default,
        auto_provisioned,
    )
    return wallet_from_row(row)


def set_default_wallet(session: Session, wallet_id: int, *, user_id: int) -> Wallet:
    user = lock_user(session, user_id)
    row = _owned_row(session, wallet_id, user_id)
    if not row.is_default or user.default_wallet_id != row.id:
        _make_default(session, user, row)
        _logger.info("wallet:set_default id=%s user_id=%s", row.id, user_id)
    return wallet_from_row(row)


def update_wallet(
    session: Session,
    wallet_id: int,
    *,
    user_id: int,
    changes: WalletUpdate | Mapping[str, object],
    settings: LedgerSettings,
) -> Wallet:
    """Apply a partial update; credit fields are re-validated against the final kind."""

    if not isinstance(changes, WalletUpdate):
        try:
            changes = WalletUpdate.model_validate(dict(changes))
        except PydanticValidationError as exc:
            raise ValidationError(str(exc)) from exc
    patch = changes.changes()

    user = lock_user(session, user_id)
    row = _owned_row(session, wallet_id, user_id)

    if "name" in patch:
        row.name = validate_wallet_name(patch["name"])
    if "description" in patch:
        desc = patch["description"]
        row.description = (str(desc).strip() or None) if desc is not None else None

    new_kind = coerce_kind(patch.get("kind") or row.kind)
    if new_kind.value != row.kind:
        bound = _transaction_count(session, row.id)
        if bound:
            raise InvariantViolation(
                f"Wallet {row.id} has {bound} transaction(s); its kind cannot change"
            )

    if new_kind is WalletKind.CREDIT:
        if "credit_limit" in patch and patch["credit_limit"] is None:
            raise ValidationError("Credit wallets require a credit limit")
        if "billing_day" in patch and patch["billing_day"] is None:
            raise ValidationError("Credit wallets require a billing day")
        current_limit = from_cents(row.credit_limit_cents) if row.credit_limit_cents else None
        limit_cents, day = credit_fields(
            new_kind,
            patch.get("credit_limit", current_limit),
            patch.get("billing_day", row.billing_day),
            settings=settings,
        )
    else:
        limit_cents, day = None, None
    row.kind = new_kind.value
    row.credit_limit_cents = limit_cents
    row.billing_day = day
    row.updated_at = _now()
    session.flush()

    if patch.get("is_default") is True:
        _make_default(session, user, row)
    elif patch.get("is_default") is False and row.is_default:
        row.is_default = False
        if user.default_wallet_id == row.id:
            user.default_wallet_id = None
        session.flush()

    _logger.info("wallet:update id=%s user_id=%s fields=%s", row.id, user_id, sorted(patch))
    return wallet_from_row(row)


def _transaction_count(session: Session, wallet_id: int) -> int:
    return int(
        session.execute(
            select(func.count())
            .select_from(WlTransaction)
            .where(WlTransaction.wallet_id == wallet_id)
        ).scalar_one()
    )


def soft_delete_wallet(session: Session, wallet_id: int, *, user_id: int) -> bool:
    """Deactivate a wallet; returns ``False`` when it is unknown or already inactive.

    A default wallet that owns transactions cannot be deleted. Deleting an
    unused default clears the flag and the user's pointer; reads then fall
    back to the oldest active wallet. Transactions keep pointing at the
    inactive wallet.
    """

    user = lock_user(session, user_id)
    row = session.get(WlWallet, wallet_id)
    if row is None or not row.is_active:
        return False
    if row.user_id != user_id:
        raise PermissionDeniedError(f"Wallet {wallet_id} belongs to another user")

    was_default = bool(row.is_default) or user.default_wallet_id == row.id
    if was_default:
        bound = _transaction_count(session, row.id)
        if bound:
            raise InvariantViolation(
                f"Wallet {row.id} is the default and has {bound} transaction(s); "
                "choose another default first"
            )
    row.is_active = False
    row.is_default = False
    row.updated_at = _now()
    if user.default_wallet_id == row.id:
        user.default_wallet_id = None
    session.flush()

    _logger.info("wallet:delete id=%s user_id=%s was_default=%s", row.id, user_id, was_default)
    return True


__all__ = [
    "coerce_kind",
    "create_wallet",
    "credit_fields",
    "get_default_wallet",
    "get_wallet",
    "list_wallets",
    "lock_user",
    "set_default_wallet",
    "soft_delete_wallet",
    "update_wallet",
    "validate_wallet_name",
    "wallet_from_row",
]
