"""Public API for the ``wallet_ledger`` package.

``Ledger`` is the single entry point hosts use. It owns the identity
resolver (and its cache), the settings and the clock, and runs every call in
its own ``session_scope`` so each operation commits or rolls back as a unit.
Callers identify users by raw phone strings; the facade resolves them before
touching any table.

Write paths (recording transactions, creating wallets or categories) match the
phone exactly and register it when no spelling is stored; they never adopt a
fuzzy match. Read paths raise ``NotFoundError`` instead.

Every method accepts ``timeout_s``; it is forwarded to the store as a
statement timeout (PostgreSQL) and otherwise ignored.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, date, datetime
from decimal import Decimal

from db.client import session_scope
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from . import balances as _balances
from . import categories as _categories
from . import credit_cycle as _credit
from . import erasure as _erasure
from . import statistics as _statistics
from . import transactions as _tx
from . import wallet_resolver as _resolver
from . import wallets as _wallets
from .config import LedgerSettings, load_settings
from .errors import NotFoundError, ValidationError
from .identity import IdentityCache, IdentityResolver
from .logging_setup import get_logger
from .models import (
    BalanceSummary,
    Category,
    CategoryAffinity,
    CreditUtilization,
    DailyPoint,
    Direction,
    ErasureReport,
    LedgerTransaction,
    SearchFilters,
    SearchResult,
    StatisticsReport,
    Wallet,
    WalletKind,
    WalletUpdate,
)

_logger = get_logger("wallet_ledger.api")

type Amount = Decimal | str | int | float


def _utcnow() -> datetime:
    return datetime.now(UTC)


def parse_filters(raw: SearchFilters | Mapping[str, object] | None) -> SearchFilters:
    """Validate loose search input into ``SearchFilters`` (raises ``ValidationError``)."""

    if raw is None:
        return SearchFilters()
    if isinstance(raw, SearchFilters):
        return raw
    try:
        return SearchFilters.model_validate(dict(raw))
    except PydanticValidationError as exc:
        raise ValidationError(str(exc)) from exc


class Ledger:
    def __init__(
        self,
        *,
        database_url: str | None = None,
        settings: LedgerSettings | None = None,
        identity_cache: IdentityCache | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings if settings is not None else load_settings()
        self.database_url = database_url or self.settings.database_url
        cache = identity_cache or IdentityCache(
            ttl_s=self.settings.identity_cache_ttl_s,
            max_entries=self.settings.identity_cache_size,
        )
        self.identity = IdentityResolver(country_code=self.settings.country_code, cache=cache)
        self._clock = clock

    # ---------------------------
    # Plumbing
    # ---------------------------

    def now(self) -> datetime:
        now = self._clock()
        return now if now.tzinfo is not None else now.replace(tzinfo=UTC)

    def today(self) -> date:
        return self.now().date()

    @contextmanager
    def _session(self, timeout_s: float | None) -> Iterator[Session]:
        timeout_ms = (
            int(timeout_s * 1000) if timeout_s is not None else self.settings.statement_timeout_ms
        )
        with session_scope(database_url=self.database_url, statement_timeout_ms=timeout_ms) as s:
            yield s

    def _user(self, session: Session, phone: str, *, create: bool = False) -> int:
        if create:
            return self.identity.register(session, phone)
        return self.identity.resolve(session, phone)

    # ---------------------------
    # Identity
    # ---------------------------

    def resolve_identity(
        self, phone: str, *, fuzzy: bool = True, timeout_s: float | None = None
    ) -> int:
        with self._session(timeout_s) as s:
            return self.identity.resolve(s, phone, fuzzy=fuzzy)

    def register_identity(self, phone: str, *, timeout_s: float | None = None) -> int:
        with self._session(timeout_s) as s:
            return self.identity.register(s, phone)

    # ---------------------------
    # Wallets
    # ---------------------------

    def list_wallets(self, phone: str, *, timeout_s: float | None = None) -> list[Wallet]:
        with self._session(timeout_s) as s:
            return _wallets.list_wallets(s, user_id=self._user(s, phone))

    def get_default_wallet(self, phone: str, *, timeout_s: float | None = None) -> Wallet | None:
        with self._session(timeout_s) as s:
            return _wallets.get_default_wallet(s, user_id=self._user(s, phone))

    def create_wallet(
        self,
        phone: str,
        *,
        name: str,
        kind: WalletKind | str = WalletKind.DEBIT,
        description: str | None = None,
        is_default: bool = False,
        credit_limit: Amount | None = None,
        billing_day: int | None = None,
        timeout_s: float | None = None,
    ) -> Wallet:
        with self._session(timeout_s) as s:
            return _wallets.create_wallet(
                s,
                user_id=self._user(s, phone, create=True),
                name=name,
                kind=kind,
                description=description,
                is_default=is_default,
                credit_limit=credit_limit,
                billing_day=billing_day,
                settings=self.settings,
            )

    def update_wallet(
        self,
        phone: str,
        wallet_id: int,
        changes: WalletUpdate | Mapping[str, object],
        *,
        timeout_s: float | None = None,
    ) -> Wallet:
        with self._session(timeout_s) as s:
            return _wallets.update_wallet(
                s,
                wallet_id,
                user_id=self._user(s, phone),
                changes=changes,
                settings=self.settings,
            )

    def set_default_wallet(
        self, phone: str, wallet_id: int, *, timeout_s: float | None = None
    ) -> Wallet:
        with self._session(timeout_s) as s:
            return _wallets.set_default_wallet(s, wallet_id, user_id=self._user(s, phone))

    def delete_wallet(self, phone: str, wallet_id: int, *, timeout_s: float | None = None) -> bool:
        with self._session(timeout_s) as s:
            return _wallets.soft_delete_wallet(s, wallet_id, user_id=self._user(s, phone))

    def resolve_wallet(
        self, phone: str, payment_method: WalletKind | str, *, timeout_s: float | None = None
    ) -> Wallet:
        """Return (provisioning if needed) the wallet a new transaction would use."""

        with self._session(timeout_s) as s:
            return _resolver.resolve_for_transaction(
                s,
                user_id=self._user(s, phone, create=True),
                required_kind=payment_method,
                settings=self.settings,
            )

    # ---------------------------
    # Transactions
    # ---------------------------

    def record_transaction(
        self,
        phone: str,
        *,
        description: str,
        amount: Amount,
        direction: Direction | str,
        payment_method: WalletKind | str,
        category: str | None = None,
        occurred_on: date | str | None = None,
        occurred_at: datetime | None = None,
        wallet_id: int | None = None,
        original_message: str | None = None,
        allow_future: bool = False,
        timeout_s: float | None = None,
    ) -> LedgerTransaction:
        with self._session(timeout_s) as s:
            return _tx.create_transaction(
                s,
                user_id=self._user(s, phone, create=True),
                description=description,
                amount=amount,
                direction=direction,
                payment_method=payment_method,
                category=category,
                occurred_on=occurred_on,
                occurred_at=occurred_at,
                wallet_id=wallet_id,
                original_message=original_message,
                allow_future=allow_future,
                settings=self.settings,
                now=self.now(),
            )

    def get_transaction(
        self, transaction_id: int, *, phone: str | None = None, timeout_s: float | None = None
    ) -> LedgerTransaction:
        with self._session(timeout_s) as s:
            user_id = self._user(s, phone) if phone is not None else None
            return _tx.get_transaction(s, transaction_id, user_id=user_id)

    def delete_transaction(
        self, transaction_id: int, *, phone: str | None = None, timeout_s: float | None = None
    ) -> None:
        """Delete by id; when ``phone`` is given the row must belong to that user."""

        with self._session(timeout_s) as s:
            user_id = self._user(s, phone) if phone is not None else None
            _tx.delete_transaction(s, transaction_id, user_id=user_id)

    def search_transactions(
        self,
        filters: SearchFilters | Mapping[str, object] | None = None,
        *,
        timeout_s: float | None = None,
    ) -> SearchResult:
        f = parse_filters(filters)
        with self._session(timeout_s) as s:
            user_id = self._user(s, f.phone) if f.phone else None
            return _tx.search_transactions(s, f, user_id=user_id)

    def backfill_legacy_wallets(
        self, *, phone: str | None = None, limit: int = 100, timeout_s: float | None = None
    ) -> int:
        with self._session(timeout_s) as s:
            user_id = self._user(s, phone) if phone is not None else None
            return _tx.backfill_wallets(s, settings=self.settings, user_id=user_id, limit=limit)

    # ---------------------------
    # Aggregates
    # ---------------------------

    def get_statistics(
        self,
        phone: str,
        *,
        view_kind: WalletKind | str = WalletKind.DEBIT,
        filters: SearchFilters | Mapping[str, object] | None = None,
        timeout_s: float | None = None,
    ) -> StatisticsReport:
        f = parse_filters(filters)
        with self._session(timeout_s) as s:
            return _statistics.get_statistics(
                s,
                user_id=self._user(s, phone),
                view_kind=view_kind,
                filters=f,
                today=self.today(),
            )

    def get_daily_series(
        self,
        phone: str,
        *,
        view_kind: WalletKind | str = WalletKind.DEBIT,
        days: int = 30,
        timeout_s: float | None = None,
    ) -> list[DailyPoint]:
        with self._session(timeout_s) as s:
            return _statistics.daily_series(
                s,
                user_id=self._user(s, phone),
                view_kind=view_kind,
                days=days,
                today=self.today(),
            )

    def get_credit_utilization(
        self, phone: str, wallet_id: int, *, timeout_s: float | None = None
    ) -> CreditUtilization:
        with self._session(timeout_s) as s:
            wallet = _wallets.get_wallet(s, wallet_id, user_id=self._user(s, phone))
            return _credit.utilization(s, wallet, today=self.today())

    def get_balances(self, phone: str, *, timeout_s: float | None = None) -> BalanceSummary:
        with self._session(timeout_s) as s:
            return _balances.compute_balances(s, user_id=self._user(s, phone), today=self.today())

    # ---------------------------
    # Categories
    # ---------------------------

    def list_categories(
        self,
        phone: str | None = None,
        *,
        affinity: CategoryAffinity | str | None = None,
        timeout_s: float | None = None,
    ) -> list[Category]:
        with self._session(timeout_s) as s:
            user_id = self.identity.lookup(s, phone) if phone is not None else None
            return _categories.list_categories(s, user_id=user_id, affinity=affinity)

    def create_category(
        self,
        phone: str,
        *,
        name: str,
        direction_affinity: CategoryAffinity | str = CategoryAffinity.OUTFLOW,
        description: str | None = None,
        color: str | None = None,
        timeout_s: float | None = None,
    ) -> Category:
        with self._session(timeout_s) as s:
            return _categories.create_category(
                s,
                user_id=self._user(s, phone, create=True),
                name=name,
                direction_affinity=direction_affinity,
                description=description,
                color=color,
            )

    def update_category(
        self,
        phone: str,
        category_id: int,
        *,
        name: str | None = None,
        description: str | None = None,
        color: str | None = None,
        direction_affinity: CategoryAffinity | str | None = None,
        timeout_s: float | None = None,
    ) -> Category:
        with self._session(timeout_s) as s:
            return _categories.update_category(
                s,
                category_id,
                user_id=self._user(s, phone),
                name=name,
                description=description,
                color=color,
                direction_affinity=direction_affinity,
            )

    def delete_category(
        self, phone: str, category_id: int, *, timeout_s: float | None = None
    ) -> None:
        with self._session(timeout_s) as s:
            _categories.delete_category(s, category_id, user_id=self._user(s, phone))

    # ---------------------------
    # Erasure
    # ---------------------------

    def erase_all_user_data(self, phone: str, *, timeout_s: float | None = None) -> ErasureReport:
        """Delete everything stored for ``phone`` (exact identity match only).

        An unknown phone yields an all-zero report rather than an error so the
        call can be retried safely.
        """

        with self._session(timeout_s) as s:
            try:
                user_id = self.identity.resolve(s, phone, fuzzy=False)
            except NotFoundError:
                _logger.info("erasure:unknown_phone")
                return ErasureReport(user_id=None)
            report = _erasure.erase_user_data(s, user_id=user_id)
        self.identity.forget(user_id)
        return report


__all__ = ["Ledger", "parse_filters"]
