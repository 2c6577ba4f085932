"""wallet_ledger: multi-wallet personal finance ledger.

Public surface
--------------
- :class:`wallet_ledger.api.Ledger`: facade used by hosts (chat bots, HTTP
  handlers, the ``wallet-ledger`` CLI).
- Value types in :mod:`wallet_ledger.models` and the error taxonomy in
  :mod:`wallet_ledger.errors`.

Session-level building blocks (``wallets``, ``transactions``, ``statistics``,
...) take a SQLAlchemy ``Session`` and can be composed inside a caller-owned
transaction when the facade is too coarse.
"""

from __future__ import annotations

from .api import Ledger
from .config import LedgerSettings, load_settings
from .errors import (
    AmbiguousIdentityError,
    InvariantViolation,
    LedgerError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from .identity import IdentityCache
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
    StatementWindow,
    StatisticsReport,
    Wallet,
    WalletKind,
    WalletUpdate,
)

__all__ = [
    "AmbiguousIdentityError",
    "BalanceSummary",
    "Category",
    "CategoryAffinity",
    "CreditUtilization",
    "DailyPoint",
    "Direction",
    "ErasureReport",
    "IdentityCache",
    "InvariantViolation",
    "Ledger",
    "LedgerError",
    "LedgerSettings",
    "LedgerTransaction",
    "NotFoundError",
    "PermissionDeniedError",
    "SearchFilters",
    "SearchResult",
    "StatementWindow",
    "StatisticsReport",
    "ValidationError",
    "Wallet",
    "WalletKind",
    "WalletUpdate",
    "load_settings",
]
