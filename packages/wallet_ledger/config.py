"""Runtime settings for the ledger, read from ``WALLET_LEDGER_*`` variables.

Entrypoints call ``load_dotenv`` first (see ``wallet_ledger.cli``); this module
only reads the resulting environment so library hosts can pass their own
mapping in tests.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal

from .errors import ValidationError
from .money import to_decimal_2

_PREFIX = "WALLET_LEDGER_"


@dataclass(frozen=True, slots=True)
class LedgerSettings:
    database_url: str | None = None
    # Prepended to 10/11-digit national numbers when canonicalizing phones.
    country_code: str = "55"
    # Applied to credit wallets created without explicit limit/billing day.
    default_credit_limit: Decimal = Decimal("1000.00")
    default_billing_day: int = 10
    identity_cache_ttl_s: float = 300.0
    identity_cache_size: int = 1024
    statement_timeout_ms: int | None = None


def _int(env: Mapping[str, str], key: str, default: int | None) -> int | None:
    raw = env.get(_PREFIX + key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ValidationError(f"{_PREFIX}{key} must be an integer, got {raw!r}") from exc


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(_PREFIX + key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError as exc:
        raise ValidationError(f"{_PREFIX}{key} must be a number, got {raw!r}") from exc


def load_settings(env: Mapping[str, str] | None = None) -> LedgerSettings:
    """Build ``LedgerSettings`` from ``env`` (defaults to ``os.environ``)."""

    env = os.environ if env is None else env
    base = LedgerSettings()

    country_code = env.get(_PREFIX + "COUNTRY_CODE", base.country_code).strip().lstrip("+")
    if country_code and not country_code.isdigit():
        raise ValidationError(f"{_PREFIX}COUNTRY_CODE must be digits, got {country_code!r}")

    raw_limit = env.get(_PREFIX + "DEFAULT_CREDIT_LIMIT")
    credit_limit = to_decimal_2(raw_limit) if raw_limit else base.default_credit_limit
    if credit_limit <= 0:
        raise ValidationError(f"{_PREFIX}DEFAULT_CREDIT_LIMIT must be positive")

    billing_day = _int(env, "DEFAULT_BILLING_DAY", base.default_billing_day)
    if billing_day is None or not 1 <= billing_day <= 31:
        raise ValidationError(f"{_PREFIX}DEFAULT_BILLING_DAY must be between 1 and 31")

    cache_size = _int(env, "IDENTITY_CACHE_SIZE", base.identity_cache_size)
    if cache_size is None or cache_size < 0:
        raise ValidationError(f"{_PREFIX}IDENTITY_CACHE_SIZE must be >= 0")

    return LedgerSettings(
        database_url=env.get("DATABASE_URL") or None,
        country_code=country_code,
        default_credit_limit=credit_limit,
        default_billing_day=billing_day,
        identity_cache_ttl_s=_float(env, "IDENTITY_CACHE_TTL", base.identity_cache_ttl_s),
        identity_cache_size=cache_size,
        statement_timeout_ms=_int(env, "STATEMENT_TIMEOUT_MS", None),
    )


__all__ = ["LedgerSettings", "load_settings"]
