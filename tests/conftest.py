"""Pytest configuration for test isolation.

Every test that touches the database gets its own SQLite file under
``tmp_path`` and a ``Ledger`` wired to a frozen clock, so date-dependent
assertions (statement windows, "today" aggregates) are deterministic. The
``WALLET_LEDGER_*`` and ``DATABASE_URL`` variables are cleared so a
developer's shell or ``.env`` cannot leak into a run.
"""

from __future__ import annotations

# ruff: noqa: E402, I001
import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Make the workspace packages importable without an install, and make
# ``tests.helpers`` importable from test modules.
_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT)]
    if p not in sys.path
]

from db.client import dispose_engines, session_scope
from sqlalchemy.orm import Session
from wallet_ledger import Ledger, LedgerSettings

from tests.helpers.clock import FIXED_NOW, FrozenClock
from tests.helpers.db import bootstrap_sqlite_db


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop ledger-related environment variables for every test."""

    monkeypatch.delenv("DATABASE_URL", raising=False)
    for key in [k for k in os.environ if k.startswith("WALLET_LEDGER_")]:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def db_url(tmp_path: Path) -> Iterator[str]:
    url = bootstrap_sqlite_db(tmp_path / "ledger.sqlite3")
    yield url
    dispose_engines()


@pytest.fixture
def session(db_url: str) -> Iterator[Session]:
    """A session inside ``session_scope``; committed when the test returns."""

    with session_scope(database_url=db_url) as s:
        yield s


@pytest.fixture
def settings() -> LedgerSettings:
    return LedgerSettings()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(FIXED_NOW)


@pytest.fixture
def ledger(db_url: str, settings: LedgerSettings, clock: FrozenClock) -> Ledger:
    return Ledger(database_url=db_url, settings=settings, clock=clock)
