# ruff: noqa: I001
"""CLI for the ``wallet_ledger`` package.

A thin Typer wrapper around :class:`wallet_ledger.api.Ledger` for operators:
bootstrapping a development database, inspecting a user's wallets and
aggregates, running the legacy wallet backfill and erasing a user's data.
Environment variables (``DATABASE_URL`` and ``WALLET_LEDGER_*``) are loaded
from a local ``.env`` with ``python-dotenv`` before any command runs.

Results are printed to stdout as JSON; errors go to stderr with exit code 1.
"""

from __future__ import annotations

import dataclasses
import json
import sys
from pathlib import Path
from typing import Any

import typer
from dotenv import load_dotenv

from .api import Ledger
from .config import load_settings
from .errors import LedgerError
from .logging_setup import configure_logging


def _jsonable(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        data = {f.name: _jsonable(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
        # Derived values exposed as properties.
        for prop in ("balance", "total_inflow", "total_outflow", "total_balance", "total"):
            if isinstance(getattr(type(obj), prop, None), property):
                data[prop] = _jsonable(getattr(obj, prop))
        return data
    if isinstance(obj, tuple) and hasattr(obj, "_asdict"):
        return {k: _jsonable(v) for k, v in obj._asdict().items()}
    if isinstance(obj, list | tuple):
        return [_jsonable(v) for v in obj]
    if isinstance(obj, dict):
        return {k: _jsonable(v) for k, v in obj.items()}
    return obj


def _emit(obj: Any) -> None:
    typer.echo(json.dumps(_jsonable(obj), default=str, indent=2, ensure_ascii=False))


def _fail(exc: Exception) -> typer.Exit:
    print(f"Error: {exc}", file=sys.stderr)
    return typer.Exit(1)


def _ledger(ctx: typer.Context) -> Ledger:
    return ctx.obj["ledger_factory"]()


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="Operate the multi-wallet ledger (wallets, transactions, aggregates, erasure).",
)


@app.callback()
def _root(
    ctx: typer.Context,
    *,
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    log_level: str | None = typer.Option(
        None, help="Log level (falls back to WALLET_LEDGER_LOG_LEVEL, then INFO)."
    ),
) -> None:
    """Load ``.env``, configure logging and build the ledger lazily."""

    # Load environment from .env in CWD (override=False to keep existing env)
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)

    def factory() -> Ledger:
        return Ledger(database_url=database_url, settings=load_settings())

    ctx.obj = {"ledger_factory": factory, "database_url": database_url}


@app.command("init-db")
def init_db_cmd(ctx: typer.Context) -> None:
    """Create tables from the ORM models and seed default categories.

    Intended for local SQLite databases; PostgreSQL deployments run the
    Alembic migrations in ``libs/db/alembic`` instead.
    """

    from db import metadata
    from db.client import get_engine, session_scope

    from .categories import seed_default_categories

    url = ctx.obj["database_url"]
    try:
        metadata.create_all(get_engine(database_url=url))
        with session_scope(database_url=url) as session:
            added = seed_default_categories(session)
    except (LedgerError, RuntimeError) as exc:
        raise _fail(exc) from exc
    _emit({"created": True, "seeded_categories": added})


@app.command("register")
def register_cmd(ctx: typer.Context, phone: str) -> None:
    """Register (or look up) a phone and print its user id."""

    try:
        user_id = _ledger(ctx).register_identity(phone)
    except LedgerError as exc:
        raise _fail(exc) from exc
    _emit({"user_id": user_id})


@app.command("wallets")
def wallets_cmd(ctx: typer.Context, phone: str) -> None:
    """List a user's active wallets, default first."""

    try:
        wallets = _ledger(ctx).list_wallets(phone)
    except LedgerError as exc:
        raise _fail(exc) from exc
    _emit(wallets)


@app.command("add-wallet")
def add_wallet_cmd(
    ctx: typer.Context,
    phone: str,
    name: str,
    *,
    kind: str = typer.Option("debit", help="debit or credit."),
    default: bool = typer.Option(False, "--default", help="Make it the default wallet."),
    credit_limit: str | None = typer.Option(None, help="Credit limit (credit wallets)."),
    billing_day: int | None = typer.Option(None, help="Billing day 1-31 (credit wallets)."),
) -> None:
    """Create a wallet for a user."""

    try:
        wallet = _ledger(ctx).create_wallet(
            phone,
            name=name,
            kind=kind,
            is_default=default,
            credit_limit=credit_limit,
            billing_day=billing_day,
        )
    except LedgerError as exc:
        raise _fail(exc) from exc
    _emit(wallet)


@app.command("record")
def record_cmd(
    ctx: typer.Context,
    phone: str,
    amount: str,
    description: str,
    *,
    direction: str = typer.Option("outflow", help="inflow or outflow."),
    method: str = typer.Option("debit", help="Payment method: debit or credit."),
    category: str | None = typer.Option(None, help="Category name (defaults to Other)."),
    on: str | None = typer.Option(None, help="Occurrence date YYYY-MM-DD (defaults to today)."),
    wallet_id: int | None = typer.Option(None, help="Book on this wallet explicitly."),
) -> None:
    """Record a transaction; the wallet is resolved from the payment method."""

    try:
        tx = _ledger(ctx).record_transaction(
            phone,
            description=description,
            amount=amount,
            direction=direction,
            payment_method=method,
            category=category,
            occurred_on=on,
            wallet_id=wallet_id,
        )
    except LedgerError as exc:
        raise _fail(exc) from exc
    _emit(tx)


@app.command("search")
def search_cmd(
    ctx: typer.Context,
    phone: str,
    *,
    start: str | None = typer.Option(None, help="Start date YYYY-MM-DD (inclusive)."),
    end: str | None = typer.Option(None, help="End date YYYY-MM-DD (inclusive)."),
    text: str | None = typer.Option(None, help="Description substring."),
    limit: int = typer.Option(20, help="Page size (capped at 100)."),
    offset: int = typer.Option(0, help="Rows to skip."),
) -> None:
    """Search a user's transactions, newest first."""

    filters = {
        "phone": phone,
        "start_date": start,
        "end_date": end,
        "description": text,
        "limit": limit,
        "offset": offset,
    }
    try:
        result = _ledger(ctx).search_transactions(filters)
    except LedgerError as exc:
        raise _fail(exc) from exc
    _emit(result)


@app.command("stats")
def stats_cmd(
    ctx: typer.Context,
    phone: str,
    *,
    view: str = typer.Option("debit", help="Aggregate view: debit or credit."),
) -> None:
    """Print outflow statistics for the debit or credit view."""

    try:
        report = _ledger(ctx).get_statistics(phone, view_kind=view)
    except LedgerError as exc:
        raise _fail(exc) from exc
    _emit(report)


@app.command("daily")
def daily_cmd(
    ctx: typer.Context,
    phone: str,
    *,
    view: str = typer.Option("debit", help="Aggregate view: debit or credit."),
    days: int = typer.Option(30, help="Number of days ending today."),
) -> None:
    """Print the per-day inflow/outflow series."""

    try:
        points = _ledger(ctx).get_daily_series(phone, view_kind=view, days=days)
    except LedgerError as exc:
        raise _fail(exc) from exc
    _emit(points)


@app.command("balances")
def balances_cmd(ctx: typer.Context, phone: str) -> None:
    """Print per-wallet balances (and credit utilization)."""

    try:
        summary = _ledger(ctx).get_balances(phone)
    except LedgerError as exc:
        raise _fail(exc) from exc
    _emit(summary)


@app.command("backfill")
def backfill_cmd(
    ctx: typer.Context,
    *,
    phone: str | None = typer.Option(None, help="Only backfill this user's rows."),
    limit: int = typer.Option(100, help="Maximum rows to update in this run."),
) -> None:
    """Attach wallet-less legacy transactions to resolver-chosen wallets."""

    try:
        updated = _ledger(ctx).backfill_legacy_wallets(phone=phone, limit=limit)
    except LedgerError as exc:
        raise _fail(exc) from exc
    _emit({"updated": updated})


@app.command("erase")
def erase_cmd(
    ctx: typer.Context,
    phone: str,
    *,
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt."),
) -> None:
    """Delete every transaction, wallet and category stored for a phone."""

    if not yes and not typer.confirm(f"Erase all data for {phone}?"):
        raise typer.Exit(1)
    try:
        report = _ledger(ctx).erase_all_user_data(phone)
    except LedgerError as exc:
        raise _fail(exc) from exc
    _emit(report)


if __name__ == "__main__":  # pragma: no cover - exercised via console script
    # Running as a module: `python -m wallet_ledger.cli`
    app()
