from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner
from wallet_ledger import logging_setup
from wallet_ledger.cli import app

PHONE = "+55 11 91234-5678"

runner = CliRunner()


@pytest.fixture(autouse=True)
def _quiet_cli(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    # Keep the CLI from attaching a stderr handler or reading a developer .env.
    monkeypatch.setattr(logging_setup, "_CONFIGURED", True)
    monkeypatch.chdir(tmp_path)


def _run(db_url: str, *args: str, **kw):
    return runner.invoke(app, ["--database-url", db_url, *args], **kw)


def test_init_db_creates_schema_and_seeds(db_url: str, tmp_path: Path):
    fresh = f"sqlite+pysqlite:///{tmp_path / 'fresh.sqlite3'}"
    result = _run(fresh, "init-db")
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {"created": True, "seeded_categories": 13}

    again = _run(fresh, "init-db")
    assert json.loads(again.output)["seeded_categories"] == 0


def test_record_then_inspect(db_url: str):
    result = _run(db_url, "record", PHONE, "12.50", "Coffee", "--category", "Food")
    assert result.exit_code == 0, result.output
    tx = json.loads(result.output)
    assert tx["amount"] == "12.50"
    assert tx["payment_method"] == "debit"
    assert tx["wallet_name"] == "Main Wallet"

    wallets = json.loads(_run(db_url, "wallets", PHONE).output)
    assert [w["name"] for w in wallets] == ["Main Wallet"]

    stats = json.loads(_run(db_url, "stats", PHONE, "--view", "debit").output)
    assert stats["total_outflow"] == "12.50"
    assert stats["transaction_count"] == 1

    found = json.loads(_run(db_url, "search", PHONE, "--text", "coff").output)
    assert found["total"] == 1

    balances = json.loads(_run(db_url, "balances", PHONE).output)
    assert balances["total_balance"] == "-12.50"

    daily = json.loads(_run(db_url, "daily", PHONE, "--days", "3").output)
    assert len(daily) == 3


def test_add_credit_wallet(db_url: str):
    result = _run(
        db_url, "add-wallet", PHONE, "Card", "--kind", "credit",
        "--credit-limit", "750", "--billing-day", "5",
    )
    assert result.exit_code == 0, result.output
    wallet = json.loads(result.output)
    assert (wallet["kind"], wallet["credit_limit"], wallet["billing_day"]) == ("credit", "750.00", 5)
    assert wallet["is_default"] is True


def test_errors_exit_with_status_one(db_url: str):
    bad = _run(db_url, "record", PHONE, "0", "Nothing")
    assert bad.exit_code == 1
    assert "Error:" in bad.output

    unknown = _run(db_url, "stats", "+55 31 90000-0000")
    assert unknown.exit_code == 1


def test_erase_requires_confirmation(db_url: str):
    _run(db_url, "record", PHONE, "5", "Snack")

    declined = _run(db_url, "erase", PHONE, input="n\n")
    assert declined.exit_code == 1

    done = _run(db_url, "erase", PHONE, "--yes")
    assert done.exit_code == 0, done.output
    report = json.loads(done.output)
    assert (report["transactions"], report["users"]) == (1, 1)
