# ruff: noqa: E402, I001
from __future__ import annotations

import json
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

# Make sure the workspace `packages/` dir and the db library are importable
_ROOT = Path(__file__).resolve().parents[2]
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT)]
    if p not in sys.path
]

from db import Database, Transaction
from sqlalchemy import select
from typer.testing import CliRunner

import statement_pipeline.bootstrap as bootstrap_mod
from statement_pipeline.catalog import SEED_FILE
from statement_pipeline.cli import app

from tests.helpers.db import add_budget, bootstrap_sqlite_db, budget_spent
from tests.helpers.openai_stub import OpenAIStub, echo_canonical_rows

STATEMENT = """GUARANTY TRUST BANK
STATEMENT OF ACCOUNT
Account Number: 0123456789
Opening Balance 100,000.00
TRANS. DATE VALUE DATE REMARKS DEBITS CREDITS BALANCE
15/01/2024 15/01/2024 NIP TRANSFER TO JOHN DOE 5,000.00 - 95,000.00
ELECTRONIC MONEY TRANSFER LEVY 50.00 - 94,950.00
16/01/2024 16/01/2024 POS PURCHASE SHOPRITE LEKKI 12,500.00 - 82,450.00
20/01/2024 20/01/2024 SALARY JAN 2024 - 350,000.00 432,450.00
Page 1 of 1
"""


def test_e2e_parse_review_import_updates_budget(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    # -------------------------
    # Environment + DB
    # -------------------------
    monkeypatch.chdir(tmp_path)
    database: Database = bootstrap_sqlite_db(tmp_path / "e2e.sqlite3")
    budget_id = add_budget(
        database,
        user_id="user-1",
        category="food_groceries",
        month=date(2024, 1, 1),
        amount=Decimal("60000"),
    )
    stub = OpenAIStub(respond=echo_canonical_rows(account_number="0123456789"))
    monkeypatch.setattr(bootstrap_mod, "build_openai_client", lambda: stub)

    text_path = tmp_path / "statement.txt"
    text_path.write_text(STATEMENT, encoding="utf-8")
    parsed_path = tmp_path / "parsed.json"
    runner = CliRunner()

    # -------------------------
    # Parse
    # -------------------------
    res = runner.invoke(
        app,
        [
            "parse-statement",
            "--text-path",
            str(text_path),
            "--catalog-file",
            str(SEED_FILE),
            "--output",
            str(parsed_path),
        ],
    )
    assert res.exit_code == 0, res.output
    assert len(stub.calls) == 1

    envelope = json.loads(parsed_path.read_text(encoding="utf-8"))
    data = envelope["data"]
    assert data["bank_name"] == "GTBank"
    assert data["account_number"] == "0123456789"
    txns = data["transactions"]
    assert [(t["date"], t["type"], t["amount"]) for t in txns] == [
        ("2024-01-15", "debit", "5000.00"),
        ("2024-01-16", "debit", "12500.00"),
        ("2024-01-20", "credit", "350000.00"),
    ]
    transfer, groceries, salary = txns
    assert transfer["stamp_duty"] == "50.00"
    assert transfer["total"] == "5050.00"
    assert transfer["category"] == "transfers"
    assert groceries["category"] == "food_groceries"
    assert salary["category"] == "salary"

    # -------------------------
    # Review: the user edits one description and a note
    # -------------------------
    groceries["description"] = "Shoprite weekly shop"
    groceries["user_note"] = "family groceries"
    parsed_path.write_text(json.dumps(envelope), encoding="utf-8")

    # -------------------------
    # Import
    # -------------------------
    res = runner.invoke(
        app,
        [
            "import-transactions",
            "--json-path",
            str(parsed_path),
            "--user-id",
            "user-1",
            "--import-source",
            "gtbank-jan-2024.pdf",
            "--database-url",
            database.url,
        ],
    )
    assert res.exit_code == 0, res.output
    result = json.loads(res.stdout)
    assert result == {
        "success": True,
        "imported": 3,
        "failed": 0,
        "errors": [],
        "budgets_synced": 1,
    }

    # -------------------------
    # Assert persisted state
    # -------------------------
    with database.session_scope() as s:
        rows = list(s.scalars(select(Transaction).order_by(Transaction.date)))
        got = [
            (r.date, r.type, r.category, r.description, r.confidence, r.import_source)
            for r in rows
        ]
        notes = [r.user_note for r in rows]
        originals = [r.original_desc for r in rows]
    assert got == [
        (date(2024, 1, 15), "expense", "transfers", "NIP TRANSFER TO JOHN DOE", "manual",
         "gtbank-jan-2024.pdf"),
        (date(2024, 1, 16), "expense", "food_groceries", "Shoprite weekly shop", "manual",
         "gtbank-jan-2024.pdf"),
        (date(2024, 1, 20), "income", "salary", "SALARY JAN 2024", "manual",
         "gtbank-jan-2024.pdf"),
    ]
    assert notes == [None, "family groceries", None]
    assert originals[1] == "POS PURCHASE SHOPRITE LEKKI"
    assert budget_spent(database, budget_id) == Decimal("12500.00")


def test_cli_seed_categories_and_import_errors(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    database = bootstrap_sqlite_db(tmp_path / "cli.sqlite3", seed=False)
    runner = CliRunner()

    res = runner.invoke(app, ["seed-categories", "--database-url", database.url])
    assert res.exit_code == 0, res.output
    assert "Seeded 30 categories" in res.output

    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps([{"date": "2024-01-15", "amount": "-1", "type": "expense",
                                "category": "food_groceries"}]), encoding="utf-8")
    res = runner.invoke(
        app,
        ["import-transactions", "--json-path", str(bad), "--user-id", "u1",
         "--database-url", database.url],
    )
    assert res.exit_code == 1
    assert json.loads(res.stdout)["failed"] == 1


def test_cli_parse_requires_an_input(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    res = CliRunner().invoke(app, ["parse-statement"])
    assert res.exit_code == 2
