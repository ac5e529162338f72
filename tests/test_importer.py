# ruff: noqa: E402, I001
import sys
from collections.abc import Collection
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [p for p in [str(_ROOT / "packages"), str(_ROOT)] if p not in sys.path]

from statement_pipeline.errors import ImportRequestError
from statement_pipeline.importer import BulkImporter
from statement_pipeline.models import Confidence, TransactionFlag
from statement_pipeline.persistence import BudgetRecord, NewTransaction

FIXED_NOW = datetime(2024, 2, 1, 9, 30, tzinfo=UTC)


class _MemoryStore:
    """In-memory TransactionStore and BudgetStore."""

    def __init__(self, budgets: list[BudgetRecord] | None = None) -> None:
        self.rows: list[NewTransaction] = []
        self.budgets = list(budgets or [])
        self.spent_updates: dict[int, Decimal] = {}
        self.fail_on_description: str | None = None
        self.fail_budget_lookup = False

    def create(self, txn: NewTransaction) -> int:
        if txn.description == self.fail_on_description:
            raise RuntimeError("disk full")
        self.rows.append(txn)
        return len(self.rows)

    def aggregate_spent(self, user_id: str, category: str, start: date, end: date) -> Decimal:
        return sum(
            (
                r.amount
                for r in self.rows
                if r.user_id == user_id
                and r.category == category
                and r.type == "expense"
                and start <= r.date < end
            ),
            Decimal("0"),
        )

    def budgets_for(
        self, user_id: str, month: date, categories: Collection[str]
    ) -> list[BudgetRecord]:
        if self.fail_budget_lookup:
            raise RuntimeError("budgets unavailable")
        return [
            b
            for b in self.budgets
            if b.user_id == user_id and b.month == month and b.category in categories
        ]

    def set_current_spent(self, budget_id: int, amount: Decimal) -> None:
        self.spent_updates[budget_id] = amount


def _row(**overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "date": "2024-01-15",
        "description": "Shoprite Lekki",
        "original_description": "POS PURCHASE SHOPRITE LEKKI",
        "amount": "2500.00",
        "type": "expense",
        "category": "food_groceries",
    }
    row.update(overrides)
    return row


def _budget(budget_id: int, category: str, month: date = date(2024, 1, 1)) -> BudgetRecord:
    return BudgetRecord(
        id=budget_id,
        user_id="u1",
        category=category,
        month=month,
        amount=Decimal("50000"),
        current_spent=Decimal("0"),
    )


def _importer(store: _MemoryStore, **kwargs: Any) -> BulkImporter:
    return BulkImporter(store, store, clock=lambda: FIXED_NOW, **kwargs)


def test_imports_rows_as_reviewed_manual_records() -> None:
    store = _MemoryStore()
    result = _importer(store).import_transactions(
        [_row(service_fee="50", fee_note="SMS ALERT", user_note="weekly shop")],
        user_id="u1",
        import_source="jan.pdf",
    )

    assert result.success is True
    assert (result.imported, result.failed) == (1, 0)
    (saved,) = store.rows
    assert saved.user_id == "u1"
    assert saved.date == date(2024, 1, 15)
    assert saved.description == "Shoprite Lekki"
    assert saved.original_desc == "POS PURCHASE SHOPRITE LEKKI"
    assert saved.amount == Decimal("2500.00")
    assert saved.confidence is Confidence.MANUAL
    assert saved.needs_review is False
    assert saved.is_imported is True
    assert saved.import_source == "jan.pdf"
    assert saved.reviewed_at == FIXED_NOW
    assert saved.fees.service_fee == Decimal("50")
    assert saved.fees.fee_note == "SMS ALERT"
    assert saved.total == Decimal("2550.00")
    assert saved.user_note == "weekly shop"


def test_bad_rows_are_isolated() -> None:
    store = _MemoryStore()
    rows = [
        _row(),
        _row(description="Uber", category="transportation"),
        _row(amount="-100.00"),
        _row(description="Rent", category="housing"),
        _row(description="Salary", type="income", category="salary"),
    ]
    result = _importer(store).import_transactions(rows, user_id="u1", import_source="jan.pdf")

    assert result.success is False
    assert (result.imported, result.failed) == (4, 1)
    (err,) = result.errors
    assert err.index == 2
    assert err.message.startswith("Invalid amount")
    assert [r.description for r in store.rows] == ["Shoprite Lekki", "Uber", "Rent", "Salary"]


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"category": ""}, "Invalid category"),
        ({"date": "someday"}, "Invalid date"),
        ({"type": "sideways"}, "Invalid type"),
        ({"amount": "abc"}, "Invalid amount"),
        ({"vat": "-1"}, "Invalid vat"),
    ],
)
def test_row_validation_messages(overrides: dict[str, Any], message: str) -> None:
    result = _importer(_MemoryStore()).import_transactions(
        [_row(**overrides)], user_id="u1", import_source="jan.pdf"
    )
    (err,) = result.errors
    assert err.index == 0
    assert err.message.startswith(message)


def test_review_flags_are_kept_deduplicated_and_sorted() -> None:
    store = _MemoryStore()
    result = _importer(store).import_transactions(
        [
            _row(flags=["unusual_amount", " GENERIC_DESCRIPTION", "UNUSUAL_AMOUNT"]),
            _row(flags=None),
        ],
        user_id="u1",
        import_source="jan.pdf",
    )

    assert result.imported == 2
    flagged, plain = store.rows
    assert flagged.flags == (
        TransactionFlag.GENERIC_DESCRIPTION,
        TransactionFlag.UNUSUAL_AMOUNT,
    )
    assert plain.flags == ()


def test_unknown_review_flag_rejects_the_row() -> None:
    store = _MemoryStore()
    result = _importer(store).import_transactions(
        [_row(flags=["LOOKS_ODD"])], user_id="u1", import_source="jan.pdf"
    )

    (err,) = result.errors
    assert err.message.startswith("Invalid flags.0")
    assert store.rows == []


def test_missing_field_message() -> None:
    row = _row()
    del row["category"]
    result = _importer(_MemoryStore()).import_transactions(
        [row, "not a row"], user_id="u1", import_source="jan.pdf"
    )

    assert [e.as_dict() for e in result.errors] == [
        {"index": 0, "message": "Missing required field: category"},
        {"index": 1, "message": "Row must be an object"},
    ]
    assert result.imported == 0


def test_debit_and_credit_are_accepted_as_types() -> None:
    store = _MemoryStore()
    _importer(store).import_transactions(
        [_row(type="debit"), _row(type="CREDIT", category="salary")],
        user_id="u1",
        import_source="jan.pdf",
    )
    assert [r.type for r in store.rows] == ["expense", "income"]


def test_store_failure_is_recorded_per_row() -> None:
    store = _MemoryStore()
    store.fail_on_description = "Uber"
    result = _importer(store).import_transactions(
        [_row(), _row(description="Uber", category="transportation")],
        user_id="u1",
        import_source="jan.pdf",
    )

    assert (result.imported, result.failed) == (1, 1)
    assert result.errors[0].index == 1
    assert "disk full" in result.errors[0].message


@pytest.mark.parametrize(
    ("rows", "kwargs", "message"),
    [
        ([], {}, "No transactions provided"),
        (None, {}, "No transactions provided"),
        ([{}] * 3, {"max_batch_size": 2}, "Maximum 2 transactions can be imported at once"),
    ],
)
def test_request_level_errors(rows, kwargs, message: str) -> None:
    with pytest.raises(ImportRequestError, match=message):
        _importer(_MemoryStore(), **kwargs).import_transactions(
            rows, user_id="u1", import_source="jan.pdf"
        )


@pytest.mark.parametrize("source", [None, "", "   "])
def test_import_source_is_required(source) -> None:
    with pytest.raises(ImportRequestError, match="Import source is required"):
        _importer(_MemoryStore()).import_transactions([_row()], user_id="u1", import_source=source)


def test_budgets_for_touched_months_and_categories_are_resynced() -> None:
    store = _MemoryStore(
        budgets=[
            _budget(1, "food_groceries"),
            _budget(2, "transportation"),
            _budget(3, "food_groceries", month=date(2024, 2, 1)),
            _budget(4, "housing"),
        ]
    )
    rows = [
        _row(amount="2500.00"),
        _row(date="2024-01-20", amount="1500.00", service_fee="50"),
        _row(date="2024-02-03", amount="700.00"),
        _row(description="Uber refund", type="income", category="transportation"),
    ]
    result = _importer(store).import_transactions(rows, user_id="u1", import_source="jan.pdf")

    # Income rows never touch budgets; budget 4's category was not imported.
    assert result.budgets_synced == 2
    assert store.spent_updates == {1: Decimal("4000.00"), 3: Decimal("700.00")}


def test_budget_sync_failure_does_not_fail_the_import() -> None:
    store = _MemoryStore(budgets=[_budget(1, "food_groceries")])
    store.fail_budget_lookup = True
    result = _importer(store).import_transactions([_row()], user_id="u1", import_source="jan.pdf")

    assert result.success is True
    assert result.imported == 1
    assert result.budgets_synced == 0
