# ruff: noqa: E402, I001
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [p for p in [str(_ROOT / "packages"), str(_ROOT)] if p not in sys.path]

from statement_pipeline.config import DEFAULT_MODEL, PipelineSettings
from statement_pipeline.parsing import fmt_amount, month_bounds, to_decimal, to_iso_date
from statement_pipeline.statement_check import (
    EMPTY_TEXT,
    NO_TRANSACTION_DATA,
    NOT_A_STATEMENT,
    validate_statement,
)


# ---- Statement check ---------------------------------------------------------


@pytest.mark.parametrize(
    ("text", "valid", "reason"),
    [
        (None, False, EMPTY_TEXT),
        ("  \n ", False, EMPTY_TEXT),
        ("Dear friend, lunch tomorrow at noon?", False, NOT_A_STATEMENT),
        ("BANK STATEMENT\nNothing to see here", False, NO_TRANSACTION_DATA),
        ("GTBANK\nACCOUNT 0123456789\n15/01/2024 TRANSFER 5,000.00 95,000.00", True, None),
        # No vocabulary at all, but dated lines with amounts still pass.
        ("15/01/2024 coffee 3.50\n16/01/2024 tea 2.00", True, None),
    ],
)
def test_validate_statement(text, valid, reason) -> None:
    check = validate_statement(text)
    assert (check.valid, check.reason) == (valid, reason)


# ---- Settings ----------------------------------------------------------------


def test_settings_defaults_from_empty_env() -> None:
    s = PipelineSettings.from_env({})

    assert s == PipelineSettings()
    assert s.model == DEFAULT_MODEL
    assert s.look_ahead_rows == 3
    assert s.max_import_batch == 1000


def test_settings_read_from_env() -> None:
    s = PipelineSettings.from_env(
        {
            "OPENAI_MODEL": " gpt-test ",
            "SP_LOOK_AHEAD_ROWS": "5",
            "SP_UNUSUAL_AMOUNT_MULTIPLE": "4.5",
            "SP_DUPLICATE_SIMILARITY": "",
            "SP_MAX_IMPORT_BATCH": "50",
        }
    )
    assert s.model == "gpt-test"
    assert s.look_ahead_rows == 5
    assert s.unusual_amount_multiple == 4.5
    assert s.duplicate_similarity == 90.0
    assert s.max_import_batch == 50


def test_settings_use_process_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SP_MAX_CHUNKS", "2")
    assert PipelineSettings.from_env().max_chunks == 2


@pytest.mark.parametrize(
    ("key", "value"),
    [("SP_LOOK_AHEAD_ROWS", "three"), ("SP_LOOK_AHEAD_ROWS", "-1"), ("SP_MAX_CHUNKS", "0")],
)
def test_malformed_settings_raise(key: str, value: str) -> None:
    with pytest.raises(ValueError, match=key):
        PipelineSettings.from_env({key: value})


# ---- Parsing -----------------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("5,000.00", Decimal("5000.00")),
        ("₦1,250.50", Decimal("1250.50")),
        ("NGN 300.00", Decimal("300.00")),
        ("(45.00)", Decimal("-45.00")),
        ("2,500.00DR", Decimal("-2500.00")),
        ("2,500.00 CR", Decimal("2500.00")),
        (12.5, Decimal("12.5")),
    ],
)
def test_to_decimal(raw, expected) -> None:
    assert to_decimal(raw) == expected


@pytest.mark.parametrize("raw", ["", "abc", None, "1.2.3"])
def test_to_decimal_rejects_garbage(raw) -> None:
    with pytest.raises(ValueError):
        to_decimal(raw)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2024-01-15", "2024-01-15"),
        ("05/03/2024", "2024-03-05"),
        ("15-Jan-2024", "2024-01-15"),
        ("15 January 2024", "2024-01-15"),
        ("Jan 15, 2024", "2024-01-15"),
        ("2024-01-15 10:22", "2024-01-15"),
        ("31/02/2024", None),
        ("yesterday", None),
    ],
)
def test_to_iso_date_is_day_first(raw, expected) -> None:
    assert to_iso_date(raw) == expected


def test_fmt_amount_and_month_bounds() -> None:
    assert fmt_amount(Decimal("5050")) == "5050.00"
    assert fmt_amount(Decimal("0.005")) == "0.01"
    assert month_bounds(date(2024, 12, 18)) == (date(2024, 12, 1), date(2025, 1, 1))
