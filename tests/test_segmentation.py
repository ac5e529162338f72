# ruff: noqa: E402, I001
import sys
from decimal import Decimal
from pathlib import Path

import httpx
import openai
import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [p for p in [str(_ROOT / "packages"), str(_ROOT)] if p not in sys.path]

from statement_pipeline.errors import SegmentationErrorKind
from statement_pipeline.models import CategoryCatalog, Direction, StatementPeriod
from statement_pipeline.results import Err, Ok
from statement_pipeline.segmentation import (
    DEFAULT_BANK_NAME,
    NO_TRANSACTIONS_MESSAGE,
    PARSING_FAILED_MESSAGE,
    StatementSegmenter,
    split_into_chunks,
)

from tests.helpers.openai_stub import (
    APIStatusErrorStub,
    OpenAIStub,
    statement_payload,
    statement_text_from_call,
)

TEXT = "15/01/2024 TRANSFER TO JOHN DOE 5,000.00 95,000.00\n16/01/2024 SALARY 200,000.00"


def _item(**overrides):
    item = {
        "date": "15/01/2024",
        "description": "TRANSFER TO   JOHN DOE",
        "amount": 5000,
        "type": "DEBIT",
        "balance": 95000,
        "category": "transfers",
        "vat": None,
        "service_fee": None,
        "commission": None,
        "stamp_duty": 50,
        "transfer_fee": None,
        "processing_fee": None,
        "other_fees": None,
        "fee_note": "EMT LEVY",
    }
    item.update(overrides)
    return item


def test_segment_parses_and_normalizes_items(catalog: CategoryCatalog) -> None:
    stub = OpenAIStub(
        [
            statement_payload(
                [_item(), _item(date="2024-01-16", description="SALARY", amount=-200000,
                                type="credit", category="not_a_category", stamp_duty=None,
                                fee_note=None)],
                bank_name="GTBank",
                period={"from": "01/01/2024", "to": "31/01/2024"},
            )
        ]
    )
    result = StatementSegmenter(stub, model="m").segment(TEXT, catalog)

    assert isinstance(result, Ok)
    seg = result.value
    assert seg.bank_name == "GTBank"
    assert seg.account_number == "0123456789"
    assert seg.period == StatementPeriod(start="2024-01-01", end="2024-01-31")
    assert seg.dropped_items == 0

    transfer, salary = seg.transactions
    assert transfer.date == "2024-01-15"
    assert transfer.description == "TRANSFER TO JOHN DOE"
    assert transfer.direction is Direction.DEBIT
    assert transfer.fees.stamp_duty == Decimal("50")
    assert transfer.total == Decimal("5050")
    assert transfer.category == "transfers"
    # Categorization happens later; the segmenter leaves confidence unset.
    assert transfer.confidence is None

    assert salary.amount == Decimal("200000")
    assert salary.direction is Direction.CREDIT
    assert salary.category is None


def test_request_carries_model_schema_and_statement_text(catalog: CategoryCatalog) -> None:
    stub = OpenAIStub([statement_payload([_item()])])
    StatementSegmenter(stub, model="gpt-test").segment(TEXT, catalog)

    (call,) = stub.calls
    assert call["model"] == "gpt-test"
    fmt = call["text"]["format"]
    assert fmt["type"] == "json_schema" and fmt["strict"] is True
    enum = fmt["schema"]["properties"]["transactions"]["items"]["properties"]["category"]["enum"]
    assert enum[:-1] == list(catalog.values()) and enum[-1] is None
    assert statement_text_from_call(call) == TEXT
    assert "food_groceries: Food & Groceries" in call["input"]


def test_invalid_items_are_dropped_individually(catalog: CategoryCatalog) -> None:
    stub = OpenAIStub(
        [
            statement_payload(
                [
                    _item(),
                    _item(date="not a date"),
                    _item(type="sideways"),
                    _item(amount="lots"),
                ]
            )
        ]
    )
    result = StatementSegmenter(stub).segment(TEXT, catalog)

    assert isinstance(result, Ok)
    assert len(result.value.transactions) == 1
    assert result.value.dropped_items == 3


def test_missing_bank_name_uses_default(catalog: CategoryCatalog) -> None:
    stub = OpenAIStub([statement_payload([_item()], bank_name="")])
    result = StatementSegmenter(stub).segment(TEXT, catalog)
    assert result.value.bank_name == DEFAULT_BANK_NAME


def test_no_valid_items_is_no_transactions(catalog: CategoryCatalog) -> None:
    stub = OpenAIStub([statement_payload([_item(date="??")])])
    result = StatementSegmenter(stub).segment(TEXT, catalog)

    assert result == Err(SegmentationErrorKind.NO_TRANSACTIONS, NO_TRANSACTIONS_MESSAGE)


def test_empty_text_never_calls_the_model(catalog: CategoryCatalog) -> None:
    stub = OpenAIStub([])
    result = StatementSegmenter(stub).segment("   ", catalog)

    assert isinstance(result, Err)
    assert result.kind is SegmentationErrorKind.NO_TRANSACTIONS
    assert stub.calls == []


@pytest.mark.parametrize("reply", ["not json", "[1, 2]", '{"bank_name": "x"}'])
def test_malformed_output_is_terminal(catalog: CategoryCatalog, reply: str) -> None:
    stub = OpenAIStub([reply, statement_payload([_item()])])
    result = StatementSegmenter(stub, max_attempts=3).segment(TEXT, catalog)

    assert result == Err(SegmentationErrorKind.MALFORMED_RESPONSE, PARSING_FAILED_MESSAGE)
    assert len(stub.calls) == 1


def test_retryable_errors_are_retried(catalog: CategoryCatalog) -> None:
    stub = OpenAIStub(
        [APIStatusErrorStub(429), APIStatusErrorStub(503), statement_payload([_item()])]
    )
    result = StatementSegmenter(stub, max_attempts=3).segment(TEXT, catalog)

    assert isinstance(result, Ok)
    assert len(stub.calls) == 3


def test_timeouts_and_dropped_connections_are_retried(catalog: CategoryCatalog) -> None:
    request = httpx.Request("POST", "https://api.openai.com/v1/responses")
    stub = OpenAIStub(
        [
            openai.APITimeoutError(request=request),
            openai.APIConnectionError(request=request),
            statement_payload([_item()]),
        ]
    )
    result = StatementSegmenter(stub, max_attempts=3).segment(TEXT, catalog)

    assert isinstance(result, Ok)
    assert len(stub.calls) == 3


def test_retries_stop_at_max_attempts(catalog: CategoryCatalog) -> None:
    stub = OpenAIStub([APIStatusErrorStub(500), APIStatusErrorStub(500)])
    result = StatementSegmenter(stub, max_attempts=2).segment(TEXT, catalog)

    assert isinstance(result, Err)
    assert result.kind is SegmentationErrorKind.REQUEST_FAILED
    assert len(stub.calls) == 2


def test_client_errors_are_not_retried(catalog: CategoryCatalog) -> None:
    stub = OpenAIStub([APIStatusErrorStub(400), statement_payload([_item()])])
    result = StatementSegmenter(stub, max_attempts=3).segment(TEXT, catalog)

    assert isinstance(result, Err)
    assert result.kind is SegmentationErrorKind.REQUEST_FAILED
    assert len(stub.calls) == 1


def test_chunks_are_concatenated_in_order(catalog: CategoryCatalog) -> None:
    lines = [f"{d:02d}/01/2024 POS PURCHASE {d} 1,000.00" for d in range(1, 7)]
    text = "\n".join(lines)
    stub = OpenAIStub(
        [
            statement_payload([_item(date="01/01/2024")], bank_name="", account_number=None),
            statement_payload([_item(date="03/01/2024")], bank_name="Zenith Bank"),
            statement_payload([_item(date="05/01/2024")], bank_name="Other Bank"),
        ]
    )
    seg = StatementSegmenter(stub, max_chunk_chars=80).segment(text, catalog)

    assert isinstance(seg, Ok)
    assert len(stub.calls) == 3
    assert [t.date for t in seg.value.transactions] == ["2024-01-01", "2024-01-03", "2024-01-05"]
    # Header fields come from the first chunk that reports them.
    assert seg.value.bank_name == "Zenith Bank"
    assert seg.value.account_number == "0123456789"


def test_too_many_chunks_is_rejected_before_any_call(catalog: CategoryCatalog) -> None:
    text = "\n".join("x" * 50 for _ in range(10))
    stub = OpenAIStub([])
    result = StatementSegmenter(stub, max_chunk_chars=60, max_chunks=3).segment(text, catalog)

    assert isinstance(result, Err)
    assert result.kind is SegmentationErrorKind.TEXT_TOO_LARGE
    assert stub.calls == []


def test_split_into_chunks_respects_line_boundaries() -> None:
    text = "aaaa\nbbbb\ncccc\n\ndddddddddd"
    chunks = split_into_chunks(text, 9)

    assert chunks == ["aaaa\nbbbb", "cccc\n", "ddddddddd", "d"]
    assert all(len(c) <= 9 for c in chunks)


def test_split_into_chunks_rejects_non_positive_size() -> None:
    with pytest.raises(ValueError):
        split_into_chunks("abc", 0)
