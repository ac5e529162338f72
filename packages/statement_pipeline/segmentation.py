"""Language-model segmentation of statement text into candidate transactions.

Public API:
    - :class:`StatementSegmenter`
    - :func:`split_into_chunks`

The OpenAI client is injected by the caller; nothing here creates clients or
reads the environment. Model output is never trusted: it is decoded, validated
with pydantic models, and items that fail validation are dropped individually.
"""

from __future__ import annotations

import json
import random
import time
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any, Literal

from openai import APIConnectionError, APITimeoutError, OpenAI
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from . import prompting
from .config import DEFAULT_MODEL, PipelineSettings
from .errors import SegmentationErrorKind
from .logging_setup import get_logger
from .models import (
    FEE_FIELDS,
    CategoryCatalog,
    Direction,
    FeeBreakdown,
    ParsedTransaction,
    SegmentationResult,
    StatementPeriod,
)
from .parsing import to_iso_date
from .results import Err, Ok, Result

# ---- Tunables (private) ------------------------------------------------------

_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT: float = 0.20

DEFAULT_BANK_NAME = "Unknown Bank"
PARSING_FAILED_MESSAGE = (
    "Failed to parse statement transactions. The format may not be supported."
)
NO_TRANSACTIONS_MESSAGE = "No transactions found in the statement."

_logger = get_logger("statement_pipeline.segmentation")


# ---- Response models ---------------------------------------------------------


class LlmPeriod(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    start: str | None = Field(default=None, alias="from")
    end: str | None = Field(default=None, alias="to")


class LlmStatement(BaseModel):
    """Top-level response envelope. Items are validated one by one afterwards."""

    model_config = ConfigDict(extra="ignore")

    bank_name: str | None = None
    account_number: str | None = None
    period: LlmPeriod | None = None
    transactions: list[dict[str, Any]]


class LlmTransaction(BaseModel):
    """One transaction as reported by the model, normalized on validation."""

    model_config = ConfigDict(extra="ignore")

    date: str
    description: str = ""
    amount: Decimal
    type: Literal["debit", "credit"]
    balance: Decimal | None = None
    category: str | None = None
    vat: Decimal | None = None
    service_fee: Decimal | None = None
    commission: Decimal | None = None
    stamp_duty: Decimal | None = None
    transfer_fee: Decimal | None = None
    processing_fee: Decimal | None = None
    other_fees: Decimal | None = None
    fee_note: str | None = None

    @field_validator("date")
    @classmethod
    def _date_parses(cls, v: str) -> str:
        iso = to_iso_date(v)
        if iso is None:
            raise ValueError(f"unparseable date: {v!r}")
        return iso

    @field_validator("description", mode="before")
    @classmethod
    def _description_text(cls, v: Any) -> str:
        return " ".join(str(v).split()) if v is not None else ""

    @field_validator("type", mode="before")
    @classmethod
    def _type_lower(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("amount")
    @classmethod
    def _amount_magnitude(cls, v: Decimal) -> Decimal:
        if not v.is_finite():
            raise ValueError("amount must be finite")
        return abs(v)

    @field_validator(*FEE_FIELDS)
    @classmethod
    def _fee_magnitude(cls, v: Decimal | None) -> Decimal | None:
        if v is None:
            return None
        if not v.is_finite():
            raise ValueError("fee must be finite")
        return abs(v)

    def to_parsed(self, catalog: CategoryCatalog) -> ParsedTransaction:
        fees = FeeBreakdown(
            **{name: getattr(self, name) for name in FEE_FIELDS},
            fee_note=(self.fee_note or None),
        )
        return ParsedTransaction(
            date=self.date,
            description=self.description,
            amount=self.amount,
            direction=Direction(self.type),
            category=self.category if catalog.contains(self.category) else None,
            fees=fees,
            balance=self.balance,
            original_description=self.description,
        )


# ---- Internal helpers --------------------------------------------------------


def _extract_response_json_mapping(resp: Any) -> Mapping[str, Any]:
    """Decode the JSON mapping from an OpenAI Responses SDK result.

    Prefers ``resp.output_text``; falls back to ``resp.output[0].content[0].text``
    (or its ``.value``). Raises ``ValueError`` when no text is found or it is
    not a JSON object.
    """

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        try:
            first = resp.output[0] if getattr(resp, "output", None) else None
            content = getattr(first, "content", None)
            if content and len(content) > 0:
                txt_obj = getattr(content[0], "text", None)
                if isinstance(txt_obj, str):
                    text = txt_obj
                else:
                    maybe_val = getattr(txt_obj, "value", None)
                    if isinstance(maybe_val, str):
                        text = maybe_val
        except (AttributeError, IndexError, TypeError):
            text = None
    if not text or not isinstance(text, str):
        raise ValueError("Unexpected Responses API shape; unable to locate text output")

    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError("Model output was not valid JSON per the requested schema") from e
    if not isinstance(decoded, Mapping):
        raise ValueError("Model output was not a JSON object")
    return decoded


def _is_retryable(exc: BaseException) -> bool:
    """Return True for timeouts, dropped connections, HTTP 429 and 5xx errors."""

    if isinstance(exc, (APITimeoutError, APIConnectionError)):
        return True
    sc = getattr(exc, "status_code", None)
    return isinstance(sc, int) and (sc == 429 or 500 <= sc < 600)


def _sleep_backoff(attempt_no: int) -> None:
    if attempt_no - 1 < len(_BACKOFF_SCHEDULE_SEC):
        base = _BACKOFF_SCHEDULE_SEC[attempt_no - 1]
    else:
        base = _BACKOFF_SCHEDULE_SEC[-1]
    jitter = base * _JITTER_PCT
    time.sleep(max(0.0, base + random.uniform(-jitter, jitter)))


def split_into_chunks(text: str, max_chars: int) -> list[str]:
    """Split ``text`` on line boundaries into chunks of at most ``max_chars``.

    A single line longer than ``max_chars`` is split hard.
    """

    if max_chars <= 0:
        raise ValueError("max_chars must be positive")
    chunks: list[str] = []
    current: list[str] = []
    size = 0
    for line in text.splitlines():
        pieces = [line[i : i + max_chars] for i in range(0, len(line), max_chars)] or [""]
        for piece in pieces:
            added = len(piece) + (1 if current else 0)
            if current and size + added > max_chars:
                chunks.append("\n".join(current))
                current, size = [], 0
                added = len(piece)
            current.append(piece)
            size += added
    if current and any(p.strip() for p in current):
        chunks.append("\n".join(current))
    return [c for c in chunks if c.strip()]


class _ChunkFailure(Exception):
    def __init__(self, kind: SegmentationErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


# ---- Segmenter ---------------------------------------------------------------


class StatementSegmenter:
    """Send statement text to the model and return validated transactions.

    Chunks are processed sequentially; their transactions are concatenated in
    order. Header fields (bank, account, period) come from the first chunk that
    reports them.
    """

    def __init__(
        self,
        client: OpenAI,
        *,
        model: str = DEFAULT_MODEL,
        max_chunk_chars: int = 24_000,
        max_chunks: int = 8,
        max_attempts: int = 3,
    ) -> None:
        self._client = client
        self._model = model
        self._max_chunk_chars = max_chunk_chars
        self._max_chunks = max_chunks
        self._max_attempts = max(1, max_attempts)

    @classmethod
    def from_settings(cls, client: OpenAI, settings: PipelineSettings) -> StatementSegmenter:
        return cls(
            client,
            model=settings.model,
            max_chunk_chars=settings.max_chunk_chars,
            max_chunks=settings.max_chunks,
            max_attempts=settings.llm_max_attempts,
        )

    def segment(
        self,
        text: str,
        catalog: CategoryCatalog,
        *,
        keyword_examples: Mapping[str, Sequence[str]] | None = None,
    ) -> Result[SegmentationResult, SegmentationErrorKind]:
        if not text or not text.strip():
            return Err(SegmentationErrorKind.NO_TRANSACTIONS, NO_TRANSACTIONS_MESSAGE)

        chunks = split_into_chunks(text, self._max_chunk_chars)
        if len(chunks) > self._max_chunks:
            return Err(
                SegmentationErrorKind.TEXT_TOO_LARGE,
                f"Statement is too large to process ({len(chunks)} chunks, "
                f"limit {self._max_chunks}).",
            )

        try:
            text_cfg = prompting.build_response_format(catalog)
        except ValueError as exc:
            return Err(SegmentationErrorKind.REQUEST_FAILED, str(exc))
        instructions = prompting.build_system_instructions()
        category_context = prompting.render_category_context(catalog, keyword_examples)

        bank_name: str | None = None
        account_number: str | None = None
        period: StatementPeriod | None = None
        transactions: list[ParsedTransaction] = []
        dropped = 0

        for index, chunk in enumerate(chunks):
            user_content = prompting.build_user_content(chunk, category_context)
            try:
                statement = self._call_chunk(index, instructions, user_content, text_cfg)
            except _ChunkFailure as exc:
                return Err(exc.kind, str(exc))

            if not bank_name and statement.bank_name and statement.bank_name.strip():
                bank_name = statement.bank_name.strip()
            if not account_number and statement.account_number:
                account_number = statement.account_number.strip() or None
            if period is None and statement.period is not None:
                start = to_iso_date(statement.period.start) or statement.period.start
                end = to_iso_date(statement.period.end) or statement.period.end
                if start or end:
                    period = StatementPeriod(start=start, end=end)

            for item_index, item in enumerate(statement.transactions):
                try:
                    parsed = LlmTransaction.model_validate(item).to_parsed(catalog)
                except (ValidationError, ValueError) as exc:
                    dropped += 1
                    _logger.warning(
                        "segment:item_dropped chunk=%d item=%d error=%s",
                        index,
                        item_index,
                        _short_error(exc),
                    )
                    continue
                transactions.append(parsed)

        if not transactions:
            _logger.warning("segment:no_transactions chunks=%d dropped=%d", len(chunks), dropped)
            return Err(SegmentationErrorKind.NO_TRANSACTIONS, NO_TRANSACTIONS_MESSAGE)

        _logger.info(
            "segment:done chunks=%d transactions=%d dropped=%d",
            len(chunks),
            len(transactions),
            dropped,
        )
        return Ok(
            SegmentationResult(
                bank_name=bank_name or DEFAULT_BANK_NAME,
                account_number=account_number,
                period=period,
                transactions=tuple(transactions),
                dropped_items=dropped,
            )
        )

    def _call_chunk(
        self,
        index: int,
        instructions: str,
        user_content: str,
        text_cfg: Any,
    ) -> LlmStatement:
        attempt = 1
        while True:
            t0 = time.perf_counter()
            try:
                resp = self._client.responses.create(
                    model=self._model,
                    instructions=instructions,
                    input=user_content,
                    text={"format": text_cfg},
                )
            except Exception as e:  # noqa: BLE001 - SDK raises many transport error types
                dt_ms = (time.perf_counter() - t0) * 1000.0
                if attempt >= self._max_attempts or not _is_retryable(e):
                    _logger.error(
                        "segment:chunk_failed_terminal chunk=%d latency_ms=%.2f error=%s",
                        index,
                        dt_ms,
                        e.__class__.__name__,
                    )
                    raise _ChunkFailure(
                        SegmentationErrorKind.REQUEST_FAILED,
                        f"Language model request failed for chunk {index}: {e}",
                    ) from e
                _logger.warning(
                    "segment:chunk_retry chunk=%d latency_ms=%.2f error=%s attempt=%d",
                    index,
                    dt_ms,
                    e.__class__.__name__,
                    attempt,
                )
                _sleep_backoff(attempt)
                attempt += 1
                continue

            dt_ms = (time.perf_counter() - t0) * 1000.0
            # Parsing failures are terminal (no retries).
            try:
                decoded = _extract_response_json_mapping(resp)
                statement = LlmStatement.model_validate(decoded)
            except (ValueError, ValidationError) as e:
                _logger.error(
                    "segment:chunk_malformed chunk=%d latency_ms=%.2f error=%s",
                    index,
                    dt_ms,
                    _short_error(e),
                )
                raise _ChunkFailure(
                    SegmentationErrorKind.MALFORMED_RESPONSE, PARSING_FAILED_MESSAGE
                ) from e
            _logger.info(
                "segment:chunk_done chunk=%d items=%d latency_ms=%.2f",
                index,
                len(statement.transactions),
                dt_ms,
            )
            return statement


def _short_error(exc: BaseException) -> str:
    if isinstance(exc, ValidationError):
        errs = exc.errors()
        if errs:
            first = errs[0]
            loc = ".".join(str(p) for p in first.get("loc", ()))
            return f"{loc}: {first.get('msg')}"
    return str(exc)
