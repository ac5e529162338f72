"""Cheap "is this a bank statement?" guard run before any costly stage.

This is a guard, not a classifier: it only rejects text with no statement
vocabulary or structure at all, or with no money amounts. Anything borderline
passes and is left for the segmenter to find (or not find) transactions in.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .dialects import contains_keyword, is_column_header
from .parsing import DATE_TOKEN_RE

NOT_A_STATEMENT = "Document does not appear to be a bank statement"
NO_TRANSACTION_DATA = "No transaction data found in document"
EMPTY_TEXT = "Document contains no text"

_TRANSACTION_KEYWORDS: tuple[str, ...] = (
    "TRANSACTION",
    "DEBIT",
    "CREDIT",
    "BALANCE",
    "WITHDRAWAL",
    "DEPOSIT",
    "REMARKS",
    "NARRATION",
)
_BANK_KEYWORDS: tuple[str, ...] = ("BANK", "STATEMENT", "ACCOUNT")

_AMOUNT_RE = re.compile(r"\d{1,3}(?:,\d{3})*\.\d{2}")
_ACCOUNT_NUMBER_RE = re.compile(r"(?<!\d)\d{10,}(?!\d)")
_BALANCE_COLUMN_RE = re.compile(r"\b(?:running\s+)?balance\b", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class StatementCheck:
    valid: bool
    reason: str | None = None


def _structural_markers(text: str) -> int:
    markers = 0
    if _ACCOUNT_NUMBER_RE.search(text):
        markers += 1
    if _BALANCE_COLUMN_RE.search(text):
        markers += 1
    if len(DATE_TOKEN_RE.findall(text)) >= 2:
        markers += 1
    if any(is_column_header(line) for line in text.splitlines()[:200]):
        markers += 1
    return markers


def validate_statement(text: str | None) -> StatementCheck:
    """Return whether ``text`` plausibly is a bank statement, with a reason when not."""

    if text is None or not text.strip():
        return StatementCheck(valid=False, reason=EMPTY_TEXT)

    has_transaction_words = any(contains_keyword(text, kw) for kw in _TRANSACTION_KEYWORDS)
    has_bank_words = any(contains_keyword(text, kw) for kw in _BANK_KEYWORDS)
    if not (has_transaction_words or has_bank_words) and _structural_markers(text) == 0:
        return StatementCheck(valid=False, reason=NOT_A_STATEMENT)

    if not _AMOUNT_RE.search(text):
        return StatementCheck(valid=False, reason=NO_TRANSACTION_DATA)

    return StatementCheck(valid=True)
