"""Row-level validation: annotate categorized transactions for human review.

This stage only annotates. It never drops, merges or recategorizes a row; it
sets ``flags`` and ``needs_review`` and leaves every other field untouched.
"""

from __future__ import annotations

import re
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from decimal import Decimal
from statistics import median

from rapidfuzz import fuzz

from .dialects import direction_from_text
from .logging_setup import get_logger
from .models import (
    Confidence,
    MatchReason,
    ParsedTransaction,
    TransactionFlag,
    ValidationSummary,
)

_logger = get_logger("statement_pipeline.validation")

DEFAULT_UNUSUAL_AMOUNT_MULTIPLE = 10.0
DEFAULT_DUPLICATE_SIMILARITY = 90.0

# Descriptions that carry no information about what the money was for.
GENERIC_DESCRIPTIONS: frozenset[str] = frozenset(
    {
        "transfer",
        "payment",
        "debit",
        "credit",
        "withdrawal",
        "deposit",
        "transaction",
        "pos",
        "atm",
        "web",
        "mobile",
        "online",
        "bank",
    }
)
_MIN_DESCRIPTION_LEN = 3
_ONLY_NUMBERS_RE = re.compile(r"^[\d\s\-/]+$")

_FLAG_DESCRIPTIONS: Mapping[TransactionFlag, str] = {
    TransactionFlag.NO_DESCRIPTION: "Missing description",
    TransactionFlag.GENERIC_DESCRIPTION: "Description is too generic",
    TransactionFlag.ONLY_NUMBERS: "Only reference numbers",
    TransactionFlag.AMBIGUOUS: "Could match multiple categories or directions",
    TransactionFlag.UNUSUAL_AMOUNT: "Unusually large amount for this statement",
    TransactionFlag.DUPLICATE_SUSPECTED: "Possible duplicate transaction",
}

_REVIEW_CONFIDENCES = frozenset({Confidence.LOW, Confidence.MEDIUM})


def flag_description(flag: TransactionFlag | str) -> str:
    """Human-readable text for ``flag``; unknown flags get a generic label."""

    try:
        return _FLAG_DESCRIPTIONS[TransactionFlag(flag)]
    except ValueError:
        return "Unknown flag"


def _description_flags(description: str) -> set[TransactionFlag]:
    flags: set[TransactionFlag] = set()
    desc = description.strip().lower()
    if not desc:
        flags.add(TransactionFlag.NO_DESCRIPTION)
        return flags
    if desc in GENERIC_DESCRIPTIONS or len(desc) < _MIN_DESCRIPTION_LEN:
        flags.add(TransactionFlag.GENERIC_DESCRIPTION)
    if _ONLY_NUMBERS_RE.match(desc):
        flags.add(TransactionFlag.ONLY_NUMBERS)
    return flags


def _is_ambiguous(txn: ParsedTransaction) -> bool:
    if txn.category is None or txn.match_reason is MatchReason.KEYWORD_TIE:
        return True
    implied = direction_from_text(txn.description)
    return implied is not None and implied is not txn.direction


def _unusual_threshold(
    transactions: Sequence[ParsedTransaction], multiple: float
) -> Decimal | None:
    positives = [t.amount for t in transactions if t.amount > 0]
    if not positives:
        return None
    return Decimal(str(multiple)) * median(positives)


def _duplicate_indices(
    transactions: Sequence[ParsedTransaction], similarity: float
) -> set[int]:
    groups: dict[tuple[str, Decimal], list[int]] = defaultdict(list)
    for i, t in enumerate(transactions):
        groups[(t.date, t.amount)].append(i)

    dupes: set[int] = set()
    for indices in groups.values():
        if len(indices) < 2:
            continue
        for pos, i in enumerate(indices):
            left = transactions[i].description.strip().lower()
            for j in indices[pos + 1 :]:
                right = transactions[j].description.strip().lower()
                if fuzz.ratio(left, right) >= similarity:
                    dupes.update((i, j))
    return dupes


def validate_transactions(
    transactions: Iterable[ParsedTransaction],
    *,
    unusual_amount_multiple: float = DEFAULT_UNUSUAL_AMOUNT_MULTIPLE,
    duplicate_similarity: float = DEFAULT_DUPLICATE_SIMILARITY,
) -> list[ParsedTransaction]:
    """Return the batch with ``flags`` and ``needs_review`` populated.

    Flags are independent; a row may carry several. ``needs_review`` is set
    when confidence is low, medium or missing, or when any flag is present.
    """

    items = list(transactions)
    threshold = _unusual_threshold(items, unusual_amount_multiple)
    duplicates = _duplicate_indices(items, duplicate_similarity)

    out: list[ParsedTransaction] = []
    for i, txn in enumerate(items):
        flags = _description_flags(txn.description)
        if _is_ambiguous(txn):
            flags.add(TransactionFlag.AMBIGUOUS)
        if threshold is not None and txn.amount > threshold:
            flags.add(TransactionFlag.UNUSUAL_AMOUNT)
        if i in duplicates:
            flags.add(TransactionFlag.DUPLICATE_SUSPECTED)

        needs_review = (
            txn.confidence is None or txn.confidence in _REVIEW_CONFIDENCES or bool(flags)
        )
        out.append(replace(txn, flags=frozenset(flags), needs_review=needs_review))

    _logger.info(
        "validate:done total=%d needs_review=%d duplicates=%d",
        len(out),
        sum(1 for t in out if t.needs_review),
        len(duplicates),
    )
    return out


def summarize(transactions: Iterable[ParsedTransaction]) -> ValidationSummary:
    items = list(transactions)
    counts = {c.value: 0 for c in Confidence}
    for t in items:
        if t.confidence is not None:
            counts[t.confidence.value] += 1
    return ValidationSummary(
        total=len(items),
        auto_categorized=sum(1 for t in items if t.category and not t.needs_review),
        needs_review=sum(1 for t in items if t.needs_review),
        flagged=sum(1 for t in items if t.flags),
        confidence_counts=counts,
    )
