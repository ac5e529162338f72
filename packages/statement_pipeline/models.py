"""Domain values for the statement pipeline.

Every value here is an immutable dataclass: stages build new values (via
``dataclasses.replace``) instead of mutating the ones they receive. Money is
``Decimal`` throughout; JSON-facing ``to_dict`` helpers render it as strings
with two decimals.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import StrEnum
from typing import Any

from .errors import ImportRowError
from .parsing import fmt_amount

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class BankDialect(StrEnum):
    UNKNOWN = "unknown"
    FIRST_BANK = "firstbank"
    GTBANK = "gtbank"
    ACCESS_BANK = "accessbank"
    ZENITH_BANK = "zenithbank"
    UBA = "uba"


class Direction(StrEnum):
    DEBIT = "debit"
    CREDIT = "credit"


class Confidence(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    # Only ever set on persisted records after human review.
    MANUAL = "manual"


class TransactionFlag(StrEnum):
    NO_DESCRIPTION = "NO_DESCRIPTION"
    GENERIC_DESCRIPTION = "GENERIC_DESCRIPTION"
    ONLY_NUMBERS = "ONLY_NUMBERS"
    AMBIGUOUS = "AMBIGUOUS"
    UNUSUAL_AMOUNT = "UNUSUAL_AMOUNT"
    DUPLICATE_SUSPECTED = "DUPLICATE_SUSPECTED"


class MatchReason(StrEnum):
    """Which categorizer rule produced a transaction's category."""

    FEE_DESCRIPTION = "fee_description"
    FEE_PATTERN = "fee_pattern"
    KEYWORD = "keyword"
    KEYWORD_TIE = "keyword_tie"
    TYPE_PATTERN = "type_pattern"
    FALLBACK = "fallback"


class CategoryType(StrEnum):
    EXPENSE = "expense"
    INCOME = "income"
    FEE = "fee"
    TRANSFER = "transfer"


# ---------------------------------------------------------------------------
# Fees
# ---------------------------------------------------------------------------

FEE_FIELDS: tuple[str, ...] = (
    "vat",
    "service_fee",
    "commission",
    "stamp_duty",
    "transfer_fee",
    "processing_fee",
    "other_fees",
)


@dataclass(frozen=True, slots=True)
class FeeBreakdown:
    """Named fee amounts charged alongside a transaction.

    ``None`` means "not charged"; a zero amount is a charge of zero and still
    counts as a present fee field.
    """

    vat: Decimal | None = None
    service_fee: Decimal | None = None
    commission: Decimal | None = None
    stamp_duty: Decimal | None = None
    transfer_fee: Decimal | None = None
    processing_fee: Decimal | None = None
    other_fees: Decimal | None = None
    fee_note: str | None = None

    def __post_init__(self) -> None:
        for name in FEE_FIELDS:
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"fee {name} must be >= 0, got {value}")

    def amounts(self) -> dict[str, Decimal]:
        """Return the present fee fields in declaration order."""

        out: dict[str, Decimal] = {}
        for name in FEE_FIELDS:
            value = getattr(self, name)
            if value is not None:
                out[name] = value
        return out

    @property
    def has_fees(self) -> bool:
        return any(getattr(self, name) is not None for name in FEE_FIELDS)

    def fee_sum(self) -> Decimal:
        return sum(self.amounts().values(), Decimal("0"))

    def add(self, name: str, amount: Decimal, note: str | None = None) -> FeeBreakdown:
        """Return a copy with ``amount`` folded into fee field ``name``."""

        if name not in FEE_FIELDS:
            raise KeyError(f"unknown fee field: {name!r}")
        current = getattr(self, name)
        updated = amount if current is None else current + amount
        new_note = self.fee_note
        if note:
            new_note = note if not new_note else f"{new_note}; {note}"
        return replace(self, **{name: updated, "fee_note": new_note})

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            name: (fmt_amount(v) if (v := getattr(self, name)) is not None else None)
            for name in FEE_FIELDS
        }
        out["fee_note"] = self.fee_note
        return out


def total_with_fees(amount: Decimal | None, fees: FeeBreakdown) -> Decimal | None:
    """``amount + Σfees`` when any fee field is present, else ``None``."""

    if amount is None or not fees.has_fees:
        return None
    return amount + fees.fee_sum()


# ---------------------------------------------------------------------------
# Extraction and cleaning
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RawStatementText:
    """Plain text extracted from a statement plus optional per-page text."""

    text: str
    pages: tuple[str, ...] = ()

    @property
    def page_count(self) -> int:
        return len(self.pages)


@dataclass(frozen=True, slots=True)
class StatementRow:
    """One logical statement row reconstructed from physical lines."""

    date: str | None
    description: str
    amount: Decimal | None = None
    direction: Direction | None = None
    balance: Decimal | None = None
    reference: str | None = None
    fees: FeeBreakdown = field(default_factory=FeeBreakdown)
    source_lines: tuple[int, ...] = ()
    is_fee_row: bool = False

    @property
    def total(self) -> Decimal | None:
        return total_with_fees(self.amount, self.fees)


@dataclass(frozen=True, slots=True)
class CleaningStats:
    original_char_count: int
    cleaned_char_count: int
    total_transactions: int
    transactions_with_fees: int
    total_fees: int
    processing_time_ms: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_char_count": self.original_char_count,
            "cleaned_char_count": self.cleaned_char_count,
            "total_transactions": self.total_transactions,
            "transactions_with_fees": self.transactions_with_fees,
            "total_fees": self.total_fees,
            "processing_time_ms": round(self.processing_time_ms, 2),
        }


@dataclass(frozen=True, slots=True)
class CleanedStatement:
    text: str
    dialect: BankDialect
    rows: tuple[StatementRow, ...]
    stats: CleaningStats
    original_text: str | None = None
    warnings: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ParsedTransaction:
    """A candidate transaction flowing through segmentation, categorization and review.

    ``amount`` is a non-negative magnitude; ``direction`` carries the sign.
    ``confidence`` stays ``None`` until the categorizer runs and is never
    :attr:`Confidence.MANUAL` on this type.
    """

    date: str
    description: str
    amount: Decimal
    direction: Direction
    category: str | None = None
    confidence: Confidence | None = None
    needs_review: bool = False
    flags: frozenset[TransactionFlag] = frozenset()
    fees: FeeBreakdown = field(default_factory=FeeBreakdown)
    balance: Decimal | None = None
    original_description: str | None = None
    match_reason: MatchReason | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal) or not self.amount.is_finite():
            raise ValueError(f"amount must be a finite Decimal, got {self.amount!r}")
        if self.amount < 0:
            raise ValueError(f"amount must be >= 0, got {self.amount}")
        if self.confidence is Confidence.MANUAL:
            raise ValueError("manual confidence is reserved for reviewed, imported records")

    @property
    def total(self) -> Decimal | None:
        return total_with_fees(self.amount, self.fees)

    def to_dict(self) -> dict[str, Any]:
        total = self.total
        return {
            "date": self.date,
            "description": self.description,
            "original_description": self.original_description,
            "amount": fmt_amount(self.amount),
            "type": self.direction.value,
            "category": self.category,
            "confidence": self.confidence.value if self.confidence else None,
            "needs_review": self.needs_review,
            "flags": sorted(f.value for f in self.flags),
            "balance": fmt_amount(self.balance) if self.balance is not None else None,
            **self.fees.to_dict(),
            "total": fmt_amount(total) if total is not None else None,
            "match_reason": self.match_reason.value if self.match_reason else None,
        }


@dataclass(frozen=True, slots=True)
class ValidationSummary:
    total: int
    auto_categorized: int
    needs_review: int
    flagged: int
    confidence_counts: Mapping[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "auto_categorized": self.auto_categorized,
            "needs_review": self.needs_review,
            "flagged": self.flagged,
            "confidence_counts": dict(self.confidence_counts),
        }


# ---------------------------------------------------------------------------
# Category catalog
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CategoryDefinition:
    value: str
    name: str
    type: CategoryType
    is_active: bool = True
    sort_order: int = 0
    description: str | None = None


@dataclass(frozen=True, slots=True)
class CategoryCatalog:
    """An ordered, read-only set of category definitions for one pipeline run."""

    categories: tuple[CategoryDefinition, ...]

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for c in self.categories:
            if c.value in seen:
                raise ValueError(f"duplicate category value: {c.value!r}")
            seen.add(c.value)

    @classmethod
    def of(cls, categories: Iterable[CategoryDefinition]) -> CategoryCatalog:
        ordered = sorted(categories, key=lambda c: (c.sort_order, c.value))
        return cls(categories=tuple(ordered))

    def __iter__(self) -> Iterator[CategoryDefinition]:
        return iter(self.categories)

    def __len__(self) -> int:
        return len(self.categories)

    def active(self) -> tuple[CategoryDefinition, ...]:
        return tuple(c for c in self.categories if c.is_active)

    def values(self) -> tuple[str, ...]:
        return tuple(c.value for c in self.active())

    def by_type(self, *types: CategoryType) -> tuple[CategoryDefinition, ...]:
        return tuple(c for c in self.active() if c.type in types)

    def get(self, value: str) -> CategoryDefinition | None:
        for c in self.categories:
            if c.value == value:
                return c
        return None

    def contains(self, value: str | None) -> bool:
        if value is None:
            return False
        found = self.get(value)
        return found is not None and found.is_active


# ---------------------------------------------------------------------------
# Stage outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StatementPeriod:
    start: str | None = None
    end: str | None = None


@dataclass(frozen=True, slots=True)
class SegmentationResult:
    bank_name: str
    account_number: str | None
    period: StatementPeriod | None
    transactions: tuple[ParsedTransaction, ...]
    dropped_items: int = 0


@dataclass(frozen=True, slots=True)
class StatementParseResult:
    bank_name: str
    account_number: str | None
    period: StatementPeriod | None
    dialect: BankDialect
    transactions: tuple[ParsedTransaction, ...]
    summary: ValidationSummary
    used_cleaned_text: bool
    cleaning_stats: CleaningStats | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "bank_name": self.bank_name,
            "account_number": self.account_number,
            "period": (
                {"from": self.period.start, "to": self.period.end} if self.period else None
            ),
            "dialect": self.dialect.value,
            "transactions": [t.to_dict() for t in self.transactions],
            "summary": self.summary.to_dict(),
            "used_cleaned_text": self.used_cleaned_text,
            "cleaning_stats": self.cleaning_stats.to_dict() if self.cleaning_stats else None,
        }


@dataclass(frozen=True, slots=True)
class ImportResult:
    success: bool
    imported: int
    failed: int
    errors: tuple[ImportRowError, ...] = ()
    budgets_synced: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "imported": self.imported,
            "failed": self.failed,
            "errors": [e.as_dict() for e in self.errors],
            "budgets_synced": self.budgets_synced,
        }
