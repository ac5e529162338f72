"""Deterministic, rules-based categorization of parsed transactions.

The categorizer ignores whatever category the language model suggested and
assigns one from the active catalog using, in order: fee descriptions, fee
patterns, keyword scoring, generic transaction types and a fallback. The same
input always yields the same category, confidence and match reason.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import replace

from .dialects import (
    TRANSACTION_TYPE_PATTERNS,
    classify_fee,
    contains_keyword,
    detect_transaction_type,
)
from .logging_setup import get_logger
from .models import (
    CategoryCatalog,
    CategoryDefinition,
    CategoryType,
    Confidence,
    Direction,
    MatchReason,
    ParsedTransaction,
)

_logger = get_logger("statement_pipeline.categorizer")

TRANSFERS = "transfers"
MISCELLANEOUS = "miscellaneous"
OTHER_INCOME = "other_income"

# Category value -> description keywords (matched case-insensitively on word boundaries).
CATEGORY_KEYWORDS: Mapping[str, tuple[str, ...]] = {
    "food_groceries": (
        "shoprite", "spar", "market", "jendol", "food", "restaurant", "chicken republic",
        "kfc", "dominos", "pizza", "coldstone", "sweet sensation", "tantalizers",
        "mr biggs", "bukka", "eatery", "bakery", "cafe", "grocery", "supermarket",
        "provision", "meal",
    ),
    "transportation": (
        "uber", "bolt", "taxi", "cab", "okada", "keke", "danfo", "bus", "fuel", "petrol",
        "diesel", "filling station", "conoil", "total", "mobil", "oando", "rain oil",
        "forte oil", "transport", "ride",
    ),
    "housing": (
        "rent", "landlord", "lease", "accommodation", "housing", "apartment", "flat",
        "tenancy", "mortgage",
    ),
    "utilities": (
        "phcn", "ekedc", "ikedc", "electric", "electricity", "nepa", "water", "waste",
        "sanitation", "lawma", "utility", "power",
    ),
    "communication": (
        "mtn", "glo", "airtel", "9mobile", "etisalat", "airtime", "data", "recharge",
        "topup", "top-up", "subscription", "bundle", "internet", "wifi", "broadband",
    ),
    "healthcare": (
        "pharmacy", "medplus", "health plus", "hospital", "clinic", "doctor", "medical",
        "medicine", "drug", "health", "vaccine",
    ),
    "education": (
        "school", "tuition", "course", "book", "textbook", "lesson", "tutorial", "exam",
        "certification", "learning", "training",
    ),
    "entertainment": (
        "netflix", "spotify", "dstv", "gotv", "startimes", "showmax", "cinema", "movie",
        "filmhouse", "genesis", "silverbird", "game", "gaming", "concert", "event",
    ),
    "shopping": (
        "jumia", "konga", "amazon", "aliexpress", "shopping", "clothing", "fashion",
        "electronics", "gadget", "store",
    ),
    "family_support": (
        "family", "parent", "mother", "father", "sibling", "support", "allowance",
        "contribution", "upkeep",
    ),
    "religious_spiritual": (
        "church", "mosque", "tithe", "offering", "donation", "religious", "spiritual",
        "pastor", "imam", "charity",
    ),
    "business": (
        "business", "supplier", "vendor", "equipment", "inventory", "office", "commercial",
        "professional",
    ),
    "savings_investment": (
        "savings", "save", "investment", "invest", "fixed deposit", "mutual fund",
        "treasury", "cowrywise", "piggyvest", "risevest", "stock", "bond",
    ),
    "debt_payments": (
        "loan", "repayment", "debt", "interest", "installment", "instalment", "borrow",
        "payback", "carbon", "fairmoney", "palmcredit", "renmoney",
    ),
    "miscellaneous": ("miscellaneous", "misc", "general", "various"),
    "salary": ("salary", "wage", "payroll", "monthly pay", "income"),
    "freelance": ("freelance", "consulting", "contract", "gig", "project"),
    "business_income": ("business revenue", "sales", "profit", "business income"),
    "investment_returns": ("dividend", "interest", "return", "capital gain", "yield"),
    "rental_income": ("rental", "property income", "tenant"),
    "gift_bonus": ("gift", "bonus", "award", "prize", "windfall"),
    "other_income": ("refund", "cashback", "rebate", "reversal"),
    "vat": ("vat", "value added tax", "tax"),
    "service_fee": ("service charge", "service fee", "sms charge", "sms alert", "maintenance fee"),
    "commission": ("commission", "processing charge", "cot"),
    "stamp_duty": ("stamp duty", "levy", "electronic money transfer levy", "emt levy"),
    "transfer_fee": ("transfer fee", "transfer charge"),
    "processing_fee": ("processing fee", "handling fee"),
    "other_fees": ("card fee",),
    "transfers": ("transfer to", "transfer from", "trf to", "trf from", "own account"),
}

# Generic transaction type -> category value.
TYPE_CATEGORY: Mapping[str, str] = {
    "bill": "utilities",
    "airtime": "communication",
    "data": "communication",
    "withdrawal": MISCELLANEOUS,
    "purchase": "shopping",
    "transfer": TRANSFERS,
}

_ELIGIBLE_TYPES: Mapping[Direction, tuple[CategoryType, ...]] = {
    Direction.DEBIT: (CategoryType.EXPENSE, CategoryType.FEE, CategoryType.TRANSFER),
    Direction.CREDIT: (CategoryType.INCOME, CategoryType.TRANSFER),
}


def keyword_examples(limit: int = 5) -> dict[str, tuple[str, ...]]:
    """First ``limit`` keywords per category, for prompt rendering."""

    return {value: kws[:limit] for value, kws in CATEGORY_KEYWORDS.items()}


def _eligible(catalog: CategoryCatalog, direction: Direction) -> tuple[CategoryDefinition, ...]:
    return catalog.by_type(*_ELIGIBLE_TYPES[direction])


def _has_transfer_keyword(description: str) -> bool:
    return any(contains_keyword(description, kw) for kw in TRANSACTION_TYPE_PATTERNS["transfer"])


def _keyword_scores(
    description: str, candidates: Iterable[CategoryDefinition]
) -> list[tuple[CategoryDefinition, int]]:
    scored: list[tuple[CategoryDefinition, int]] = []
    for c in candidates:
        keywords = CATEGORY_KEYWORDS.get(c.value, ())
        score = sum(1 for kw in keywords if contains_keyword(description, kw))
        if score > 0:
            scored.append((c, score))
    return scored


def _assign(
    txn: ParsedTransaction, category: str | None, confidence: Confidence, reason: MatchReason
) -> ParsedTransaction:
    return replace(txn, category=category, confidence=confidence, match_reason=reason)


def categorize_transaction(txn: ParsedTransaction, catalog: CategoryCatalog) -> ParsedTransaction:
    """Return ``txn`` with category, confidence and match reason assigned."""

    description = txn.description.strip()
    eligible = _eligible(catalog, txn.direction)
    eligible_values = {c.value for c in eligible}

    if description:
        # 1. The row itself is a bank fee (an orphan fee line).
        if txn.direction is Direction.DEBIT and not txn.fees.has_fees:
            fee_field = classify_fee(description)
            if fee_field is not None and fee_field in eligible_values:
                return _assign(txn, fee_field, Confidence.HIGH, MatchReason.FEE_DESCRIPTION)

    # 2. Fee signature of an electronic transfer.
    fees = txn.fees
    transfer_signature = (
        fees.stamp_duty is not None
        or fees.transfer_fee is not None
        or (fees.has_fees and _has_transfer_keyword(description))
    )
    if transfer_signature and TRANSFERS in eligible_values:
        return _assign(txn, TRANSFERS, Confidence.HIGH, MatchReason.FEE_PATTERN)

    if description:
        # 3. Keyword scoring within the direction's category types.
        scored = _keyword_scores(description, eligible)
        if len(scored) == 1:
            return _assign(txn, scored[0][0].value, Confidence.HIGH, MatchReason.KEYWORD)
        if scored:
            best = max(score for _, score in scored)
            leaders = [c for c, score in scored if score == best]
            if len(leaders) == 1:
                return _assign(txn, leaders[0].value, Confidence.MEDIUM, MatchReason.KEYWORD)
            # ``scored`` follows catalog order, so the first leader is the tie winner.
            return _assign(txn, leaders[0].value, Confidence.MEDIUM, MatchReason.KEYWORD_TIE)

        # 4. Generic transaction type.
        txn_type = detect_transaction_type(description)
        if txn_type is not None:
            mapped = TYPE_CATEGORY.get(txn_type)
            if mapped in eligible_values:
                return _assign(txn, mapped, Confidence.MEDIUM, MatchReason.TYPE_PATTERN)

    # 5. Fallback.
    if txn.direction is Direction.CREDIT and catalog.contains(OTHER_INCOME):
        fallback: str | None = OTHER_INCOME
    elif catalog.contains(MISCELLANEOUS):
        fallback = MISCELLANEOUS
    else:
        fallback = None
    return _assign(txn, fallback, Confidence.LOW, MatchReason.FALLBACK)


def categorize_transactions(
    transactions: Iterable[ParsedTransaction], catalog: CategoryCatalog
) -> list[ParsedTransaction]:
    out = [categorize_transaction(t, catalog) for t in transactions]
    if _logger.isEnabledFor(logging.DEBUG):
        by_reason: dict[str, int] = {}
        for t in out:
            key = t.match_reason.value if t.match_reason else "none"
            by_reason[key] = by_reason.get(key, 0) + 1
        _logger.debug(
            "categorize:done total=%d %s",
            len(out),
            " ".join(f"{k}={v}" for k, v in sorted(by_reason.items())),
        )
    return out
