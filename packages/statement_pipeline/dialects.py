"""Bank statement dialects: detection signatures, column vocabularies and fee rules.

Each supported bank prints its statements a little differently: column names
(``REMARKS`` vs ``NARRATION``), debit/credit column order and fee narrations.
This module holds that knowledge as data and exposes small pure helpers used
by the normalizer, the categorizer and the row validator.

Every supported bank currently prints debit, credit, balance in that order,
so the detected dialect labels the statement (the bank-name fallback and log
fields) rather than changing how rows are read. Header vocabularies still
feed column-header recognition for all dialects.

Detection only trusts bank signatures in the statement header, meaning the
lines before the first dated row. Bank codes inside transfer narrations
("NIP TRANSFER TO UBA") count as weak body evidence.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache

from .models import BankDialect, Direction
from .parsing import DATE_TOKEN_RE

# Standard column fields a statement header can map to.
FIELD_TRANSACTION_DATE = "transaction_date"
FIELD_VALUE_DATE = "value_date"
FIELD_DESCRIPTION = "description"
FIELD_DEBIT = "debit"
FIELD_CREDIT = "credit"
FIELD_BALANCE = "balance"
FIELD_REFERENCE = "reference"
FIELD_BRANCH = "branch"


@dataclass(frozen=True, slots=True)
class DialectProfile:
    dialect: BankDialect
    display_name: str
    # Bank-name markers; strongest detection evidence.
    signatures: tuple[str, ...]
    # Column header phrase -> standard field.
    header_fields: Mapping[str, str]
    # Order of the amount columns at the end of a transaction row.
    amount_columns: tuple[str, ...] = (FIELD_DEBIT, FIELD_CREDIT, FIELD_BALANCE)


_FIRST_BANK = DialectProfile(
    dialect=BankDialect.FIRST_BANK,
    display_name="First Bank",
    signatures=(
        "FIRST BANK",
        "FIRSTBANK",
        "FBN",
        "ACCOUNT TRANSFERS MOB:",
        "OUTWARD TRANSFER (N) MOB:",
    ),
    header_fields={
        "TXN DATE": FIELD_TRANSACTION_DATE,
        "TRANSACTION DATE": FIELD_TRANSACTION_DATE,
        "VAL DATE": FIELD_VALUE_DATE,
        "VALUE DATE": FIELD_VALUE_DATE,
        "REMARKS": FIELD_DESCRIPTION,
        "DESCRIPTION": FIELD_DESCRIPTION,
        "DEBIT": FIELD_DEBIT,
        "CREDIT": FIELD_CREDIT,
        "BALANCE": FIELD_BALANCE,
    },
)

_GTBANK = DialectProfile(
    dialect=BankDialect.GTBANK,
    display_name="GTBank",
    signatures=(
        "GTBANK",
        "GUARANTY TRUST BANK",
        "GUARANTY TRUST",
        "GTB",
        "NIBSS INSTANT PAYMENT",
        "ORIGINATING BRANCH",
    ),
    header_fields={
        "TRANS. DATE": FIELD_TRANSACTION_DATE,
        "TRANS DATE": FIELD_TRANSACTION_DATE,
        "TRANSACTION DATE": FIELD_TRANSACTION_DATE,
        "VALUE DATE": FIELD_VALUE_DATE,
        "REMARKS": FIELD_DESCRIPTION,
        "DESCRIPTION": FIELD_DESCRIPTION,
        "DEBITS": FIELD_DEBIT,
        "DEBIT": FIELD_DEBIT,
        "CREDITS": FIELD_CREDIT,
        "CREDIT": FIELD_CREDIT,
        "BALANCE": FIELD_BALANCE,
        "REFERENCE": FIELD_REFERENCE,
        "REF": FIELD_REFERENCE,
        "ORIGINATING BRANCH": FIELD_BRANCH,
        "BRANCH": FIELD_BRANCH,
    },
)

_ACCESS_BANK = DialectProfile(
    dialect=BankDialect.ACCESS_BANK,
    display_name="Access Bank",
    signatures=("ACCESS BANK", "ACCESSBANK"),
    header_fields={
        "TRANSACTION DATE": FIELD_TRANSACTION_DATE,
        "TXN DATE": FIELD_TRANSACTION_DATE,
        "VALUE DATE": FIELD_VALUE_DATE,
        "NARRATION": FIELD_DESCRIPTION,
        "DESCRIPTION": FIELD_DESCRIPTION,
        "REMARKS": FIELD_DESCRIPTION,
        "DEBIT": FIELD_DEBIT,
        "CREDIT": FIELD_CREDIT,
        "BALANCE": FIELD_BALANCE,
        "REFERENCE": FIELD_REFERENCE,
    },
)

_ZENITH_BANK = DialectProfile(
    dialect=BankDialect.ZENITH_BANK,
    display_name="Zenith Bank",
    signatures=("ZENITH BANK", "ZENITHBANK"),
    header_fields={
        "TRANSACTION DATE": FIELD_TRANSACTION_DATE,
        "TXN DATE": FIELD_TRANSACTION_DATE,
        "VALUE DATE": FIELD_VALUE_DATE,
        "VAL DATE": FIELD_VALUE_DATE,
        "NARRATION": FIELD_DESCRIPTION,
        "REMARKS": FIELD_DESCRIPTION,
        "DESCRIPTION": FIELD_DESCRIPTION,
        "DEBIT": FIELD_DEBIT,
        "CREDIT": FIELD_CREDIT,
        "BALANCE": FIELD_BALANCE,
        "RUNNING BALANCE": FIELD_BALANCE,
        "REFERENCE": FIELD_REFERENCE,
    },
)

_UBA = DialectProfile(
    dialect=BankDialect.UBA,
    display_name="UBA",
    signatures=("UNITED BANK FOR AFRICA", "UNITED BANK", "UBA"),
    header_fields={
        "TRANSACTION DATE": FIELD_TRANSACTION_DATE,
        "TXN DATE": FIELD_TRANSACTION_DATE,
        "VALUE DATE": FIELD_VALUE_DATE,
        "VAL DATE": FIELD_VALUE_DATE,
        "NARRATION": FIELD_DESCRIPTION,
        "DESCRIPTION": FIELD_DESCRIPTION,
        "DEBIT": FIELD_DEBIT,
        "CREDIT": FIELD_CREDIT,
        "BALANCE": FIELD_BALANCE,
        "REFERENCE": FIELD_REFERENCE,
    },
)

GENERIC_PROFILE = DialectProfile(
    dialect=BankDialect.UNKNOWN,
    display_name="Unknown Bank",
    signatures=(),
    header_fields={
        "DATE": FIELD_TRANSACTION_DATE,
        "TRANSACTION DATE": FIELD_TRANSACTION_DATE,
        "TXN DATE": FIELD_TRANSACTION_DATE,
        "TRANS DATE": FIELD_TRANSACTION_DATE,
        "VALUE DATE": FIELD_VALUE_DATE,
        "VAL DATE": FIELD_VALUE_DATE,
        "DESCRIPTION": FIELD_DESCRIPTION,
        "REMARKS": FIELD_DESCRIPTION,
        "NARRATION": FIELD_DESCRIPTION,
        "DETAILS": FIELD_DESCRIPTION,
        "PARTICULARS": FIELD_DESCRIPTION,
        "DEBIT": FIELD_DEBIT,
        "DEBITS": FIELD_DEBIT,
        "WITHDRAWAL": FIELD_DEBIT,
        "WITHDRAWALS": FIELD_DEBIT,
        "CREDIT": FIELD_CREDIT,
        "CREDITS": FIELD_CREDIT,
        "DEPOSIT": FIELD_CREDIT,
        "DEPOSITS": FIELD_CREDIT,
        "BALANCE": FIELD_BALANCE,
        "RUNNING BALANCE": FIELD_BALANCE,
        "CLOSING BALANCE": FIELD_BALANCE,
        "REFERENCE": FIELD_REFERENCE,
        "REF": FIELD_REFERENCE,
        "REF NO": FIELD_REFERENCE,
        "BRANCH": FIELD_BRANCH,
    },
)

PROFILES: Mapping[BankDialect, DialectProfile] = {
    p.dialect: p for p in (_FIRST_BANK, _GTBANK, _ACCESS_BANK, _ZENITH_BANK, _UBA, GENERIC_PROFILE)
}


def profile_for(dialect: BankDialect) -> DialectProfile:
    return PROFILES.get(dialect, GENERIC_PROFILE)


# ---------------------------------------------------------------------------
# Keyword matching
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1024)
def _keyword_re(keyword: str) -> re.Pattern[str]:
    # Word-bounded on alphanumerics so "GTB" never matches inside "GTBS1".
    return re.compile(r"(?<![A-Z0-9])" + re.escape(keyword.upper()) + r"(?![A-Z0-9])")


def contains_keyword(text: str, keyword: str) -> bool:
    return _keyword_re(keyword).search(text.upper()) is not None


def count_keyword(text: str, keyword: str) -> int:
    return len(_keyword_re(keyword).findall(text.upper()))


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

# Lines at the top of a statement where bank branding and headers live.
_HEADER_ZONE_LINES = 25
_SIGNATURE_HEADER_WEIGHT = 10.0
_SIGNATURE_BODY_WEIGHT = 1.0
_LEADING_DATE_RE = re.compile(r"^\s*(?:" + DATE_TOKEN_RE.pattern + r")(?=[\s|]|$)", re.VERBOSE)


@lru_cache(maxsize=1)
def _header_phrase_weights() -> Mapping[str, Mapping[BankDialect, float]]:
    # A header phrase used by n bank dialects is worth 1/n to each of them.
    owners: dict[str, list[BankDialect]] = {}
    for profile in PROFILES.values():
        if profile.dialect is BankDialect.UNKNOWN:
            continue
        for phrase in profile.header_fields:
            owners.setdefault(phrase, []).append(profile.dialect)
    return {
        phrase: {d: 1.0 / len(dialects) for d in dialects} for phrase, dialects in owners.items()
    }


def _header_zone_size(lines: list[str]) -> int:
    """Number of leading lines before the first dated row, at most the header zone."""

    for i, line in enumerate(lines[:_HEADER_ZONE_LINES]):
        if _LEADING_DATE_RE.match(line):
            return i
    return _HEADER_ZONE_LINES


def dialect_scores(text: str) -> dict[BankDialect, float]:
    """Score every known dialect against ``text``; higher is more likely."""

    lines = [ln for ln in text.splitlines() if ln.strip()]
    head_size = _header_zone_size(lines)
    head = "\n".join(lines[:head_size])
    body = "\n".join(lines[head_size:])

    scores: dict[BankDialect, float] = {
        d: 0.0 for d in PROFILES if d is not BankDialect.UNKNOWN
    }
    for dialect in scores:
        profile = PROFILES[dialect]
        for sig in profile.signatures:
            scores[dialect] += _SIGNATURE_HEADER_WEIGHT * min(count_keyword(head, sig), 1)
            scores[dialect] += _SIGNATURE_BODY_WEIGHT * min(count_keyword(body, sig), 3)

    header_lines = [ln for ln in lines[:_HEADER_ZONE_LINES * 2] if is_column_header(ln)]
    for line in header_lines:
        for phrase, weights in _header_phrase_weights().items():
            if contains_keyword(line, phrase):
                for dialect, w in weights.items():
                    scores[dialect] += w
    return scores


def detect_dialect(text: str) -> BankDialect:
    """Return the best-scoring dialect, or ``UNKNOWN`` on no evidence or a tie."""

    scores = dialect_scores(text)
    if not scores:
        return BankDialect.UNKNOWN
    ranked = sorted(scores.items(), key=lambda kv: kv[1], reverse=True)
    best, best_score = ranked[0]
    if best_score <= 0:
        return BankDialect.UNKNOWN
    if len(ranked) > 1 and ranked[1][1] == best_score:
        return BankDialect.UNKNOWN
    return best


_ALL_HEADER_PHRASES: tuple[str, ...] = tuple(
    sorted({p for prof in PROFILES.values() for p in prof.header_fields}, key=len, reverse=True)
)
_AMOUNT_LIKE_RE = re.compile(r"\d\.\d{2}\b")


def is_column_header(line: str) -> bool:
    """True when ``line`` looks like a table header (several column names, no money)."""

    if _AMOUNT_LIKE_RE.search(line):
        return False
    upper = line.upper()
    hits = 0
    for phrase in _ALL_HEADER_PHRASES:
        if contains_keyword(upper, phrase):
            hits += 1
            upper = _keyword_re(phrase).sub(" ", upper)
    if hits >= 3:
        return True
    # Two column names plus at most one stray word ("S/N", "CHQ").
    return hits == 2 and len(re.findall(r"[A-Z]{2,}", upper)) <= 1


# ---------------------------------------------------------------------------
# Fees
# ---------------------------------------------------------------------------

# Ordered: the first rule whose keyword matches decides the fee field.
FEE_FIELD_RULES: tuple[tuple[str, str], ...] = (
    ("ELECTRONIC MONEY TRANSFER LEVY", "stamp_duty"),
    ("EMT LEVY", "stamp_duty"),
    ("STAMP DUTY", "stamp_duty"),
    ("VATCHARGES", "vat"),
    ("VAT", "vat"),
    ("TRANSFER FEE", "transfer_fee"),
    ("TRANSFER CHARGE", "transfer_fee"),
    ("TRANSFER CHARGES", "transfer_fee"),
    ("PROCESSING FEE", "processing_fee"),
    ("SERVICE CHARGE", "service_fee"),
    ("SERVICE CHARGES", "service_fee"),
    ("SMS CHARGE", "service_fee"),
    ("SMS ALERT", "service_fee"),
    ("CARD MAINTENANCE", "service_fee"),
    ("MAINTENANCE FEE", "service_fee"),
    ("COMMISSION", "commission"),
    ("COT", "commission"),
    ("LEVY", "other_fees"),
    ("CHARGES", "other_fees"),
    ("CHARGE", "other_fees"),
    ("FEES", "other_fees"),
    ("FEE", "other_fees"),
)

# Generic words that only mean "bank fee" when nothing suggests a purchase.
_WEAK_FEE_KEYWORDS = frozenset({"LEVY", "CHARGES", "CHARGE", "FEES", "FEE"})
_NON_FEE_CONTEXT: tuple[str, ...] = (
    "PAYMENT",
    "PURCHASE",
    "SCHOOL",
    "TUITION",
    "BILL",
    "SALARY",
    "REFUND",
    "REVERSAL",
)

FEE_FIELD_LABELS: Mapping[str, str] = {
    "vat": "VAT",
    "service_fee": "SERVICE CHARGE",
    "commission": "COMMISSION",
    "stamp_duty": "STAMP DUTY",
    "transfer_fee": "TRANSFER FEE",
    "processing_fee": "PROCESSING FEE",
    "other_fees": "OTHER FEES",
}


def classify_fee(description: str) -> str | None:
    """Return the fee field a bank-fee narration belongs to, or ``None``.

    ``None`` means the text is not a bank fee at all (e.g. ``SCHOOL FEES
    PAYMENT`` is a purchase that happens to contain ``FEES``).
    """

    upper = description.upper()
    for keyword, fee_field in FEE_FIELD_RULES:
        if not contains_keyword(upper, keyword):
            continue
        if keyword in _WEAK_FEE_KEYWORDS and any(
            contains_keyword(upper, ctx) for ctx in _NON_FEE_CONTEXT
        ):
            return None
        return fee_field
    return None


def is_fee_description(description: str) -> bool:
    return classify_fee(description) is not None


# ---------------------------------------------------------------------------
# Transaction types and direction markers
# ---------------------------------------------------------------------------

TRANSACTION_TYPE_PATTERNS: Mapping[str, tuple[str, ...]] = {
    "transfer": ("TRANSFER", "TRF", "NIP", "NIBSS", "OUTWARD", "INWARD", "SEND", "RECEIVE"),
    "airtime": ("AIRTIME", "RECHARGE", "MTN", "AIRTEL", "GLO", "ETISALAT", "9MOBILE"),
    "data": ("DATA", "INTERNET"),
    "withdrawal": ("ATM", "WITHDRAWAL", "CASH WITHDRAWAL", "POS WITHDRAWAL"),
    "purchase": ("POS", "PURCHASE", "PAYMENT", "WEB PURCHASE"),
    "bill": ("BILL PAYMENT", "UTILITY", "ELECTRICITY", "NEPA", "DSTV", "GOTV", "SHOWMAX"),
}

# Checked in this order so a specific type wins over "purchase".
_TYPE_ORDER: tuple[str, ...] = ("bill", "airtime", "data", "withdrawal", "transfer", "purchase")


def detect_transaction_type(description: str) -> str | None:
    upper = description.upper()
    for type_name in _TYPE_ORDER:
        if any(contains_keyword(upper, kw) for kw in TRANSACTION_TYPE_PATTERNS[type_name]):
            return type_name
    return None


CREDIT_MARKERS: tuple[str, ...] = (
    "INWARD",
    "TRANSFER FROM",
    "TRF FROM",
    "RECEIVED FROM",
    "DEPOSIT",
    "CASH DEPOSIT",
    "SALARY",
    "REVERSAL",
    "REFUND",
    "INTEREST PAID",
    "CREDIT ALERT",
)
DEBIT_MARKERS: tuple[str, ...] = (
    "OUTWARD",
    "TRANSFER TO",
    "TRF TO",
    "WITHDRAWAL",
    "POS PURCHASE",
    "WEB PURCHASE",
    "AIRTIME",
    "BILL PAYMENT",
    "DEBIT ALERT",
)


def direction_from_text(description: str) -> Direction | None:
    """Infer direction from narration markers; ``None`` when absent or contradictory."""

    upper = description.upper()
    credit = any(contains_keyword(upper, m) for m in CREDIT_MARKERS)
    debit = any(contains_keyword(upper, m) for m in DEBIT_MARKERS)
    if credit and not debit:
        return Direction.CREDIT
    if debit and not credit:
        return Direction.DEBIT
    return None
