"""Bank-statement text normalizer.

Turns text extracted from a statement PDF into one line per logical
transaction in a stable ``KEY: value | KEY: value`` form the segmenter can
read reliably::

    DATE: 2024-01-15 | DESC: TRANSFER TO JOHN DOE | AMOUNT: 5000.00 | TYPE: DEBIT |
    BALANCE: 94950.00 | FEES: 50.00 | SERVICE CHARGE: 50.00 | FEE NOTE: SERVICE CHARGE |
    TOTAL: 5050.00

Steps
-----
1. Basic cleanup of PDF noise (repeated separators, stray symbols, whitespace).
2. Dialect detection unless the caller names one.
3. Row reconstruction: a line with a leading date starts a row; wrapped
   narration lines and amount-only lines are folded into the open row; lines
   carrying a fee keyword and an amount become fee rows.
4. Direction from explicit markers, column placement, running-balance delta
   and finally narration keywords.
5. Fee association: up to ``look_ahead_rows`` fee rows directly following a
   transaction (undated or on the same date) are folded into its fee fields.
   Fee rows with no eligible parent stay standalone.
6. Rendering. Lines already in the rendered form are parsed back field by
   field, so cleaning cleaned text is a no-op.

Public API: :class:`NormalizerOptions`, :func:`clean_statement`,
:func:`basic_cleanup`, :func:`render_row`.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Literal

from . import dialects
from .dialects import FEE_FIELD_LABELS, DialectProfile
from .errors import CleaningError, CleaningErrorKind
from .logging_setup import get_logger
from .models import (
    BankDialect,
    CleanedStatement,
    CleaningStats,
    Direction,
    FeeBreakdown,
    StatementRow,
)
from .parsing import AMOUNT_TOKEN_RE, DATE_TOKEN_RE, fmt_amount, to_decimal, to_iso_date
from .results import Err, Ok, Result

_logger = get_logger("statement_pipeline.normalizer")

_ZERO = Decimal("0")


@dataclass(frozen=True, slots=True)
class NormalizerOptions:
    bank_type: BankDialect | Literal["auto"] = "auto"
    look_ahead_rows: int = 3
    preserve_original: bool = False
    verbose: bool = False

    def __post_init__(self) -> None:
        if self.look_ahead_rows < 0:
            raise ValueError("look_ahead_rows must be >= 0")


# ---------------------------------------------------------------------------
# Basic cleanup
# ---------------------------------------------------------------------------


def basic_cleanup(text: str) -> str:
    """Remove PDF-to-text noise while keeping the line structure."""

    s = text.replace("\r\n", "\n").replace("\r", "\n")
    s = re.sub(r"\|{2,}", "|", s)
    s = re.sub(r"-{2,}", "-", s)
    s = re.sub(r"={2,}", "=", s)
    s = re.sub(r"_{2,}", "_", s)
    s = re.sub(r"[*#~`]", "", s)
    s = re.sub(r"[ \t]{3,}", " ", s)
    s = re.sub(r"\n{4,}", "\n\n\n", s)
    return s


# ---------------------------------------------------------------------------
# Line patterns
# ---------------------------------------------------------------------------

_LEADING_DATE_RE = re.compile(
    r"^\s*(?:" + DATE_TOKEN_RE.pattern + r")(?=[\s|]|$)", re.VERBOSE
)
_TRAILING_AMOUNT_RE = re.compile(r"(?:" + AMOUNT_TOKEN_RE.pattern + r")\s*$", re.VERBOSE)
_AMOUNT_ONLY_RE = re.compile(
    r"^(?:\s*(?:" + AMOUNT_TOKEN_RE.pattern + r"|-))+\s*$", re.VERBOSE
)
_AMOUNT_OR_PLACEHOLDER_RE = re.compile(
    r"(?:" + AMOUNT_TOKEN_RE.pattern + r")|(?<!\S)-(?!\S)", re.VERBOSE
)

_BALANCE_MARKER_RE = re.compile(
    r"^(?:opening\s+balance|balance\s+b/?f|brought\s+forward|balance\s+brought\s+forward)\b",
    re.IGNORECASE,
)
_NOISE_RE = re.compile(
    r"""^(?:
        page\s+\d+(?:\s+of\s+\d+)?
      | \d+\s+of\s+\d+$
      | closing\s+balance
      | balance\s+c/?f
      | carried\s+forward
      | (?:(?:grand\s+)?totals?
           (?:\s+(?:debits?|credits?|withdrawals?|deposits?|charges?))*
           (?:NGN|[\s:\d,.()₦-])*
        )+$
      | end\s+of\s+statement
      | printed\s+(?:on|by)
      | this\s+is\s+a\s+computer
      | thank\s+you\s+for
      | for\s+(?:enquiries|inquiries|complaints)
      | customer\s+care
      | disclaimer
      | statement\s+(?:of\s+account|period)
      | account\s+(?:name|number|no\b|type|officer)
    )""",
    re.IGNORECASE | re.VERBOSE,
)
_REFERENCE_RE = re.compile(
    r"\bREF(?:ERENCE)?(?:\s*NO)?\b\s*[:.]?\s*(?P<ref>[A-Z0-9][A-Z0-9/\-]{3,})",
    re.IGNORECASE,
)

_CANONICAL_PREFIX = "DATE:"
_UNKNOWN = "UNKNOWN"
_LABEL_TO_FEE_FIELD = {label: name for name, label in FEE_FIELD_LABELS.items()}

# Rows rendered or parsed per physical line; a column needs at most 3 amount slots.
_MAX_AMOUNT_SLOTS = 3


# ---------------------------------------------------------------------------
# Row drafts (local to one cleaning run)
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class _RowDraft:
    date: str | None
    parts: list[str] = field(default_factory=list)
    lines: list[int] = field(default_factory=list)
    slots: list[str | None] | None = None
    is_fee: bool = False
    canonical: StatementRow | None = None


def _split_trailing_amounts(text: str) -> tuple[str, list[str | None]]:
    """Peel trailing amount tokens and ``-`` column placeholders off ``text``."""

    rest = text.rstrip()
    slots: list[str | None] = []
    while rest and len(slots) < _MAX_AMOUNT_SLOTS:
        m = _TRAILING_AMOUNT_RE.search(rest)
        if m is not None:
            slots.insert(0, m.group("amount").strip())
            rest = rest[: m.start()].rstrip()
            continue
        if slots and (rest == "-" or rest.endswith(" -")):
            slots.insert(0, None)
            rest = rest[:-1].rstrip()
            continue
        break
    # A leading placeholder only matters when it pins a debit/credit column.
    while slots and slots[0] is None and len(slots) < _MAX_AMOUNT_SLOTS:
        slots.pop(0)
    if not any(s is not None for s in slots):
        return text.rstrip(), []
    return rest, slots


def _amount_only_slots(line: str) -> list[str | None]:
    slots: list[str | None] = []
    for token in _AMOUNT_OR_PLACEHOLDER_RE.finditer(line):
        amt = token.group("amount")
        slots.append(amt.strip() if amt else None)
    slots = slots[-_MAX_AMOUNT_SLOTS:]
    while slots and slots[0] is None and len(slots) < _MAX_AMOUNT_SLOTS:
        slots.pop(0)
    return slots if any(s is not None for s in slots) else []


def _token_direction(raw: str) -> Direction | None:
    upper = raw.upper().replace(" ", "")
    if upper.endswith("CR"):
        return Direction.CREDIT
    if upper.endswith("DR") or upper.startswith("-") or upper.startswith("("):
        return Direction.DEBIT
    return None


def _to_money(raw: str | None) -> Decimal | None:
    if raw is None:
        return None
    try:
        return to_decimal(raw)
    except ValueError as exc:
        raise CleaningError(f"unparseable amount token {raw!r}") from exc


def _interpret_slots(
    slots: Sequence[str | None], profile: DialectProfile
) -> tuple[Decimal | None, Direction | None, Decimal | None]:
    """Map trailing amount slots to ``(amount, direction, balance)``."""

    if not slots:
        return None, None, None

    if len(slots) >= 3:
        cols = dict(zip(profile.amount_columns, slots[-3:], strict=True))
        debit = _to_money(cols.get(dialects.FIELD_DEBIT))
        credit = _to_money(cols.get(dialects.FIELD_CREDIT))
        balance = _to_money(cols.get(dialects.FIELD_BALANCE))
        has_debit = debit is not None and debit != _ZERO
        has_credit = credit is not None and credit != _ZERO
        if has_debit and not has_credit:
            return abs(debit), Direction.DEBIT, balance  # type: ignore[arg-type]
        if has_credit and not has_debit:
            return abs(credit), Direction.CREDIT, balance  # type: ignore[arg-type]
        amount = debit if has_debit else credit
        return (abs(amount) if amount is not None else None), None, balance

    present = [s for s in slots if s is not None]
    if not present:
        return None, None, None
    raw_amount = present[0]
    amount = _to_money(raw_amount)
    balance = _to_money(present[1]) if len(present) > 1 else None
    if amount is None:
        return None, None, balance
    return abs(amount), _token_direction(raw_amount), balance


def _extract_reference(description: str) -> str | None:
    m = _REFERENCE_RE.search(description)
    return m.group("ref") if m else None


def _normalize_description(parts: Sequence[str]) -> str:
    text = " ".join(p.strip() for p in parts if p.strip())
    text = re.sub(r"\s+", " ", text).strip()
    # Column placeholders left behind by amount peeling.
    text = re.sub(r"(?:\s+-)+$", "", text).strip()
    return text


# ---------------------------------------------------------------------------
# Canonical rows
# ---------------------------------------------------------------------------


def _safe(value: str) -> str:
    return value.replace("|", "/").strip()


def render_row(row: StatementRow) -> str:
    """Render ``row`` in the canonical one-line form."""

    parts = [
        f"DATE: {row.date or _UNKNOWN}",
        f"DESC: {_safe(row.description)}",
    ]
    if row.amount is not None:
        parts.append(f"AMOUNT: {fmt_amount(row.amount)}")
    parts.append(f"TYPE: {row.direction.value.upper() if row.direction else _UNKNOWN}")
    if row.balance is not None:
        parts.append(f"BALANCE: {fmt_amount(row.balance)}")
    if row.fees.has_fees:
        parts.append(f"FEES: {fmt_amount(row.fees.fee_sum())}")
        for name, amount in row.fees.amounts().items():
            parts.append(f"{FEE_FIELD_LABELS[name]}: {fmt_amount(amount)}")
        if row.fees.fee_note:
            parts.append(f"FEE NOTE: {_safe(row.fees.fee_note)}")
        total = row.total
        if total is not None:
            parts.append(f"TOTAL: {fmt_amount(total)}")
    if row.reference:
        parts.append(f"REF: {_safe(row.reference)}")
    return " | ".join(parts)


def _parse_canonical(line: str, lineno: int) -> StatementRow | None:
    """Parse a line produced by :func:`render_row`; ``None`` when it is not one."""

    if not line.startswith(_CANONICAL_PREFIX):
        return None
    fields: dict[str, str] = {}
    for part in line.split(" | "):
        key, sep, value = part.partition(":")
        if not sep:
            return None
        fields[key.strip().upper()] = value.strip()
    if "DESC" not in fields or "TYPE" not in fields:
        return None

    try:
        amount = to_decimal(fields["AMOUNT"]) if "AMOUNT" in fields else None
        balance = to_decimal(fields["BALANCE"]) if "BALANCE" in fields else None
        fees = FeeBreakdown()
        for label, fee_field in _LABEL_TO_FEE_FIELD.items():
            if label in fields:
                fees = fees.add(fee_field, to_decimal(fields[label]))
    except ValueError:
        return None
    if "FEE NOTE" in fields:
        fees = replace(fees, fee_note=fields["FEE NOTE"] or None)

    raw_date = fields.get("DATE", "")
    date = None if raw_date in ("", _UNKNOWN) else (to_iso_date(raw_date) or raw_date)
    raw_type = fields["TYPE"].lower()
    direction = Direction(raw_type) if raw_type in (d.value for d in Direction) else None
    return StatementRow(
        date=date,
        description=fields["DESC"],
        amount=amount,
        direction=direction,
        balance=balance,
        reference=fields.get("REF") or None,
        fees=fees,
        source_lines=(lineno,),
    )


# ---------------------------------------------------------------------------
# Reconstruction
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class _Scan:
    preamble: list[str] = field(default_factory=list)
    drafts: list[_RowDraft] = field(default_factory=list)
    opening_balance: Decimal | None = None
    skipped_lines: int = 0


def _scan_lines(text: str) -> _Scan:
    scan = _Scan()
    current: _RowDraft | None = None

    for lineno, raw_line in enumerate(text.split("\n"), start=1):
        line = raw_line.strip()
        if not line:
            continue

        canonical = _parse_canonical(line, lineno)
        if canonical is not None:
            current = _RowDraft(date=canonical.date, lines=[lineno], canonical=canonical)
            scan.drafts.append(current)
            continue

        flat = re.sub(r"\s*\|\s*", " ", line).strip()

        if _BALANCE_MARKER_RE.match(flat):
            if scan.opening_balance is None:
                _, slots = _split_trailing_amounts(flat)
                if slots and slots[-1] is not None:
                    scan.opening_balance = _to_money(slots[-1])
            if not scan.drafts:
                scan.preamble.append(line)
            continue

        if scan.drafts and _NOISE_RE.match(flat):
            scan.skipped_lines += 1
            continue

        if dialects.is_column_header(flat):
            continue

        date_m = _LEADING_DATE_RE.match(flat)
        if date_m is not None:
            rest = flat[date_m.end() :].strip()
            # Value-date column directly after the transaction date.
            value_m = _LEADING_DATE_RE.match(rest)
            if value_m is not None:
                rest = rest[value_m.end() :].strip()
            if _BALANCE_MARKER_RE.match(rest):
                if scan.opening_balance is None:
                    _, slots = _split_trailing_amounts(rest)
                    if slots and slots[-1] is not None:
                        scan.opening_balance = _to_money(slots[-1])
                continue
            raw_date = date_m.group("date")
            desc, slots = _split_trailing_amounts(rest)
            current = _RowDraft(
                date=to_iso_date(raw_date) or raw_date,
                parts=[desc],
                lines=[lineno],
                slots=slots or None,
                is_fee=dialects.is_fee_description(desc) if desc else False,
            )
            scan.drafts.append(current)
            continue

        desc, slots = _split_trailing_amounts(flat)
        if scan.drafts and slots and desc and dialects.is_fee_description(desc):
            current = _RowDraft(date=None, parts=[desc], lines=[lineno], slots=slots, is_fee=True)
            scan.drafts.append(current)
            continue

        if current is None or current.canonical is not None:
            if not scan.drafts:
                scan.preamble.append(line)
            else:
                scan.skipped_lines += 1
            continue

        if _AMOUNT_ONLY_RE.match(flat):
            only = _amount_only_slots(flat)
            if not only:
                current.lines.append(lineno)
                continue
            if current.slots is None:
                current.slots = only
            elif len(current.slots) == 1 and len(only) == 1 and only[0] is not None:
                # Balance printed on its own line under the amount.
                current.slots = [*current.slots, only[0]]
            current.lines.append(lineno)
            continue

        current.parts.append(desc if slots else flat)
        current.lines.append(lineno)
        if slots and current.slots is None:
            current.slots = slots

    return scan


def _finalize(scan: _Scan, profile: DialectProfile) -> tuple[list[StatementRow], int]:
    """Turn drafts into rows; return ``(rows, dropped)`` where dropped rows had no amount."""

    rows: list[StatementRow] = []
    dropped = 0
    prev_balance = scan.opening_balance
    for draft in scan.drafts:
        if draft.canonical is not None:
            rows.append(draft.canonical)
            if draft.canonical.balance is not None:
                prev_balance = draft.canonical.balance
            continue

        description = _normalize_description(draft.parts)
        amount, direction, balance = _interpret_slots(draft.slots or [], profile)
        if amount is None:
            # A dated line that never received an amount (period banners, notes).
            dropped += 1
            continue
        if (
            direction is None
            and amount is not None
            and balance is not None
            and prev_balance is not None
        ):
            delta = balance - prev_balance
            if delta < 0:
                direction = Direction.DEBIT
            elif delta > 0:
                direction = Direction.CREDIT
        if direction is None:
            direction = dialects.direction_from_text(description)
        if direction is None and draft.is_fee:
            direction = Direction.DEBIT

        rows.append(
            StatementRow(
                date=draft.date,
                description=description,
                amount=amount,
                direction=direction,
                balance=balance,
                reference=_extract_reference(description),
                source_lines=tuple(draft.lines),
                is_fee_row=draft.is_fee,
            )
        )
        if balance is not None:
            prev_balance = balance
    return rows, dropped


def _associate_fees(
    rows: Sequence[StatementRow], look_ahead_rows: int
) -> tuple[list[StatementRow], int]:
    """Fold trailing fee rows into their parent; return ``(rows, absorbed_count)``."""

    out: list[StatementRow] = []
    absorbed_total = 0
    last_date: str | None = None
    i = 0
    while i < len(rows):
        row = rows[i]
        if row.is_fee_row:
            # Orphan: no parent transaction within reach.
            orphan = row if row.date is not None else replace(row, date=last_date)
            out.append(orphan)
            last_date = orphan.date or last_date
            i += 1
            continue

        fees = row.fees
        balance = row.balance
        lines = list(row.source_lines)
        j = i + 1
        while j < len(rows) and j - i <= look_ahead_rows:
            cand = rows[j]
            if not cand.is_fee_row or cand.amount is None:
                break
            if cand.date is not None and cand.date != row.date:
                break
            if cand.direction is Direction.CREDIT:
                break
            fee_field = dialects.classify_fee(cand.description) or "other_fees"
            fees = fees.add(fee_field, cand.amount, note=cand.description.upper())
            if cand.balance is not None:
                balance = cand.balance
            lines.extend(cand.source_lines)
            j += 1

        absorbed = j - i - 1
        absorbed_total += absorbed
        merged = row if absorbed == 0 else replace(
            row, fees=fees, balance=balance, source_lines=tuple(lines)
        )
        out.append(merged)
        last_date = merged.date or last_date
        i = j
    return out, absorbed_total


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _clean(raw_text: str, opts: NormalizerOptions, t0: float) -> CleanedStatement:
    log: Callable[..., None] = _logger.info if opts.verbose else _logger.debug
    log("clean:start chars=%d bank_type=%s", len(raw_text), opts.bank_type)

    if opts.bank_type == "auto":
        dialect = dialects.detect_dialect(raw_text)
    else:
        dialect = BankDialect(opts.bank_type)
    profile = dialects.profile_for(dialect)
    log("clean:dialect dialect=%s", dialect.value)

    basic = basic_cleanup(raw_text)
    log("clean:basic chars=%d removed=%d", len(basic), len(raw_text) - len(basic))

    scan = _scan_lines(basic)
    parsed, dropped = _finalize(scan, profile)
    rows, absorbed = _associate_fees(parsed, opts.look_ahead_rows)

    warnings: list[str] = []
    if rows:
        body = "\n".join(render_row(r) for r in rows)
        preamble = "\n".join(scan.preamble)
        text = f"{preamble}\n\n{body}" if preamble else body
    else:
        text = basic.strip()
        warnings.append("no transaction rows recognized; returning basic-cleaned text")
    if scan.skipped_lines:
        warnings.append(f"skipped {scan.skipped_lines} non-transaction line(s)")
    if dropped:
        warnings.append(f"dropped {dropped} dated line(s) without an amount")

    fee_fields_on_canonical = sum(
        len(d.canonical.fees.amounts()) for d in scan.drafts if d.canonical is not None
    )
    stats = CleaningStats(
        original_char_count=len(raw_text),
        cleaned_char_count=len(text),
        total_transactions=len(rows),
        transactions_with_fees=sum(1 for r in rows if r.fees.has_fees and not r.is_fee_row),
        total_fees=absorbed + fee_fields_on_canonical,
        processing_time_ms=(time.perf_counter() - t0) * 1000.0,
    )
    log(
        "clean:done dialect=%s transactions=%d with_fees=%d fees=%d latency_ms=%.2f",
        dialect.value,
        stats.total_transactions,
        stats.transactions_with_fees,
        stats.total_fees,
        stats.processing_time_ms,
    )
    return CleanedStatement(
        text=text,
        dialect=dialect,
        rows=tuple(rows),
        stats=stats,
        original_text=raw_text if opts.preserve_original else None,
        warnings=tuple(warnings),
    )


def clean_statement(
    raw_text: str, options: NormalizerOptions | None = None
) -> Result[CleanedStatement, CleaningErrorKind]:
    """Clean ``raw_text`` into a :class:`CleanedStatement`.

    Never raises for bad input: failures come back as ``Err`` so the caller can
    continue with the raw text.
    """

    opts = options or NormalizerOptions()
    t0 = time.perf_counter()
    if not raw_text or not raw_text.strip():
        return Err(CleaningErrorKind.EMPTY_INPUT, "no text to clean")
    try:
        return Ok(_clean(raw_text, opts, t0))
    except CleaningError as exc:
        _logger.warning("clean:failed error=%s", exc)
        return Err(CleaningErrorKind.INTERNAL, str(exc))
    except Exception as exc:  # noqa: BLE001 - boundary: caller degrades to raw text
        _logger.exception("clean:failed_unexpected error=%s", exc.__class__.__name__)
        return Err(CleaningErrorKind.INTERNAL, f"{exc.__class__.__name__}: {exc}")
