"""Money and date parsing shared by the normalizer, segmenter and importer.

Amounts are always :class:`~decimal.Decimal`; statements render them with
thousands separators, optional currency markers (``₦``, ``N``, ``NGN``,
``$``), parentheses or a leading minus for negatives and sometimes a
``CR``/``DR`` suffix. Dates are normalized to ISO ``YYYY-MM-DD``. Slash and
dash numeric dates are read day-first, matching how the supported banks print
them.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_CURRENCY_PREFIXES: tuple[str, ...] = ("NGN", "₦", "$", "N")
_CENT = Decimal("0.01")

# Formats accepted for statement dates, tried in order. Day-first wins for
# ambiguous numeric forms.
_DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%d/%m/%y",
    "%d-%m-%y",
    "%d-%b-%Y",
    "%d-%b-%y",
    "%d %b %Y",
    "%d %b %y",
    "%d-%B-%Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%Y/%m/%d",
)

_MONTH = r"(?i:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-zA-Z]{0,6}"

# A date token in any of the shapes above.
DATE_TOKEN_RE = re.compile(
    r"""
    (?P<date>
        \d{4}[-/]\d{1,2}[-/]\d{1,2}                       # 2024-01-15
      | \d{1,2}[-/.]\d{1,2}[-/.]\d{2,4}                   # 15/01/2024, 15-01-24
      | \d{1,2}[-\s](?:{month})[-\s]\d{2,4}             # 15-Jan-2024, 15 January 2024
      | (?:{month})\s\d{1,2},\s\d{4}                    # Jan 15, 2024
    )
    """.replace("{month}", _MONTH),
    re.VERBOSE,
)

# A money amount with two decimals, optionally signed, bracketed or suffixed.
AMOUNT_TOKEN_RE = re.compile(
    r"""
    (?<![\w.])
    (?P<amount>
        \(?-?(?:NGN|₦|\$|N)?\s?
        (?:\d{1,3}(?:,\d{3})+|\d+)\.\d{2}
        \)?
        (?:\s?(?:CR|DR|Cr|Dr))?
    )
    (?![\w.])
    """,
    re.VERBOSE,
)


def to_decimal(raw: str | int | float | Decimal | None) -> Decimal:
    """Parse a statement amount into a ``Decimal``.

    Handles leading ``+``/``-``, currency prefixes, thousands separators,
    surrounding parentheses (negative) and a trailing ``DR`` (negative) or
    ``CR`` (positive) marker. Raises ``ValueError`` for anything else.
    """

    if raw is None:
        raise ValueError("amount is required")
    if isinstance(raw, Decimal):
        d = raw
    elif isinstance(raw, int | float) and not isinstance(raw, bool):
        d = Decimal(str(raw))
    elif isinstance(raw, str):
        d = _parse_amount_text(raw)
    else:
        raise ValueError(f"unsupported amount type: {type(raw).__name__}")
    if not d.is_finite():
        raise ValueError(f"amount is not finite: {raw!r}")
    return d


def _parse_amount_text(raw: str) -> Decimal:
    s = raw.strip()
    if not s:
        raise ValueError("amount is empty")
    negative = False
    upper = s.upper()
    if upper.endswith("DR"):
        negative = True
        s = s[:-2].rstrip()
    elif upper.endswith("CR"):
        s = s[:-2].rstrip()

    # Strip signs, currency markers and parentheses in any order until stable.
    while True:
        changed = False
        if s.startswith("+"):
            s = s[1:].lstrip()
            changed = True
        elif s.startswith("-"):
            negative = True
            s = s[1:].lstrip()
            changed = True
        for prefix in _CURRENCY_PREFIXES:
            if s.upper().startswith(prefix):
                s = s[len(prefix) :].lstrip()
                changed = True
                break
        if s.startswith("(") and s.endswith(")"):
            negative = True
            s = s[1:-1].strip()
            changed = True
        if not changed:
            break

    s = s.replace(",", "")
    try:
        d = Decimal(s)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc
    return -d if negative else d


def fmt_amount(d: Decimal) -> str:
    """Render ``d`` with exactly two decimals (``ROUND_HALF_UP``)."""

    q = d.quantize(_CENT, rounding=ROUND_HALF_UP)
    return f"{q:.2f}"


def quantize(d: Decimal) -> Decimal:
    return d.quantize(_CENT, rounding=ROUND_HALF_UP)


def parse_date(raw: str | None) -> date | None:
    """Return the calendar date for ``raw`` or ``None`` when it does not parse."""

    if raw is None:
        return None
    s = " ".join(raw.strip().split())
    if not s:
        return None
    # Drop a trailing time component ("2024-01-15 10:22", "2024-01-15T10:22:00").
    s = s.split("T", 1)[0] if re.match(r"^\d{4}-\d{2}-\d{2}T", s) else s
    m = re.match(r"^(.*?\d)\s+\d{1,2}:\d{2}(?::\d{2})?(?:\s?[AP]M)?$", s, re.IGNORECASE)
    if m:
        s = m.group(1)
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def to_iso_date(raw: str | None) -> str | None:
    parsed = parse_date(raw)
    return parsed.isoformat() if parsed is not None else None


def month_bounds(d: date) -> tuple[date, date]:
    """Return the first day of ``d``'s month and the first day of the next month."""

    start = d.replace(day=1)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end
