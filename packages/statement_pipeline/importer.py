"""Bulk import of human-reviewed transactions, followed by budget resync.

Rows are validated and written one at a time: a bad row is recorded in the
result's error list and the batch moves on. After the rows are written, the
``current_spent`` of every budget touched by an imported expense is recomputed
from the store. That resync is best effort and never fails the import.
"""

from __future__ import annotations

import datetime as dt
from collections import defaultdict
from collections.abc import Callable, Mapping, Sequence
from decimal import Decimal
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import BudgetSyncError, ImportRequestError, ImportRowError
from .logging_setup import get_logger
from .models import FEE_FIELDS, FeeBreakdown, ImportResult, TransactionFlag, total_with_fees
from .parsing import month_bounds, parse_date, quantize, to_decimal
from .persistence import BudgetStore, NewTransaction, TransactionStore

_logger = get_logger("statement_pipeline.importer")

DEFAULT_MAX_BATCH_SIZE = 1000

_TYPE_ALIASES: Mapping[str, str] = {
    "expense": "expense",
    "debit": "expense",
    "income": "income",
    "credit": "income",
}


class ReviewedTransaction(BaseModel):
    """One row of an import request, as edited by the reviewer."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    date: dt.date
    description: str = ""
    original_description: str | None = Field(
        default=None,
        validation_alias=AliasChoices("original_description", "original_desc", "originalDesc"),
    )
    amount: Decimal = Field(gt=0)
    type: Literal["expense", "income"]
    category: str = Field(min_length=1)
    vat: Decimal | None = Field(default=None, ge=0)
    service_fee: Decimal | None = Field(default=None, ge=0)
    commission: Decimal | None = Field(default=None, ge=0)
    stamp_duty: Decimal | None = Field(default=None, ge=0)
    transfer_fee: Decimal | None = Field(default=None, ge=0)
    processing_fee: Decimal | None = Field(default=None, ge=0)
    other_fees: Decimal | None = Field(default=None, ge=0)
    fee_note: str | None = None
    user_note: str | None = None
    # Review flags raised at parse time; kept on the record as an audit trail.
    flags: list[TransactionFlag] = Field(default_factory=list)

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, v: Any) -> Any:
        if isinstance(v, str):
            parsed = parse_date(v)
            if parsed is None:
                raise ValueError(f"invalid date {v!r}")
            return parsed
        return v

    @field_validator("amount", *FEE_FIELDS, mode="before")
    @classmethod
    def _parse_money(cls, v: Any) -> Any:
        if isinstance(v, str):
            if not v.strip():
                return None
            return to_decimal(v)
        return v

    @field_validator("flags", mode="before")
    @classmethod
    def _normalize_flags(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, list):
            return [f.strip().upper() if isinstance(f, str) else f for f in v]
        return v

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return _TYPE_ALIASES.get(v.strip().lower(), v)
        return v

    def fees(self) -> FeeBreakdown:
        return FeeBreakdown(
            **{name: getattr(self, name) for name in FEE_FIELDS},
            fee_note=self.fee_note or None,
        )


def _row_error_message(exc: ValidationError) -> str:
    parts: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "row"
        if err.get("type") == "missing":
            parts.append(f"Missing required field: {loc}")
        else:
            parts.append(f"Invalid {loc}: {err.get('msg')}")
    return "; ".join(parts) or "Invalid row"


class BulkImporter:
    """Persist a reviewed batch through injected stores."""

    def __init__(
        self,
        store: TransactionStore,
        budgets: BudgetStore,
        *,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        self._store = store
        self._budgets = budgets
        self._max_batch_size = max_batch_size
        self._clock = clock or (lambda: dt.datetime.now(dt.UTC))

    def import_transactions(
        self,
        rows: Sequence[Mapping[str, Any]] | None,
        *,
        user_id: str,
        import_source: str | None,
    ) -> ImportResult:
        """Validate and persist ``rows``; raise :class:`ImportRequestError` for a bad request."""

        if not rows:
            raise ImportRequestError("No transactions provided")
        if len(rows) > self._max_batch_size:
            raise ImportRequestError(
                f"Maximum {self._max_batch_size} transactions can be imported at once"
            )
        source = (import_source or "").strip()
        if not source:
            raise ImportRequestError("Import source is required")
        if not user_id:
            raise ImportRequestError("User is required")

        reviewed_at = self._clock()
        errors: list[ImportRowError] = []
        imported = 0
        touched: dict[dt.date, set[str]] = defaultdict(set)

        for index, raw in enumerate(rows):
            if not isinstance(raw, Mapping):
                errors.append(ImportRowError(index, "Row must be an object"))
                continue
            try:
                row = ReviewedTransaction.model_validate(raw)
                fees = row.fees()
            except ValidationError as exc:
                errors.append(ImportRowError(index, _row_error_message(exc)))
                continue
            except ValueError as exc:
                errors.append(ImportRowError(index, str(exc)))
                continue

            amount = quantize(row.amount)
            total = total_with_fees(amount, fees)
            record = NewTransaction(
                user_id=user_id,
                date=row.date,
                description=row.description or row.original_description or "",
                original_desc=row.original_description or row.description or None,
                amount=amount,
                type=row.type,
                category=row.category,
                import_source=source,
                reviewed_at=reviewed_at,
                user_note=row.user_note or None,
                flags=tuple(sorted(set(row.flags))),
                fees=fees,
                total=quantize(total) if total is not None else None,
            )
            try:
                self._store.create(record)
            except Exception as exc:  # noqa: BLE001 - one failed row must not abort the batch
                _logger.warning(
                    "import:row_failed index=%d error=%s", index, exc.__class__.__name__
                )
                errors.append(ImportRowError(index, f"Failed to save transaction: {exc}"))
                continue

            imported += 1
            if row.type == "expense":
                touched[row.date.replace(day=1)].add(row.category)

        synced = self._sync_budgets(user_id, touched) if imported else 0

        _logger.info(
            "import:done user=%s source=%s imported=%d failed=%d budgets_synced=%d",
            user_id,
            source,
            imported,
            len(errors),
            synced,
        )
        return ImportResult(
            success=not errors,
            imported=imported,
            failed=len(errors),
            errors=tuple(errors),
            budgets_synced=synced,
        )

    def _sync_budgets(self, user_id: str, touched: Mapping[dt.date, set[str]]) -> int:
        synced = 0
        for month in sorted(touched):
            start, end = month_bounds(month)
            try:
                budgets = self._budgets.budgets_for(user_id, start, touched[month])
                for budget in budgets:
                    spent = self._store.aggregate_spent(user_id, budget.category, start, end)
                    self._budgets.set_current_spent(budget.id, spent)
                    synced += 1
            except Exception as exc:  # noqa: BLE001 - budget resync is best effort
                err = BudgetSyncError(f"budget resync failed for {start.isoformat()}: {exc}")
                _logger.error("import:budget_sync_failed month=%s error=%s", start, err)
        return synced
