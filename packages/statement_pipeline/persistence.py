"""Storage seams for the bulk importer.

The importer depends on the two protocols below, never on SQLAlchemy directly.
:class:`SqlTransactionStore` implements both over the shared ``db`` library;
each call runs in its own short transaction.
"""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Protocol

from db import Budget, Database, Transaction
from sqlalchemy import func, select, update

from .models import FEE_FIELDS, Confidence, FeeBreakdown, TransactionFlag
from .parsing import quantize


@dataclass(frozen=True, slots=True)
class NewTransaction:
    """A reviewed transaction ready to persist."""

    user_id: str
    date: date
    description: str
    amount: Decimal
    type: str
    category: str
    import_source: str
    reviewed_at: datetime
    original_desc: str | None = None
    confidence: Confidence = Confidence.MANUAL
    needs_review: bool = False
    is_imported: bool = True
    user_note: str | None = None
    flags: tuple[TransactionFlag, ...] = ()
    fees: FeeBreakdown = field(default_factory=FeeBreakdown)
    total: Decimal | None = None


@dataclass(frozen=True, slots=True)
class BudgetRecord:
    id: int
    user_id: str
    category: str
    month: date
    amount: Decimal
    current_spent: Decimal


class TransactionStore(Protocol):
    def create(self, txn: NewTransaction) -> int:
        """Persist ``txn`` and return its id."""
        ...

    def aggregate_spent(self, user_id: str, category: str, start: date, end: date) -> Decimal:
        """Sum of expense amounts for ``category`` with ``start <= date < end``."""
        ...


class BudgetStore(Protocol):
    def budgets_for(
        self, user_id: str, month: date, categories: Collection[str]
    ) -> list[BudgetRecord]: ...

    def set_current_spent(self, budget_id: int, amount: Decimal) -> None: ...


class SqlTransactionStore:
    """SQLAlchemy-backed :class:`TransactionStore` and :class:`BudgetStore`."""

    def __init__(self, database: Database) -> None:
        self._db = database

    def create(self, txn: NewTransaction) -> int:
        fee_values = {name: getattr(txn.fees, name) for name in FEE_FIELDS}
        row = Transaction(
            user_id=txn.user_id,
            date=txn.date,
            description=txn.description,
            original_desc=txn.original_desc,
            amount=txn.amount,
            type=txn.type,
            category=txn.category,
            confidence=txn.confidence.value,
            needs_review=txn.needs_review,
            flags=[f.value for f in txn.flags] or None,
            is_imported=txn.is_imported,
            import_source=txn.import_source,
            reviewed_at=txn.reviewed_at,
            user_note=txn.user_note,
            fee_note=txn.fees.fee_note,
            total=txn.total,
            **fee_values,
        )
        with self._db.session_scope() as session:
            session.add(row)
            session.flush()
            return int(row.id)

    def aggregate_spent(self, user_id: str, category: str, start: date, end: date) -> Decimal:
        stmt = select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.user_id == user_id,
            Transaction.category == category,
            Transaction.type == "expense",
            Transaction.date >= start,
            Transaction.date < end,
        )
        with self._db.session_scope() as session:
            total = session.execute(stmt).scalar_one()
        return quantize(Decimal(str(total)))

    def budgets_for(
        self, user_id: str, month: date, categories: Collection[str]
    ) -> list[BudgetRecord]:
        if not categories:
            return []
        stmt = (
            select(Budget)
            .where(
                Budget.user_id == user_id,
                Budget.month == month.replace(day=1),
                Budget.category.in_(sorted(categories)),
            )
            .order_by(Budget.id)
        )
        with self._db.session_scope() as session:
            return [
                BudgetRecord(
                    id=b.id,
                    user_id=b.user_id,
                    category=b.category,
                    month=b.month,
                    amount=b.amount,
                    current_spent=b.current_spent,
                )
                for b in session.scalars(stmt)
            ]

    def set_current_spent(self, budget_id: int, amount: Decimal) -> None:
        stmt = (
            update(Budget)
            .where(Budget.id == budget_id)
            .values(current_spent=amount, updated_at=func.now())
        )
        with self._db.session_scope() as session:
            session.execute(stmt)
