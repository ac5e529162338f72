from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import expression as sa_expr

# BIGINT ids on Postgres; SQLite only autoincrements an INTEGER PRIMARY KEY.
_Id = BigInteger().with_variant(Integer(), "sqlite")
_Money = Numeric(18, 2)


class Base(DeclarativeBase):
    pass


# ---------------------------
# Reference: categories
# ---------------------------


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(_Id, primary_key=True, autoincrement=True)
    # Stable identifier used by transactions, budgets and model output.
    value: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.true()
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "type in ('expense','income','fee','transfer')",
            name="ck_categories_type",
        ),
    )


# ---------------------------
# Core: transactions
# ---------------------------


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(_Id, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    # Description as printed on the statement, before any human edit.
    original_desc: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[Decimal] = mapped_column(_Money, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    confidence: Mapped[str | None] = mapped_column(String, nullable=True)
    needs_review: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    flags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    is_imported: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    import_source: Mapped[str | None] = mapped_column(String, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    user_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    vat: Mapped[Decimal | None] = mapped_column(_Money, nullable=True)
    service_fee: Mapped[Decimal | None] = mapped_column(_Money, nullable=True)
    commission: Mapped[Decimal | None] = mapped_column(_Money, nullable=True)
    stamp_duty: Mapped[Decimal | None] = mapped_column(_Money, nullable=True)
    transfer_fee: Mapped[Decimal | None] = mapped_column(_Money, nullable=True)
    processing_fee: Mapped[Decimal | None] = mapped_column(_Money, nullable=True)
    other_fees: Mapped[Decimal | None] = mapped_column(_Money, nullable=True)
    fee_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    # amount + all fee fields; NULL when no fee was charged.
    total: Mapped[Decimal | None] = mapped_column(_Money, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("type in ('expense','income')", name="ck_transactions_type"),
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        CheckConstraint(
            "confidence IS NULL OR confidence in ('high','medium','low','manual')",
            name="ck_transactions_confidence",
        ),
        Index("ix_transactions_user_category_date", "user_id", "category", "date"),
    )


# ---------------------------
# Budgets
# ---------------------------


class Budget(Base):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(_Id, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    # First day of the budgeted calendar month.
    month: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(_Money, nullable=False)
    current_spent: Mapped[Decimal] = mapped_column(_Money, nullable=False, server_default="0")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "category", "month", name="uq_budgets_user_category_month"),
        CheckConstraint("amount >= 0", name="ck_budgets_amount_nonnegative"),
    )


__all__ = [
    "Base",
    "Budget",
    "Category",
    "Transaction",
]
