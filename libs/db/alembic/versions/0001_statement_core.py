# ruff: noqa: I001
"""Categories, transactions and budgets.

Revision ID: 0001_statement_core
Revises: None
Create Date: 2026-10-16
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_statement_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "categories",
        sa.Column("id", _ID, primary_key=True, autoincrement=True),
        sa.Column("value", sa.String(), nullable=False, unique=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint(
            "type in ('expense','income','fee','transfer')", name="ck_categories_type"
        ),
    )

    fee_columns = [
        sa.Column(name, sa.Numeric(18, 2), nullable=True)
        for name in (
            "vat",
            "service_fee",
            "commission",
            "stamp_duty",
            "transfer_fee",
            "processing_fee",
            "other_fees",
        )
    ]
    op.create_table(
        "transactions",
        sa.Column("id", _ID, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("original_desc", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("confidence", sa.String(), nullable=True),
        sa.Column("needs_review", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("flags", sa.JSON(), nullable=True),
        sa.Column("is_imported", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("import_source", sa.String(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("user_note", sa.Text(), nullable=True),
        *fee_columns,
        sa.Column("fee_note", sa.Text(), nullable=True),
        sa.Column("total", sa.Numeric(18, 2), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("type in ('expense','income')", name="ck_transactions_type"),
        sa.CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        sa.CheckConstraint(
            "confidence IS NULL OR confidence in ('high','medium','low','manual')",
            name="ck_transactions_confidence",
        ),
    )
    op.create_index(
        "ix_transactions_user_category_date",
        "transactions",
        ["user_id", "category", "date"],
    )

    op.create_table(
        "budgets",
        sa.Column("id", _ID, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("month", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("current_spent", sa.Numeric(18, 2), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id", "category", "month", name="uq_budgets_user_category_month"
        ),
        sa.CheckConstraint("amount >= 0", name="ck_budgets_amount_nonnegative"),
    )


def downgrade() -> None:
    op.drop_table("budgets")
    op.drop_index("ix_transactions_user_category_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("categories")
