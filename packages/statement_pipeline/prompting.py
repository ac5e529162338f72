"""Prompt construction for statement segmentation.

This module builds:
- The system instructions for turning statement text into transactions.
- The user content: the category catalog grouped by type plus the statement
  text delimited by ``BEGIN_STATEMENT_TEXT`` / ``END_STATEMENT_TEXT``.
- The strict ``text.format`` JSON Schema object for the OpenAI Responses API.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from openai.types.responses.response_format_text_json_schema_config_param import (
    ResponseFormatTextJSONSchemaConfigParam,
)

from .models import FEE_FIELDS, CategoryCatalog, CategoryDefinition, CategoryType

BEGIN_MARKER = "BEGIN_STATEMENT_TEXT"
END_MARKER = "END_STATEMENT_TEXT"

_TYPE_HEADINGS: tuple[tuple[CategoryType, str], ...] = (
    (CategoryType.EXPENSE, "Expense categories (money going out)"),
    (CategoryType.INCOME, "Income categories (money coming in)"),
    (CategoryType.FEE, "Bank fee categories"),
    (CategoryType.TRANSFER, "Transfer categories"),
)


def build_system_instructions() -> str:
    """Return concise system instructions for statement segmentation."""

    return (
        "You extract transactions from Nigerian bank statement text. Return every "
        "transaction exactly once with its date, description, amount (always positive) "
        "and type (debit for money out, credit for money in). When a line lists fees "
        "(VAT, service charge, commission, stamp duty, transfer fee, processing fee), put "
        "them in the matching fee fields of that transaction instead of emitting separate "
        "fee transactions. Use null for anything not present in the text. Never invent "
        "transactions. Output JSON only that conforms to the specified schema."
    )


def render_category_context(
    catalog: CategoryCatalog,
    keyword_examples: Mapping[str, Sequence[str]] | None = None,
    *,
    max_examples: int = 6,
) -> str:
    """Render active categories grouped by type, one ``value: name`` per line."""

    lines: list[str] = []
    for cat_type, heading in _TYPE_HEADINGS:
        members: Sequence[CategoryDefinition] = catalog.by_type(cat_type)
        if not members:
            continue
        lines.append(f"{heading}:")
        for c in members:
            line = f"  - {c.value}: {c.name}"
            if c.description:
                line += f" ({c.description})"
            examples = list((keyword_examples or {}).get(c.value, ()))[:max_examples]
            if examples:
                line += f" [e.g. {', '.join(examples)}]"
            lines.append(line)
        lines.append("")
    lines.append(
        "Return the category VALUE (the identifier before the colon), not the display "
        "name. Use null when no category clearly fits."
    )
    return "\n".join(lines)


def build_user_content(statement_text: str, category_context: str) -> str:
    return (
        "Extract all transactions from the bank statement below.\n\n"
        "Categories:\n"
        f"{category_context}\n\n"
        "Rules:\n"
        "- Dates as they appear or in YYYY-MM-DD; keep the statement's day-first order.\n"
        "- amount is the transaction amount without fees; fees go in fee fields.\n"
        "- Lines in the form 'DATE: … | DESC: … | AMOUNT: …' are already one transaction "
        "each; copy their values.\n"
        "- bank_name is the issuing bank; account_number only when printed.\n\n"
        f"{BEGIN_MARKER}\n{statement_text}\n{END_MARKER}"
    )


def _nullable_number() -> dict[str, Any]:
    return {"type": ["number", "null"]}


def build_response_format(catalog: CategoryCatalog) -> ResponseFormatTextJSONSchemaConfigParam:
    """Return the strict JSON Schema ``text.format`` object for segmentation.

    Shape::

        {
          "bank_name": str,
          "account_number": str | null,
          "period": {"from": str | null, "to": str | null} | null,
          "transactions": [
            {"date", "description", "amount", "type": "debit" | "credit",
             "balance", "category": <catalog value> | null,
             "vat", "service_fee", ..., "other_fees", "fee_note"}
          ]
        }
    """

    values = list(catalog.values())
    if not values:
        raise ValueError("category catalog must contain at least one active category")

    tx_properties: dict[str, Any] = {
        "date": {"type": "string"},
        "description": {"type": "string"},
        "amount": {"type": "number"},
        "type": {"type": "string", "enum": ["debit", "credit"]},
        "balance": _nullable_number(),
        "category": {"type": ["string", "null"], "enum": [*values, None]},
    }
    for name in FEE_FIELDS:
        tx_properties[name] = _nullable_number()
    tx_properties["fee_note"] = {"type": ["string", "null"]}

    result: ResponseFormatTextJSONSchemaConfigParam = {
        "type": "json_schema",
        "name": "statement_transactions",
        "schema": {
            "type": "object",
            "properties": {
                "bank_name": {"type": "string"},
                "account_number": {"type": ["string", "null"]},
                "period": {
                    "type": ["object", "null"],
                    "properties": {
                        "from": {"type": ["string", "null"]},
                        "to": {"type": ["string", "null"]},
                    },
                    "required": ["from", "to"],
                    "additionalProperties": False,
                },
                "transactions": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": tx_properties,
                        "required": list(tx_properties),
                        "additionalProperties": False,
                    },
                },
            },
            "required": ["bank_name", "account_number", "period", "transactions"],
            "additionalProperties": False,
        },
        "strict": True,
    }
    return result
