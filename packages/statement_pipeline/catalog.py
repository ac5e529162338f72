"""Category catalog providers and the category seeder.

A catalog is loaded once per pipeline run and treated as read-only for that
run. Two providers are available: one reads active rows from the ``categories``
table, the other serves a fixed list (the bundled seed file by default).

Reseeding (example):
    statement-pipeline seed-categories --file packages/statement_pipeline/seeds/categories.v1.json
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Protocol

from db import Category, Database
from sqlalchemy import delete, select

from .logging_setup import get_logger
from .models import CategoryCatalog, CategoryDefinition, CategoryType

_logger = get_logger("statement_pipeline.catalog")

SEED_FILE = Path(__file__).resolve().parent / "seeds" / "categories.v1.json"


class CategoryCatalogProvider(Protocol):
    def load(self) -> CategoryCatalog: ...


def _definition(item: Mapping[str, Any], index: int) -> CategoryDefinition:
    value = str(item.get("value") or "").strip()
    if not value:
        raise ValueError(f"category #{index} is missing 'value'")
    name = str(item.get("name") or value).strip()
    try:
        cat_type = CategoryType(str(item.get("type") or "").strip().lower())
    except ValueError as e:
        raise ValueError(f"category {value!r} has invalid type {item.get('type')!r}") from e
    sort_order = item.get("sort_order")
    return CategoryDefinition(
        value=value,
        name=name,
        type=cat_type,
        is_active=bool(item.get("is_active", True)),
        sort_order=int(sort_order) if sort_order is not None else index,
        description=(str(item["description"]) if item.get("description") else None),
    )


def load_seed_definitions(path: Path | None = None) -> list[CategoryDefinition]:
    """Read category definitions from a seed JSON list; input order becomes sort order."""

    seed_path = path or SEED_FILE
    with seed_path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError("Seed JSON must be a list of categories")
    return [_definition(item, i) for i, item in enumerate(data)]


class StaticCategoryCatalogProvider:
    """Serve a fixed catalog (tests, offline runs)."""

    def __init__(self, categories: Iterable[CategoryDefinition]) -> None:
        self._catalog = CategoryCatalog.of(categories)

    @classmethod
    def from_seed_file(cls, path: Path | None = None) -> StaticCategoryCatalogProvider:
        return cls(load_seed_definitions(path))

    def load(self) -> CategoryCatalog:
        return self._catalog


class DbCategoryCatalogProvider:
    """Load active categories from the database, ordered by ``sort_order``."""

    def __init__(self, database: Database) -> None:
        self._db = database

    def load(self) -> CategoryCatalog:
        stmt = (
            select(Category)
            .where(Category.is_active.is_(True))
            .order_by(Category.sort_order, Category.value)
        )
        with self._db.session_scope() as session:
            rows = list(session.scalars(stmt))
            definitions = [
                CategoryDefinition(
                    value=r.value,
                    name=r.name,
                    type=CategoryType(r.type),
                    is_active=r.is_active,
                    sort_order=r.sort_order,
                    description=r.description,
                )
                for r in rows
            ]
        _logger.debug("catalog:loaded categories=%d", len(definitions))
        return CategoryCatalog.of(definitions)


def reseed_categories(database: Database, *, file: Path | None = None) -> int:
    """Replace every category row with the contents of ``file``; return the count.

    Transactions and budgets reference categories by value, so existing rows
    are left untouched.
    """

    definitions = load_seed_definitions(file)
    # Validates uniqueness before anything is deleted.
    CategoryCatalog.of(definitions)
    with database.session_scope() as session:
        session.execute(delete(Category))
        for d in definitions:
            session.add(
                Category(
                    value=d.value,
                    name=d.name,
                    type=d.type.value,
                    description=d.description,
                    is_active=d.is_active,
                    sort_order=d.sort_order,
                )
            )
        session.flush()
    _logger.info("catalog:reseeded categories=%d", len(definitions))
    return len(definitions)
