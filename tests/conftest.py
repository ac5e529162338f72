"""Pytest configuration for test isolation.

Pipeline settings and the database URL are read from the environment, so a
developer's shell or ``.env`` could leak into tests. An autouse fixture strips
those variables for every test. Backoff sleeps in the segmenter are disabled
so retry tests run instantly.
"""

# ruff: noqa: E402, I001
from __future__ import annotations

import os
import sys
from pathlib import Path

_ROOT = Path(__file__).resolve().parents[1]
# `packages/` and the db library precede the repo root so local sources resolve first.
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT)]
    if p not in sys.path
]

import pytest

import statement_pipeline.segmentation as segmentation_mod
from statement_pipeline.catalog import StaticCategoryCatalogProvider
from statement_pipeline.models import CategoryCatalog

from tests.helpers.db import bootstrap_sqlite_db

_ENV_PREFIXES = ("SP_",)
_ENV_KEYS = ("DATABASE_URL", "OPENAI_MODEL", "OPENAI_API_KEY", "STATEMENT_PIPELINE_LOG_LEVEL")


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key in _ENV_KEYS or key.startswith(_ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def _no_backoff_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(segmentation_mod, "_sleep_backoff", lambda attempt_no: None)


@pytest.fixture()
def catalog_provider() -> StaticCategoryCatalogProvider:
    return StaticCategoryCatalogProvider.from_seed_file()


@pytest.fixture()
def catalog(catalog_provider: StaticCategoryCatalogProvider) -> CategoryCatalog:
    return catalog_provider.load()


@pytest.fixture()
def database(tmp_path: Path):
    db = bootstrap_sqlite_db(tmp_path / "db" / "test.sqlite3")
    try:
        yield db
    finally:
        db.dispose()

