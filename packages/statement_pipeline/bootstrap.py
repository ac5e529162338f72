"""Construct long-lived dependencies once, at the entrypoint.

Nothing below the entrypoint creates clients: the OpenAI client and the
``Database`` are built here and injected into the pipeline and importer.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from db import Database
from openai import OpenAI

from .catalog import CategoryCatalogProvider, DbCategoryCatalogProvider
from .config import PipelineSettings
from .importer import BulkImporter
from .persistence import SqlTransactionStore
from .pipeline import StatementPipeline
from .segmentation import StatementSegmenter


@dataclass(frozen=True, slots=True)
class Dependencies:
    settings: PipelineSettings
    database: Database
    openai_client: OpenAI
    catalog_provider: CategoryCatalogProvider
    pipeline: StatementPipeline
    importer: BulkImporter


def build_openai_client() -> OpenAI:
    if not os.getenv("OPENAI_API_KEY"):
        raise RuntimeError("OPENAI_API_KEY environment variable is required for OpenAI access")
    return OpenAI()


def build_pipeline(
    client: OpenAI, catalog_provider: CategoryCatalogProvider, settings: PipelineSettings
) -> StatementPipeline:
    return StatementPipeline(
        StatementSegmenter.from_settings(client, settings),
        catalog_provider,
        settings=settings,
    )


def build_importer(database: Database, settings: PipelineSettings) -> BulkImporter:
    store = SqlTransactionStore(database)
    return BulkImporter(store, store, max_batch_size=settings.max_import_batch)


def build_dependencies(
    settings: PipelineSettings | None = None,
    *,
    database: Database | None = None,
    openai_client: OpenAI | None = None,
    catalog_provider: CategoryCatalogProvider | None = None,
) -> Dependencies:
    """Wire the pipeline and importer; anything passed in is used as-is."""

    settings = settings or PipelineSettings.from_env()
    database = database or Database.from_env()
    client = openai_client or build_openai_client()
    provider = catalog_provider or DbCategoryCatalogProvider(database)
    pipeline = build_pipeline(client, provider, settings)
    importer = build_importer(database, settings)
    return Dependencies(
        settings=settings,
        database=database,
        openai_client=client,
        catalog_provider=provider,
        pipeline=pipeline,
        importer=importer,
    )
