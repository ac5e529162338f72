# ruff: noqa: I001
"""CLI for the ``statement_pipeline`` package.

A Typer-based console interface over the request handlers in
``statement_pipeline.api``. Environment variables (``OPENAI_API_KEY``,
``DATABASE_URL``, ``SP_*`` tunables) are loaded from a local ``.env`` using
``python-dotenv`` before any command runs.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .logging_setup import configure_logging


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Parse bank statement PDFs into reviewable transactions and import reviewed "
        "batches. Loads OPENAI_API_KEY and DATABASE_URL from a local .env."
    ),
)


# Module-level option objects keep calls out of parameter defaults (ruff B008).
PDF_PATH_OPTION: OptionInfo = typer.Option(
    None,
    "--pdf-path",
    help="Path to the statement PDF",
    dir_okay=False,
    file_okay=True,
)
TEXT_PATH_OPTION: OptionInfo = typer.Option(
    None,
    "--text-path",
    help="Already-extracted statement text; skips PDF extraction",
    dir_okay=False,
    file_okay=True,
)
JSON_PATH_OPTION: OptionInfo = typer.Option(
    ...,  # required
    "--json-path",
    help="Reviewed transactions: a list, or an object with a 'transactions' list",
    dir_okay=False,
    file_okay=True,
)


def _emit(body: dict[str, Any], output: Path | None) -> None:
    text = json.dumps(body, indent=2, ensure_ascii=False)
    if output is None:
        typer.echo(text)
        return
    output.write_text(text + "\n", encoding="utf-8")
    typer.echo(f"Wrote {output}")


def _rows_from_payload(payload: Any) -> Any:
    # Accept the parse-statement envelope as-is so its output can be edited and fed back.
    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, dict) and "transactions" in data:
            return data["transactions"]
        return payload.get("transactions")
    return payload


@app.command("parse-statement")
def parse_statement_cmd(
    pdf_path: Annotated[Path | None, PDF_PATH_OPTION] = None,
    text_path: Annotated[Path | None, TEXT_PATH_OPTION] = None,
    *,
    password: str | None = typer.Option(None, help="Password for an encrypted PDF."),
    output: Path | None = typer.Option(None, help="Write the JSON result here instead of stdout."),
    catalog_file: Path | None = typer.Option(
        None, help="Use categories from this seed JSON instead of the database."
    ),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Extract, clean, segment, categorize and flag one statement."""

    # Deferred imports keep `--help` fast.
    from db import Database

    from .api import upload_statement
    from .bootstrap import build_openai_client, build_pipeline
    from .catalog import (
        CategoryCatalogProvider,
        DbCategoryCatalogProvider,
        StaticCategoryCatalogProvider,
    )
    from .config import PipelineSettings

    if pdf_path is None and text_path is None:
        print("Error: provide --pdf-path or --text-path.", file=sys.stderr)
        raise typer.Exit(2)

    try:
        pdf_bytes = pdf_path.read_bytes() if pdf_path is not None else None
        extracted_text = text_path.read_text(encoding="utf-8") if text_path is not None else None
    except FileNotFoundError as e:
        print(f"Error: File not found: {e.filename}", file=sys.stderr)
        raise typer.Exit(1) from e
    except PermissionError as e:
        print(f"Error: Permission denied: {e.filename}", file=sys.stderr)
        raise typer.Exit(1) from e

    try:
        settings = PipelineSettings.from_env()
        client = build_openai_client()
        provider: CategoryCatalogProvider
        if catalog_file is not None:
            provider = StaticCategoryCatalogProvider.from_seed_file(catalog_file)
        else:
            provider = DbCategoryCatalogProvider(Database.from_env(database_url=database_url))
    except (RuntimeError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(1) from e

    pipeline = build_pipeline(client, provider, settings)
    response = upload_statement(
        pipeline, pdf_bytes=pdf_bytes, extracted_text=extracted_text, password=password
    )
    _emit(response.body, output)
    if not response.ok:
        raise typer.Exit(1)


@app.command("import-transactions")
def import_transactions_cmd(
    json_path: Annotated[Path, JSON_PATH_OPTION],
    *,
    user_id: str = typer.Option(..., help="Owner of the imported transactions."),
    import_source: str = typer.Option(
        "statement", help="Label stored on every imported row (e.g. the statement file name)."
    ),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Persist a reviewed batch and resync the affected budgets."""

    from db import Database

    from .api import import_reviewed
    from .bootstrap import build_importer
    from .config import PipelineSettings

    try:
        payload = json.loads(json_path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        print(f"Error: File not found: {json_path}", file=sys.stderr)
        raise typer.Exit(1) from e
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON in {json_path}: {e}", file=sys.stderr)
        raise typer.Exit(1) from e

    try:
        settings = PipelineSettings.from_env()
        database = Database.from_env(database_url=database_url)
    except (RuntimeError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(1) from e

    importer = build_importer(database, settings)
    body = {"transactions": _rows_from_payload(payload), "import_source": import_source}
    response = import_reviewed(importer, body, user_id=user_id)
    _emit(response.body, None)
    if not response.ok or not response.body.get("success", False):
        raise typer.Exit(1)


@app.command("seed-categories")
def seed_categories_cmd(
    *,
    file: Path | None = typer.Option(
        None, help="Seed JSON (defaults to the bundled categories.v1.json)."
    ),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Replace the category table with the seed file's categories."""

    from db import Database

    from .catalog import reseed_categories

    try:
        database = Database.from_env(database_url=database_url)
        count = reseed_categories(database, file=file)
    except (RuntimeError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(1) from e
    typer.echo(f"Seeded {count} categories")


@app.callback()
def _root(
    *,
    log_level: str | None = typer.Option(
        None, help="Log level (falls back to STATEMENT_PIPELINE_LOG_LEVEL, then INFO)."
    ),
) -> None:
    """Load ``.env`` from the working directory and configure logging."""

    # override=False keeps variables already set in the environment
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)


if __name__ == "__main__":  # pragma: no cover - manual entrypoint
    # Running as a module: `python -m statement_pipeline.cli`
    app()
