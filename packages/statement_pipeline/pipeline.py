"""Statement parsing pipeline: extract, check, clean, segment, categorize, validate.

``StatementPipeline.run`` returns a tagged result whose error kind is what the
upload endpoint maps to an HTTP status. ``parse_or_raise`` runs the same
stages but raises the stage's own exception instead, for callers (CLI,
scripts) that prefer exceptions.

Stage failure policy: extraction, the statement check and segmentation end
the request; cleaning failures fall back to the raw text; categorization and
row validation never fail.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Protocol

from .catalog import CategoryCatalogProvider
from .categorizer import categorize_transactions, keyword_examples
from .config import PipelineSettings
from .dialects import detect_dialect, profile_for
from .errors import (
    ExtractionError,
    ExtractionErrorKind,
    PipelineErrorKind,
    SegmentationError,
    SegmentationErrorKind,
    StatementValidationError,
)
from .extraction import extract_text
from .logging_setup import get_logger
from .models import BankDialect, CategoryCatalog, SegmentationResult, StatementParseResult
from .normalizer import NormalizerOptions, clean_statement
from .results import Err, Ok, Result
from .segmentation import DEFAULT_BANK_NAME
from .statement_check import validate_statement
from .validation import summarize, validate_transactions

_logger = get_logger("statement_pipeline.pipeline")

type PipelineFailure = Err[PipelineErrorKind]

_EXTRACTION_KINDS: Mapping[ExtractionErrorKind, PipelineErrorKind] = {
    ExtractionErrorKind.NO_FILE: PipelineErrorKind.NO_FILE,
    ExtractionErrorKind.INVALID_FORMAT: PipelineErrorKind.INVALID_FILE,
    ExtractionErrorKind.PASSWORD_REQUIRED: PipelineErrorKind.PASSWORD_REQUIRED,
    ExtractionErrorKind.PASSWORD_INCORRECT: PipelineErrorKind.PASSWORD_INCORRECT,
    ExtractionErrorKind.EXTRACTION_FAILED: PipelineErrorKind.EXTRACTION_FAILED,
}

_SEGMENTATION_KINDS: Mapping[SegmentationErrorKind, PipelineErrorKind] = {
    SegmentationErrorKind.REQUEST_FAILED: PipelineErrorKind.PARSING_FAILED,
    SegmentationErrorKind.MALFORMED_RESPONSE: PipelineErrorKind.PARSING_FAILED,
    SegmentationErrorKind.TEXT_TOO_LARGE: PipelineErrorKind.PARSING_FAILED,
    SegmentationErrorKind.NO_TRANSACTIONS: PipelineErrorKind.NO_TRANSACTIONS,
}


class Segmenter(Protocol):
    def segment(
        self,
        text: str,
        catalog: CategoryCatalog,
        *,
        keyword_examples: Mapping[str, tuple[str, ...]] | None = None,
    ) -> Result[SegmentationResult, SegmentationErrorKind]: ...


class StatementPipeline:
    """Run stages 1-6 for one uploaded statement."""

    def __init__(
        self,
        segmenter: Segmenter,
        catalog_provider: CategoryCatalogProvider,
        *,
        settings: PipelineSettings | None = None,
    ) -> None:
        self._segmenter = segmenter
        self._catalog_provider = catalog_provider
        self._settings = settings or PipelineSettings()

    @property
    def settings(self) -> PipelineSettings:
        return self._settings

    def run(
        self,
        *,
        pdf_bytes: bytes | None = None,
        extracted_text: str | None = None,
        password: str | None = None,
    ) -> Result[StatementParseResult, PipelineErrorKind]:
        """Parse one statement; failures come back as ``Err(PipelineErrorKind, message)``."""

        try:
            return Ok(
                self.parse_or_raise(
                    pdf_bytes=pdf_bytes, extracted_text=extracted_text, password=password
                )
            )
        except ExtractionError as exc:
            return Err(_EXTRACTION_KINDS[exc.kind], str(exc))
        except StatementValidationError as exc:
            return Err(PipelineErrorKind.NOT_A_STATEMENT, str(exc))
        except SegmentationError as exc:
            return Err(_SEGMENTATION_KINDS[exc.kind], str(exc))

    def parse_or_raise(
        self,
        *,
        pdf_bytes: bytes | None = None,
        extracted_text: str | None = None,
        password: str | None = None,
    ) -> StatementParseResult:
        """Parse one statement, raising the failing stage's exception.

        ``extracted_text`` (already extracted client-side) takes precedence over
        ``pdf_bytes``.
        """

        t0 = time.perf_counter()

        # 1. Extract
        if extracted_text is not None and extracted_text.strip():
            raw_text = extracted_text
        else:
            match extract_text(pdf_bytes, password):
                case Ok(raw):
                    raw_text = raw.text
                case Err(kind, message):
                    raise ExtractionError(kind, message)

        # 2. Is it a statement at all?
        check = validate_statement(raw_text)
        if not check.valid:
            _logger.info("pipeline:not_a_statement reason=%s", check.reason)
            raise StatementValidationError(check.reason or "Invalid statement")

        # 3. Clean; degrade to the raw text on failure.
        options = NormalizerOptions(look_ahead_rows=self._settings.look_ahead_rows)
        match clean_statement(raw_text, options):
            case Ok(cleaned):
                text = cleaned.text
                dialect = cleaned.dialect
                cleaning_stats = cleaned.stats
                used_cleaned = True
            case Err(kind, message):
                _logger.warning("pipeline:clean_fallback kind=%s message=%s", kind.value, message)
                text = raw_text
                dialect = detect_dialect(raw_text)
                cleaning_stats = None
                used_cleaned = False

        # 4. Segment
        catalog = self._catalog_provider.load()
        match self._segmenter.segment(text, catalog, keyword_examples=keyword_examples()):
            case Ok(segmented):
                pass
            case Err(kind, message):
                raise SegmentationError(kind, message)

        # 5-6. Categorize and annotate
        categorized = categorize_transactions(segmented.transactions, catalog)
        validated = validate_transactions(
            categorized,
            unusual_amount_multiple=self._settings.unusual_amount_multiple,
            duplicate_similarity=self._settings.duplicate_similarity,
        )
        summary = summarize(validated)

        bank_name = segmented.bank_name
        if bank_name == DEFAULT_BANK_NAME and dialect is not BankDialect.UNKNOWN:
            bank_name = profile_for(dialect).display_name

        _logger.info(
            "pipeline:done bank=%s dialect=%s transactions=%d needs_review=%d latency_ms=%.2f",
            bank_name,
            dialect.value,
            summary.total,
            summary.needs_review,
            (time.perf_counter() - t0) * 1000.0,
        )
        return StatementParseResult(
            bank_name=bank_name,
            account_number=segmented.account_number,
            period=segmented.period,
            dialect=dialect,
            transactions=tuple(validated),
            summary=summary,
            used_cleaned_text=used_cleaned,
            cleaning_stats=cleaning_stats,
        )
