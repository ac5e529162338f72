"""Error kinds and exception types for the statement pipeline.

Fallible stages report failures as ``Err(kind, message)`` values (see
:mod:`statement_pipeline.results`) using the ``*Kind`` enums below. The
exception classes exist for callers that prefer raising
(:meth:`StatementPipeline.parse_or_raise`), for internal signalling inside the
normalizer, and for the import and budget-sync paths.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class ExtractionErrorKind(StrEnum):
    NO_FILE = "NO_FILE"
    INVALID_FORMAT = "INVALID_FORMAT"
    PASSWORD_REQUIRED = "PASSWORD_REQUIRED"
    PASSWORD_INCORRECT = "PASSWORD_INCORRECT"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"


class CleaningErrorKind(StrEnum):
    EMPTY_INPUT = "EMPTY_INPUT"
    INTERNAL = "INTERNAL"


class SegmentationErrorKind(StrEnum):
    REQUEST_FAILED = "REQUEST_FAILED"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    NO_TRANSACTIONS = "NO_TRANSACTIONS"
    TEXT_TOO_LARGE = "TEXT_TOO_LARGE"


class PipelineErrorKind(StrEnum):
    """Request-level failure kinds surfaced by :class:`StatementPipeline`."""

    NO_FILE = "NO_FILE"
    INVALID_FILE = "INVALID_FILE"
    PASSWORD_REQUIRED = "PASSWORD_REQUIRED"
    PASSWORD_INCORRECT = "PASSWORD_INCORRECT"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    NOT_A_STATEMENT = "NOT_A_STATEMENT"
    PARSING_FAILED = "PARSING_FAILED"
    NO_TRANSACTIONS = "NO_TRANSACTIONS"


class PipelineError(Exception):
    """Base class for all statement pipeline exceptions."""


class ExtractionError(PipelineError):
    def __init__(self, kind: ExtractionErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class StatementValidationError(PipelineError):
    """The extracted text does not look like a bank statement."""


class CleaningError(PipelineError):
    """Normalization failed; callers degrade to the raw text."""


class SegmentationError(PipelineError):
    def __init__(self, kind: SegmentationErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class ImportRequestError(PipelineError):
    """The import request as a whole is unacceptable (empty, oversized, unlabeled)."""


class BudgetSyncError(PipelineError):
    """Recomputing a budget's spent amount failed. Logged, never raised to callers."""


@dataclass(frozen=True, slots=True)
class ImportRowError:
    """A single rejected row in a bulk import, addressed by its input index."""

    index: int
    message: str

    def as_dict(self) -> dict[str, int | str]:
        return {"index": self.index, "message": self.message}


__all__ = [
    "BudgetSyncError",
    "CleaningError",
    "CleaningErrorKind",
    "ExtractionError",
    "ExtractionErrorKind",
    "ImportRequestError",
    "ImportRowError",
    "PipelineError",
    "PipelineErrorKind",
    "SegmentationError",
    "SegmentationErrorKind",
    "StatementValidationError",
]
