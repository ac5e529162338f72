"""Framework-free request handlers for statement upload and import.

Each handler returns an :class:`ApiResponse` (status code plus JSON-ready
body) so any web framework can wrap it in a couple of lines. Status contract:

- 400: no file, invalid file, bad import request
- 401: password required or incorrect; missing user on import
- 422: extraction failed, not a statement, parsing failed, no transactions
- 500: anything unexpected
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .errors import ExtractionErrorKind, ImportRequestError, PipelineErrorKind
from .extraction import extract_text
from .importer import BulkImporter
from .logging_setup import get_logger
from .pipeline import StatementPipeline
from .results import Err, Ok

_logger = get_logger("statement_pipeline.api")

_STATUS_BY_KIND: Mapping[PipelineErrorKind, int] = {
    PipelineErrorKind.NO_FILE: 400,
    PipelineErrorKind.INVALID_FILE: 400,
    PipelineErrorKind.PASSWORD_REQUIRED: 401,
    PipelineErrorKind.PASSWORD_INCORRECT: 401,
    PipelineErrorKind.EXTRACTION_FAILED: 422,
    PipelineErrorKind.NOT_A_STATEMENT: 422,
    PipelineErrorKind.PARSING_FAILED: 422,
    PipelineErrorKind.NO_TRANSACTIONS: 422,
}

_EXTRACTION_STATUS: Mapping[ExtractionErrorKind, tuple[int, str]] = {
    ExtractionErrorKind.NO_FILE: (400, "NO_FILE"),
    ExtractionErrorKind.INVALID_FORMAT: (400, "INVALID_FILE"),
    ExtractionErrorKind.PASSWORD_REQUIRED: (401, "PASSWORD_REQUIRED"),
    ExtractionErrorKind.PASSWORD_INCORRECT: (401, "PASSWORD_INCORRECT"),
    ExtractionErrorKind.EXTRACTION_FAILED: (422, "EXTRACTION_FAILED"),
}

UNEXPECTED_UPLOAD_MESSAGE = "An unexpected error occurred while processing your statement"
UNEXPECTED_EXTRACT_MESSAGE = "An unexpected error occurred while extracting text from the PDF"
UNEXPECTED_IMPORT_MESSAGE = "An unexpected error occurred while importing transactions"


@dataclass(frozen=True, slots=True)
class ApiResponse:
    status_code: int
    body: dict[str, Any]

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def _error(status_code: int, message: str, code: str | None = None) -> ApiResponse:
    body: dict[str, Any] = {"success": False, "message": message}
    if code is not None:
        body["code"] = code
    return ApiResponse(status_code, body)


def extract_pdf(pdf_bytes: bytes | None, password: str | None = None) -> ApiResponse:
    """Extract text only (for clients that review the text before parsing)."""

    try:
        result = extract_text(pdf_bytes, password)
    except Exception:  # noqa: BLE001 - request boundary
        _logger.exception("api:extract_unexpected")
        return _error(500, UNEXPECTED_EXTRACT_MESSAGE)

    match result:
        case Ok(raw):
            return ApiResponse(
                200,
                {
                    "success": True,
                    "data": {"text": raw.text, "pages": raw.page_count},
                    "message": "PDF text extracted successfully",
                },
            )
        case Err(kind, message):
            status, code = _EXTRACTION_STATUS[kind]
            return _error(status, message, code)


def upload_statement(
    pipeline: StatementPipeline,
    *,
    pdf_bytes: bytes | None = None,
    extracted_text: str | None = None,
    password: str | None = None,
) -> ApiResponse:
    """Parse an uploaded statement into reviewable transactions."""

    try:
        result = pipeline.run(pdf_bytes=pdf_bytes, extracted_text=extracted_text, password=password)
    except Exception:  # noqa: BLE001 - request boundary
        _logger.exception("api:upload_unexpected")
        return _error(500, UNEXPECTED_UPLOAD_MESSAGE)

    match result:
        case Ok(parsed):
            return ApiResponse(
                200,
                {
                    "success": True,
                    "data": parsed.to_dict(),
                    "message": (
                        f"Successfully parsed {len(parsed.transactions)} transactions "
                        f"from {parsed.bank_name}"
                    ),
                },
            )
        case Err(kind, message):
            _logger.info("api:upload_rejected kind=%s", kind.value)
            return _error(_STATUS_BY_KIND[kind], message, kind.value)


def import_reviewed(
    importer: BulkImporter, body: Any, *, user_id: str | None
) -> ApiResponse:
    """Persist a reviewed batch. ``body`` is ``{"transactions": [...], "import_source": ...}``.

    ``body`` is the decoded request JSON, so any shape can arrive here.
    """

    if not user_id:
        return _error(401, "Unauthorized")
    payload = {} if body is None else body
    if not isinstance(payload, Mapping):
        return _error(400, "Request body must be a JSON object")
    rows = payload.get("transactions")
    source = payload.get("import_source", payload.get("importSource"))
    if rows is not None and not isinstance(rows, list):
        return _error(400, "transactions must be a list")

    try:
        result = importer.import_transactions(rows, user_id=user_id, import_source=source)
    except ImportRequestError as exc:
        return _error(400, str(exc))
    except Exception:  # noqa: BLE001 - request boundary
        _logger.exception("api:import_unexpected")
        return _error(500, UNEXPECTED_IMPORT_MESSAGE)

    return ApiResponse(200, result.to_dict())
