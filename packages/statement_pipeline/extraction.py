"""PDF text extraction for uploaded statements.

Public API: :func:`extract_text`. Stateless; returns a tagged result rather
than raising. Any page that fails to extract fails the whole document, so the
rest of the pipeline never sees silently truncated text.
"""

from __future__ import annotations

import io

from pypdf import PasswordType, PdfReader
from pypdf.errors import DependencyError, PdfReadError

from .errors import ExtractionErrorKind
from .logging_setup import get_logger
from .models import RawStatementText
from .results import Err, Ok, Result

_logger = get_logger("statement_pipeline.extraction")

# The header may be preceded by a little garbage in real-world files.
_PDF_MAGIC = b"%PDF-"
_MAGIC_WINDOW = 1024

NO_FILE_MESSAGE = "No file uploaded"
INVALID_FORMAT_MESSAGE = "File is not a valid PDF"
PASSWORD_REQUIRED_MESSAGE = "This PDF is password-protected. Please provide the password."
PASSWORD_INCORRECT_MESSAGE = "Incorrect password for this PDF."
IMAGE_ONLY_MESSAGE = (
    "No text could be extracted from the PDF. The PDF might be image-based or scanned."
)


def _open(pdf_bytes: bytes) -> PdfReader | None:
    try:
        return PdfReader(io.BytesIO(pdf_bytes))
    except (PdfReadError, ValueError, OSError) as exc:
        _logger.info("extract:invalid_pdf error=%s", exc.__class__.__name__)
        return None


def _unlock(
    reader: PdfReader, password: str | None
) -> Err[ExtractionErrorKind] | None:
    """Decrypt ``reader`` in place; return an ``Err`` when that is not possible."""

    try:
        if not password:
            # Owner-restricted PDFs open with an empty user password.
            if reader.decrypt("") == PasswordType.NOT_DECRYPTED:
                return Err(ExtractionErrorKind.PASSWORD_REQUIRED, PASSWORD_REQUIRED_MESSAGE)
            return None
        if reader.decrypt(password) == PasswordType.NOT_DECRYPTED:
            return Err(ExtractionErrorKind.PASSWORD_INCORRECT, PASSWORD_INCORRECT_MESSAGE)
    except DependencyError as exc:
        _logger.error("extract:decrypt_unsupported error=%s", exc)
        return Err(ExtractionErrorKind.EXTRACTION_FAILED, f"Unsupported PDF encryption: {exc}")
    return None


def extract_text(
    pdf_bytes: bytes | None, password: str | None = None
) -> Result[RawStatementText, ExtractionErrorKind]:
    """Extract the text of every page of ``pdf_bytes``.

    Failure kinds: ``NO_FILE``, ``INVALID_FORMAT``, ``PASSWORD_REQUIRED`` (no
    password given for an encrypted file), ``PASSWORD_INCORRECT`` (the given
    password does not open it) and ``EXTRACTION_FAILED`` (a page failed or
    the document has no extractable text).
    """

    if not pdf_bytes:
        return Err(ExtractionErrorKind.NO_FILE, NO_FILE_MESSAGE)
    if _PDF_MAGIC not in pdf_bytes[:_MAGIC_WINDOW]:
        return Err(ExtractionErrorKind.INVALID_FORMAT, INVALID_FORMAT_MESSAGE)

    reader = _open(pdf_bytes)
    if reader is None:
        return Err(ExtractionErrorKind.INVALID_FORMAT, INVALID_FORMAT_MESSAGE)

    if reader.is_encrypted:
        locked = _unlock(reader, password)
        if locked is not None:
            _logger.info("extract:locked kind=%s", locked.kind.value)
            return locked

    pages: list[str] = []
    try:
        page_objs = list(reader.pages)
    except Exception as exc:  # noqa: BLE001 - pypdf raises a range of parse errors here
        return Err(ExtractionErrorKind.EXTRACTION_FAILED, f"Could not read PDF pages: {exc}")

    for index, page in enumerate(page_objs):
        try:
            pages.append(page.extract_text() or "")
        except Exception as exc:  # noqa: BLE001 - any page failure fails the document
            _logger.warning(
                "extract:page_failed page=%d error=%s", index + 1, exc.__class__.__name__
            )
            return Err(
                ExtractionErrorKind.EXTRACTION_FAILED,
                f"Failed to extract text from page {index + 1}: {exc}",
            )

    text = "\n".join(pages)
    if not text.strip():
        return Err(ExtractionErrorKind.EXTRACTION_FAILED, IMAGE_ONLY_MESSAGE)

    _logger.info("extract:done pages=%d chars=%d", len(pages), len(text))
    return Ok(RawStatementText(text=text, pages=tuple(pages)))
