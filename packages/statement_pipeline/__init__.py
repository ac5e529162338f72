"""Public interface for the ``statement_pipeline`` package.

Symbol re-exports only; see the individual modules for behavior.
"""

from .api import ApiResponse, extract_pdf, import_reviewed, upload_statement
from .catalog import (
    CategoryCatalogProvider,
    DbCategoryCatalogProvider,
    StaticCategoryCatalogProvider,
    reseed_categories,
)
from .categorizer import categorize_transaction, categorize_transactions
from .config import PipelineSettings
from .errors import (
    BudgetSyncError,
    CleaningError,
    CleaningErrorKind,
    ExtractionError,
    ExtractionErrorKind,
    ImportRequestError,
    ImportRowError,
    PipelineError,
    PipelineErrorKind,
    SegmentationError,
    SegmentationErrorKind,
    StatementValidationError,
)
from .extraction import extract_text
from .importer import BulkImporter, ReviewedTransaction
from .models import (
    BankDialect,
    CategoryCatalog,
    CategoryDefinition,
    CategoryType,
    CleanedStatement,
    Confidence,
    Direction,
    FeeBreakdown,
    ImportResult,
    ParsedTransaction,
    StatementParseResult,
    TransactionFlag,
    ValidationSummary,
)
from .normalizer import NormalizerOptions, clean_statement
from .persistence import BudgetStore, NewTransaction, SqlTransactionStore, TransactionStore
from .pipeline import PipelineFailure, StatementPipeline
from .results import Err, Ok, Result
from .segmentation import StatementSegmenter
from .statement_check import StatementCheck, validate_statement
from .validation import flag_description, summarize, validate_transactions

__all__ = [
    # Stages
    "extract_text",
    "validate_statement",
    "clean_statement",
    "StatementSegmenter",
    "categorize_transaction",
    "categorize_transactions",
    "validate_transactions",
    "summarize",
    "flag_description",
    "BulkImporter",
    "StatementPipeline",
    # Request handlers
    "ApiResponse",
    "extract_pdf",
    "upload_statement",
    "import_reviewed",
    # Catalog and storage
    "CategoryCatalogProvider",
    "DbCategoryCatalogProvider",
    "StaticCategoryCatalogProvider",
    "reseed_categories",
    "TransactionStore",
    "BudgetStore",
    "SqlTransactionStore",
    "NewTransaction",
    # Models / types
    "BankDialect",
    "CategoryCatalog",
    "CategoryDefinition",
    "CategoryType",
    "CleanedStatement",
    "Confidence",
    "Direction",
    "FeeBreakdown",
    "ImportResult",
    "NormalizerOptions",
    "ParsedTransaction",
    "PipelineSettings",
    "ReviewedTransaction",
    "StatementCheck",
    "StatementParseResult",
    "TransactionFlag",
    "ValidationSummary",
    # Results and errors
    "Ok",
    "Err",
    "Result",
    "PipelineFailure",
    "PipelineError",
    "PipelineErrorKind",
    "ExtractionError",
    "ExtractionErrorKind",
    "StatementValidationError",
    "CleaningError",
    "CleaningErrorKind",
    "SegmentationError",
    "SegmentationErrorKind",
    "ImportRequestError",
    "ImportRowError",
    "BudgetSyncError",
]
