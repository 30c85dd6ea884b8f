"""Domain models for docflat.

Flattened records, source-file metadata, context responses, extracted
products / line items, and ingest bookkeeping.
"""

from .context import ContextResult, FilePreview
from .error_record import ErrorRecord
from .field_record import SHEET_NAME_FIELD, FieldRecord, ParseResult
from .processing_result import FileStat, FileStatus, IngestResult
from .product import ExtractedProduct, LineItem, QuotationTotals
from .source_file import FileMeta, StoredRecord

__all__ = [
    # Flattening
    "FieldRecord",
    "ParseResult",
    "SHEET_NAME_FIELD",
    # Source files
    "FileMeta",
    "StoredRecord",
    "ContextResult",
    "FilePreview",
    # Extraction
    "ExtractedProduct",
    "LineItem",
    "QuotationTotals",
    # Ingest bookkeeping
    "ErrorRecord",
    "FileStat",
    "FileStatus",
    "IngestResult",
]
