from __future__ import annotations

import logging
from pathlib import PurePath

from docflat.config.loader import ParserSettings
from docflat.errors import ParseError, UnsupportedFileTypeError
from docflat.logging.error_log import ErrorLogBuffer
from docflat.models.field_record import ParseResult

from .csv_parser import parse_csv
from .spreadsheet import parse_spreadsheet
from .xml_parser import parse_xml

"""Routing of raw buffers to the matching format parser by file-type tag."""

__all__ = [
    "SUPPORTED_FILE_TYPES",
    "detect_file_type",
    "parse_document",
]

logger = logging.getLogger(__name__)

SUPPORTED_FILE_TYPES = ("xlsx", "xls", "csv", "xml")


def detect_file_type(filename: str) -> str:
    """Lowercase extension tag of a filename ('' when there is none)."""
    return PurePath(filename).suffix.lower().lstrip(".")


def parse_document(
    buffer: bytes | None,
    file_type: str,
    file_id: str,
    error_log: ErrorLogBuffer | None = None,
    settings: ParserSettings | None = None,
    file_name: str | None = None,
) -> ParseResult:
    """Parse a buffer with the parser registered for file_type.

    Raises:
        UnsupportedFileTypeError: file_type is not xlsx / xls / csv / xml
        ParseError: no buffer, or a spreadsheet / CSV that cannot be parsed
    """
    tag = (file_type or "").lower().lstrip(".")
    if tag not in SUPPORTED_FILE_TYPES:
        raise UnsupportedFileTypeError(file_type)
    if buffer is None or len(buffer) == 0:
        raise ParseError(tag, "no buffer")
    settings = settings or ParserSettings()

    if tag in ("xlsx", "xls"):
        return parse_spreadsheet(buffer, file_id, error_log=error_log, file_name=file_name)
    if tag == "csv":
        return parse_csv(
            buffer, file_id, error_log=error_log, file_name=file_name, sheet_name=settings.csv_sheet_name
        )
    return parse_xml(
        buffer,
        file_id,
        error_log=error_log,
        file_name=file_name,
        attribute_prefix=settings.xml_attribute_prefix,
        default_node=settings.xml_default_node,
    )
