from __future__ import annotations

import io
import logging

import openpyxl
import pandas as pd

from docflat.errors import ParseError
from docflat.logging.error_log import ErrorLogBuffer
from docflat.models.field_record import SHEET_NAME_FIELD, FieldRecord, ParseResult

from .values import cell_to_text, column_label

"""Spreadsheet (xlsx / xls) flattening.

- Row 0 of every sheet is the header row; each later row becomes one FieldRecord
  per non-blank cell within the header span.
- rowNum is the spreadsheet row number: header row = 1, first data row = 2.
- One `_sheetName` marker record (rowNum=0) precedes each emitted sheet.
- A sheet without data rows is skipped entirely, except when it is the only
  sheet of the workbook and has a header row (the marker alone is emitted).
- Embedded drawings / images cannot be flattened; their presence is reported
  through ParseResult.has_images for the caller to surface as a warning.

Failures propagate as ParseError after being reported to the error log.
"""

__all__ = [
    "read_workbook",
    "detect_images",
    "parse_spreadsheet",
]

logger = logging.getLogger(__name__)

# xlsx はZIPコンテナ (画像検出は openpyxl で可能な場合のみ)
_ZIP_SIGNATURE = b"PK\x03\x04"


def read_workbook(buffer: bytes) -> dict[str, pd.DataFrame]:
    """Read every sheet raw (no header inference) keyed by sheet name, in workbook order.

    Cell values keep their original Python types (dtype=object) and no strings
    are converted to NaN; only truly empty cells are missing.
    """
    xls = pd.ExcelFile(io.BytesIO(buffer))
    sheets: dict[str, pd.DataFrame] = {}
    for name in xls.sheet_names:
        sheets[str(name)] = xls.parse(name, header=None, dtype=object, keep_default_na=False, na_values=[])
    return sheets


def detect_images(buffer: bytes) -> bool:
    """True if any worksheet of an xlsx workbook holds images or charts."""
    if not buffer.startswith(_ZIP_SIGNATURE):
        return False  # legacy .xls: drawing objects are not inspected
    try:
        wb = openpyxl.load_workbook(io.BytesIO(buffer))
    except Exception as e:  # pandas already read the workbook; only the flag is lost
        logger.debug("image detection skipped: %s", e)
        return False
    try:
        for ws in wb.worksheets:
            if getattr(ws, "_images", None) or getattr(ws, "_charts", None):
                return True
        return False
    finally:
        wb.close()


def parse_spreadsheet(
    buffer: bytes,
    file_id: str,
    error_log: ErrorLogBuffer | None = None,
    file_name: str | None = None,
) -> ParseResult:
    """Flatten a multi-sheet workbook into FieldRecords.

    Returns:
        ParseResult with records, rowCount (data rows summed over all sheets) and
        the has_images flag
    Raises:
        ParseError: empty buffer or unreadable workbook
    """
    if not buffer:
        raise ParseError("spreadsheet", "no buffer")
    try:
        sheets = read_workbook(buffer)
    except Exception as e:
        logger.error("spreadsheet parse failed file_id=%s: %s", file_id, e)
        if error_log is not None:
            error_log.report(file=file_name or file_id, error_type="PARSE_ERROR", message=f"excel: {e}")
        raise ParseError("spreadsheet", str(e)) from e

    records: list[FieldRecord] = []
    total_rows = 0
    only_sheet = len(sheets) == 1

    for sheet_name, df in sheets.items():
        n_rows = df.shape[0]
        data_rows = max(n_rows - 1, 0)
        if data_rows == 0 and not (only_sheet and n_rows >= 1):
            logger.debug("sheet=%s has no data rows, skipped", sheet_name)
            continue

        records.append(
            FieldRecord(
                file_id=file_id,
                sheet_or_node=sheet_name,
                field_name=SHEET_NAME_FIELD,
                field_value=sheet_name,
                row_num=0,
                parent_context=None,
                full_path=f"/{sheet_name}",
            )
        )
        records.extend(_flatten_sheet(df, sheet_name, file_id))
        total_rows += data_rows

    has_images = detect_images(buffer)
    if has_images:
        logger.warning("file_id=%s contains embedded images/drawings that were not flattened", file_id)
    logger.debug("file_id=%s sheets=%d records=%d rows=%d", file_id, len(sheets), len(records), total_rows)
    return ParseResult(records=records, row_count=total_rows, has_images=has_images)


def _flatten_sheet(df: pd.DataFrame, sheet_name: str, file_id: str) -> list[FieldRecord]:
    raw_rows = df.values.tolist()
    headers = [cell_to_text(v) for v in raw_rows[0]]
    out: list[FieldRecord] = []
    for row_index in range(1, len(raw_rows)):
        row = raw_rows[row_index]
        row_num = row_index + 1
        for col_index, header in enumerate(headers):
            if col_index >= len(row):
                break
            text = cell_to_text(row[col_index])
            if text is None:
                continue
            field_name = column_label(header, col_index)
            out.append(
                FieldRecord(
                    file_id=file_id,
                    sheet_or_node=sheet_name,
                    field_name=field_name,
                    field_value=text,
                    row_num=row_num,
                    parent_context=None,
                    full_path=f"/{sheet_name}/row{row_num}/{field_name}",
                )
            )
    return out
