from __future__ import annotations

import io
import logging
import re

import pandas as pd

from docflat.config.loader import DEFAULT_CSV_SHEET_NAME
from docflat.errors import ParseError
from docflat.logging.error_log import ErrorLogBuffer
from docflat.models.field_record import FieldRecord, ParseResult

from .values import cell_to_text, column_label, is_missing

"""CSV flattening.

The first line holds the column headers; blank lines are skipped. Every
non-blank (trimmed) value becomes one FieldRecord with a fixed sheet label,
rowNum = 1-based data row index (header excluded) and no fullPath: CSV rows
are located by rowNum alone.
"""

__all__ = [
    "read_csv_frame",
    "parse_csv",
]

logger = logging.getLogger(__name__)

# pandas が空ヘッダに付ける自動列名
_UNNAMED_RE = re.compile(r"^Unnamed: (\d+)$")


def read_csv_frame(buffer: bytes) -> pd.DataFrame:
    """Parse CSV bytes into a string DataFrame with trimmed column names.

    Raises whatever pandas raises (EmptyDataError, ParserError, UnicodeDecodeError).
    Rows with more fields than the header raise ParserError.
    """
    df = pd.read_csv(
        io.BytesIO(buffer),
        dtype=str,
        keep_default_na=False,
        na_values=[],
        skip_blank_lines=True,
        encoding="utf-8-sig",
    )
    # 先頭データ行がヘッダより長いと pandas は先頭列を暗黙の index にする (以降の列がずれる)
    if not isinstance(df.index, pd.RangeIndex):
        raise pd.errors.ParserError(
            f"inconsistent number of fields: data rows have more fields than the header ({len(df.columns)})"
        )
    columns: list[str] = []
    for idx, col in enumerate(df.columns):
        name = str(col).strip()
        if _UNNAMED_RE.match(name):
            name = ""
        columns.append(column_label(name, idx))
    df.columns = columns
    return df


def parse_csv(
    buffer: bytes,
    file_id: str,
    error_log: ErrorLogBuffer | None = None,
    file_name: str | None = None,
    sheet_name: str = DEFAULT_CSV_SHEET_NAME,
) -> ParseResult:
    """Flatten CSV bytes.

    Raises:
        ParseError: empty buffer or unparseable CSV (reported to error_log first)
    """
    if not buffer:
        raise ParseError("csv", "no buffer")
    try:
        df = read_csv_frame(buffer)
    except Exception as e:
        logger.error("csv parse failed file_id=%s: %s", file_id, e)
        if error_log is not None:
            error_log.report(file=file_name or file_id, error_type="PARSE_ERROR", message=f"csv: {e}")
        raise ParseError("csv", str(e)) from e

    records: list[FieldRecord] = []
    columns = list(df.columns)
    for index, row in enumerate(df.itertuples(index=False, name=None)):
        for col, value in zip(columns, row, strict=False):
            if is_missing(value):
                continue
            text = cell_to_text(value)
            if text is None:
                continue
            records.append(
                FieldRecord(
                    file_id=file_id,
                    sheet_or_node=sheet_name,
                    field_name=col,
                    field_value=text,
                    row_num=index + 1,
                    parent_context=None,
                    full_path=None,
                )
            )
    logger.debug("file_id=%s csv rows=%d records=%d", file_id, len(df), len(records))
    return ParseResult(records=records, row_count=len(df), has_images=False)
