from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime

from docflat.config.loader import DEFAULT_XML_ATTRIBUTE_PREFIX
from docflat.models.context import ContextResult
from docflat.models.source_file import StoredRecord
from docflat.parsers.csv_parser import read_csv_frame
from docflat.parsers.spreadsheet import read_workbook
from docflat.parsers.values import cell_to_text, column_label, to_native

from .storage import FetchResult, SourceStrategy, resolve_source
from .xml_text import HEAD_CHARS, find_by_path, find_by_text, format_xml

"""Context reconstruction.

Given a stored record, re-read the original file and recover what flattening
discarded: the whole source row (spreadsheet / CSV) or the surrounding XML.

Never raises. Every degraded outcome carries a human-readable warning:
- source found by a non-primary strategy -> provenance note
- sheet missing -> first sheet; row missing -> empty rowData
- source unreadable everywhere -> synthetic mock data of the requested shape
"""

__all__ = [
    "MOCK_WARNING",
    "get_context",
    "mock_context",
]

logger = logging.getLogger(__name__)

MOCK_WARNING = "Could not read actual file content. Showing sample data instead."


def _join_warnings(*parts: str | None) -> str | None:
    kept = [p for p in parts if p]
    return " ".join(kept) if kept else None


def _provenance(hit: FetchResult, strategies: Sequence[SourceStrategy]) -> str | None:
    if strategies and hit.source != strategies[0].name:
        return f"Loaded from fallback source '{hit.source}'."
    return None


def mock_context(stored: StoredRecord, reasons: str | None = None) -> ContextResult:
    warning = MOCK_WARNING if not reasons else f"{MOCK_WARNING} ({reasons})"
    if stored.file.file_type.lower() == "xml":
        name = stored.field_name
        return ContextResult(xml_node=f"<{name}>{stored.field_value}</{name}>", warning=warning, source="mock")
    row_data = {
        stored.field_name: stored.field_value,
        "ID": f"MOCK-{stored.id}",
        "CreatedAt": datetime.now(UTC).isoformat(),
        "Status": "Active",
    }
    return ContextResult(row_data=row_data, warning=warning, source="mock")


def get_context(
    stored: StoredRecord,
    strategies: Sequence[SourceStrategy],
    attribute_prefix: str | None = DEFAULT_XML_ATTRIBUTE_PREFIX,
) -> ContextResult:
    hit, misses = resolve_source(stored.file, strategies)
    if hit is None or hit.data is None:
        reasons = "; ".join(f"{m.source}: {m.reason}" for m in misses)
        logger.warning("context source unavailable record=%s: %s", stored.id, reasons)
        return mock_context(stored, reasons)

    file_type = stored.file.file_type.lower()
    if file_type in ("xlsx", "xls"):
        result = _spreadsheet_context(hit.data, stored)
    elif file_type == "csv":
        result = _csv_context(hit.data, stored)
    elif file_type == "xml":
        result = _xml_context(hit.data, stored, attribute_prefix)
    else:
        logger.warning("context requested for unsupported type=%s record=%s", file_type, stored.id)
        return mock_context(stored, f"unsupported file type: {file_type}")

    return ContextResult(
        row_data=result.row_data,
        xml_node=result.xml_node,
        warning=_join_warnings(_provenance(hit, strategies), result.warning),
        source=hit.source,
    )


def _spreadsheet_context(buffer: bytes, stored: StoredRecord) -> ContextResult:
    row_num = stored.row_num
    if not row_num:
        return ContextResult(row_data={})
    try:
        sheets = read_workbook(buffer)
    except Exception as e:
        logger.error("excel context failed record=%s: %s", stored.id, e)
        return ContextResult(
            row_data={stored.field_name: stored.field_value},
            warning=f"Error parsing Excel file: {e}",
        )
    if not sheets:
        return ContextResult(row_data={}, warning="Sheet not found in Excel file")

    warning = None
    sheet_name = stored.sheet_or_node or ""
    if sheet_name not in sheets:
        first = next(iter(sheets))
        logger.info("sheet %r not found, using first sheet %r", sheet_name or None, first)
        warning = f"Sheet '{sheet_name}' not found, showing first sheet '{first}'."
        sheet_name = first

    rows = sheets[sheet_name].values.tolist()
    if len(rows) < row_num:
        return ContextResult(row_data={}, warning=_join_warnings(warning, f"Row {row_num} not found in sheet"))

    headers = rows[0]
    row = rows[row_num - 1]
    row_data = {}
    for index, header in enumerate(headers):
        if index < len(row):
            row_data[column_label(cell_to_text(header), index)] = to_native(row[index])
    return ContextResult(row_data=row_data, warning=warning)


def _csv_context(buffer: bytes, stored: StoredRecord) -> ContextResult:
    row_num = stored.row_num
    if not row_num:
        return ContextResult(row_data={})
    try:
        df = read_csv_frame(buffer)
    except Exception as e:
        logger.warning("csv context parse failed record=%s, trying line split: %s", stored.id, e)
        return _naive_csv_context(buffer, row_num)
    if len(df) < row_num:
        return ContextResult(row_data={}, warning=f"Row {row_num} not found in CSV with {len(df)} rows")
    row = df.iloc[row_num - 1]
    return ContextResult(row_data={col: str(row[col]).strip() for col in df.columns})


def _naive_csv_context(buffer: bytes, row_num: int) -> ContextResult:
    # 区切り文字のみで分割 (quote 非対応)
    lines = [line for line in buffer.decode("utf-8-sig", errors="replace").splitlines() if line.strip()]
    if len(lines) <= row_num:
        return ContextResult(row_data={}, warning=f"Row {row_num} not found in CSV with {len(lines)} lines")
    headers = [h.strip() for h in lines[0].split(",")]
    cells = [c.strip() for c in lines[row_num].split(",")]
    row_data = {}
    for index, header in enumerate(headers):
        if index < len(cells):
            row_data[column_label(header, index)] = cells[index]
    return ContextResult(row_data=row_data)


def _xml_context(buffer: bytes, stored: StoredRecord, attribute_prefix: str | None) -> ContextResult:
    if stored.full_path:
        try:
            node = find_by_path(buffer, stored.full_path, stored.field_value, attribute_prefix)
        except Exception as e:  # malformed XML: textual search still works
            logger.debug("xml path lookup failed record=%s: %s", stored.id, e)
            node = None
        if node is not None:
            return ContextResult(xml_node=format_xml(node))

    text = buffer.decode("utf-8", errors="replace")
    window = find_by_text(text, stored.field_name, stored.field_value)
    if window is not None:
        return ContextResult(xml_node=format_xml(window))
    return ContextResult(xml_node=format_xml(text[:HEAD_CHARS]))
