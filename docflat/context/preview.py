from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from docflat.models.context import FilePreview
from docflat.models.source_file import FileMeta
from docflat.parsers.csv_parser import read_csv_frame
from docflat.parsers.spreadsheet import detect_images, read_workbook
from docflat.parsers.values import cell_to_text, to_native

from .reconstructor import MOCK_WARNING
from .storage import SourceStrategy, resolve_source
from .xml_text import format_xml

"""File preview: the first PREVIEW_ROWS data rows of a spreadsheet sheet or CSV,
or the formatted text of an XML document. Same source resolution and mock
fallback as context reconstruction."""

__all__ = [
    "PREVIEW_ROWS",
    "UNNAMED_COLUMN",
    "get_file_preview",
    "mock_preview",
]

logger = logging.getLogger(__name__)

PREVIEW_ROWS = 100
UNNAMED_COLUMN = "(Unnamed Column)"

_MOCK_HEADERS = ["ID", "Name", "Email", "Department", "Position"]
_MOCK_ROWS: list[list[Any]] = [
    [1001, "John Doe", "john@example.com", "IT", "Developer"],
    [1002, "Jane Smith", "jane@example.com", "HR", "Manager"],
    [1003, "Bob Johnson", "bob@example.com", "Finance", "Analyst"],
]
_MOCK_XML = """<?xml version="1.0" encoding="UTF-8"?>
<catalog>
<book id="bk101">
<title>XML Developer's Guide</title>
<price>44.95</price>
</book>
</catalog>"""


def mock_preview(file_type: str, warning: str) -> FilePreview:
    if file_type.lower() == "xml":
        return FilePreview(xml=_MOCK_XML, warning=warning, source="mock")
    return FilePreview(
        headers=list(_MOCK_HEADERS), rows=[list(r) for r in _MOCK_ROWS], warning=warning, source="mock"
    )


def get_file_preview(
    meta: FileMeta, strategies: Sequence[SourceStrategy], sheet_name: str | None = None
) -> FilePreview:
    """Never raises; failures degrade to mock data with a warning."""
    hit, misses = resolve_source(meta, strategies)
    if hit is None or hit.data is None:
        reasons = "; ".join(f"{m.source}: {m.reason}" for m in misses)
        logger.warning("preview source unavailable file=%s: %s", meta.filename, reasons)
        return mock_preview(meta.file_type, f"{MOCK_WARNING} ({reasons})" if reasons else MOCK_WARNING)

    file_type = meta.file_type.lower()
    if file_type in ("xlsx", "xls"):
        preview = _preview_spreadsheet(hit.data, sheet_name)
    elif file_type == "csv":
        preview = _preview_csv(hit.data)
    elif file_type == "xml":
        preview = FilePreview(xml=format_xml(hit.data.decode("utf-8", errors="replace")))
    else:
        return mock_preview(file_type, f"{MOCK_WARNING} (unsupported file type: {file_type})")

    warning = preview.warning
    if strategies and hit.source != strategies[0].name:
        note = f"Loaded from fallback source '{hit.source}'."
        warning = f"{note} {warning}" if warning else note
    return FilePreview(
        headers=preview.headers,
        rows=preview.rows,
        sheets=preview.sheets,
        current_sheet=preview.current_sheet,
        has_images=preview.has_images,
        xml=preview.xml,
        warning=warning,
        source=hit.source,
    )


def _preview_spreadsheet(buffer: bytes, sheet_name: str | None) -> FilePreview:
    try:
        sheets = read_workbook(buffer)
    except Exception as e:
        logger.error("excel preview failed: %s", e)
        return mock_preview("xlsx", f"Error previewing Excel file: {e}")

    names = list(sheets)
    selected = sheet_name if sheet_name in sheets else (names[0] if names else None)
    has_images = detect_images(buffer)
    rows = sheets[selected].values.tolist() if selected is not None else []
    if not rows:
        return FilePreview(headers=[], rows=[], sheets=names, current_sheet=selected, has_images=has_images)

    headers = [cell_to_text(h) or UNNAMED_COLUMN for h in rows[0]]
    data = [[to_native(v) for v in row] for row in rows[1 : PREVIEW_ROWS + 1]]
    warning = "This workbook contains images or drawings that are not shown." if has_images else None
    return FilePreview(
        headers=headers,
        rows=data,
        sheets=names,
        current_sheet=selected,
        has_images=has_images,
        warning=warning,
    )


def _preview_csv(buffer: bytes) -> FilePreview:
    try:
        df = read_csv_frame(buffer)
    except Exception as e:
        logger.warning("csv preview parse failed, trying line split: %s", e)
        lines = [line for line in buffer.decode("utf-8-sig", errors="replace").splitlines() if line.strip()]
        if not lines:
            return FilePreview(headers=[], rows=[])
        headers = [h.strip() for h in lines[0].split(",")]
        rows = [[c.strip() for c in line.split(",")] for line in lines[1 : PREVIEW_ROWS + 1]]
        return FilePreview(headers=headers, rows=rows)
    head = df.head(PREVIEW_ROWS)
    rows = [[str(v).strip() for v in row] for row in head.itertuples(index=False, name=None)]
    return FilePreview(headers=list(df.columns), rows=rows)
