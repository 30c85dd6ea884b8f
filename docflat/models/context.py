from __future__ import annotations

from dataclasses import dataclass
from typing import Any

"""ContextResult model.

The response of the context reconstructor. rowData is an open-ended
header -> value mapping (no fixed schema; the columns are whatever the
source row had). xmlNode is raw XML text.
"""

__all__ = [
    "ContextResult",
    "FilePreview",
]


@dataclass(frozen=True)
class ContextResult:
    row_data: dict[str, Any] | None = None
    xml_node: str | None = None
    warning: str | None = None
    source: str | None = None  # provenance: which resolution strategy produced the buffer

    def to_dict(self) -> dict[str, Any]:
        """Response shape: {rowData?, xmlNode?, warning?} (absent keys omitted)."""
        out: dict[str, Any] = {}
        if self.row_data is not None:
            out["rowData"] = self.row_data
        if self.xml_node is not None:
            out["xmlNode"] = self.xml_node
        if self.warning:
            out["warning"] = self.warning
        return out


@dataclass(frozen=True)
class FilePreview:
    """First rows of a tabular file, or the formatted text of an XML file."""
    headers: list[str] | None = None
    rows: list[list[Any]] | None = None
    sheets: list[str] | None = None
    current_sheet: str | None = None
    has_images: bool | None = None
    xml: str | None = None
    warning: str | None = None
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for key, value in (
            ("headers", self.headers),
            ("rows", self.rows),
            ("sheets", self.sheets),
            ("currentSheet", self.current_sheet),
            ("hasImages", self.has_images),
            ("xml", self.xml),
        ):
            if value is not None:
                out[key] = value
        if self.warning:
            out["warning"] = self.warning
        return out
