from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""FieldRecord / ParseResult models.

FieldRecord is the atomic unit of flattened data: one (document, location,
field name, field value) tuple. Records are produced once by a parser and
never mutated afterwards; the context reconstructor and the specification
extractor only read them.
"""

__all__ = [
    "FieldRecord",
    "ParseResult",
    "SHEET_NAME_FIELD",
]

# 各シートの先頭に出力するメタデータレコードのフィールド名
SHEET_NAME_FIELD = "_sheetName"


@dataclass(frozen=True)
class FieldRecord:
    """One flattened field.

    Attributes:
        file_id: Opaque reference to the owning source document
        sheet_or_node: Worksheet name, CSV default label, or first XML path segment
        field_name: Column header or XML element/attribute name
        field_value: Non-empty, string-coerced value
        row_num: 1-based row number for tabular formats, None for XML
        parent_context: Immediate parent element name (XML only)
        full_path: Slash-delimited location inside the source (None for CSV)
    """
    file_id: str
    sheet_or_node: str | None
    field_name: str
    field_value: str
    row_num: int | None = None
    parent_context: str | None = None
    full_path: str | None = None

    @property
    def is_sheet_marker(self) -> bool:
        return self.field_name == SHEET_NAME_FIELD and self.row_num == 0

    def to_dict(self) -> dict[str, Any]:
        """Wire shape persisted by the record store."""
        return {
            "fileId": self.file_id,
            "sheetOrNode": self.sheet_or_node,
            "fieldName": self.field_name,
            "fieldValue": self.field_value,
            "rowNum": self.row_num,
            "parentContext": self.parent_context,
            "fullPath": self.full_path,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> FieldRecord:
        return FieldRecord(
            file_id=str(data["fileId"]),
            sheet_or_node=data.get("sheetOrNode"),
            field_name=str(data["fieldName"]),
            field_value=str(data["fieldValue"]),
            row_num=data.get("rowNum"),
            parent_context=data.get("parentContext"),
            full_path=data.get("fullPath"),
        )


@dataclass(frozen=True)
class ParseResult:
    """Output of a format parser.

    has_images is an out-of-band flag: the workbook contains drawings/images that
    cannot be flattened. Parsers only report it; callers surface the warning.
    """
    records: list[FieldRecord] = field(default_factory=list)
    row_count: int = 0
    has_images: bool = False
