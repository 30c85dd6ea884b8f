from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .field_record import FieldRecord

"""Source file metadata and persisted-record models.

FileMeta describes an uploaded document as the record store knows it.
StoredRecord is a FieldRecord as it comes back from the store: with its
persisted id and the metadata of the owning file (what the context
reconstructor needs to locate and re-open the source buffer).
"""

__all__ = [
    "FileMeta",
    "StoredRecord",
]


@dataclass(frozen=True)
class FileMeta:
    id: str
    filename: str  # storage key (unique, e.g. "<uuid>-report.xlsx")
    file_type: str  # xlsx | xls | csv | xml
    original_name: str
    row_count: int = 0
    uploaded_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "fileType": self.file_type,
            "originalName": self.original_name,
            "rowCount": self.row_count,
            "uploadedAt": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }


@dataclass(frozen=True)
class StoredRecord:
    id: str
    record: FieldRecord
    file: FileMeta

    # 参照を簡潔にするための委譲プロパティ
    @property
    def field_name(self) -> str:
        return self.record.field_name

    @property
    def field_value(self) -> str:
        return self.record.field_value

    @property
    def row_num(self) -> int | None:
        return self.record.row_num

    @property
    def sheet_or_node(self) -> str | None:
        return self.record.sheet_or_node

    @property
    def full_path(self) -> str | None:
        return self.record.full_path

    def to_dict(self) -> dict[str, Any]:
        data = {"id": self.id, **self.record.to_dict()}
        data["fileName"] = self.file.original_name
        data["fileType"] = self.file.file_type
        return data
