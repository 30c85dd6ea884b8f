from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from docflat.models.field_record import FieldRecord
from docflat.models.source_file import FileMeta, StoredRecord

from .batch_insert import DEFAULT_BATCH_SIZE, BatchMetrics, batch_insert

"""PostgreSQL record store over a psycopg2 cursor.

The store never opens connections itself; the caller (CLI) owns the
connection lifecycle and passes a cursor in. Transaction boundaries are
explicit (begin / commit / rollback), one per ingested file or deletion.
"""

__all__ = [
    "SCHEMA_SQL",
    "RECORD_COLUMNS",
    "SearchPage",
    "FilterOptions",
    "DirectoryState",
    "Diagnostics",
    "like_pattern",
    "RecordStore",
]

logger = logging.getLogger(__name__)

SCHEMA_SQL = (
    """
    CREATE TABLE IF NOT EXISTS files (
        id TEXT PRIMARY KEY,
        filename TEXT NOT NULL UNIQUE,
        file_type TEXT NOT NULL,
        original_name TEXT NOT NULL,
        row_count INTEGER NOT NULL DEFAULT 0,
        uploaded_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS parsed_records (
        id TEXT PRIMARY KEY,
        file_id TEXT NOT NULL REFERENCES files(id) ON DELETE CASCADE,
        sheet_or_node TEXT,
        field_name TEXT NOT NULL,
        field_value TEXT NOT NULL,
        row_num INTEGER,
        parent_context TEXT,
        full_path TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS parsed_records_file_id_idx ON parsed_records (file_id)",
    "CREATE INDEX IF NOT EXISTS parsed_records_field_name_idx ON parsed_records (field_name)",
)

RECORD_COLUMNS = (
    "id",
    "file_id",
    "sheet_or_node",
    "field_name",
    "field_value",
    "row_num",
    "parent_context",
    "full_path",
)

_FILE_COLUMNS_SQL = "f.id, f.filename, f.file_type, f.original_name, f.row_count, f.uploaded_at"
_RECORD_SELECT_SQL = (
    "SELECT r.id, r.file_id, r.sheet_or_node, r.field_name, r.field_value, r.row_num, "
    f"r.parent_context, r.full_path, {_FILE_COLUMNS_SQL} "
    "FROM parsed_records r JOIN files f ON f.id = r.file_id"
)


@dataclass(frozen=True)
class SearchPage:
    records: list[StoredRecord]
    total: int
    page: int
    page_size: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "records": [r.to_dict() for r in self.records],
            "total": self.total,
            "page": self.page,
            "pageSize": self.page_size,
        }


@dataclass(frozen=True)
class FilterOptions:
    file_types: list[str] = field(default_factory=list)
    field_names: list[str] = field(default_factory=list)
    sheets: list[str] = field(default_factory=list)
    sheet_counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fileTypes": list(self.file_types),
            "fieldNames": list(self.field_names),
            "sheets": list(self.sheets),
            "sheetCounts": dict(self.sheet_counts),
        }


@dataclass(frozen=True)
class DirectoryState:
    path: str
    exists: bool
    files: list[str] = field(default_factory=list)

    @classmethod
    def scan(cls, directory: Path, pattern: str = "*") -> DirectoryState:
        if not directory.is_dir():
            return cls(path=str(directory), exists=False)
        try:
            names = sorted(p.name for p in directory.glob(pattern) if p.is_file())
        except OSError as e:
            logger.warning("could not list %s: %s", directory, e)
            names = []
        return cls(path=str(directory), exists=True, files=names)

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "exists": self.exists, "files": list(self.files)}


@dataclass(frozen=True)
class Diagnostics:
    generated_at: datetime
    uploads: DirectoryState
    logs: DirectoryState
    files: int
    records: int
    file_types: dict[str, int] = field(default_factory=dict)
    sheet_counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.generated_at.isoformat(),
            "uploadsDirectory": self.uploads.to_dict(),
            "logsDirectory": self.logs.to_dict(),
            "database": {
                "files": self.files,
                "records": self.records,
                "fileTypes": dict(self.file_types),
                "sheetCounts": dict(self.sheet_counts),
            },
        }


def like_pattern(query: str) -> str:
    """Substring ILIKE pattern; '%', '_' and '\\' in the query match literally."""
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _file_from_row(row: Sequence[Any]) -> FileMeta:
    file_id, filename, file_type, original_name, row_count, uploaded_at = row
    return FileMeta(
        id=str(file_id),
        filename=filename,
        file_type=file_type,
        original_name=original_name,
        row_count=int(row_count or 0),
        uploaded_at=uploaded_at,
    )


def _stored_from_row(row: Sequence[Any]) -> StoredRecord:
    rec_id, file_id, sheet, field_name, field_value, row_num, parent, full_path = row[:8]
    record = FieldRecord(
        file_id=str(file_id),
        sheet_or_node=sheet,
        field_name=field_name,
        field_value=field_value,
        row_num=row_num,
        parent_context=parent,
        full_path=full_path,
    )
    return StoredRecord(id=str(rec_id), record=record, file=_file_from_row(row[8:14]))


class RecordStore:
    """Files + flattened records persisted through a DB-API cursor."""

    def __init__(self, cursor: Any, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        self.cursor = cursor
        self.batch_size = batch_size

    # --- transaction boundaries -------------------------------------------------
    def begin(self) -> None:
        self.cursor.execute("BEGIN")

    def commit(self) -> None:
        self.cursor.execute("COMMIT")

    def rollback(self) -> None:
        self.cursor.execute("ROLLBACK")

    def ensure_schema(self) -> None:
        for statement in SCHEMA_SQL:
            self.cursor.execute(statement)

    # --- writes -----------------------------------------------------------------
    def create_file(self, filename: str, file_type: str, original_name: str, row_count: int = 0) -> FileMeta:
        meta = FileMeta(
            id=str(uuid.uuid4()),
            filename=filename,
            file_type=file_type,
            original_name=original_name,
            row_count=row_count,
            uploaded_at=datetime.now(UTC),
        )
        self.cursor.execute(
            "INSERT INTO files (id, filename, file_type, original_name, row_count, uploaded_at) "
            "VALUES (%s, %s, %s, %s, %s, %s)",
            (meta.id, meta.filename, meta.file_type, meta.original_name, meta.row_count, meta.uploaded_at),
        )
        return meta

    def update_row_count(self, file_id: str, row_count: int) -> None:
        self.cursor.execute("UPDATE files SET row_count = %s WHERE id = %s", (row_count, file_id))

    def insert_records(
        self,
        records: Iterable[FieldRecord],
        metrics_callback: Callable[[BatchMetrics], None] | None = None,
    ) -> int:
        """Insert records in chunks of batch_size; returns the number inserted."""
        rows = [
            (
                str(uuid.uuid4()),
                r.file_id,
                r.sheet_or_node,
                r.field_name,
                r.field_value,
                r.row_num,
                r.parent_context,
                r.full_path,
            )
            for r in records
        ]
        result = batch_insert(
            self.cursor,
            "parsed_records",
            RECORD_COLUMNS,
            rows,
            batch_size=self.batch_size,
            metrics_callback=metrics_callback,
        )
        logger.debug("inserted records=%d batches=%d", result.inserted_rows, result.batches)
        return result.inserted_rows

    # --- reads ------------------------------------------------------------------
    def get_file(self, file_id: str) -> FileMeta | None:
        self.cursor.execute(f"SELECT {_FILE_COLUMNS_SQL} FROM files f WHERE f.id = %s", (file_id,))
        row = self.cursor.fetchone()
        return _file_from_row(row) if row else None

    def get_record(self, record_id: str) -> StoredRecord | None:
        self.cursor.execute(f"{_RECORD_SELECT_SQL} WHERE r.id = %s", (record_id,))
        row = self.cursor.fetchone()
        return _stored_from_row(row) if row else None

    def get_records(self, record_ids: Sequence[str]) -> list[StoredRecord]:
        """Records in the order of record_ids; unknown ids are dropped."""
        if not record_ids:
            return []
        self.cursor.execute(f"{_RECORD_SELECT_SQL} WHERE r.id = ANY(%s)", (list(record_ids),))
        by_id = {s.id: s for s in (_stored_from_row(row) for row in self.cursor.fetchall())}
        return [by_id[i] for i in record_ids if i in by_id]

    def search(
        self,
        query: str = "",
        file_type: str = "",
        field_name: str = "",
        sheet: str = "",
        active_sheets: Sequence[str] = (),
        page: int = 1,
        page_size: int = 20,
    ) -> SearchPage:
        """Case-insensitive substring search, ordered by sheet, row, id."""
        page = max(page, 1)
        page_size = max(page_size, 1)
        clauses: list[str] = []
        params: list[Any] = []
        if query:
            like = like_pattern(query)
            clauses.append(
                "(r.field_name ILIKE %s ESCAPE '\\' OR r.field_value ILIKE %s ESCAPE '\\' "
                "OR r.parent_context ILIKE %s ESCAPE '\\' OR r.full_path ILIKE %s ESCAPE '\\')"
            )
            params.extend([like] * 4)
        if file_type:
            clauses.append("lower(f.file_type) = lower(%s)")
            params.append(file_type)
        if field_name:
            clauses.append("lower(r.field_name) = lower(%s)")
            params.append(field_name)
        if sheet:
            clauses.append("lower(r.sheet_or_node) = lower(%s)")
            params.append(sheet)
        elif active_sheets:
            clauses.append("lower(r.sheet_or_node) = ANY(%s)")
            params.append([s.lower() for s in active_sheets])
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""

        self.cursor.execute(
            f"SELECT count(*) FROM parsed_records r JOIN files f ON f.id = r.file_id{where}", tuple(params)
        )
        total = int(self.cursor.fetchone()[0])

        self.cursor.execute(
            f"{_RECORD_SELECT_SQL}{where} ORDER BY r.sheet_or_node ASC, r.row_num ASC, r.id ASC LIMIT %s OFFSET %s",
            (*params, page_size, (page - 1) * page_size),
        )
        records = [_stored_from_row(row) for row in self.cursor.fetchall()]
        return SearchPage(records=records, total=total, page=page, page_size=page_size)

    def filters(self, limit: int = 100) -> FilterOptions:
        """Distinct file types, most common field names, and non-blank sheets with counts."""
        self.cursor.execute("SELECT DISTINCT file_type FROM files ORDER BY file_type")
        file_types = [row[0] for row in self.cursor.fetchall()]

        self.cursor.execute(
            "SELECT field_name, count(*) AS n FROM parsed_records GROUP BY field_name ORDER BY n DESC, field_name LIMIT %s",
            (limit,),
        )
        field_names = [row[0] for row in self.cursor.fetchall()]

        self.cursor.execute(
            "SELECT sheet_or_node, count(*) AS n FROM parsed_records "
            "WHERE sheet_or_node IS NOT NULL AND btrim(sheet_or_node) <> '' "
            "GROUP BY sheet_or_node ORDER BY n DESC, sheet_or_node LIMIT %s",
            (limit,),
        )
        sheet_rows = self.cursor.fetchall()
        return FilterOptions(
            file_types=file_types,
            field_names=field_names,
            sheets=[row[0] for row in sheet_rows],
            sheet_counts={row[0]: int(row[1]) for row in sheet_rows},
        )

    # --- file management --------------------------------------------------------
    def list_files(self, limit: int | None = None) -> list[FileMeta]:
        """Uploaded files, newest first."""
        sql = f"SELECT {_FILE_COLUMNS_SQL} FROM files f ORDER BY f.uploaded_at DESC, f.id"
        if limit is not None:
            self.cursor.execute(f"{sql} LIMIT %s", (limit,))
        else:
            self.cursor.execute(sql)
        return [_file_from_row(row) for row in self.cursor.fetchall()]

    def delete_file(self, file_id: str) -> bool:
        """Delete a file and all of its records; False when the file does not exist.

        Runs inside the caller's transaction (begin / commit).
        """
        self.cursor.execute("DELETE FROM parsed_records WHERE file_id = %s", (file_id,))
        self.cursor.execute("DELETE FROM files WHERE id = %s RETURNING id", (file_id,))
        deleted = self.cursor.fetchone() is not None
        logger.debug("delete file_id=%s deleted=%s", file_id, deleted)
        return deleted

    def diagnostics(self, upload_directory: str | Path, logs_directory: str | Path) -> Diagnostics:
        """Directory state plus file / record counts by type and sheet."""
        self.cursor.execute("SELECT count(*) FROM files")
        file_count = int(self.cursor.fetchone()[0])
        self.cursor.execute("SELECT count(*) FROM parsed_records")
        record_count = int(self.cursor.fetchone()[0])

        self.cursor.execute("SELECT file_type, count(*) FROM files GROUP BY file_type ORDER BY file_type")
        file_types = {row[0]: int(row[1]) for row in self.cursor.fetchall()}

        self.cursor.execute(
            "SELECT sheet_or_node, count(*) FROM parsed_records "
            "WHERE sheet_or_node IS NOT NULL AND btrim(sheet_or_node) <> '' "
            "GROUP BY sheet_or_node ORDER BY sheet_or_node"
        )
        sheet_counts = {row[0]: int(row[1]) for row in self.cursor.fetchall()}

        return Diagnostics(
            generated_at=datetime.now(UTC),
            uploads=DirectoryState.scan(Path(upload_directory)),
            logs=DirectoryState.scan(Path(logs_directory), pattern="errors-*.log"),
            files=file_count,
            records=record_count,
            file_types=file_types,
            sheet_counts=sheet_counts,
        )
