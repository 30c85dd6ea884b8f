# Shared pytest fixtures
from __future__ import annotations

import io
import tempfile
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path

import pandas as pd
import pytest

from docflat.logging.init import reset_logging
from docflat.models.field_record import FieldRecord
from docflat.models.source_file import FileMeta, StoredRecord

Rows = list[list[object]]


@pytest.fixture(autouse=True)
def _fresh_logging():
    # setup_logging は stdout をハンドラ生成時に掴むため capsys ごとにリセット
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        (p / "uploads").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("PGDSN", raising=False)
        monkeypatch.delenv("STORAGE_URL", raising=False)
        monkeypatch.delenv("STORAGE_BUCKET", raising=False)
        monkeypatch.delenv("STORAGE_API_KEY", raising=False)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """source_directory: ./data
upload_directory: ./uploads
fallback_directories:
  - ./tmp
batch_size: 2
csv_sheet_name: Sheet1
markup_rate: 10
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "docflat.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


def _write_workbook(target, sheets: dict[str, Rows]) -> None:
    with pd.ExcelWriter(target, engine="openpyxl") as writer:
        for sheet_name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, header=False, index=False)


@pytest.fixture()
def workbook_bytes() -> Callable[[dict[str, Rows]], bytes]:
    """Build an xlsx workbook in memory: {sheet: [header_row, data_row, ...]}."""
    def build(sheets: dict[str, Rows]) -> bytes:
        buf = io.BytesIO()
        _write_workbook(buf, sheets)
        return buf.getvalue()
    return build


@pytest.fixture()
def make_workbook() -> Callable[[Path, dict[str, Rows]], Path]:
    def build(path: Path, sheets: dict[str, Rows]) -> Path:
        _write_workbook(path, sheets)
        return path
    return build


class DummyCursor:
    """Records executed SQL; fetch results are queued by the test."""

    def __init__(self) -> None:
        self.executed: list[tuple[str, tuple | None]] = []
        self.fetchone_results: list[tuple | None] = []
        self.fetchall_results: list[list[tuple]] = []

    def execute(self, sql: str, params: tuple | None = None) -> None:
        self.executed.append((sql, params))

    def fetchone(self):
        return self.fetchone_results.pop(0) if self.fetchone_results else None

    def fetchall(self):
        return self.fetchall_results.pop(0) if self.fetchall_results else []

    @property
    def statements(self) -> list[str]:
        return [sql for sql, _ in self.executed]


@pytest.fixture()
def dummy_cursor() -> DummyCursor:
    return DummyCursor()


@pytest.fixture()
def fake_execute_values(monkeypatch):
    """Replace psycopg2 execute_values with a recorder (no database needed)."""
    import docflat.db.batch_insert as bi
    calls: list[dict] = []

    def fake(cursor, sql, rows, page_size=1000, template=None):
        calls.append({"sql": sql, "rows": list(rows), "page_size": page_size})

    monkeypatch.setattr(bi, "execute_values", fake)
    return calls


class InMemoryStore:
    """RecordStore stand-in: dict storage, writes become visible on commit."""

    def __init__(self, fail_on_insert: bool = False) -> None:
        self.files: dict[str, FileMeta] = {}
        self.records: dict[str, StoredRecord] = {}
        self.fail_on_insert = fail_on_insert
        self.calls: list[str] = []
        self._pending_files: dict[str, FileMeta] = {}
        self._pending_records: list[tuple[str, FieldRecord]] = []
        self._seq = 0

    def _next_id(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}-{self._seq}"

    def begin(self) -> None:
        self.calls.append("BEGIN")

    def commit(self) -> None:
        self.calls.append("COMMIT")
        self.files.update(self._pending_files)
        for rec_id, record in self._pending_records:
            self.records[rec_id] = StoredRecord(id=rec_id, record=record, file=self.files[record.file_id])
        self._pending_files = {}
        self._pending_records = []

    def rollback(self) -> None:
        self.calls.append("ROLLBACK")
        self._pending_files = {}
        self._pending_records = []

    def ensure_schema(self) -> None:
        self.calls.append("SCHEMA")

    def create_file(self, filename: str, file_type: str, original_name: str, row_count: int = 0) -> FileMeta:
        meta = FileMeta(
            id=self._next_id("file"), filename=filename, file_type=file_type, original_name=original_name,
            row_count=row_count,
        )
        self._pending_files[meta.id] = meta
        return meta

    def update_row_count(self, file_id: str, row_count: int) -> None:
        self._pending_files[file_id] = replace(self._pending_files[file_id], row_count=row_count)

    def insert_records(self, records, metrics_callback=None) -> int:
        if self.fail_on_insert:
            raise RuntimeError("insert failed")
        records = list(records)
        self._pending_records.extend((self._next_id("rec"), r) for r in records)
        return len(records)

    def get_file(self, file_id: str) -> FileMeta | None:
        return self.files.get(file_id)

    def get_record(self, record_id: str) -> StoredRecord | None:
        return self.records.get(record_id)

    def get_records(self, record_ids) -> list[StoredRecord]:
        return [self.records[i] for i in record_ids if i in self.records]

    def list_files(self, limit: int | None = None) -> list[FileMeta]:
        newest_first = list(reversed(self.files.values()))
        return newest_first if limit is None else newest_first[:limit]

    def delete_file(self, file_id: str) -> bool:
        self.calls.append(f"DELETE {file_id}")
        if self.files.pop(file_id, None) is None:
            return False
        self.records = {k: s for k, s in self.records.items() if s.record.file_id != file_id}
        return True

    def find(self, field_name: str, field_value: str) -> StoredRecord:
        return next(
            s for s in self.records.values() if s.field_name == field_name and s.field_value == field_value
        )


@pytest.fixture()
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def failing_store() -> InMemoryStore:
    return InMemoryStore(fail_on_insert=True)
