from __future__ import annotations

import json
from pathlib import Path

import pytest

from docflat.config.loader import AppConfig
from docflat.logging.error_log import ErrorLogBuffer
from docflat.models.processing_result import FileStatus
from docflat.services.ingest import (
    IngestError,
    ingest_buffer,
    ingest_directory,
    scan_source_files,
    storage_filename,
)


@pytest.fixture()
def cfg(tmp_path: Path) -> AppConfig:
    (tmp_path / "data").mkdir()
    return AppConfig(source_directory=str(tmp_path / "data"), upload_directory=str(tmp_path / "uploads"))


@pytest.fixture()
def error_log(tmp_path: Path) -> ErrorLogBuffer:
    return ErrorLogBuffer(logs_dir=tmp_path / "logs")


def test_storage_filename_is_unique_and_dashed():
    a = storage_filename("price list 2024.xlsx")
    b = storage_filename("price list 2024.xlsx")
    assert a != b
    assert a.endswith("-price-list-2024.xlsx")
    assert len(a) == 36 + 1 + len("price-list-2024.xlsx")


def test_scan_source_files(tmp_path):
    (tmp_path / "b.csv").write_text("x")
    (tmp_path / "a.xml").write_text("<a/>")
    (tmp_path / "sub").mkdir()
    assert [p.name for p in scan_source_files(tmp_path)] == ["a.xml", "b.csv"]
    with pytest.raises(IngestError, match="Directory not found"):
        scan_source_files(tmp_path / "missing")
    with pytest.raises(IngestError, match="not a directory"):
        scan_source_files(tmp_path / "b.csv")


def test_ingest_buffer_stores_records_and_upload_copy(cfg, memory_store, error_log):
    stat = ingest_buffer(b"name,price\nWidget,$5\n", "items.csv", cfg, store=memory_store, error_log=error_log)
    assert stat.status == FileStatus.SUCCESS
    assert (stat.records, stat.rows) == (2, 1)
    assert memory_store.calls == ["BEGIN", "COMMIT"]

    meta = memory_store.get_file(stat.file_id)
    assert meta.original_name == "items.csv"
    assert meta.row_count == 1
    assert (Path(cfg.upload_directory) / meta.filename).read_bytes() == b"name,price\nWidget,$5\n"
    assert len(error_log) == 0


def test_ingest_buffer_unsupported_type_is_skipped(cfg, memory_store, error_log):
    stat = ingest_buffer(b"hello", "notes.txt", cfg, store=memory_store, error_log=error_log)
    assert stat.status == FileStatus.SKIPPED
    assert memory_store.calls == []
    assert error_log.records[0].error_type == "UNSUPPORTED_FILE_TYPE"


def test_ingest_buffer_parse_failure_keeps_metadata(cfg, memory_store, error_log):
    stat = ingest_buffer(b"not a workbook", "broken.xlsx", cfg, store=memory_store, error_log=error_log)
    assert stat.status == FileStatus.FAILED
    assert memory_store.calls == ["BEGIN", "COMMIT"]
    assert memory_store.get_file(stat.file_id).row_count == 0
    assert memory_store.records == {}
    assert error_log.records[0].error_type == "PARSE_ERROR"


def test_ingest_buffer_invalid_xml_is_success_with_zero_records(cfg, memory_store, error_log):
    stat = ingest_buffer(b"<a><b>", "bad.xml", cfg, store=memory_store, error_log=error_log)
    assert stat.status == FileStatus.SUCCESS
    assert stat.records == 0
    assert [r.error_type for r in error_log.records] == ["PARSE_ERROR"]


def test_ingest_buffer_storage_failure_rolls_back(cfg, failing_store, error_log):
    stat = ingest_buffer(b"name\nWidget\n", "items.csv", cfg, store=failing_store, error_log=error_log)
    assert stat.status == FileStatus.FAILED
    assert failing_store.calls == ["BEGIN", "ROLLBACK"]
    assert failing_store.files == {}
    assert error_log.records[-1].error_type == "DB_ERROR"


def test_ingest_buffer_mock_mode(cfg, error_log):
    stat = ingest_buffer(b"<item><name>A</name></item>", "one.xml", cfg, store=None, error_log=error_log)
    assert stat.status == FileStatus.SUCCESS
    assert stat.file_id
    assert stat.records == 1


def test_ingest_directory_mixed_batch(cfg, memory_store, error_log, make_workbook, tmp_path):
    data = Path(cfg.source_directory)
    make_workbook(data / "laptops.xlsx", {"Laptops": [["Brand", "RAM"], ["Acme", "16GB"], ["Bolt", "8GB"]]})
    (data / "items.csv").write_text("name\nWidget\n", encoding="utf-8")
    (data / "broken.xlsx").write_bytes(b"garbage")
    (data / "readme.txt").write_text("skip me", encoding="utf-8")

    result = ingest_directory(cfg, store=memory_store, error_log=error_log)

    assert (result.success_files, result.failed_files, result.skipped_files) == (2, 1, 1)
    assert result.total_files == 4
    # laptops: marker + 4 cells, items: 1 cell
    assert result.total_records == 6
    assert result.total_rows == 3
    assert [s.file_name for s in result.file_stats] == ["broken.xlsx", "items.csv", "laptops.xlsx", "readme.txt"]

    logs = list((tmp_path / "logs").glob("errors-*.log"))
    assert len(logs) == 1
    types = [json.loads(line)["error_type"] for line in logs[0].read_text(encoding="utf-8").splitlines()]
    assert types == ["PARSE_ERROR", "UNSUPPORTED_FILE_TYPE"]


def test_ingest_directory_missing_source(tmp_path):
    with pytest.raises(IngestError):
        ingest_directory(AppConfig(source_directory=str(tmp_path / "nope")))
