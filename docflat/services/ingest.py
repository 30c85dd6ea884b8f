from __future__ import annotations

import logging
import re
import time
import uuid
from datetime import UTC, datetime
from pathlib import Path

from ..config.loader import AppConfig
from ..db.record_store import RecordStore
from ..errors import DocflatError, ParseError, UnsupportedFileTypeError
from ..logging.error_log import ErrorLogBuffer
from ..models.processing_result import FileStat, FileStatus, IngestResult
from ..parsers.dispatch import SUPPORTED_FILE_TYPES, detect_file_type, parse_document
from .progress import ProgressTracker

"""Ingest service: upload buffers -> flattened records -> record store.

Partial-failure policy:
- unsupported file type -> SKIPPED, batch continues
- spreadsheet / CSV parse failure -> FAILED, file metadata kept with zero records
- storage failure -> FAILED, the file's transaction rolled back
Only a missing / unreadable source directory is fatal (IngestError).

store=None is mock mode: nothing is persisted, file ids are generated locally.
"""

__all__ = [
    "IngestError",
    "scan_source_files",
    "storage_filename",
    "ingest_buffer",
    "ingest_directory",
]

logger = logging.getLogger(__name__)


class IngestError(DocflatError):
    pass


def scan_source_files(directory: Path) -> list[Path]:
    """All regular files directly under directory (non-recursive), sorted by name.

    Raises:
        IngestError: directory missing, not a directory, or unreadable
    """
    if not directory.exists():
        raise IngestError(f"Directory not found: {directory}")
    if not directory.is_dir():
        raise IngestError(f"Path is not a directory: {directory}")
    try:
        return sorted((p for p in directory.iterdir() if p.is_file()), key=lambda p: p.name)
    except OSError as e:
        raise IngestError(f"Error reading directory {directory}: {e}") from e


def storage_filename(original_name: str) -> str:
    """Unique storage key: '<uuid>-<name with whitespace runs replaced by ->'."""
    safe_name = re.sub(r"\s+", "-", original_name)
    return f"{uuid.uuid4()}-{safe_name}"


def _save_upload(buffer: bytes, filename: str, upload_directory: str) -> Path | None:
    # context / preview は後でこのコピーを読み直す
    target = Path(upload_directory) / filename
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(buffer)
    except OSError as e:
        logger.warning("could not keep upload copy %s: %s", target, e)
        return None
    return target


def ingest_buffer(
    buffer: bytes,
    original_name: str,
    config: AppConfig,
    store: RecordStore | None = None,
    error_log: ErrorLogBuffer | None = None,
) -> FileStat:
    """Flatten and store a single upload. Never raises for per-file failures."""
    error_log = error_log if error_log is not None else ErrorLogBuffer()
    started = time.perf_counter()
    file_type = detect_file_type(original_name)

    if file_type not in SUPPORTED_FILE_TYPES:
        err = UnsupportedFileTypeError(file_type)
        logger.warning("skip %s: %s", original_name, err)
        error_log.report(file=original_name, error_type="UNSUPPORTED_FILE_TYPE", message=str(err))
        return FileStat(file_name=original_name, file_type=file_type or None, status=FileStatus.SKIPPED, error=str(err))

    def _stat(status: FileStatus, **kwargs) -> FileStat:
        return FileStat(
            file_name=original_name,
            file_type=file_type,
            status=status,
            elapsed_seconds=time.perf_counter() - started,
            **kwargs,
        )

    filename = storage_filename(original_name)
    _save_upload(buffer, filename, config.upload_directory)

    if store is not None:
        try:
            store.begin()
            file_id = store.create_file(filename, file_type, original_name).id
        except Exception as e:
            _safe_rollback(store, original_name, error_log)
            logger.error("file=%s could not be registered: %s", original_name, e)
            error_log.report(file=original_name, error_type="DB_ERROR", message=str(e))
            return _stat(FileStatus.FAILED, error=f"register failed: {e}")
    else:
        file_id = str(uuid.uuid4())

    try:
        result = parse_document(
            buffer, file_type, file_id, error_log=error_log, settings=config.parser, file_name=original_name
        )
    except ParseError as e:
        # 0 件として保存を続行 (メタデータは残す)
        logger.error("file=%s parse failed: %s", original_name, e)
        if store is not None:
            try:
                store.commit()
            except Exception as commit_e:
                _safe_rollback(store, original_name, error_log)
                error_log.report(file=original_name, error_type="DB_ERROR", message=str(commit_e))
        return _stat(FileStatus.FAILED, file_id=file_id, error=str(e))

    if result.has_images:
        logger.warning(
            "file=%s contains images or drawings; they are not part of the flattened records", original_name
        )

    inserted = len(result.records)
    if store is not None:
        try:
            store.update_row_count(file_id, result.row_count)
            inserted = store.insert_records(result.records)
            store.commit()
        except Exception as e:
            _safe_rollback(store, original_name, error_log)
            logger.error("file=%s storage failed: %s", original_name, e)
            error_log.report(file=original_name, error_type="DB_ERROR", message=str(e))
            return _stat(FileStatus.FAILED, file_id=file_id, rows=result.row_count, error=str(e))

    logger.info(
        "file=%s type=%s records=%d rows=%d", original_name, file_type, inserted, result.row_count
    )
    return _stat(
        FileStatus.SUCCESS,
        file_id=file_id,
        records=inserted,
        rows=result.row_count,
        has_images=result.has_images,
    )


def _safe_rollback(store: RecordStore, file_name: str, error_log: ErrorLogBuffer) -> None:
    try:
        store.rollback()
    except Exception as e:
        error_log.report(file=file_name, error_type="TRANSACTION_ROLLBACK_ERROR", message=str(e))


def ingest_directory(
    config: AppConfig,
    store: RecordStore | None = None,
    error_log: ErrorLogBuffer | None = None,
) -> IngestResult:
    """Ingest every file of config.source_directory, one transaction per file.

    Raises:
        IngestError: source directory missing or unreadable
    """
    start_time = datetime.now(UTC)
    error_log = error_log if error_log is not None else ErrorLogBuffer()
    paths = scan_source_files(Path(config.source_directory))

    file_stats: list[FileStat] = []
    counts = {FileStatus.SUCCESS: 0, FileStatus.FAILED: 0, FileStatus.SKIPPED: 0}
    total_records = 0
    total_rows = 0

    with ProgressTracker(len(paths)) as progress:
        for path in paths:
            progress.start_file(path)
            try:
                buffer = path.read_bytes()
            except OSError as e:
                logger.error("file=%s unreadable: %s", path.name, e)
                error_log.report(file=path.name, error_type="READ_ERROR", message=str(e))
                stat = FileStat(
                    file_name=path.name, file_type=detect_file_type(path.name), status=FileStatus.FAILED, error=str(e)
                )
            else:
                stat = ingest_buffer(buffer, path.name, config, store=store, error_log=error_log)
            file_stats.append(stat)
            counts[stat.status] += 1
            if stat.status == FileStatus.SUCCESS:
                total_records += stat.records
                total_rows += stat.rows
            progress.set_postfix(
                success=counts[FileStatus.SUCCESS], failed=counts[FileStatus.FAILED], records=total_records
            )
            progress.finish_file()

    try:
        path = error_log.flush()
        if path is not None:
            logger.info("error log written: %s", path)
    except OSError as e:
        logger.warning("error log flush failed: %s", e)

    end_time = datetime.now(UTC)
    elapsed = (end_time - start_time).total_seconds()
    return IngestResult(
        success_files=counts[FileStatus.SUCCESS],
        failed_files=counts[FileStatus.FAILED],
        skipped_files=counts[FileStatus.SKIPPED],
        total_records=total_records,
        total_rows=total_rows,
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=elapsed,
        throughput_records_per_sec=total_records / elapsed if elapsed > 0 else 0.0,
        file_stats=file_stats,
    )
