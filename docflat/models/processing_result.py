from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

"""Ingest result models.

FileStat tracks one uploaded document through flattening and storage;
IngestResult aggregates a whole batch for the SUMMARY line.
"""


class FileStatus(Enum):
    """Status of one file in an ingest batch.

    - SUCCESS: parsed and stored (possibly zero records, e.g. invalid XML)
    - FAILED: parse or storage failure; zero records kept for the file
    - SKIPPED: unsupported file type, never parsed
    """
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class FileStat:
    """Per-file ingest statistics."""
    file_name: str
    file_type: str | None
    status: FileStatus
    records: int = 0  # 保存したフィールドレコード数
    rows: int = 0  # parser が返した rowCount
    elapsed_seconds: float = 0.0
    file_id: str | None = None
    has_images: bool = False
    error: str | None = None


@dataclass(frozen=True)
class IngestResult:
    """Aggregated results for one ingest batch."""
    success_files: int
    failed_files: int
    skipped_files: int
    total_records: int
    total_rows: int
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    throughput_records_per_sec: float
    file_stats: list[FileStat] | None = None

    @property
    def total_files(self) -> int:
        return self.success_files + self.failed_files + self.skipped_files
