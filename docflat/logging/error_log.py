from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from docflat.models.error_record import ErrorRecord

"""Error log generation & buffering module.

The external error-logging collaborator the parsers report to:
- JSON Lines, fixed schema (no extra keys)
- one `logs/errors-YYYYMMDD-HHMMSS.log` (UTC) per process, created on first flush
- buffered; the ingest service flushes once per batch
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class ErrorLogBuffer:
    """In-memory buffer for error records. Flush writes JSON Lines.

    スレッド安全性不要 (one buffer per ingest call, serial execution).
    """
    def __init__(self, logs_dir: Path | None = None) -> None:
        self._records: list[ErrorRecord] = []
        self._file_path: Path | None = None
        self._logs_dir = logs_dir or LOGS_DIR

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"errors-{stamp}.log"
        return self._file_path

    @property
    def records(self) -> list[ErrorRecord]:
        return list(self._records)

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)

    def report(self, file: str, error_type: str, message: str, sheet: str = "<FILE_LEVEL>", row: int = -1) -> None:
        """Shortcut: build an ErrorRecord with the current timestamp and buffer it."""
        self.append(ErrorRecord.create(file=file, sheet=sheet, row=row, error_type=error_type, message=message))

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    def flush(self) -> Path | None:
        """Append buffered records to the log file. Returns None when nothing was buffered."""
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
