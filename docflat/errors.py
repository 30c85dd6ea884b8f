from __future__ import annotations

"""Exception hierarchy shared across docflat modules.

Module-specific errors (ConfigError, BatchInsertError, StorageError, IngestError)
live beside the code that raises them and derive from DocflatError.
"""

__all__ = [
    "DocflatError",
    "UnsupportedFileTypeError",
    "ParseError",
]


class DocflatError(Exception):
    """Base class for all docflat errors."""


class UnsupportedFileTypeError(DocflatError):
    """Raised when a file-type tag has no parser."""

    def __init__(self, file_type: str) -> None:
        super().__init__(f"unsupported file type: {file_type!r}")
        self.file_type = file_type


class ParseError(DocflatError):
    """Raised when a spreadsheet or CSV buffer cannot be parsed (or no buffer was given)."""

    def __init__(self, file_type: str, message: str) -> None:
        super().__init__(f"{file_type}: {message}")
        self.file_type = file_type
