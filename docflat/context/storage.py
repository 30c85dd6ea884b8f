from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import requests

from docflat.config.loader import AppConfig, StorageConfig, resolve_storage_config
from docflat.errors import DocflatError
from docflat.models.source_file import FileMeta

"""Source buffer resolution.

Context reconstruction and preview re-read the original upload. Where it lives
is an ordered list of strategies (remote object storage first, then local
directories); each returns a tagged FetchResult instead of raising, and the
caller takes the first success.
"""

__all__ = [
    "StorageError",
    "FetchResult",
    "SourceStrategy",
    "RemoteBlobStorage",
    "LocalDirectoryStorage",
    "build_strategies",
    "resolve_source",
]

logger = logging.getLogger(__name__)


class StorageError(DocflatError):
    pass


@dataclass(frozen=True)
class FetchResult:
    ok: bool
    source: str
    data: bytes | None = None
    reason: str | None = None

    @classmethod
    def hit(cls, source: str, data: bytes) -> FetchResult:
        return cls(ok=True, source=source, data=data)

    @classmethod
    def miss(cls, source: str, reason: str) -> FetchResult:
        return cls(ok=False, source=source, reason=reason)


class SourceStrategy(Protocol):
    name: str

    def fetch(self, meta: FileMeta) -> FetchResult: ...


class RemoteBlobStorage:
    """HTTP object storage: GET {url}/storage/v1/object/{bucket}/{filename}."""

    def __init__(self, cfg: StorageConfig, session: requests.Session | None = None, name: str = "remote") -> None:
        self.cfg = cfg
        self.name = name
        self._session = session or requests.Session()

    def object_url(self, filename: str) -> str:
        base = (self.cfg.url or "").rstrip("/")
        return f"{base}/storage/v1/object/{self.cfg.bucket}/{filename}"

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/octet-stream"}
        if self.cfg.api_key:
            headers["Authorization"] = f"Bearer {self.cfg.api_key}"
        return headers

    def download(self, filename: str) -> bytes:
        """Raises StorageError on transport failure or a non-2xx status."""
        url = self.object_url(filename)
        try:
            response = self._session.get(url, headers=self._headers(), timeout=self.cfg.timeout)
            response.raise_for_status()
        except requests.HTTPError as e:
            raise StorageError(f"download failed ({e.response.status_code}): {filename}") from e
        except requests.RequestException as e:
            raise StorageError(f"download failed: {filename}: {e}") from e
        return response.content

    def fetch(self, meta: FileMeta) -> FetchResult:
        if not self.cfg.enabled:
            return FetchResult.miss(self.name, "remote storage not configured")
        try:
            data = self.download(meta.filename)
        except StorageError as e:
            logger.warning("remote fetch failed file=%s: %s", meta.filename, e)
            return FetchResult.miss(self.name, str(e))
        logger.debug("remote fetch ok file=%s bytes=%d", meta.filename, len(data))
        return FetchResult.hit(self.name, data)


class LocalDirectoryStorage:
    """Files under one directory, matched exactly then case-insensitively
    against the stored filename or the original upload name."""

    def __init__(self, directory: Path | str, name: str | None = None) -> None:
        self.directory = Path(directory)
        self.name = name or f"local:{self.directory}"

    def _locate(self, meta: FileMeta) -> Path | None:
        exact = self.directory / meta.filename
        if exact.is_file():
            return exact
        wanted = {meta.filename.lower(), (meta.original_name or "").lower()}
        for candidate in sorted(self.directory.iterdir()):
            if candidate.is_file() and candidate.name.lower() in wanted:
                return candidate
        return None

    def fetch(self, meta: FileMeta) -> FetchResult:
        if not self.directory.is_dir():
            return FetchResult.miss(self.name, f"directory not found: {self.directory}")
        try:
            path = self._locate(meta)
            if path is None:
                return FetchResult.miss(
                    self.name, f"file not found: {meta.filename} (original name: {meta.original_name})"
                )
            data = path.read_bytes()
        except OSError as e:
            return FetchResult.miss(self.name, f"read failed in {self.directory}: {e}")
        logger.debug("local fetch ok path=%s bytes=%d", path, len(data))
        return FetchResult.hit(self.name, data)


def build_strategies(cfg: AppConfig, session: requests.Session | None = None) -> list[SourceStrategy]:
    """Remote storage (env overrides applied), upload directory, then fallback directories."""
    strategies: list[SourceStrategy] = []
    storage = resolve_storage_config(cfg.storage)
    if storage.enabled:
        strategies.append(RemoteBlobStorage(storage, session=session))
    strategies.append(LocalDirectoryStorage(cfg.upload_directory, name="uploads"))
    for directory in cfg.fallback_directories:
        strategies.append(LocalDirectoryStorage(directory))
    return strategies


def resolve_source(
    meta: FileMeta, strategies: Sequence[SourceStrategy]
) -> tuple[FetchResult | None, list[FetchResult]]:
    """First successful fetch (or None) and the misses that preceded it."""
    misses: list[FetchResult] = []
    for strategy in strategies:
        result = strategy.fetch(meta)
        if result.ok:
            return result, misses
        misses.append(result)
    return None, misses
