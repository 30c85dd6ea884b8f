from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from psycopg2.extras import execute_values

from docflat.errors import DocflatError

"""Chunked batch INSERT with psycopg2.extras.execute_values.

Rows are sent in chunks of `batch_size` (one execute_values call per chunk) to
bound per-call payload size. Chunk order carries no meaning: every record
locates itself through fullPath / rowNum.
"""

__all__ = [
    "BatchInsertError",
    "BatchMetrics",
    "InsertResult",
    "batch_insert",
]

DEFAULT_BATCH_SIZE = 1000


class BatchInsertError(DocflatError):
    pass


@dataclass(frozen=True)
class BatchMetrics:
    """Timing of a single chunk."""
    batch_size: int
    elapsed_seconds: float
    start_time: float
    end_time: float


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int
    batches: int = 0


def _chunks(rows: list[Sequence[Any]], size: int) -> Iterable[list[Sequence[Any]]]:
    for start in range(0, len(rows), size):
        yield rows[start : start + size]


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    batch_size: int = DEFAULT_BATCH_SIZE,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> InsertResult:
    """Insert rows into table in chunks.

    Parameters
    ----------
    cursor: psycopg2 cursor
    table: 対象テーブル名 (サニタイズ済み想定)
    columns: 挿入列
    rows: 行シーケンス
    batch_size: rows per execute_values call
    metrics_callback: receives BatchMetrics per chunk (not called for empty input)
    """
    if batch_size <= 0:
        raise BatchInsertError(f"batch_size must be positive: {batch_size}")

    rows_list = list(rows)
    if not rows_list:
        return InsertResult(inserted_rows=0, batches=0)

    cols_sql = ",".join(f'"{c}"' for c in columns)
    sql = f"INSERT INTO {table} ({cols_sql}) VALUES %s"

    batches = 0
    for chunk in _chunks(rows_list, batch_size):
        start_time = time.time()
        try:
            execute_values(cursor, sql, chunk, page_size=len(chunk))
        except Exception as e:
            raise BatchInsertError(f"{table}: batch {batches + 1} failed: {e}") from e
        finally:
            end_time = time.time()
            if metrics_callback is not None:
                metrics_callback(
                    BatchMetrics(
                        batch_size=len(chunk),
                        elapsed_seconds=end_time - start_time,
                        start_time=start_time,
                        end_time=end_time,
                    )
                )
        batches += 1

    return InsertResult(inserted_rows=len(rows_list), batches=batches)
