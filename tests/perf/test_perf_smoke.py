from __future__ import annotations

import time

from docflat.extraction.extractor import extract
from docflat.parsers.csv_parser import parse_csv

"""Performance smoke tests: generous time limits so CI stays stable."""

ROWS = 5_000


def _csv_bytes(rows: int) -> bytes:
    lines = ["Name,Brand,RAM,Storage,Price"]
    lines += [f"Item {i},Acme,{8 + i % 4 * 8}GB DDR4,512GB SSD,${100 + i}" for i in range(rows)]
    return ("\n".join(lines) + "\n").encode("utf-8")


def test_csv_flatten_throughput():
    buffer = _csv_bytes(ROWS)
    start = time.perf_counter()
    result = parse_csv(buffer, "perf")
    elapsed = time.perf_counter() - start
    assert result.row_count == ROWS
    assert len(result.records) == ROWS * 5
    throughput = len(result.records) / elapsed
    assert throughput > 5_000, f"csv flatten too slow: {throughput:.0f} records/s"


def test_extraction_time_limit():
    records = parse_csv(_csv_bytes(ROWS), "perf").records
    start = time.perf_counter()
    products = extract(records)
    elapsed = time.perf_counter() - start
    # CSV は 1 シート = 1 グループ
    assert len(products) == 1
    assert elapsed < 5.0, f"extraction too slow: {elapsed:.3f}s"
