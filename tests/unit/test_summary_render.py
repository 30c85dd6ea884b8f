from __future__ import annotations

import re
from datetime import datetime, timezone

import pytest

from docflat.models.processing_result import IngestResult
from docflat.services.summary import _format_number, render_summary_line

SUMMARY_PATTERN = re.compile(
    r"^SUMMARY files=(\d+)/(\d+) success=(\d+) failed=(\d+) skipped=(\d+) records=(\d+) "
    r"rows=(\d+) elapsed_sec=([0-9.]+) throughput_rps=([0-9.]+)$"
)

START = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)


def make_result(**kwargs) -> IngestResult:
    values = dict(
        success_files=2,
        failed_files=0,
        skipped_files=0,
        total_records=1000,
        total_rows=250,
        start_time=START,
        end_time=START,
        elapsed_seconds=2.0,
        throughput_records_per_sec=500.0,
    )
    values.update(kwargs)
    return IngestResult(**values)


def test_render_summary_line_all_success():
    line = render_summary_line(make_result())
    assert line == (
        "SUMMARY files=2/2 success=2 failed=0 skipped=0 records=1000 rows=250 elapsed_sec=2 throughput_rps=500"
    )
    assert SUMMARY_PATTERN.match(line)


def test_render_summary_line_with_failures_and_skips():
    line = render_summary_line(make_result(success_files=1, failed_files=1, skipped_files=2))
    m = SUMMARY_PATTERN.match(line)
    assert m is not None
    assert m.group(1, 2) == ("2", "4")
    assert m.group(5) == "2"


def test_render_summary_line_no_files():
    line = render_summary_line(
        make_result(success_files=0, total_records=0, total_rows=0, elapsed_seconds=0.0, throughput_records_per_sec=0.0)
    )
    assert line.startswith("SUMMARY files=0/0 ")
    assert line.endswith("elapsed_sec=0 throughput_rps=0")


@pytest.mark.parametrize(
    "value, expected",
    [
        (0, "0"),
        (2.0, "2"),
        (1.23456, "1.235"),
        (0.5, "0.5"),
        (0.001234, "0.001234"),
    ],
)
def test_format_number(value, expected):
    assert _format_number(value) == expected
