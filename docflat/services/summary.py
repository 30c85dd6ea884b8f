from __future__ import annotations

from ..models.processing_result import IngestResult

"""SUMMARY line rendering for an ingest batch.

Format:
SUMMARY files={done}/{total} success={n} failed={n} skipped={n} records={n}
rows={n} elapsed_sec={x} throughput_rps={x}
"""


def _format_number(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # 指数表記を避ける
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_line(result: IngestResult) -> str:
    """Render the SUMMARY line for an ingest batch.

    Examples:
        >>> from datetime import datetime, timezone
        >>> start = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        >>> end = datetime(2024, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
        >>> result = IngestResult(
        ...     success_files=1, failed_files=0, skipped_files=1, total_records=1000,
        ...     total_rows=200, start_time=start, end_time=end,
        ...     elapsed_seconds=2.0, throughput_records_per_sec=500.0,
        ... )
        >>> render_summary_line(result)
        'SUMMARY files=1/2 success=1 failed=0 skipped=1 records=1000 rows=200 elapsed_sec=2 throughput_rps=500'
    """
    processed = result.success_files + result.failed_files
    return (
        f"SUMMARY files={processed}/{result.total_files} "
        f"success={result.success_files} "
        f"failed={result.failed_files} "
        f"skipped={result.skipped_files} "
        f"records={result.total_records} "
        f"rows={result.total_rows} "
        f"elapsed_sec={_format_number(result.elapsed_seconds)} "
        f"throughput_rps={_format_number(result.throughput_records_per_sec)}"
    )
