from __future__ import annotations

from datetime import UTC, datetime

from docflat.models.context import ContextResult, FilePreview
from docflat.models.field_record import FieldRecord
from docflat.models.processing_result import FileStat, FileStatus, IngestResult
from docflat.models.product import ExtractedProduct
from docflat.models.source_file import FileMeta, StoredRecord

"""Unit tests for the result / wire models."""


class TestFileStat:
    def test_defaults(self):
        stat = FileStat(file_name="a.csv", file_type="csv", status=FileStatus.SUCCESS)
        assert stat.records == 0
        assert stat.rows == 0
        assert stat.has_images is False
        assert stat.error is None


class TestIngestResult:
    def test_total_files_counts_every_status(self):
        now = datetime.now(UTC)
        result = IngestResult(
            success_files=3,
            failed_files=1,
            skipped_files=2,
            total_records=10,
            total_rows=4,
            start_time=now,
            end_time=now,
            elapsed_seconds=0.0,
            throughput_records_per_sec=0.0,
        )
        assert result.total_files == 6
        assert result.file_stats is None


class TestFieldRecord:
    def test_wire_round_trip(self):
        record = FieldRecord(
            file_id="f1", sheet_or_node="book[0]", field_name="title", field_value="X",
            parent_context="book", full_path="book[0]/title",
        )
        data = record.to_dict()
        assert list(data) == [
            "fileId", "sheetOrNode", "fieldName", "fieldValue", "rowNum", "parentContext", "fullPath",
        ]
        assert FieldRecord.from_dict(data) == record

    def test_sheet_marker_needs_row_zero(self):
        assert FieldRecord(file_id="f", sheet_or_node="S", field_name="_sheetName", field_value="S", row_num=0).is_sheet_marker
        assert not FieldRecord(file_id="f", sheet_or_node="S", field_name="_sheetName", field_value="S", row_num=2).is_sheet_marker


class TestStoredRecord:
    def test_to_dict_adds_file_fields(self):
        meta = FileMeta(id="f1", filename="u-a.csv", file_type="csv", original_name="a.csv")
        stored = StoredRecord(
            id="r1",
            record=FieldRecord(file_id="f1", sheet_or_node="Sheet1", field_name="n", field_value="v", row_num=1),
            file=meta,
        )
        data = stored.to_dict()
        assert data["id"] == "r1"
        assert data["fileName"] == "a.csv"
        assert data["fileType"] == "csv"
        assert stored.row_num == 1


class TestResponses:
    def test_context_result_omits_absent_keys(self):
        assert ContextResult(row_data={}).to_dict() == {"rowData": {}}
        assert ContextResult(xml_node="<a/>", warning="w").to_dict() == {"xmlNode": "<a/>", "warning": "w"}

    def test_file_preview_camel_case(self):
        preview = FilePreview(headers=["a"], rows=[], sheets=["S"], current_sheet="S", has_images=True)
        assert preview.to_dict() == {
            "headers": ["a"], "rows": [], "sheets": ["S"], "currentSheet": "S", "hasImages": True,
        }

    def test_extracted_product_is_empty(self):
        assert ExtractedProduct().is_empty()
        assert not ExtractedProduct(price=0.0).is_empty()
        assert ExtractedProduct(brand="Acme").to_dict() == {"specs": {}, "brand": "Acme"}
