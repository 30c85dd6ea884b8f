from __future__ import annotations

from datetime import UTC, datetime

from docflat.db.record_store import RECORD_COLUMNS, SCHEMA_SQL, RecordStore, like_pattern
from docflat.models.field_record import FieldRecord

UPLOADED = datetime(2024, 1, 2, tzinfo=UTC)


def record_row(rec_id: str, field_name: str = "Name", field_value: str = "Widget", sheet: str = "Sheet1"):
    return (
        rec_id, "f1", sheet, field_name, field_value, 2, None, None,
        "f1", "u-book.xlsx", "xlsx", "book.xlsx", 4, UPLOADED,
    )


def test_ensure_schema_and_transactions(dummy_cursor):
    store = RecordStore(dummy_cursor)
    store.begin()
    store.ensure_schema()
    store.rollback()
    store.commit()
    assert dummy_cursor.statements[0] == "BEGIN"
    assert dummy_cursor.statements[1 : 1 + len(SCHEMA_SQL)] == list(SCHEMA_SQL)
    assert dummy_cursor.statements[-2:] == ["ROLLBACK", "COMMIT"]


def test_create_file_and_update_row_count(dummy_cursor):
    store = RecordStore(dummy_cursor)
    meta = store.create_file("u-book.xlsx", "xlsx", "book.xlsx")
    sql, params = dummy_cursor.executed[0]
    assert sql.startswith("INSERT INTO files")
    assert params[:5] == (meta.id, "u-book.xlsx", "xlsx", "book.xlsx", 0)
    assert meta.uploaded_at is not None

    store.update_row_count(meta.id, 12)
    assert dummy_cursor.executed[1][1] == (12, meta.id)


def test_insert_records_assigns_ids(dummy_cursor, fake_execute_values):
    store = RecordStore(dummy_cursor, batch_size=2)
    records = [
        FieldRecord(file_id="f1", sheet_or_node="S", field_name=f"c{i}", field_value=str(i), row_num=2)
        for i in range(3)
    ]
    assert store.insert_records(records) == 3
    rows = [row for call in fake_execute_values for row in call["rows"]]
    assert len(rows) == 3
    assert len({row[0] for row in rows}) == 3
    assert rows[0][1:] == ("f1", "S", "c0", "0", 2, None, None)
    assert len(rows[0]) == len(RECORD_COLUMNS)


def test_get_record_and_missing(dummy_cursor):
    store = RecordStore(dummy_cursor)
    dummy_cursor.fetchone_results = [record_row("r1"), None]
    stored = store.get_record("r1")
    assert stored.id == "r1"
    assert stored.field_value == "Widget"
    assert stored.file.filename == "u-book.xlsx"
    assert stored.file.row_count == 4
    assert store.get_record("nope") is None


def test_get_records_keeps_requested_order(dummy_cursor):
    store = RecordStore(dummy_cursor)
    dummy_cursor.fetchall_results = [[record_row("a"), record_row("b")]]
    records = store.get_records(["b", "missing", "a"])
    assert [r.id for r in records] == ["b", "a"]
    assert dummy_cursor.executed[0][1] == (["b", "missing", "a"],)
    assert store.get_records([]) == []


def test_get_file(dummy_cursor):
    store = RecordStore(dummy_cursor)
    dummy_cursor.fetchone_results = [("f1", "u-book.xlsx", "xlsx", "book.xlsx", 4, UPLOADED)]
    meta = store.get_file("f1")
    assert meta.original_name == "book.xlsx"
    assert meta.to_dict()["uploadedAt"] == UPLOADED.isoformat()


def test_search_builds_filters_and_pages(dummy_cursor):
    store = RecordStore(dummy_cursor)
    dummy_cursor.fetchone_results = [(41,)]
    dummy_cursor.fetchall_results = [[record_row("r1")]]
    page = store.search(query="wid", file_type="XLSX", active_sheets=["Sheet1", "Other"], page=3, page_size=20)

    count_sql, count_params = dummy_cursor.executed[0]
    assert count_sql.startswith("SELECT count(*)")
    assert count_params == ("%wid%",) * 4 + ("XLSX", ["sheet1", "other"])
    select_sql, select_params = dummy_cursor.executed[1]
    assert "ORDER BY r.sheet_or_node ASC, r.row_num ASC, r.id ASC" in select_sql
    assert select_params[-2:] == (20, 40)
    assert page.total == 41
    assert page.to_dict()["pageSize"] == 20
    assert page.to_dict()["records"][0]["fileName"] == "book.xlsx"


def test_search_explicit_sheet_overrides_active_sheets(dummy_cursor):
    store = RecordStore(dummy_cursor)
    dummy_cursor.fetchone_results = [(0,)]
    store.search(sheet="Sheet1", active_sheets=["Other"], page=0)
    count_sql, count_params = dummy_cursor.executed[0]
    assert count_params == ("Sheet1",)
    assert "ANY" not in count_sql
    assert dummy_cursor.executed[1][1] == ("Sheet1", 20, 0)


def test_filters(dummy_cursor):
    store = RecordStore(dummy_cursor)
    dummy_cursor.fetchall_results = [
        [("csv",), ("xlsx",)],
        [("Name",), ("Price",)],
        [("Sheet1", 10), ("Laptops", 3)],
    ]
    options = store.filters()
    assert options.to_dict() == {
        "fileTypes": ["csv", "xlsx"],
        "fieldNames": ["Name", "Price"],
        "sheets": ["Sheet1", "Laptops"],
        "sheetCounts": {"Sheet1": 10, "Laptops": 3},
    }


def test_search_escapes_like_wildcards(dummy_cursor):
    store = RecordStore(dummy_cursor)
    dummy_cursor.fetchone_results = [(0,)]
    store.search(query="100%_off\\")
    count_sql, count_params = dummy_cursor.executed[0]
    assert count_params == ("%100\\%\\_off\\\\%",) * 4
    assert count_sql.count("ESCAPE '\\'") == 4


def test_like_pattern_plain_text_unchanged():
    assert like_pattern("widget") == "%widget%"


def test_list_files_newest_first(dummy_cursor):
    store = RecordStore(dummy_cursor)
    dummy_cursor.fetchall_results = [[
        ("f2", "u-new.csv", "csv", "new.csv", 3, UPLOADED),
        ("f1", "u-book.xlsx", "xlsx", "book.xlsx", 4, UPLOADED),
    ]]
    files = store.list_files(limit=10)
    assert [f.id for f in files] == ["f2", "f1"]
    sql, params = dummy_cursor.executed[0]
    assert "ORDER BY f.uploaded_at DESC" in sql
    assert params == (10,)

    store.list_files()
    assert dummy_cursor.executed[1][1] is None


def test_delete_file_removes_records_then_file(dummy_cursor):
    store = RecordStore(dummy_cursor)
    dummy_cursor.fetchone_results = [("f1",), None]
    assert store.delete_file("f1") is True
    assert dummy_cursor.statements[0].startswith("DELETE FROM parsed_records")
    assert dummy_cursor.statements[1].startswith("DELETE FROM files")
    assert dummy_cursor.executed[0][1] == ("f1",)
    assert store.delete_file("missing") is False


def test_diagnostics_counts_and_directories(dummy_cursor, tmp_path):
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    (uploads / "u-book.xlsx").write_bytes(b"x")
    logs = tmp_path / "logs"
    logs.mkdir()
    (logs / "errors-20240102-000000.log").write_text("{}\n", encoding="utf-8")
    (logs / "other.txt").write_text("", encoding="utf-8")

    store = RecordStore(dummy_cursor)
    dummy_cursor.fetchone_results = [(2,), (9,)]
    dummy_cursor.fetchall_results = [[("csv", 1), ("xlsx", 1)], [("Laptops", 3), ("Sheet1", 6)]]
    diag = store.diagnostics(uploads, logs).to_dict()

    assert diag["uploadsDirectory"] == {"path": str(uploads), "exists": True, "files": ["u-book.xlsx"]}
    assert diag["logsDirectory"]["files"] == ["errors-20240102-000000.log"]
    assert diag["database"] == {
        "files": 2,
        "records": 9,
        "fileTypes": {"csv": 1, "xlsx": 1},
        "sheetCounts": {"Laptops": 3, "Sheet1": 6},
    }


def test_diagnostics_missing_directory(dummy_cursor, tmp_path):
    store = RecordStore(dummy_cursor)
    dummy_cursor.fetchone_results = [(0,), (0,)]
    diag = store.diagnostics(tmp_path / "nope", tmp_path / "logs")
    assert diag.uploads.exists is False
    assert diag.uploads.files == []
    assert diag.files == 0
