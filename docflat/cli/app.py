from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from docflat.config.loader import (
    DEFAULT_CONFIG_PATH,
    AppConfig,
    ConfigError,
    ParserSettings,
    load_config,
    resolve_dsn,
)
from docflat.context.preview import get_file_preview
from docflat.context.reconstructor import get_context
from docflat.context.storage import build_strategies
from docflat.db.record_store import RecordStore
from docflat.errors import DocflatError
from docflat.extraction.quotation import build_line_items, calculate_totals
from docflat.logging.error_log import LOGS_DIR
from docflat.logging.init import log_summary, setup_logging
from docflat.parsers.dispatch import detect_file_type, parse_document
from docflat.services.ingest import IngestError, ingest_directory
from docflat.services.summary import render_summary_line

"""Command line entrypoint (python -m docflat.cli).

Subcommands:
    ingest              flatten every file of source_directory into the record store (default)
    inspect FILE        print the flattened records of one file (no database)
    context RECORD_ID   reconstruct the source row / XML node of a stored record
    preview FILE_ID     first rows (or XML text) of a stored file
    quote RECORD_ID...  line items + totals for a selection of records
    search [QUERY]      paginated record search
    filters             available filter values
    files               stored files, newest first
    delete FILE_ID      delete a stored file and its records
    diagnostics         upload / log directory state and record store counts

Exit codes: 0 success, 2 partial failure (some files failed), 1 fatal.
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

logger = logging.getLogger(__name__)


@contextmanager
def _db_connection(cfg: AppConfig) -> Iterator[Any]:
    """psycopg2 connection + cursor for the duration of one command.

    接続情報の優先順位: .env / 環境変数 (DATABASE_URL, PGDSN, PG*) > config の database セクション.
    autocommit: ingest は BEGIN / COMMIT をファイル単位で明示的に発行する.
    """
    conn = psycopg2.connect(resolve_dsn(cfg.database))
    conn.autocommit = True
    cur = conn.cursor()
    try:
        yield cur
    finally:
        try:
            cur.close()
        finally:
            conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; override=True lets .env win over the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="docflat", description="Spreadsheet / CSV / XML flattening toolkit")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--config", default=str(DEFAULT_CONFIG_PATH), help="Path to the YAML config")
    sub = p.add_subparsers(dest="command")

    sub.add_parser("ingest", help="Ingest every file of source_directory")

    inspect = sub.add_parser("inspect", help="Print flattened records of one file")
    inspect.add_argument("file")
    inspect.add_argument("--limit", type=int, default=20, help="Records to print (0 = all)")

    context = sub.add_parser("context", help="Reconstruct the source context of a record")
    context.add_argument("record_id")

    preview = sub.add_parser("preview", help="Preview a stored file")
    preview.add_argument("file_id")
    preview.add_argument("--sheet", default=None)

    quote = sub.add_parser("quote", help="Build quotation line items from records")
    quote.add_argument("record_ids", nargs="+")
    quote.add_argument("--markup-rate", type=float, default=None, help="Percent; defaults to config markup_rate")

    search = sub.add_parser("search", help="Search flattened records")
    search.add_argument("query", nargs="?", default="")
    search.add_argument("--file-type", default="")
    search.add_argument("--field-name", default="")
    search.add_argument("--sheet", default="")
    search.add_argument("--active-sheet", action="append", default=[], dest="active_sheets")
    search.add_argument("--page", type=int, default=1)
    search.add_argument("--page-size", type=int, default=20)

    sub.add_parser("filters", help="List available filter values")

    files = sub.add_parser("files", help="List stored files, newest first")
    files.add_argument("--limit", type=int, default=None)

    delete = sub.add_parser("delete", help="Delete a stored file and its records")
    delete.add_argument("file_id")

    sub.add_parser("diagnostics", help="Directory state and record store counts")
    return p.parse_args(argv)


def _cmd_inspect(args: argparse.Namespace) -> int:
    path = Path(args.file)
    if not path.is_file():
        logger.error(f"inspect: file not found: {path}")
        return EXIT_FATAL
    try:
        settings = load_config(Path(args.config)).parser
    except ConfigError as e:
        logger.debug(f"inspect: using default parser settings ({e})")
        settings = ParserSettings()

    try:
        result = parse_document(
            path.read_bytes(), detect_file_type(path.name), path.name, settings=settings, file_name=path.name
        )
    except DocflatError as e:
        logger.error(f"inspect: {e}")
        return EXIT_FATAL

    records = result.records if args.limit <= 0 else result.records[: args.limit]
    print(f"FILE: {path.name} records={len(result.records)} rows={result.row_count} has_images={result.has_images}")
    for r in records:
        print(json.dumps(r.to_dict(), ensure_ascii=False))
    return EXIT_SUCCESS_ALL


def _cmd_ingest(cfg: AppConfig) -> int:
    directory = Path(cfg.source_directory)
    if not directory.exists():
        logger.error(f"directory not found: {directory}")
        return EXIT_FATAL
    logger.info(f"Ingesting files from: {directory}")

    # DB 接続制御: テスト等で完全に無効化したい場合 DISABLE_DB_CONNECT=1
    db_mode = "mock"
    try:
        if os.getenv("DISABLE_DB_CONNECT") == "1":
            logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
            result = ingest_directory(cfg, store=None)
        else:
            try:
                with _db_connection(cfg) as cur:
                    db_mode = "live"
                    store = RecordStore(cur, batch_size=cfg.batch_size)
                    store.ensure_schema()
                    result = ingest_directory(cfg, store=store)
            except psycopg2.Error as db_e:
                if db_mode == "live":
                    raise
                logger.info(f"DB connection failed -> fallback to mock mode: {db_e}")
                result = ingest_directory(cfg, store=None)
    except IngestError as e:
        logger.error(f"ingest: {e}")
        return EXIT_FATAL
    except psycopg2.Error as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL

    logger.info(f"mode={db_mode} total_records={result.total_records}")
    log_summary(render_summary_line(result).removeprefix("SUMMARY "))
    return EXIT_PARTIAL_FAILURE if result.failed_files > 0 else EXIT_SUCCESS_ALL


def _with_store(cfg: AppConfig, action: Callable[[RecordStore], int]) -> int:
    if os.getenv("DISABLE_DB_CONNECT") == "1":
        logger.error("this command needs a database (DISABLE_DB_CONNECT=1 is set)")
        return EXIT_FATAL
    try:
        with _db_connection(cfg) as cur:
            return action(RecordStore(cur, batch_size=cfg.batch_size))
    except psycopg2.Error as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL


def _cmd_context(cfg: AppConfig, store: RecordStore, record_id: str) -> int:
    stored = store.get_record(record_id)
    if stored is None:
        logger.error(f"record not found: {record_id}")
        return EXIT_FATAL
    result = get_context(stored, build_strategies(cfg), attribute_prefix=cfg.parser.xml_attribute_prefix)
    if result.warning:
        logger.warning(result.warning)
    _print_json(result.to_dict())
    return EXIT_SUCCESS_ALL


def _cmd_preview(cfg: AppConfig, store: RecordStore, file_id: str, sheet: str | None) -> int:
    meta = store.get_file(file_id)
    if meta is None:
        logger.error(f"file not found: {file_id}")
        return EXIT_FATAL
    preview = get_file_preview(meta, build_strategies(cfg), sheet_name=sheet)
    if preview.warning:
        logger.warning(preview.warning)
    _print_json(preview.to_dict())
    return EXIT_SUCCESS_ALL


def _cmd_quote(cfg: AppConfig, store: RecordStore, record_ids: list[str], markup_rate: float | None) -> int:
    stored = store.get_records(record_ids)
    missing = sorted(set(record_ids) - {s.id for s in stored})
    if missing:
        logger.warning(f"records not found: {', '.join(missing)}")
    if not stored:
        logger.error("quote: no records selected")
        return EXIT_FATAL
    items = build_line_items([s.record for s in stored])
    rate = cfg.markup_rate if markup_rate is None else markup_rate
    totals = calculate_totals(items, rate)
    _print_json(
        {
            "lineItems": [i.to_dict() for i in items],
            "subtotal": totals.subtotal,
            "totalAmount": totals.total_amount,
        }
    )
    return EXIT_SUCCESS_ALL


def _cmd_search(store: RecordStore, args: argparse.Namespace) -> int:
    page = store.search(
        query=args.query,
        file_type=args.file_type,
        field_name=args.field_name,
        sheet=args.sheet,
        active_sheets=args.active_sheets,
        page=args.page,
        page_size=args.page_size,
    )
    _print_json(page.to_dict())
    return EXIT_SUCCESS_ALL


def _cmd_filters(store: RecordStore) -> int:
    _print_json(store.filters().to_dict())
    return EXIT_SUCCESS_ALL


def _cmd_files(store: RecordStore, limit: int | None) -> int:
    _print_json([meta.to_dict() for meta in store.list_files(limit=limit)])
    return EXIT_SUCCESS_ALL


def _cmd_delete(store: RecordStore, file_id: str) -> int:
    try:
        store.begin()
        deleted = store.delete_file(file_id)
        store.commit()
    except psycopg2.Error:
        store.rollback()
        raise
    if not deleted:
        logger.error(f"file not found: {file_id}")
        return EXIT_FATAL
    logger.info(f"deleted file={file_id}")
    return EXIT_SUCCESS_ALL


def _cmd_diagnostics(cfg: AppConfig, store: RecordStore) -> int:
    _print_json(store.diagnostics(cfg.upload_directory, LOGS_DIR).to_dict())
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    # NOTE: [] が与えられた場合に sys.argv[1:] (pytest の引数) を読まないよう None のときのみ参照
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    setup_logging(debug=args.debug)
    _load_env_file(Path(".env"), override=True)
    command = args.command or "ingest"

    if command == "inspect":
        return _cmd_inspect(args)

    try:
        cfg = load_config(Path(args.config))
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if command == "ingest":
        return _cmd_ingest(cfg)
    if command == "context":
        return _with_store(cfg, lambda store: _cmd_context(cfg, store, args.record_id))
    if command == "preview":
        return _with_store(cfg, lambda store: _cmd_preview(cfg, store, args.file_id, args.sheet))
    if command == "quote":
        return _with_store(cfg, lambda store: _cmd_quote(cfg, store, args.record_ids, args.markup_rate))
    if command == "search":
        return _with_store(cfg, lambda store: _cmd_search(store, args))
    if command == "files":
        return _with_store(cfg, lambda store: _cmd_files(store, args.limit))
    if command == "delete":
        return _with_store(cfg, lambda store: _cmd_delete(store, args.file_id))
    if command == "diagnostics":
        return _with_store(cfg, lambda store: _cmd_diagnostics(cfg, store))
    return _with_store(cfg, _cmd_filters)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
