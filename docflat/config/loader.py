from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from docflat.errors import DocflatError

"""Config loader.

Responsibilities:
- Load YAML config (default config/docflat.yml)
- Validate against the bundled JSON schema (config_schema.json, additionalProperties: false)
- Apply defaults
- Resolve storage / database overrides from the environment (.env is loaded by the CLI)
"""

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/docflat.yml")

DEFAULT_BATCH_SIZE = 1000
DEFAULT_CSV_SHEET_NAME = "Sheet1"
DEFAULT_XML_ATTRIBUTE_PREFIX = "@_"
DEFAULT_XML_DEFAULT_NODE = "root"


class ConfigError(DocflatError):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback (environment variables take precedence)."""
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class StorageConfig:
    """Remote object storage (primary source for context / preview)."""
    url: str | None = None
    bucket: str | None = None
    api_key: str | None = None
    timeout: float = 10.0

    @property
    def enabled(self) -> bool:
        return bool(self.url and self.bucket)


@dataclass(frozen=True)
class ParserSettings:
    """Knobs shared by the format parsers."""
    csv_sheet_name: str = DEFAULT_CSV_SHEET_NAME
    xml_attribute_prefix: str | None = DEFAULT_XML_ATTRIBUTE_PREFIX  # None: attributes dropped
    xml_default_node: str = DEFAULT_XML_DEFAULT_NODE


@dataclass(frozen=True)
class AppConfig:
    source_directory: str
    upload_directory: str = "./uploads"
    fallback_directories: list[str] = field(default_factory=lambda: ["./tmp"])
    batch_size: int = DEFAULT_BATCH_SIZE
    markup_rate: float = 0.0
    parser: ParserSettings = field(default_factory=ParserSettings)
    storage: StorageConfig = field(default_factory=StorageConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the bundled JSON schema.

    Raises:
        ConfigError: schema file missing / not JSON, or the data violates the schema
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> AppConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")

    _validate_config_schema(data)

    db_raw = data.get("database") or {}
    storage_raw = data.get("storage") or {}
    parser = ParserSettings(
        csv_sheet_name=data.get("csv_sheet_name", DEFAULT_CSV_SHEET_NAME),
        xml_attribute_prefix=data.get("xml_attribute_prefix", DEFAULT_XML_ATTRIBUTE_PREFIX),
        xml_default_node=data.get("xml_default_node", DEFAULT_XML_DEFAULT_NODE),
    )
    return AppConfig(
        source_directory=data["source_directory"],
        upload_directory=data.get("upload_directory", "./uploads"),
        fallback_directories=list(data.get("fallback_directories", ["./tmp"])),
        batch_size=int(data.get("batch_size", DEFAULT_BATCH_SIZE)),
        markup_rate=float(data.get("markup_rate", 0.0)),
        parser=parser,
        storage=StorageConfig(
            url=storage_raw.get("url"),
            bucket=storage_raw.get("bucket"),
            api_key=storage_raw.get("api_key"),
            timeout=float(storage_raw.get("timeout", 10.0)),
        ),
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
        ),
    )


def resolve_storage_config(cfg: StorageConfig) -> StorageConfig:
    """Apply STORAGE_URL / STORAGE_BUCKET / STORAGE_API_KEY over the YAML values."""
    return StorageConfig(
        url=os.getenv("STORAGE_URL") or cfg.url,
        bucket=os.getenv("STORAGE_BUCKET") or cfg.bucket,
        api_key=os.getenv("STORAGE_API_KEY") or cfg.api_key,
        timeout=cfg.timeout,
    )


def resolve_dsn(db_cfg: DatabaseConfig) -> str:
    """Build the PostgreSQL DSN.

    優先順位:
        1. DATABASE_URL / PGDSN (DSN 全体)
        2. config の database.dsn
        3. 個別 PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE, falling back to config values
    """
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn
