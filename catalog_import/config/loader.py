from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Configuration loader.

Responsibilities:
- Load the YAML config (default ``config/import.yml``)
- Validate it against the JSON schema shipped with the package
- Apply defaults for every optional key
"""

__all__ = [
    "ConfigError",
    "DatabaseConfig",
    "ImportConfig",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "load_config",
]

DEFAULT_CONFIG_PATH = Path("config/import.yml")
SCHEMA_PATH = Path(__file__).with_name("config_schema.json")


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class ImportConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    sku_prefix: str = "ACR"
    max_file_size_mb: int = 50
    history_retention: int = 3  # import-history records kept (rollback depth)
    page_size: int = 1000
    error_log_dir: str = "./logs"
    imported_by: str | None = None


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: the schema file is missing or unreadable, or the data
            violates the schema (unknown keys, wrong types, out-of-range values).
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


def load_config(path: Path) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")

    _validate_config_schema(data)

    defaults = ImportConfig()
    db_raw = data.get("database") or {}
    return ImportConfig(
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
        ),
        sku_prefix=data.get("sku_prefix", defaults.sku_prefix),
        max_file_size_mb=data.get("max_file_size_mb", defaults.max_file_size_mb),
        history_retention=data.get("history_retention", defaults.history_retention),
        page_size=data.get("page_size", defaults.page_size),
        error_log_dir=data.get("error_log_dir", defaults.error_log_dir),
        imported_by=data.get("imported_by", defaults.imported_by),
    )
