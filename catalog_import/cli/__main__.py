from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from catalog_import.config.loader import DEFAULT_CONFIG_PATH, ConfigError, ImportConfig, load_config
from catalog_import.db.connection import db_cursor
from catalog_import.db.repository import CatalogRepository, PostgresCatalogRepository, RepositoryError
from catalog_import.excel.writer import export_workbook
from catalog_import.logging.error_log import ErrorLogBuffer
from catalog_import.logging.init import get_logger, log_summary, setup_logging
from catalog_import.models.workbook import ImportMetadata
from catalog_import.services.pipeline import (
    execute_upload,
    preview_upload,
    rollback_execute,
    rollback_list,
    validate_upload,
)
from catalog_import.services.summary import render_summary_line

"""CLI entrypoint.

    python -m catalog_import.cli [--config PATH] [--debug] [--json] <command> ...

Commands: validate FILE | preview FILE | execute FILE | rollback IMPORT_ID |
history | export OUTPUT | init-db.

Exit codes: 0 success, 1 fatal (config, parse, storage), 2 refused
(validation failed, rollback out of order or in conflict).
"""

EXIT_SUCCESS = 0
EXIT_FATAL = 1
EXIT_REFUSED = 2

_REFUSALS = {"validation_failed", "sequential_rollback", "rollback_conflict"}


@contextmanager
def _open_repository(cfg: ImportConfig) -> Iterator[CatalogRepository]:
    with db_cursor(cfg.database) as cur:
        yield PostgresCatalogRepository(cur, page_size=cfg.page_size)


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; its values win over the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _load_config(path: Path | None) -> ImportConfig:
    if path is None:
        # the default location is optional; an explicit --config is not
        if not DEFAULT_CONFIG_PATH.exists():
            get_logger().info(f"no {DEFAULT_CONFIG_PATH}; using defaults")
            return ImportConfig()
        path = DEFAULT_CONFIG_PATH
    return load_config(path)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="catalog-import", description="Parts catalog spreadsheet import")
    p.add_argument("--config", type=Path, default=None, help=f"config file (default {DEFAULT_CONFIG_PATH})")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--json", action="store_true", help="Print the full result payload as JSON")
    sub = p.add_subparsers(dest="command", required=True)
    for name, help_text in (
        ("validate", "Validate a workbook (no changes)"),
        ("preview", "Validate and show the diff (no changes)"),
        ("execute", "Validate, diff and import a workbook"),
    ):
        sp = sub.add_parser(name, help=help_text)
        sp.add_argument("file", type=Path)
        if name == "execute":
            sp.add_argument("--imported-by", default=None, help="actor recorded in import history")
    rb = sub.add_parser("rollback", help="Roll back the most recent import")
    rb.add_argument("import_id")
    sub.add_parser("history", help="List import history (newest first)")
    ex = sub.add_parser("export", help="Export the current catalog as a workbook")
    ex.add_argument("output", type=Path)
    sub.add_parser("init-db", help="Create the catalog tables and triggers")
    return p.parse_args(argv)


def _report(payload: dict[str, Any]) -> None:
    logger = get_logger()
    for issue in payload.get("errors", []):
        logger.error(f"{issue['code']} {issue['sheet'] or '-'} row={issue['row']}: {issue['message']}")
    for issue in payload.get("warnings", []):
        logger.warning(f"{issue['code']} {issue['sheet'] or '-'} row={issue['row']}: {issue['message']}")
    if payload.get("message"):
        logger.error(payload["message"])
    for snap in payload.get("snapshots", []):
        marker = "*" if snap["can_rollback"] else " "
        logger.info(
            f"{marker} {snap['id']} {snap['created_at']} {snap['file_name']} rows={snap['rows_imported']}"
        )


def _exit_code(payload: dict[str, Any]) -> int:
    if payload.get("error") in _REFUSALS:
        return EXIT_REFUSED
    if payload.get("error"):
        return EXIT_FATAL
    if payload.get("valid") is False:
        return EXIT_REFUSED
    return EXIT_SUCCESS


def _run_command(
    args: argparse.Namespace,
    cfg: ImportConfig,
    repository: CatalogRepository,
    error_log: ErrorLogBuffer,
) -> dict[str, Any]:
    cmd = args.command
    if cmd in ("validate", "preview", "execute"):
        data = args.file.read_bytes()
        if cmd == "validate":
            return validate_upload(data, repository, file_name=args.file.name, config=cfg, error_log=error_log)
        if cmd == "preview":
            return preview_upload(data, repository, file_name=args.file.name, config=cfg, error_log=error_log)
        metadata = ImportMetadata(
            file_name=args.file.name,
            file_size=len(data),
            imported_by=args.imported_by or cfg.imported_by,
        )
        return execute_upload(data, repository, metadata, config=cfg, error_log=error_log)
    if cmd == "rollback":
        return rollback_execute(args.import_id, repository, error_log=error_log)
    if cmd == "history":
        return rollback_list(repository)
    if cmd == "export":
        existing = repository.fetch_existing_data()
        args.output.write_bytes(export_workbook(existing))
        return {
            "file": str(args.output),
            "rows": {
                "parts": len(existing.parts),
                "vehicle_applications": len(existing.vehicle_application_rows),
                "cross_references": len(existing.cross_references),
            },
        }
    if cmd == "init-db":
        repository.create_schema()  # type: ignore[attr-defined]
        return {"schema": "applied"}
    raise ValueError(f"unknown command: {cmd}")  # pragma: no cover (argparse guards)


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()
    # None only: an explicit [] must not fall back to sys.argv (pytest flags)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    if args.debug:
        setup_logging(debug=True)
        logger.debug("debug mode enabled")

    _load_env_file(Path(".env"), override=True)
    try:
        cfg = _load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    error_log = ErrorLogBuffer(cfg.error_log_dir)
    try:
        with _open_repository(cfg) as repository:
            payload = _run_command(args, cfg, repository, error_log)
    except FileNotFoundError as e:
        logger.error(f"file not found: {e.filename}")
        return EXIT_FATAL
    except (psycopg2.Error, RepositoryError) as e:
        logger.error(f"database: {e}")
        source = args.file.name if hasattr(args, "file") else args.command
        error_log.add_failure(source, "DATABASE_ERROR", str(e))
        return EXIT_FATAL
    finally:
        log_path = error_log.flush()
        if log_path is not None:
            logger.info(f"error log written: {log_path}")

    if args.json:
        print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))
    else:
        _report(payload)
    summary_line = render_summary_line(args.command, payload)
    log_summary(summary_line.removeprefix("SUMMARY "))
    return _exit_code(payload)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
