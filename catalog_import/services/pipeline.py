from __future__ import annotations

import logging
from typing import Any

from ..config.loader import ImportConfig
from ..db.repository import CatalogRepository
from ..excel.parser import parse_workbook
from ..excel.reader import ParseError
from ..logging.error_log import ErrorLogBuffer
from ..models.validation import ValidationResult
from ..models.workbook import ImportMetadata, ParsedWorkbook
from .diff_engine import generate_diff
from .import_service import ImportExecutionError, ImportService
from .rollback_service import (
    RollbackConflictError,
    RollbackExecutionError,
    RollbackService,
    SequentialRollbackError,
)
from .validation import ValidationEngine

"""Request-shaped pipeline operations.

Each operation returns a JSON-serialisable dict. Parse, validation and
rollback refusals are turned into structured payloads here; storage failures
outside an import/rollback transaction propagate as typed errors. Nothing is
retried.

Flow: parse -> validate -> diff -> (execute only) import.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "validate_upload",
    "preview_upload",
    "execute_upload",
    "rollback_execute",
    "rollback_list",
]


def _parse(data: bytes, file_name: str | None, config: ImportConfig) -> ParsedWorkbook:
    return parse_workbook(
        data,
        file_name,
        sku_prefix=config.sku_prefix,
        max_file_size_mb=config.max_file_size_mb,
    )


def _record_issues(error_log: ErrorLogBuffer | None, file_name: str | None, result: ValidationResult) -> None:
    if error_log is None:
        return
    for issue in result.errors:
        error_log.add_issue(file_name or "<upload>", issue)


def _parse_failure(error_log: ErrorLogBuffer | None, file_name: str | None, e: ParseError) -> None:
    logger.error("parse: %s", e)
    if error_log is not None:
        error_log.add_failure(file_name or "<upload>", "PARSE_ERROR", str(e))


def _validation_payload(parsed: ParsedWorkbook, result: ValidationResult) -> dict[str, Any]:
    return {
        **result.to_dict(),
        "row_counts": parsed.row_counts,
        "matching_strategy": parsed.strategy.value,
    }


def validate_upload(
    data: bytes,
    repository: CatalogRepository,
    *,
    file_name: str | None = None,
    config: ImportConfig | None = None,
    engine: ValidationEngine | None = None,
    error_log: ErrorLogBuffer | None = None,
) -> dict[str, Any]:
    """Parse and validate; no persistence."""
    config = config or ImportConfig()
    try:
        parsed = _parse(data, file_name, config)
    except ParseError as e:
        _parse_failure(error_log, file_name, e)
        return {"valid": False, "error": "parse_error", "message": str(e)}
    existing = repository.fetch_existing_data()
    result = (engine or ValidationEngine()).validate(parsed, existing)
    _record_issues(error_log, file_name, result)
    return _validation_payload(parsed, result)


def preview_upload(
    data: bytes,
    repository: CatalogRepository,
    *,
    file_name: str | None = None,
    config: ImportConfig | None = None,
    engine: ValidationEngine | None = None,
    error_log: ErrorLogBuffer | None = None,
) -> dict[str, Any]:
    """Validate, plus the full diff when the upload is valid; no persistence."""
    config = config or ImportConfig()
    try:
        parsed = _parse(data, file_name, config)
    except ParseError as e:
        _parse_failure(error_log, file_name, e)
        return {"valid": False, "error": "parse_error", "message": str(e)}
    existing = repository.fetch_existing_data()
    result = (engine or ValidationEngine()).validate(parsed, existing)
    _record_issues(error_log, file_name, result)
    payload = _validation_payload(parsed, result)
    if result.valid:
        payload["diff"] = generate_diff(parsed, existing).to_dict()
    return payload


def execute_upload(
    data: bytes,
    repository: CatalogRepository,
    metadata: ImportMetadata,
    *,
    config: ImportConfig | None = None,
    engine: ValidationEngine | None = None,
    error_log: ErrorLogBuffer | None = None,
) -> dict[str, Any]:
    """Parse, validate, diff and import.

    An invalid upload is refused before anything is written: no import history
    record, no table mutation.
    """
    config = config or ImportConfig()
    try:
        parsed = _parse(data, metadata.file_name, config)
    except ParseError as e:
        _parse_failure(error_log, metadata.file_name, e)
        return {"success": False, "error": "parse_error", "message": str(e)}

    existing = repository.fetch_existing_data()
    result = (engine or ValidationEngine()).validate(parsed, existing)
    if not result.valid:
        _record_issues(error_log, metadata.file_name, result)
        logger.warning("execute refused: %d validation error(s)", len(result.errors))
        return {
            "success": False,
            "error": "validation_failed",
            "errors": [i.to_dict() for i in result.errors],
            "warnings": [i.to_dict() for i in result.warnings],
            "summary": result.summary.to_dict(),
        }

    diff = generate_diff(parsed, existing)
    service = ImportService(repository, history_retention=config.history_retention)
    try:
        outcome = service.execute_import(parsed, diff, metadata)
    except ImportExecutionError as e:
        if error_log is not None:
            error_log.add_failure(metadata.file_name, "IMPORT_EXECUTION_ERROR", str(e))
        return {"success": False, "error": "import_failed", "message": str(e)}
    return {**outcome.to_dict(), "warnings": [i.to_dict() for i in result.warnings]}


def rollback_execute(
    import_id: str,
    repository: CatalogRepository,
    *,
    error_log: ErrorLogBuffer | None = None,
) -> dict[str, Any]:
    service = RollbackService(repository)
    try:
        return service.rollback_to_import(import_id).to_dict()
    except SequentialRollbackError as e:
        payload: dict[str, Any] = {
            "success": False,
            "error": "sequential_rollback",
            "message": str(e),
            "newest_import_id": e.newest_import_id,
            "requested_import_id": e.requested_import_id,
        }
    except RollbackConflictError as e:
        payload = {
            "success": False,
            "error": "rollback_conflict",
            "message": str(e),
            "conflict_count": e.conflict_count,
            "conflicting_keys": e.conflicting_keys,
            "conflicts": [c.to_dict() for c in e.conflicts],
        }
    except RollbackExecutionError as e:
        payload = {"success": False, "error": "rollback_failed", "message": str(e)}
    if error_log is not None:
        error_log.add_failure(import_id, payload["error"].upper(), payload["message"])
    return payload


def rollback_list(repository: CatalogRepository) -> dict[str, Any]:
    return {"snapshots": RollbackService(repository).list_available_snapshots()}
