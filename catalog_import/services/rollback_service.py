from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from typing import Any

from ..db.repository import CatalogRepository
from ..models.history import RollbackConflict, RollbackResult, Snapshot
from ..models.keys import key_of
from ..models.rows import CatalogRow
from .history_stack import ImportHistoryStack

"""Rollback service.

Restores the catalog tables to the pre-image stored with an import. Imports
form a strict stack: only the newest one can be rolled back. A rollback is
refused when any current row carries a manual-edit tag and differs from (or is
missing in) the pre-image, since restoring would silently discard that edit.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "RollbackExecutionError",
    "SequentialRollbackError",
    "RollbackConflictError",
    "RollbackService",
    "detect_conflicts",
]

# storage-level fields compared against the pre-image
_CONFLICT_FIELDS = {
    "parts": (
        "acr_sku",
        "part_type",
        "position_type",
        "abs_type",
        "bolt_pattern",
        "drive_type",
        "specifications",
        "workflow_status",
    ),
    "vehicle_applications": ("part_id", "make", "model", "start_year", "end_year"),
    "cross_references": ("acr_part_id", "competitor_brand", "competitor_sku"),
}


class RollbackExecutionError(Exception):
    pass


class SequentialRollbackError(RollbackExecutionError):
    def __init__(self, newest_import_id: str, requested_import_id: str) -> None:
        super().__init__(
            f"import {requested_import_id} is not the most recent import; "
            f"roll back {newest_import_id} first"
        )
        self.newest_import_id = newest_import_id
        self.requested_import_id = requested_import_id


class RollbackConflictError(RollbackExecutionError):
    def __init__(self, conflicts: Sequence[RollbackConflict]) -> None:
        self.conflicts = list(conflicts)
        self.conflict_count = len(self.conflicts)
        self.conflicting_keys = [c.key for c in self.conflicts]
        super().__init__(
            f"{self.conflict_count} row(s) were edited manually since the import: "
            f"{', '.join(self.conflicting_keys[:10])}"
        )


def _conflict_key(table: str, row: CatalogRow) -> str:
    if table == "cross_references":
        return f"{row.acr_sku}::{getattr(row, 'competitor_brand', None) or ''}::{getattr(row, 'competitor_sku', None)}"
    return str(key_of(row))


def detect_conflicts(pre_image: Snapshot, current: Snapshot) -> list[RollbackConflict]:
    conflicts: list[RollbackConflict] = []
    for table, names in _CONFLICT_FIELDS.items():
        before_by_id = {r.id: r for r in getattr(pre_image, table)}
        for row in getattr(current, table):
            if row.modified_by is None or not row.modified_by.is_manual:
                continue
            before = before_by_id.get(row.id)
            if before is None:
                differing: tuple[str, ...] = ()
            else:
                differing = tuple(n for n in names if getattr(before, n) != getattr(row, n))
                if not differing:
                    continue
            conflicts.append(
                RollbackConflict(
                    table=table,
                    key=_conflict_key(table, row),
                    row_id=row.id,
                    modified_by=row.modified_by.kind,
                    fields=differing,
                )
            )
    return conflicts


class RollbackService:
    def __init__(self, repository: CatalogRepository) -> None:
        self.repository = repository
        self.stack = ImportHistoryStack(repository)

    def list_available_snapshots(self) -> list[dict[str, Any]]:
        """Newest first; listing never enforces the sequential rule."""
        return self.stack.list()

    def rollback_to_import(self, import_id: str) -> RollbackResult:
        start = time.perf_counter()
        logger.info("rollback start: import=%s", import_id)
        try:
            with self.repository.transaction():
                top = self.stack.top()
                record = self.repository.get_history(import_id)
                if record is None or record.snapshot_data is None:
                    raise RollbackExecutionError(f"import {import_id} not found in history")
                if top is None or top.id != import_id:
                    raise SequentialRollbackError(
                        newest_import_id=top.id if top else "",
                        requested_import_id=import_id,
                    )
                current = self.repository.capture_snapshot()
                conflicts = detect_conflicts(record.snapshot_data, current)
                if conflicts:
                    raise RollbackConflictError(conflicts)
                restored = self.repository.restore_snapshot(record.snapshot_data)
                self.repository.delete_history(import_id)
        except RollbackExecutionError as e:
            logger.warning("rollback refused: %s", e)
            raise
        except Exception as e:
            logger.error("rollback failed (rolled back): %s", e)
            raise RollbackExecutionError(f"rollback failed: {e}") from e

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "rollback %s done: parts=%d vehicle_applications=%d cross_references=%d elapsed_ms=%d",
            import_id,
            restored["parts"],
            restored["vehicle_applications"],
            restored["cross_references"],
            elapsed_ms,
        )
        return RollbackResult(import_id=import_id, restored_counts=restored, execution_time_ms=elapsed_ms)
