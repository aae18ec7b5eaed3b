from __future__ import annotations

import logging
import time
from typing import Any

from ..db.repository import CatalogRepository
from ..models.diff import DiffResult
from ..models.existing_data import ExistingData
from ..models.history import ImportResult, Snapshot
from ..models.rows import ModifiedBy
from ..models.workbook import ImportMetadata, ParsedWorkbook
from .fk_propagation import build_parent_id_map, propagate_parent_ids
from .progress import ProgressTracker

"""Import service: apply a validated diff atomically.

One transaction covers snapshot capture, the import-history record and every
table mutation; either all of it commits or none of it does. The caller is
responsible for having validated the upload: this service trusts its input.

Apply order (dependents are removed before their parts, parts are written
before their dependents):
    cross reference deletes -> vehicle application deletes -> part deletes
    -> part updates -> part adds -> vehicle applications -> cross references
"""

logger = logging.getLogger(__name__)

__all__ = [
    "ImportExecutionError",
    "ImportService",
    "DEFAULT_HISTORY_RETENTION",
]

DEFAULT_HISTORY_RETENTION = 3
_STEPS = 9


class ImportExecutionError(Exception):
    """The import transaction could not commit. ``cause`` is the underlying error."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


def _snapshot_view(snapshot: Snapshot) -> ExistingData:
    return ExistingData.from_rows(
        snapshot.parts, snapshot.vehicle_applications, snapshot.cross_references
    )


class ImportService:
    def __init__(
        self,
        repository: CatalogRepository,
        *,
        history_retention: int = DEFAULT_HISTORY_RETENTION,
    ) -> None:
        self.repository = repository
        self.history_retention = history_retention

    def execute_import(
        self,
        parsed: ParsedWorkbook,
        diff: DiffResult,
        metadata: ImportMetadata,
    ) -> ImportResult:
        start = time.perf_counter()
        summary = diff.summary
        logger.info(
            "import start: file=%s adds=%d updates=%d deletes=%d",
            metadata.file_name,
            summary.adds,
            summary.updates,
            summary.deletes,
        )
        try:
            with self.repository.transaction():
                snapshot = self.repository.capture_snapshot()
                record = self.repository.insert_history(
                    file_name=metadata.file_name,
                    file_size_bytes=metadata.file_size,
                    rows_imported=summary.total_changes,
                    import_summary=summary.to_import_summary(),
                    snapshot=snapshot,
                    imported_by=metadata.imported_by,
                )
                counts = self._apply(parsed, diff, _snapshot_view(snapshot), ModifiedBy.by_import(record.id))
                pruned = self.repository.prune_history(self.history_retention)
        except Exception as e:
            logger.error("import failed (rolled back): %s", e)
            raise ImportExecutionError(f"import failed: {e}", cause=e) from e

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "import %s committed: %s pruned_history=%d elapsed_ms=%d",
            record.id,
            " ".join(f"{k}={v}" for k, v in counts.items()),
            pruned,
            elapsed_ms,
        )
        return ImportResult(import_id=record.id, summary=summary, execution_time_ms=elapsed_ms)

    def _apply(
        self,
        parsed: ParsedWorkbook,
        diff: DiffResult,
        existing: ExistingData,
        tag: ModifiedBy,
    ) -> dict[str, Any]:
        repo = self.repository
        counts: dict[str, Any] = {}
        deleted_part_ids = [i.before.id for i in diff.parts.deletes if i.before is not None and i.before.id]

        with ProgressTracker(_STEPS, description="Importing") as progress:

            def step(name: str, fn: Any, *args: Any) -> Any:
                progress.start_step(name)
                result = fn(*args)
                progress.finish_step(result if isinstance(result, int) else len(result))
                counts[name] = result if isinstance(result, int) else len(result)
                return result

            step(
                "cross_references_deleted",
                repo.delete_cross_references,
                [i.before.id for i in diff.cross_references.deletes if i.before is not None],
            )
            step(
                "vehicle_applications_deleted",
                repo.delete_vehicle_applications,
                [i.before.id for i in diff.vehicle_applications.deletes if i.before is not None],
            )
            step("parts_deleted", repo.delete_parts, deleted_part_ids)

            updated_parts = [i.after for i in diff.parts.updates if i.after is not None]
            step("parts_updated", repo.update_parts, updated_parts, tag)
            inserted = step(
                "parts_added", repo.insert_parts, [i.after for i in diff.parts.adds if i.after is not None], tag
            )

            parent_map = build_parent_id_map(existing, updated_parts, inserted, deleted_part_ids)

            def resolve(items: Any, id_field: str) -> list[Any]:
                return propagate_parent_ids(
                    [i.after for i in items if i.after is not None],
                    parent_map,
                    id_field=id_field,
                )

            va = diff.vehicle_applications
            step("vehicle_applications_updated", repo.update_vehicle_applications, resolve(va.updates, "part_id"), tag)
            step("vehicle_applications_added", repo.insert_vehicle_applications, resolve(va.adds, "part_id"), tag)

            cr = diff.cross_references
            step("cross_references_updated", repo.update_cross_references, resolve(cr.updates, "acr_part_id"), tag)
            step("cross_references_added", repo.insert_cross_references, resolve(cr.adds, "acr_part_id"), tag)
        return counts
