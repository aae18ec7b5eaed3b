from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import UTC, datetime
from typing import Any

from .diff import DiffSummary
from .existing_data import ExistingData
from .rows import CatalogRow, CrossReferenceRow, ModifiedBy, PartRow, VehicleApplicationRow

"""Import history, snapshot and result models.

The history record shape is the contract between import and rollback:
``{id, created_at, file_name, file_size_bytes, rows_imported, import_summary,
snapshot_data, imported_by}``. ``snapshot_data`` is a full pre-image of the
three catalog tables.
"""

__all__ = [
    "Snapshot",
    "ImportHistoryRecord",
    "ImportResult",
    "RollbackConflict",
    "RollbackResult",
    "storage_dict",
]


def storage_dict(row: CatalogRow) -> dict[str, Any]:
    """Serialize a stored row (spreadsheet bookkeeping dropped)."""
    out: dict[str, Any] = {}
    for f in fields(row):
        if f.name == "row_number":
            continue
        value = getattr(row, f.name)
        out[f.name] = value.to_dict() if isinstance(value, ModifiedBy) else value
    return out


def _row_from_dict(cls: type, data: dict[str, Any]) -> Any:
    known = {f.name for f in fields(cls)}
    kwargs = {k: v for k, v in data.items() if k in known}
    kwargs["modified_by"] = ModifiedBy.from_dict(data.get("modified_by"))
    return cls(**kwargs)


@dataclass(frozen=True)
class Snapshot:
    parts: tuple[PartRow, ...] = ()
    vehicle_applications: tuple[VehicleApplicationRow, ...] = ()
    cross_references: tuple[CrossReferenceRow, ...] = ()
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat().replace("+00:00", "Z"))

    @property
    def counts(self) -> dict[str, int]:
        return {
            "parts": len(self.parts),
            "vehicle_applications": len(self.vehicle_applications),
            "cross_references": len(self.cross_references),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "parts": [storage_dict(r) for r in self.parts],
            "vehicle_applications": [storage_dict(r) for r in self.vehicle_applications],
            "cross_references": [storage_dict(r) for r in self.cross_references],
            "timestamp": self.timestamp,
        }

    @classmethod
    def of(cls, existing: ExistingData) -> Snapshot:
        """Pre-image of every stored row, including business-key duplicates."""
        return cls(
            parts=tuple(existing.all_rows("parts")),  # type: ignore[arg-type]
            vehicle_applications=tuple(existing.all_rows("vehicle_applications")),  # type: ignore[arg-type]
            cross_references=tuple(existing.all_rows("cross_references")),  # type: ignore[arg-type]
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Snapshot:
        return cls(
            parts=tuple(_row_from_dict(PartRow, d) for d in data.get("parts", [])),
            vehicle_applications=tuple(
                _row_from_dict(VehicleApplicationRow, d) for d in data.get("vehicle_applications", [])
            ),
            cross_references=tuple(
                _row_from_dict(CrossReferenceRow, d) for d in data.get("cross_references", [])
            ),
            timestamp=data.get("timestamp", ""),
        )


@dataclass(frozen=True)
class ImportHistoryRecord:
    id: str
    created_at: datetime
    file_name: str
    file_size_bytes: int
    rows_imported: int
    import_summary: dict[str, Any]
    snapshot_data: Snapshot | None = None
    imported_by: str | None = None

    def to_dict(self, *, include_snapshot: bool = False) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "file_name": self.file_name,
            "file_size_bytes": self.file_size_bytes,
            "rows_imported": self.rows_imported,
            "import_summary": self.import_summary,
            "imported_by": self.imported_by,
        }
        if include_snapshot and self.snapshot_data is not None:
            out["snapshot_data"] = self.snapshot_data.to_dict()
        return out


@dataclass(frozen=True)
class ImportResult:
    import_id: str
    summary: DiffSummary
    execution_time_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "import_id": self.import_id,
            "summary": self.summary.to_dict(),
            "execution_time_ms": self.execution_time_ms,
        }


@dataclass(frozen=True)
class RollbackConflict:
    table: str
    key: str  # business key of the current row
    row_id: str | None
    modified_by: str
    fields: tuple[str, ...] = ()  # differing fields; empty when the row is new since the import

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "key": self.key,
            "id": self.row_id,
            "modified_by": self.modified_by,
            "fields": list(self.fields),
        }


@dataclass(frozen=True)
class RollbackResult:
    import_id: str
    restored_counts: dict[str, int]
    execution_time_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "import_id": self.import_id,
            "restored_counts": dict(self.restored_counts),
            "execution_time_ms": self.execution_time_ms,
        }
