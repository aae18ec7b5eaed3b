from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any

from .keys import BusinessKey
from .rows import CatalogRow

"""Diff result models (per sheet partitions plus cross-cutting summary)."""

__all__ = [
    "DiffOperation",
    "FieldChange",
    "DiffItem",
    "SheetSummary",
    "SheetDiff",
    "DiffSummary",
    "DiffResult",
    "SHEET_KEYS",
    "row_to_dict",
]

SHEET_KEYS = ("parts", "vehicle_applications", "cross_references")


class DiffOperation(Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"
    UNCHANGED = "unchanged"


def row_to_dict(row: CatalogRow | None) -> dict[str, Any] | None:
    if row is None:
        return None
    out: dict[str, Any] = {}
    for f in fields(row):
        if f.name == "modified_by":
            continue
        out[f.name] = getattr(row, f.name)
    return out


@dataclass(frozen=True)
class FieldChange:
    field: str
    before: Any
    after: Any


@dataclass(frozen=True)
class DiffItem:
    operation: DiffOperation
    key: BusinessKey
    before: CatalogRow | None = None
    after: CatalogRow | None = None
    changes: tuple[FieldChange, ...] = ()

    @property
    def row(self) -> CatalogRow:
        return self.after if self.after is not None else self.before  # type: ignore[return-value]

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation.value,
            "key": str(self.key),
            "row_number": self.row.row_number,
            "before": row_to_dict(self.before),
            "after": row_to_dict(self.after),
            "changes": [
                {"field": c.field, "before": c.before, "after": c.after} for c in self.changes
            ],
        }


@dataclass(frozen=True)
class SheetSummary:
    adds: int = 0
    updates: int = 0
    deletes: int = 0
    unchanged: int = 0

    @property
    def total_changes(self) -> int:
        return self.adds + self.updates + self.deletes

    def to_dict(self) -> dict[str, int]:
        return {
            "adds": self.adds,
            "updates": self.updates,
            "deletes": self.deletes,
            "unchanged": self.unchanged,
            "total_changes": self.total_changes,
        }


@dataclass(frozen=True)
class SheetDiff:
    sheet: str
    adds: list[DiffItem] = field(default_factory=list)
    updates: list[DiffItem] = field(default_factory=list)
    deletes: list[DiffItem] = field(default_factory=list)
    unchanged: list[DiffItem] = field(default_factory=list)

    @property
    def summary(self) -> SheetSummary:
        return SheetSummary(
            adds=len(self.adds),
            updates=len(self.updates),
            deletes=len(self.deletes),
            unchanged=len(self.unchanged),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "sheet": self.sheet,
            "adds": [i.to_dict() for i in self.adds],
            "updates": [i.to_dict() for i in self.updates],
            "deletes": [i.to_dict() for i in self.deletes],
            "unchanged": len(self.unchanged),
            "summary": self.summary.to_dict(),
        }


@dataclass(frozen=True)
class DiffSummary:
    adds: int
    updates: int
    deletes: int
    unchanged: int
    by_sheet: dict[str, SheetSummary]

    @property
    def total_changes(self) -> int:
        return self.adds + self.updates + self.deletes

    def to_dict(self) -> dict[str, Any]:
        return {
            "adds": self.adds,
            "updates": self.updates,
            "deletes": self.deletes,
            "unchanged": self.unchanged,
            "total_changes": self.total_changes,
            "by_sheet": {k: v.to_dict() for k, v in self.by_sheet.items()},
        }

    def to_import_summary(self) -> dict[str, Any]:
        """Shape persisted on the import-history record."""
        return {
            "adds": self.adds,
            "updates": self.updates,
            "deletes": self.deletes,
            "by_sheet": {
                k: {"adds": v.adds, "updates": v.updates, "deletes": v.deletes}
                for k, v in self.by_sheet.items()
            },
        }


@dataclass(frozen=True)
class DiffResult:
    parts: SheetDiff
    vehicle_applications: SheetDiff
    cross_references: SheetDiff

    def sheets(self) -> dict[str, SheetDiff]:
        return {
            "parts": self.parts,
            "vehicle_applications": self.vehicle_applications,
            "cross_references": self.cross_references,
        }

    @property
    def summary(self) -> DiffSummary:
        by_sheet = {k: s.summary for k, s in self.sheets().items()}
        return DiffSummary(
            adds=sum(s.adds for s in by_sheet.values()),
            updates=sum(s.updates for s in by_sheet.values()),
            deletes=sum(s.deletes for s in by_sheet.values()),
            unchanged=sum(s.unchanged for s in by_sheet.values()),
            by_sheet=by_sheet,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            **{k: s.to_dict() for k, s in self.sheets().items()},
            "summary": self.summary.to_dict(),
        }
