from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, ClassVar

"""Canonical catalog row types.

Rows are immutable value objects built either from an uploaded spreadsheet or
from a full read of current storage. ``row_number`` (1-based spreadsheet row)
and the modification tag are bookkeeping only and never take part in equality.
"""

__all__ = [
    "WorkflowStatus",
    "ModifiedBy",
    "PartRow",
    "VehicleApplicationRow",
    "CrossReferenceRow",
    "CatalogRow",
]


class WorkflowStatus(Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    PENDING = "PENDING"

    @classmethod
    def values(cls) -> tuple[str, ...]:
        return tuple(m.value for m in cls)


@dataclass(frozen=True)
class ModifiedBy:
    """Per-row ``last_modified_by`` tag: either an import id or a manual edit."""
    kind: str  # "import" | "manual"
    import_id: str | None = None

    IMPORT: ClassVar[str] = "import"
    MANUAL: ClassVar[str] = "manual"

    @classmethod
    def by_import(cls, import_id: str) -> ModifiedBy:
        return cls(kind=cls.IMPORT, import_id=import_id)

    @classmethod
    def manual(cls) -> ModifiedBy:
        return cls(kind=cls.MANUAL)

    @property
    def is_manual(self) -> bool:
        return self.kind == self.MANUAL

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "import_id": self.import_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ModifiedBy | None:
        if not data:
            return None
        return cls(kind=data.get("kind", cls.MANUAL), import_id=data.get("import_id"))


class _RowMixin:
    DATA_FIELDS: ClassVar[tuple[str, ...]] = ()
    COMPARE_FIELDS: ClassVar[tuple[str, ...]] = ()

    def data(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.DATA_FIELDS}

    def tagged(self, modified_by: ModifiedBy):
        return replace(self, modified_by=modified_by)  # type: ignore[type-var]


@dataclass(frozen=True)
class PartRow(_RowMixin):
    acr_sku: str | None
    part_type: str | None = None
    position_type: str | None = None
    abs_type: str | None = None
    bolt_pattern: str | None = None
    drive_type: str | None = None
    specifications: str | None = None
    # kept as text so an unknown status can be reported instead of failing the parse
    workflow_status: str = WorkflowStatus.ACTIVE.value
    id: str | None = None
    row_number: int | None = field(default=None, compare=False)
    modified_by: ModifiedBy | None = field(default=None, compare=False)

    DATA_FIELDS: ClassVar[tuple[str, ...]] = (
        "acr_sku",
        "part_type",
        "position_type",
        "abs_type",
        "bolt_pattern",
        "drive_type",
        "specifications",
        "workflow_status",
    )
    COMPARE_FIELDS: ClassVar[tuple[str, ...]] = DATA_FIELDS


@dataclass(frozen=True)
class VehicleApplicationRow(_RowMixin):
    """Vehicle fitment row. ``acr_sku`` is the spreadsheet-side parent link,
    ``part_id`` the storage-side one; the pipeline resolves between them."""
    acr_sku: str | None
    make: str | None = None
    model: str | None = None
    start_year: Any = None  # int once valid; raw cell value otherwise
    end_year: Any = None
    id: str | None = None
    part_id: str | None = None
    row_number: int | None = field(default=None, compare=False)
    modified_by: ModifiedBy | None = field(default=None, compare=False)

    DATA_FIELDS: ClassVar[tuple[str, ...]] = ("acr_sku", "make", "model", "start_year", "end_year")
    # a parent move is detected by the diff from the resolved ACR_SKU
    COMPARE_FIELDS: ClassVar[tuple[str, ...]] = ("make", "model", "start_year", "end_year")


@dataclass(frozen=True)
class CrossReferenceRow(_RowMixin):
    acr_sku: str | None
    competitor_sku: str | None = None
    competitor_brand: str | None = None
    id: str | None = None
    acr_part_id: str | None = None
    row_number: int | None = field(default=None, compare=False)
    modified_by: ModifiedBy | None = field(default=None, compare=False)

    DATA_FIELDS: ClassVar[tuple[str, ...]] = ("acr_sku", "competitor_sku", "competitor_brand")
    COMPARE_FIELDS: ClassVar[tuple[str, ...]] = ("competitor_sku", "competitor_brand")


CatalogRow = PartRow | VehicleApplicationRow | CrossReferenceRow
