from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .rows import CatalogRow, CrossReferenceRow, PartRow, VehicleApplicationRow

"""Business keys used to match spreadsheet rows against stored rows.

One key type per entity; ``key_of`` is total over every row type so lookup
code stays generic ("get existing by key") instead of sheet specific.
"""

__all__ = [
    "PartKey",
    "VehicleApplicationKey",
    "CrossReferenceKey",
    "BusinessKey",
    "key_of",
]


def _fold(value: Any) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split()).upper()


@dataclass(frozen=True)
class PartKey:
    acr_sku: str

    def __str__(self) -> str:
        return self.acr_sku


@dataclass(frozen=True)
class VehicleApplicationKey:
    acr_sku: str
    make: str
    model: str
    start_year: Any

    def __str__(self) -> str:
        return f"{self.acr_sku}::{self.make}::{self.model}::{self.start_year}"


@dataclass(frozen=True)
class CrossReferenceKey:
    """Cross references only have a storage identity; ``id=None`` never matches."""
    id: str | None

    def __str__(self) -> str:
        return self.id or "<new>"


BusinessKey = PartKey | VehicleApplicationKey | CrossReferenceKey


def key_of(row: CatalogRow) -> BusinessKey:
    if isinstance(row, PartRow):
        return PartKey(acr_sku=row.acr_sku or "")
    if isinstance(row, VehicleApplicationRow):
        return VehicleApplicationKey(
            acr_sku=row.acr_sku or "",
            make=_fold(row.make),
            model=_fold(row.model),
            start_year=row.start_year,
        )
    if isinstance(row, CrossReferenceRow):
        return CrossReferenceKey(id=row.id)
    raise TypeError(f"unsupported row type: {type(row).__name__}")
