from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from .keys import (
    BusinessKey,
    CrossReferenceKey,
    PartKey,
    VehicleApplicationKey,
    key_of,
)
from .rows import CatalogRow, CrossReferenceRow, PartRow, VehicleApplicationRow

"""Fully materialized view of current storage, keyed by business key.

Built by the repository after a paginated read. Dependent rows are stored
with their parent's identity only; ``from_rows`` fills in the parent SKU via
the reverse lookup ``part_sku_by_id`` so every row can be keyed.

Storage does not enforce uniqueness of the vehicle application business key.
When stored rows collide, the first one read owns the key and the others are
only reachable by identity; ``all_rows`` always returns every stored row.
"""

__all__ = [
    "ExistingData",
]


@dataclass(frozen=True)
class ExistingData:
    parts: dict[PartKey, PartRow] = field(default_factory=dict)
    vehicle_applications: dict[VehicleApplicationKey, VehicleApplicationRow] = field(default_factory=dict)
    cross_references: dict[CrossReferenceKey, CrossReferenceRow] = field(default_factory=dict)
    part_sku_by_id: dict[str, str] = field(default_factory=dict)
    parts_by_id: dict[str, PartRow] = field(default_factory=dict)
    vehicle_applications_by_id: dict[str, VehicleApplicationRow] = field(default_factory=dict)
    vehicle_application_rows: tuple[VehicleApplicationRow, ...] = ()

    @classmethod
    def empty(cls) -> ExistingData:
        return cls()

    @classmethod
    def from_rows(
        cls,
        parts: Iterable[PartRow],
        vehicle_applications: Iterable[VehicleApplicationRow] = (),
        cross_references: Iterable[CrossReferenceRow] = (),
    ) -> ExistingData:
        part_map: dict[PartKey, PartRow] = {}
        parts_by_id: dict[str, PartRow] = {}
        sku_by_id: dict[str, str] = {}
        for p in parts:
            part_map[PartKey(p.acr_sku or "")] = p
            if p.id is not None:
                parts_by_id[p.id] = p
                sku_by_id[p.id] = p.acr_sku or ""

        va_map: dict[VehicleApplicationKey, VehicleApplicationRow] = {}
        va_by_id: dict[str, VehicleApplicationRow] = {}
        va_rows: list[VehicleApplicationRow] = []
        for va in vehicle_applications:
            if va.part_id is not None and va.part_id in sku_by_id:
                va = replace(va, acr_sku=sku_by_id[va.part_id])
            va_map.setdefault(key_of(va), va)  # type: ignore[arg-type]
            va_rows.append(va)
            if va.id is not None:
                va_by_id[va.id] = va

        cr_map: dict[CrossReferenceKey, CrossReferenceRow] = {}
        for cr in cross_references:
            if cr.acr_part_id is not None and cr.acr_part_id in sku_by_id:
                cr = replace(cr, acr_sku=sku_by_id[cr.acr_part_id])
            cr_map[CrossReferenceKey(cr.id)] = cr

        return cls(
            parts=part_map,
            vehicle_applications=va_map,
            cross_references=cr_map,
            part_sku_by_id=sku_by_id,
            parts_by_id=parts_by_id,
            vehicle_applications_by_id=va_by_id,
            vehicle_application_rows=tuple(va_rows),
        )

    def get(self, key: BusinessKey) -> CatalogRow | None:
        if isinstance(key, PartKey):
            return self.parts.get(key)
        if isinstance(key, VehicleApplicationKey):
            return self.vehicle_applications.get(key)
        if isinstance(key, CrossReferenceKey):
            return self.cross_references.get(key) if key.id is not None else None
        raise TypeError(f"unsupported key type: {type(key).__name__}")

    def all_rows(self, sheet: str) -> list[CatalogRow]:
        """Every stored row of ``sheet``, business-key duplicates included."""
        if sheet == "parts":
            return list(self.parts.values())
        if sheet == "vehicle_applications":
            return list(self.vehicle_application_rows)
        if sheet == "cross_references":
            return list(self.cross_references.values())
        raise ValueError(f"unknown sheet: {sheet}")

    def part_id_for_sku(self, acr_sku: str | None) -> str | None:
        if not acr_sku:
            return None
        part = self.parts.get(PartKey(acr_sku))
        return part.id if part is not None else None

    def cross_reference_signatures(self) -> set[tuple[str, str, str]]:
        """(sku, brand, competitor sku) triples of every stored cross reference."""
        return {
            (cr.acr_sku or "", (cr.competitor_brand or "").upper(), (cr.competitor_sku or "").upper())
            for cr in self.cross_references.values()
        }

    @property
    def is_empty(self) -> bool:
        return not (self.parts or self.vehicle_applications or self.cross_references)
