from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from typing import TypeVar

from ..models.existing_data import ExistingData
from ..models.rows import CrossReferenceRow, PartRow, VehicleApplicationRow

"""Parent identity propagation for dependent rows.

The spreadsheet links vehicle applications and cross references to their part
by SKU; storage links them by the part's identity. New parts are inserted
first (with RETURNING) so that a SKU -> part id map covering stored, renamed
and newly inserted parts can resolve every dependent row before it is written.
"""

__all__ = [
    "FKPropagationError",
    "build_parent_id_map",
    "propagate_parent_ids",
]

R = TypeVar("R", VehicleApplicationRow, CrossReferenceRow)


class FKPropagationError(Exception):
    """A dependent row's parent part could not be resolved."""


def build_parent_id_map(
    existing: ExistingData,
    updated_parts: Iterable[PartRow] = (),
    inserted: Mapping[str, str] | None = None,
    deleted_ids: Iterable[str] = (),
) -> dict[str, str]:
    """SKU -> part id after this import's part changes.

    Old SKUs of renamed parts keep resolving to the same part, so dependent
    rows that still carry the previous SKU stay attached.
    """
    deleted = set(deleted_ids)
    parent_map = {
        str(key): part.id
        for key, part in existing.parts.items()
        if part.id is not None and part.id not in deleted
    }
    for part in updated_parts:
        if part.acr_sku and part.id:
            parent_map[part.acr_sku] = part.id
    parent_map.update(inserted or {})
    return parent_map


def propagate_parent_ids(
    rows: Sequence[R],
    parent_map: Mapping[str, str],
    *,
    id_field: str,
) -> list[R]:
    """Fill ``id_field`` (``part_id`` / ``acr_part_id``) on every row from its SKU.

    The SKU always wins over a parent identity carried by the row, so editing
    ACR_SKU in an exported file moves the row to another part.
    """
    out: list[R] = []
    for row in rows:
        parent_id = parent_map.get(row.acr_sku or "")
        if parent_id is None:
            raise FKPropagationError(
                f"no part for ACR_SKU {row.acr_sku!r} (row {row.row_number})"
            )
        out.append(replace(row, **{id_field: parent_id}))
    return out
