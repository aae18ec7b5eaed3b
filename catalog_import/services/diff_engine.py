from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import replace
from typing import Any

from ..models.diff import DiffItem, DiffOperation, DiffResult, FieldChange, SheetDiff
from ..models.existing_data import ExistingData
from ..models.keys import key_of
from ..models.rows import CatalogRow, VehicleApplicationRow
from ..models.workbook import MatchingStrategy, ParsedWorkbook
from .matching import match_sheet

"""Diff engine: (parsed workbook, existing data) -> per-sheet change sets.

Pure and deterministic: uploaded rows are visited in sheet order and deletes
follow the insertion order of the existing-data maps. An uploaded sheet is the
complete replacement set for its table, except that an empty sheet never
produces deletes. Cross references never produce deletes.

A matched vehicle application or cross reference whose ACR_SKU resolves to a
different part than the stored one is an update of its ``acr_sku`` link.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "generate_diff",
    "field_changes",
]


def _norm(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    return value


def field_changes(before: CatalogRow, after: CatalogRow) -> tuple[FieldChange, ...]:
    """Field-by-field comparison; null and empty text compare equal."""
    changes = []
    for name in after.COMPARE_FIELDS:
        old, new = getattr(before, name), getattr(after, name)
        if _norm(old) != _norm(new):
            changes.append(FieldChange(field=name, before=old, after=new))
    return tuple(changes)


def _parent_ids(parts: SheetDiff, existing: ExistingData) -> dict[str, str | None]:
    """SKU -> part id once this import's part changes apply; None for an added part.

    Old SKUs of renamed parts keep resolving, as in the import's parent map.
    """
    parent_ids: dict[str, str | None] = {str(k): p.id for k, p in existing.parts.items()}
    for item in parts.deletes:
        parent_ids.pop(item.before.acr_sku or "", None)  # type: ignore[union-attr]
    for item in (*parts.updates, *parts.unchanged):
        parent_ids[item.after.acr_sku or ""] = item.after.id  # type: ignore[union-attr]
    for item in parts.adds:
        parent_ids[item.after.acr_sku or ""] = None  # type: ignore[union-attr]
    return parent_ids


def _parent_change(
    before: CatalogRow, after: CatalogRow, parent_ids: Mapping[str, str | None]
) -> tuple[FieldChange, ...]:
    sku = after.acr_sku or ""
    if sku not in parent_ids:
        return ()  # unresolvable; reported by validation
    stored = before.part_id if isinstance(before, VehicleApplicationRow) else before.acr_part_id  # type: ignore[union-attr]
    if parent_ids[sku] == stored:
        return ()
    return (FieldChange(field="acr_sku", before=before.acr_sku, after=after.acr_sku),)


def _diff_sheet(
    sheet: str,
    rows: Sequence[CatalogRow],
    existing: ExistingData,
    strategy: MatchingStrategy,
    infer_deletes: bool,
    parent_ids: Mapping[str, str | None] | None = None,
) -> SheetDiff:
    result = SheetDiff(sheet=sheet)
    matched = match_sheet(sheet, rows, existing, strategy)
    for row, m in zip(rows, matched.matches, strict=True):
        if m.existing is None:
            result.adds.append(DiffItem(DiffOperation.ADD, key_of(row), before=None, after=row))
            continue
        # the update targets the stored row
        after = replace(row, id=m.existing.id)
        changes = field_changes(m.existing, row)
        if parent_ids is not None:
            changes += _parent_change(m.existing, row, parent_ids)
        op = DiffOperation.UPDATE if changes else DiffOperation.UNCHANGED
        item = DiffItem(op, key_of(row), before=m.existing, after=after, changes=changes)
        (result.updates if changes else result.unchanged).append(item)

    if infer_deletes and rows:
        for old in matched.unmatched:
            result.deletes.append(DiffItem(DiffOperation.DELETE, key_of(old), before=old, after=None))
    return result


def generate_diff(parsed: ParsedWorkbook, existing: ExistingData | None = None) -> DiffResult:
    existing = existing if existing is not None else ExistingData.empty()
    parts = _diff_sheet("parts", parsed.parts, existing, parsed.strategy, infer_deletes=True)
    parent_ids = _parent_ids(parts, existing)
    diff = DiffResult(
        parts=parts,
        vehicle_applications=_diff_sheet(
            "vehicle_applications",
            parsed.vehicle_applications,
            existing,
            parsed.strategy,
            infer_deletes=True,
            parent_ids=parent_ids,
        ),
        cross_references=_diff_sheet(
            "cross_references",
            parsed.cross_references,
            existing,
            parsed.strategy,
            infer_deletes=False,
            parent_ids=parent_ids,
        ),
    )
    s = diff.summary
    logger.info(
        "diff: adds=%d updates=%d deletes=%d unchanged=%d",
        s.adds,
        s.updates,
        s.deletes,
        s.unchanged,
    )
    return diff
