from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from ..models.existing_data import ExistingData
from ..models.keys import BusinessKey, key_of
from ..models.rows import CatalogRow
from ..models.workbook import MatchingStrategy

"""Row matching shared by validation and diff.

Under IDENTITY, rows carrying a storage identity are matched by it first;
remaining rows fall back to their business key. An existing row is claimed by
at most one uploaded row. Stored rows that share a business key are all
reported; only the first one read can be claimed by key. Cross references have no business key, so without an
identity they never match.
"""

__all__ = [
    "Match",
    "SheetMatch",
    "match_sheet",
]


@dataclass(frozen=True)
class Match:
    existing: CatalogRow | None = None
    by_identity: bool = False


@dataclass(frozen=True)
class SheetMatch:
    matches: list[Match]
    unmatched: list[CatalogRow]  # existing rows no uploaded row claimed


def _indexes(sheet: str, existing: ExistingData) -> tuple[Mapping[BusinessKey, CatalogRow], Mapping[str, CatalogRow]]:
    if sheet == "parts":
        return existing.parts, existing.parts_by_id
    if sheet == "vehicle_applications":
        return existing.vehicle_applications, existing.vehicle_applications_by_id
    if sheet == "cross_references":
        by_id = {k.id: v for k, v in existing.cross_references.items() if k.id is not None}
        return existing.cross_references, by_id
    raise ValueError(f"unknown sheet: {sheet}")


def match_sheet(
    sheet: str,
    rows: Sequence[CatalogRow],
    existing: ExistingData,
    strategy: MatchingStrategy,
) -> SheetMatch:
    by_key, by_id = _indexes(sheet, existing)
    use_identity = strategy is MatchingStrategy.IDENTITY
    matches: list[Match | None] = [None] * len(rows)
    # stored rows by object identity; rows built in memory may lack a storage id
    claimed: set[int] = set()

    if use_identity:
        for i, row in enumerate(rows):
            if not row.id or row.id not in by_id:
                continue
            candidate = by_id[row.id]
            if id(candidate) in claimed:
                continue
            claimed.add(id(candidate))
            matches[i] = Match(existing=candidate, by_identity=True)

    for i, row in enumerate(rows):
        if matches[i] is not None:
            continue
        if (use_identity and row.id) or sheet == "cross_references":
            # unknown or repeated identity; no business-key fallback
            matches[i] = Match()
            continue
        candidate = by_key.get(key_of(row))  # type: ignore[call-overload]
        if candidate is None or id(candidate) in claimed:
            matches[i] = Match()
            continue
        claimed.add(id(candidate))
        matches[i] = Match(existing=candidate)

    unmatched = [row for row in existing.all_rows(sheet) if id(row) not in claimed]
    return SheetMatch(matches=[m or Match() for m in matches], unmatched=unmatched)
