from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from .rows import CrossReferenceRow, PartRow, VehicleApplicationRow

"""Parsed workbook container and upload metadata."""

__all__ = [
    "MatchingStrategy",
    "ParsedWorkbook",
    "ImportMetadata",
]


class MatchingStrategy(Enum):
    """How uploaded rows are matched to stored rows.

    IDENTITY: the file was exported by this system (hidden identity columns
    present); rows carrying an identity are matched by it.
    BUSINESS_KEY: fresh third-party file; rows are matched by business key.
    """
    IDENTITY = "identity"
    BUSINESS_KEY = "business_key"


@dataclass(frozen=True)
class ParsedWorkbook:
    parts: list[PartRow] = field(default_factory=list)
    vehicle_applications: list[VehicleApplicationRow] = field(default_factory=list)
    cross_references: list[CrossReferenceRow] = field(default_factory=list)
    strategy: MatchingStrategy = MatchingStrategy.BUSINESS_KEY
    file_name: str | None = None

    @property
    def row_counts(self) -> dict[str, int]:
        return {
            "parts": len(self.parts),
            "vehicle_applications": len(self.vehicle_applications),
            "cross_references": len(self.cross_references),
        }

    @property
    def is_empty(self) -> bool:
        return not (self.parts or self.vehicle_applications or self.cross_references)


@dataclass(frozen=True)
class ImportMetadata:
    file_name: str
    file_size: int
    uploaded_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    imported_by: str | None = None
