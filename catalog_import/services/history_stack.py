from __future__ import annotations

from typing import Any

from ..db.repository import CatalogRepository
from ..models.history import ImportHistoryRecord

"""Import history as an explicit stack.

``top()`` is the single answer to "which import may be rolled back"; both the
snapshot listing and the rollback enforcement go through it.
"""

__all__ = [
    "ImportHistoryStack",
]


class ImportHistoryStack:
    def __init__(self, repository: CatalogRepository) -> None:
        self.repository = repository

    def entries(self) -> list[ImportHistoryRecord]:
        """Newest first."""
        return self.repository.list_history()

    def top(self) -> ImportHistoryRecord | None:
        entries = self.entries()
        return entries[0] if entries else None

    def list(self) -> list[dict[str, Any]]:
        """Listing payload; ``can_rollback`` marks the top of the stack only."""
        entries = self.entries()
        top_id = entries[0].id if entries else None
        return [{**e.to_dict(), "can_rollback": e.id == top_id} for e in entries]
