from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Any, Protocol

import psycopg2
from psycopg2.extras import Json

from ..models.existing_data import ExistingData
from ..models.history import ImportHistoryRecord, Snapshot
from ..models.rows import CrossReferenceRow, ModifiedBy, PartRow, VehicleApplicationRow
from .batch import DEFAULT_PAGE_SIZE, BatchMetrics, batch_delete, batch_insert, batch_update

"""Storage access for the catalog tables and the import history.

``CatalogRepository`` is the seam the services depend on;
``PostgresCatalogRepository`` implements it on a psycopg2 cursor whose
connection runs in autocommit mode, so transaction boundaries are the explicit
BEGIN / COMMIT / ROLLBACK issued by ``transaction()``. SERIALIZABLE isolation
keeps two concurrent imports or rollbacks from interleaving.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "RepositoryError",
    "CatalogRepository",
    "PostgresCatalogRepository",
    "PART_COLUMNS",
    "VEHICLE_APPLICATION_COLUMNS",
    "CROSS_REFERENCE_COLUMNS",
]

PART_COLUMNS = (
    "acr_sku",
    "part_type",
    "position_type",
    "abs_type",
    "bolt_pattern",
    "drive_type",
    "specifications",
    "workflow_status",
)
VEHICLE_APPLICATION_COLUMNS = ("part_id", "make", "model", "start_year", "end_year")
CROSS_REFERENCE_COLUMNS = ("acr_part_id", "competitor_brand", "competitor_sku")
TAG_COLUMNS = ("modified_by_kind", "modified_by_import_id")

_CASTS = {
    "id": "uuid",
    "part_id": "uuid",
    "acr_part_id": "uuid",
    "modified_by_import_id": "uuid",
    "start_year": "integer",
    "end_year": "integer",
}
_TOUCH = {"updated_at": "now()"}

SCHEMA_SQL_PATH = Path(__file__).with_name("schema.sql")

_HISTORY_COLUMNS = (
    "id, created_at, file_name, file_size_bytes, rows_imported, import_summary, imported_by"
)


class RepositoryError(Exception):
    pass


class CatalogRepository(Protocol):
    def transaction(self) -> Any: ...

    def fetch_existing_data(self) -> ExistingData: ...

    def capture_snapshot(self) -> Snapshot: ...

    def insert_history(
        self,
        *,
        file_name: str,
        file_size_bytes: int,
        rows_imported: int,
        import_summary: dict[str, Any],
        snapshot: Snapshot,
        imported_by: str | None,
    ) -> ImportHistoryRecord: ...

    def list_history(self) -> list[ImportHistoryRecord]: ...

    def get_history(self, import_id: str) -> ImportHistoryRecord | None: ...

    def delete_history(self, import_id: str) -> None: ...

    def prune_history(self, keep: int) -> int: ...

    def insert_parts(self, rows: Sequence[PartRow], tag: ModifiedBy) -> dict[str, str]: ...

    def update_parts(self, rows: Sequence[PartRow], tag: ModifiedBy) -> int: ...

    def delete_parts(self, ids: Sequence[str]) -> int: ...

    def insert_vehicle_applications(self, rows: Sequence[VehicleApplicationRow], tag: ModifiedBy) -> int: ...

    def update_vehicle_applications(self, rows: Sequence[VehicleApplicationRow], tag: ModifiedBy) -> int: ...

    def delete_vehicle_applications(self, ids: Sequence[str]) -> int: ...

    def insert_cross_references(self, rows: Sequence[CrossReferenceRow], tag: ModifiedBy) -> int: ...

    def update_cross_references(self, rows: Sequence[CrossReferenceRow], tag: ModifiedBy) -> int: ...

    def delete_cross_references(self, ids: Sequence[str]) -> int: ...

    def restore_snapshot(self, snapshot: Snapshot) -> dict[str, int]: ...


def _tag_values(tag: ModifiedBy | None) -> tuple[Any, Any]:
    if tag is None:
        return (ModifiedBy.MANUAL, None)
    return (tag.kind, tag.import_id)


def _json_value(value: Any) -> Any:
    # jsonb normally comes back decoded; text columns or custom casters may not
    return json.loads(value) if isinstance(value, str) else value


class PostgresCatalogRepository:
    def __init__(
        self,
        cursor: Any,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        metrics_callback: Callable[[BatchMetrics], None] | None = None,
    ) -> None:
        self.cursor = cursor
        self.page_size = page_size
        self.metrics_callback = metrics_callback

    # -- transaction -----------------------------------------------------
    @contextmanager
    def transaction(self) -> Iterator[None]:
        self.cursor.execute("BEGIN ISOLATION LEVEL SERIALIZABLE")
        try:
            yield
            self.cursor.execute("COMMIT")
        except Exception:
            try:
                self.cursor.execute("ROLLBACK")
            except psycopg2.Error:
                # keep the original failure; the rollback error is only logged
                logger.error("ROLLBACK failed", exc_info=True)
            raise

    def create_schema(self) -> None:
        """Apply ``schema.sql`` (idempotent DDL) in one transaction."""
        ddl = SCHEMA_SQL_PATH.read_text(encoding="utf-8")
        with self.transaction():
            try:
                self.cursor.execute(ddl)
            except psycopg2.Error as e:
                raise RepositoryError(f"failed applying schema: {e}") from e
        logger.info("schema applied from %s", SCHEMA_SQL_PATH.name)

    # -- reads -------------------------------------------------------------
    def _fetch_paged(self, table: str, columns: Sequence[str]) -> list[tuple[Any, ...]]:
        """Keyset-paginated full read ordered by id."""
        cols = ", ".join(["id", *columns, *TAG_COLUMNS])
        out: list[tuple[Any, ...]] = []
        last_id: str | None = None
        try:
            while True:
                if last_id is None:
                    self.cursor.execute(
                        f"SELECT {cols} FROM {table} ORDER BY id LIMIT %s", (self.page_size,)
                    )
                else:
                    self.cursor.execute(
                        f"SELECT {cols} FROM {table} WHERE id > %s::uuid ORDER BY id LIMIT %s",
                        (last_id, self.page_size),
                    )
                page = self.cursor.fetchall()
                out.extend(page)
                if len(page) < self.page_size:
                    break
                last_id = str(page[-1][0])
        except psycopg2.Error as e:
            raise RepositoryError(f"failed reading {table}: {e}") from e
        logger.debug("read %s: %d rows", table, len(out))
        return out

    def _read_all(self) -> tuple[list[PartRow], list[VehicleApplicationRow], list[CrossReferenceRow]]:
        parts = [
            PartRow(
                id=str(r[0]),
                **dict(zip(PART_COLUMNS, r[1:9], strict=True)),
                modified_by=ModifiedBy(kind=r[9], import_id=str(r[10]) if r[10] else None),
            )
            for r in self._fetch_paged("parts", PART_COLUMNS)
        ]
        vas = [
            VehicleApplicationRow(
                acr_sku=None,
                id=str(r[0]),
                part_id=str(r[1]),
                make=r[2],
                model=r[3],
                start_year=r[4],
                end_year=r[5],
                modified_by=ModifiedBy(kind=r[6], import_id=str(r[7]) if r[7] else None),
            )
            for r in self._fetch_paged("vehicle_applications", VEHICLE_APPLICATION_COLUMNS)
        ]
        crs = [
            CrossReferenceRow(
                acr_sku=None,
                id=str(r[0]),
                acr_part_id=str(r[1]),
                competitor_brand=r[2],
                competitor_sku=r[3],
                modified_by=ModifiedBy(kind=r[4], import_id=str(r[5]) if r[5] else None),
            )
            for r in self._fetch_paged("cross_references", CROSS_REFERENCE_COLUMNS)
        ]
        return parts, vas, crs

    def fetch_existing_data(self) -> ExistingData:
        parts, vas, crs = self._read_all()
        return ExistingData.from_rows(parts, vas, crs)

    def capture_snapshot(self) -> Snapshot:
        return Snapshot.of(self.fetch_existing_data())

    # -- history -----------------------------------------------------------
    def _history_record(self, r: Sequence[Any], snapshot: Any = None) -> ImportHistoryRecord:
        return ImportHistoryRecord(
            id=str(r[0]),
            created_at=r[1],
            file_name=r[2],
            file_size_bytes=r[3],
            rows_imported=r[4],
            import_summary=_json_value(r[5]),
            imported_by=r[6],
            snapshot_data=Snapshot.from_dict(_json_value(snapshot)) if snapshot is not None else None,
        )

    def insert_history(
        self,
        *,
        file_name: str,
        file_size_bytes: int,
        rows_imported: int,
        import_summary: dict[str, Any],
        snapshot: Snapshot,
        imported_by: str | None,
    ) -> ImportHistoryRecord:
        try:
            self.cursor.execute(
                "INSERT INTO import_history "
                "(file_name, file_size_bytes, rows_imported, import_summary, snapshot_data, imported_by) "
                f"VALUES (%s, %s, %s, %s, %s, %s) RETURNING {_HISTORY_COLUMNS}",
                (
                    file_name,
                    file_size_bytes,
                    rows_imported,
                    Json(import_summary),
                    Json(snapshot.to_dict()),
                    imported_by,
                ),
            )
            row = self.cursor.fetchone()
        except psycopg2.Error as e:
            raise RepositoryError(f"failed writing import history: {e}") from e
        return replace(self._history_record(row), snapshot_data=snapshot)

    def list_history(self) -> list[ImportHistoryRecord]:
        """Newest first, snapshots not loaded."""
        try:
            self.cursor.execute(f"SELECT {_HISTORY_COLUMNS} FROM import_history ORDER BY seq DESC")
            rows = self.cursor.fetchall()
        except psycopg2.Error as e:
            raise RepositoryError(f"failed reading import history: {e}") from e
        return [self._history_record(r) for r in rows]

    def get_history(self, import_id: str) -> ImportHistoryRecord | None:
        try:
            self.cursor.execute(
                f"SELECT {_HISTORY_COLUMNS}, snapshot_data FROM import_history WHERE id::text = %s",
                (import_id,),
            )
            row = self.cursor.fetchone()
        except psycopg2.Error as e:
            raise RepositoryError(f"failed reading import history: {e}") from e
        if row is None:
            return None
        return self._history_record(row[:7], snapshot=row[7])

    def delete_history(self, import_id: str) -> None:
        try:
            self.cursor.execute("DELETE FROM import_history WHERE id::text = %s", (import_id,))
        except psycopg2.Error as e:
            raise RepositoryError(f"failed deleting import history {import_id}: {e}") from e

    def prune_history(self, keep: int) -> int:
        try:
            self.cursor.execute(
                "DELETE FROM import_history WHERE id IN "
                "(SELECT id FROM import_history ORDER BY seq DESC OFFSET %s)",
                (keep,),
            )
        except psycopg2.Error as e:
            raise RepositoryError(f"failed pruning import history: {e}") from e
        return max(self.cursor.rowcount, 0)

    # -- writes ------------------------------------------------------------
    def _batch_kwargs(self) -> dict[str, Any]:
        return {"page_size": self.page_size, "metrics_callback": self.metrics_callback}

    def insert_parts(self, rows: Sequence[PartRow], tag: ModifiedBy) -> dict[str, str]:
        result = batch_insert(
            self.cursor,
            "parts",
            [*PART_COLUMNS, *TAG_COLUMNS],
            [(*(getattr(r, c) for c in PART_COLUMNS), *_tag_values(tag)) for r in rows],
            returning=("acr_sku", "id"),
            **self._batch_kwargs(),
        )
        return {sku: str(ident) for sku, ident in result.returned_values or []}

    def update_parts(self, rows: Sequence[PartRow], tag: ModifiedBy) -> int:
        return batch_update(
            self.cursor,
            "parts",
            "id",
            [*PART_COLUMNS, *TAG_COLUMNS],
            [(r.id, *(getattr(r, c) for c in PART_COLUMNS), *_tag_values(tag)) for r in rows],
            casts=_CASTS,
            extra_set=_TOUCH,
            **self._batch_kwargs(),
        ).affected_rows

    def delete_parts(self, ids: Sequence[str]) -> int:
        return batch_delete(self.cursor, "parts", "id", ids, key_cast="uuid", **self._batch_kwargs()).affected_rows

    def insert_vehicle_applications(self, rows: Sequence[VehicleApplicationRow], tag: ModifiedBy) -> int:
        return batch_insert(
            self.cursor,
            "vehicle_applications",
            [*VEHICLE_APPLICATION_COLUMNS, *TAG_COLUMNS],
            [(*(getattr(r, c) for c in VEHICLE_APPLICATION_COLUMNS), *_tag_values(tag)) for r in rows],
            **self._batch_kwargs(),
        ).affected_rows

    def update_vehicle_applications(self, rows: Sequence[VehicleApplicationRow], tag: ModifiedBy) -> int:
        return batch_update(
            self.cursor,
            "vehicle_applications",
            "id",
            [*VEHICLE_APPLICATION_COLUMNS, *TAG_COLUMNS],
            [(r.id, *(getattr(r, c) for c in VEHICLE_APPLICATION_COLUMNS), *_tag_values(tag)) for r in rows],
            casts=_CASTS,
            extra_set=_TOUCH,
            **self._batch_kwargs(),
        ).affected_rows

    def delete_vehicle_applications(self, ids: Sequence[str]) -> int:
        return batch_delete(
            self.cursor, "vehicle_applications", "id", ids, key_cast="uuid", **self._batch_kwargs()
        ).affected_rows

    def insert_cross_references(self, rows: Sequence[CrossReferenceRow], tag: ModifiedBy) -> int:
        return batch_insert(
            self.cursor,
            "cross_references",
            [*CROSS_REFERENCE_COLUMNS, *TAG_COLUMNS],
            [(*(getattr(r, c) for c in CROSS_REFERENCE_COLUMNS), *_tag_values(tag)) for r in rows],
            **self._batch_kwargs(),
        ).affected_rows

    def update_cross_references(self, rows: Sequence[CrossReferenceRow], tag: ModifiedBy) -> int:
        return batch_update(
            self.cursor,
            "cross_references",
            "id",
            [*CROSS_REFERENCE_COLUMNS, *TAG_COLUMNS],
            [(r.id, *(getattr(r, c) for c in CROSS_REFERENCE_COLUMNS), *_tag_values(tag)) for r in rows],
            casts=_CASTS,
            extra_set=_TOUCH,
            **self._batch_kwargs(),
        ).affected_rows

    def delete_cross_references(self, ids: Sequence[str]) -> int:
        return batch_delete(
            self.cursor, "cross_references", "id", ids, key_cast="uuid", **self._batch_kwargs()
        ).affected_rows

    def restore_snapshot(self, snapshot: Snapshot) -> dict[str, int]:
        """Replace all catalog rows with the snapshot pre-image (identities and tags kept)."""
        try:
            for table in ("cross_references", "vehicle_applications", "parts"):
                self.cursor.execute(f"DELETE FROM {table}")
        except psycopg2.Error as e:
            raise RepositoryError(f"failed clearing catalog tables: {e}") from e

        kwargs = self._batch_kwargs()
        batch_insert(
            self.cursor,
            "parts",
            ["id", *PART_COLUMNS, *TAG_COLUMNS],
            [(r.id, *(getattr(r, c) for c in PART_COLUMNS), *_tag_values(r.modified_by)) for r in snapshot.parts],
            **kwargs,
        )
        batch_insert(
            self.cursor,
            "vehicle_applications",
            ["id", *VEHICLE_APPLICATION_COLUMNS, *TAG_COLUMNS],
            [
                (r.id, *(getattr(r, c) for c in VEHICLE_APPLICATION_COLUMNS), *_tag_values(r.modified_by))
                for r in snapshot.vehicle_applications
            ],
            **kwargs,
        )
        batch_insert(
            self.cursor,
            "cross_references",
            ["id", *CROSS_REFERENCE_COLUMNS, *TAG_COLUMNS],
            [
                (r.id, *(getattr(r, c) for c in CROSS_REFERENCE_COLUMNS), *_tag_values(r.modified_by))
                for r in snapshot.cross_references
            ],
            **kwargs,
        )
        return snapshot.counts
