# Shared pytest fixtures: in-memory catalog storage and workbook builders
from __future__ import annotations

import copy
import io
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from catalog_import.excel.columns import (
    CROSS_REFERENCES_SHEET,
    HIDDEN_COLUMNS,
    OPTIONAL_HEADERS,
    PARTS_SHEET,
    REQUIRED_HEADERS,
    VEHICLE_APPLICATIONS_SHEET,
)
from catalog_import.models.existing_data import ExistingData
from catalog_import.models.history import ImportHistoryRecord, Snapshot
from catalog_import.models.rows import CrossReferenceRow, ModifiedBy, PartRow, VehicleApplicationRow


class InMemoryCatalogRepository:
    """CatalogRepository with the guarantees the services rely on:
    transactions are all-or-nothing, parts are unique by SKU, dependent rows
    need an existing part and go away with it."""

    def __init__(self) -> None:
        self.parts: dict[str, PartRow] = {}
        self.vehicle_applications: dict[str, VehicleApplicationRow] = {}
        self.cross_references: dict[str, CrossReferenceRow] = {}
        self.history: list[ImportHistoryRecord] = []  # oldest first
        self.fail_on: str | None = None  # method name that raises once inside a transaction
        self.transactions = 0
        self._clock = datetime(2026, 1, 1, tzinfo=UTC)

    # -- test helpers --------------------------------------------------------
    def _maybe_fail(self, name: str) -> None:
        if self.fail_on == name:
            self.fail_on = None
            raise RuntimeError(f"simulated storage failure in {name}")

    def seed_part(self, acr_sku: str, **fields: Any) -> PartRow:
        row = PartRow(acr_sku=acr_sku, id=str(uuid.uuid4()), modified_by=ModifiedBy.manual(), **fields)
        self.parts[row.id] = row
        return row

    def seed_vehicle_application(
        self, part: PartRow, make: str, model: str, start_year: int, end_year: int
    ) -> VehicleApplicationRow:
        row = VehicleApplicationRow(
            acr_sku=part.acr_sku,
            make=make,
            model=model,
            start_year=start_year,
            end_year=end_year,
            id=str(uuid.uuid4()),
            part_id=part.id,
            modified_by=ModifiedBy.manual(),
        )
        self.vehicle_applications[row.id] = row
        return row

    def seed_cross_reference(self, part: PartRow, brand: str | None, competitor_sku: str) -> CrossReferenceRow:
        row = CrossReferenceRow(
            acr_sku=part.acr_sku,
            competitor_brand=brand,
            competitor_sku=competitor_sku,
            id=str(uuid.uuid4()),
            acr_part_id=part.id,
            modified_by=ModifiedBy.manual(),
        )
        self.cross_references[row.id] = row
        return row

    def manual_edit(self, table: str, row_id: str, **changes: Any) -> None:
        rows = getattr(self, table)
        rows[row_id] = replace(rows[row_id], modified_by=ModifiedBy.manual(), **changes)

    def part_by_sku(self, acr_sku: str) -> PartRow | None:
        return next((p for p in self.parts.values() if p.acr_sku == acr_sku), None)

    def state(self) -> tuple[Any, ...]:
        return (
            dict(self.parts),
            dict(self.vehicle_applications),
            dict(self.cross_references),
            [r.id for r in self.history],
        )

    # -- CatalogRepository ---------------------------------------------------
    @contextmanager
    def transaction(self):
        saved = copy.deepcopy((self.parts, self.vehicle_applications, self.cross_references, self.history))
        self.transactions += 1
        try:
            yield
        except Exception:
            self.parts, self.vehicle_applications, self.cross_references, self.history = saved
            raise

    def fetch_existing_data(self) -> ExistingData:
        return ExistingData.from_rows(
            self.parts.values(), self.vehicle_applications.values(), self.cross_references.values()
        )

    def capture_snapshot(self) -> Snapshot:
        return Snapshot.of(self.fetch_existing_data())

    def insert_history(self, *, file_name, file_size_bytes, rows_imported, import_summary, snapshot, imported_by):
        self._maybe_fail("insert_history")
        self._clock += timedelta(seconds=1)
        record = ImportHistoryRecord(
            id=str(uuid.uuid4()),
            created_at=self._clock,
            file_name=file_name,
            file_size_bytes=file_size_bytes,
            rows_imported=rows_imported,
            import_summary=copy.deepcopy(import_summary),
            # stored serialized, as in the jsonb column
            snapshot_data=Snapshot.from_dict(snapshot.to_dict()),
            imported_by=imported_by,
        )
        self.history.append(record)
        return record

    def list_history(self) -> list[ImportHistoryRecord]:
        return [replace(r, snapshot_data=None) for r in reversed(self.history)]

    def get_history(self, import_id: str) -> ImportHistoryRecord | None:
        return next((r for r in self.history if r.id == import_id), None)

    def delete_history(self, import_id: str) -> None:
        self.history = [r for r in self.history if r.id != import_id]

    def prune_history(self, keep: int) -> int:
        drop = max(len(self.history) - keep, 0)
        self.history = self.history[drop:]
        return drop

    def _check_unique_sku(self) -> None:
        skus = [p.acr_sku for p in self.parts.values()]
        if len(skus) != len(set(skus)):
            raise ValueError("duplicate key value violates unique constraint on acr_sku")

    def insert_parts(self, rows, tag):
        self._maybe_fail("insert_parts")
        out = {}
        for r in rows:
            new_id = str(uuid.uuid4())
            self.parts[new_id] = replace(r, id=new_id, row_number=None, modified_by=tag)
            out[r.acr_sku] = new_id
        self._check_unique_sku()
        return out

    def update_parts(self, rows, tag):
        self._maybe_fail("update_parts")
        for r in rows:
            if r.id in self.parts:
                self.parts[r.id] = replace(r, row_number=None, modified_by=tag)
        self._check_unique_sku()
        return len(rows)

    def delete_parts(self, ids):
        self._maybe_fail("delete_parts")
        ids = set(ids)
        for i in ids:
            self.parts.pop(i, None)
        self.vehicle_applications = {k: v for k, v in self.vehicle_applications.items() if v.part_id not in ids}
        self.cross_references = {k: v for k, v in self.cross_references.items() if v.acr_part_id not in ids}
        return len(ids)

    def _check_parent(self, parent_id: str | None) -> None:
        if parent_id not in self.parts:
            raise ValueError(f"foreign key violation: part {parent_id} does not exist")

    def insert_vehicle_applications(self, rows, tag):
        self._maybe_fail("insert_vehicle_applications")
        for r in rows:
            self._check_parent(r.part_id)
            new_id = str(uuid.uuid4())
            self.vehicle_applications[new_id] = replace(r, id=new_id, row_number=None, modified_by=tag)
        return len(rows)

    def update_vehicle_applications(self, rows, tag):
        self._maybe_fail("update_vehicle_applications")
        for r in rows:
            self._check_parent(r.part_id)
            if r.id in self.vehicle_applications:
                self.vehicle_applications[r.id] = replace(r, row_number=None, modified_by=tag)
        return len(rows)

    def delete_vehicle_applications(self, ids):
        for i in ids:
            self.vehicle_applications.pop(i, None)
        return len(ids)

    def insert_cross_references(self, rows, tag):
        self._maybe_fail("insert_cross_references")
        for r in rows:
            self._check_parent(r.acr_part_id)
            new_id = str(uuid.uuid4())
            self.cross_references[new_id] = replace(r, id=new_id, row_number=None, modified_by=tag)
        return len(rows)

    def update_cross_references(self, rows, tag):
        for r in rows:
            self._check_parent(r.acr_part_id)
            if r.id in self.cross_references:
                self.cross_references[r.id] = replace(r, row_number=None, modified_by=tag)
        return len(rows)

    def delete_cross_references(self, ids):
        for i in ids:
            self.cross_references.pop(i, None)
        return len(ids)

    def restore_snapshot(self, snapshot: Snapshot) -> dict[str, int]:
        self._maybe_fail("restore_snapshot")
        self.parts = {r.id: r for r in snapshot.parts}
        self.vehicle_applications = {r.id: r for r in snapshot.vehicle_applications}
        self.cross_references = {r.id: r for r in snapshot.cross_references}
        return snapshot.counts


def _sheet_frame(sheet: str, rows: list[dict[str, Any]], identity: bool) -> pd.DataFrame:
    columns = list(REQUIRED_HEADERS[sheet]) + list(OPTIONAL_HEADERS[sheet])
    if identity:
        columns = list(HIDDEN_COLUMNS[sheet]) + columns
    return pd.DataFrame(rows, columns=columns, dtype=object)


def build_workbook(
    parts: list[dict[str, Any]] | None = None,
    vehicle_applications: list[dict[str, Any]] | None = None,
    cross_references: list[dict[str, Any]] | None = None,
    *,
    identity: bool = False,
    title_rows: int = 0,
) -> bytes:
    """Write a catalog workbook; data rows start right below the header."""
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for sheet, rows in (
            (PARTS_SHEET, parts or []),
            (VEHICLE_APPLICATIONS_SHEET, vehicle_applications or []),
            (CROSS_REFERENCES_SHEET, cross_references or []),
        ):
            df = _sheet_frame(sheet, rows, identity)
            if title_rows:
                df.to_excel(writer, sheet_name=sheet, index=False, startrow=title_rows)
                writer.sheets[sheet].cell(row=1, column=1, value=f"{sheet} export")
            else:
                df.to_excel(writer, sheet_name=sheet, index=False)
    return buffer.getvalue()


@pytest.fixture()
def repo() -> InMemoryCatalogRepository:
    return InMemoryCatalogRepository()


@pytest.fixture()
def make_workbook():
    return build_workbook


@pytest.fixture()
def temp_workdir(tmp_path: Path, monkeypatch) -> Path:
    (tmp_path / "config").mkdir()
    (tmp_path / "logs").mkdir()
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture()
def sample_config_yaml() -> str:
    return """database:
  host: localhost
  port: 5432
  user: catalog
  password: secret
  database: catalog
sku_prefix: ACR
max_file_size_mb: 50
history_retention: 3
page_size: 500
error_log_dir: ./logs
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture(autouse=True)
def _reset_logging():
    from catalog_import.logging.init import reset_logging

    reset_logging()
    yield
    reset_logging()
