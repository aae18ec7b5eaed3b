from __future__ import annotations

import pytest

from catalog_import.models.rows import CrossReferenceRow, ModifiedBy, PartRow, VehicleApplicationRow
from catalog_import.models.workbook import ImportMetadata, MatchingStrategy, ParsedWorkbook
from catalog_import.services.diff_engine import generate_diff
from catalog_import.services.import_service import ImportExecutionError, ImportService


def _import(repo, parsed, retention=3, name="catalog.xlsx"):
    diff = generate_diff(parsed, repo.fetch_existing_data())
    service = ImportService(repo, history_retention=retention)
    return service.execute_import(parsed, diff, ImportMetadata(file_name=name, file_size=123, imported_by="tester"))


def test_import_into_empty_catalog(repo):
    parsed = ParsedWorkbook(
        parts=[PartRow("ACR-1", part_type="Hub"), PartRow("ACR-2", part_type="Rotor")],
        vehicle_applications=[VehicleApplicationRow("ACR-2", "Ford", "F150", 2001, 2004)],
        cross_references=[CrossReferenceRow("ACR-1", "K1", "Moog")],
    )
    result = _import(repo, parsed)

    assert result.summary.adds == 4
    assert len(repo.parts) == 2
    (va,) = repo.vehicle_applications.values()
    assert va.part_id == repo.part_by_sku("ACR-2").id
    (cr,) = repo.cross_references.values()
    assert cr.acr_part_id == repo.part_by_sku("ACR-1").id
    tag = ModifiedBy.by_import(result.import_id)
    assert all(p.modified_by == tag for p in repo.parts.values())

    (record,) = repo.history
    assert record.id == result.import_id
    assert record.rows_imported == 4
    assert record.imported_by == "tester"
    assert record.snapshot_data.counts == {"parts": 0, "vehicle_applications": 0, "cross_references": 0}
    assert record.import_summary["by_sheet"]["parts"]["adds"] == 2


def test_snapshot_is_pre_image(repo):
    part = repo.seed_part("ACR-1", part_type="Hub")
    repo.seed_vehicle_application(part, "Honda", "Civic", 2010, 2015)
    _import(repo, ParsedWorkbook(parts=[PartRow("ACR-1", part_type="Bearing")]))

    (record,) = repo.history
    (snap_part,) = record.snapshot_data.parts
    assert snap_part.part_type == "Hub"
    assert snap_part.modified_by.is_manual
    assert len(record.snapshot_data.vehicle_applications) == 1
    assert repo.part_by_sku("ACR-1").part_type == "Bearing"


def test_deleting_part_cascades_to_dependents(repo):
    keep = repo.seed_part("ACR-1")
    gone = repo.seed_part("ACR-2")
    repo.seed_vehicle_application(gone, "Honda", "Civic", 2010, 2015)
    repo.seed_cross_reference(gone, "Moog", "K1")
    _import(repo, ParsedWorkbook(parts=[PartRow("ACR-1")]))
    assert list(repo.parts) == [keep.id]
    assert repo.vehicle_applications == {}
    assert repo.cross_references == {}


def test_identity_rename_keeps_dependents_attached(repo):
    part = repo.seed_part("ACR-1")
    va = repo.seed_vehicle_application(part, "Honda", "Civic", 2010, 2015)
    parsed = ParsedWorkbook(
        parts=[PartRow("ACR-1B", id=part.id)],
        vehicle_applications=[VehicleApplicationRow("ACR-1B", "Honda", "Civic", 2010, 2016, id=va.id, part_id=part.id)],
        strategy=MatchingStrategy.IDENTITY,
    )
    _import(repo, parsed)
    assert repo.parts[part.id].acr_sku == "ACR-1B"
    assert repo.vehicle_applications[va.id].end_year == 2016
    assert repo.vehicle_applications[va.id].part_id == part.id


def test_history_is_pruned_to_retention(repo):
    for i in range(4):
        _import(repo, ParsedWorkbook(parts=[PartRow(f"ACR-{i}")]), retention=2, name=f"f{i}.xlsx")
    assert [r.file_name for r in repo.history] == ["f2.xlsx", "f3.xlsx"]


@pytest.mark.parametrize("failing", ["insert_history", "update_parts", "insert_vehicle_applications", "insert_cross_references"])
def test_failure_rolls_back_everything(repo, failing):
    part = repo.seed_part("ACR-1", part_type="Hub")
    before = repo.state()
    repo.fail_on = failing
    parsed = ParsedWorkbook(
        parts=[PartRow("ACR-1", part_type="Bearing"), PartRow("ACR-2")],
        vehicle_applications=[VehicleApplicationRow("ACR-2", "Ford", "F150", 2001, 2004)],
        cross_references=[CrossReferenceRow("ACR-2", "K1", "Moog")],
    )
    with pytest.raises(ImportExecutionError) as exc_info:
        _import(repo, parsed)
    assert isinstance(exc_info.value.cause, RuntimeError)
    assert repo.state() == before
    assert repo.parts[part.id].part_type == "Hub"



def test_identity_parent_move_follows_the_sku(repo):
    hub = repo.seed_part("ACR-HUB")
    rotor = repo.seed_part("ACR-ROTOR")
    va = repo.seed_vehicle_application(hub, "Honda", "Civic", 2010, 2015)
    cr = repo.seed_cross_reference(hub, "Moog", "K1")
    parsed = ParsedWorkbook(
        vehicle_applications=[
            VehicleApplicationRow("ACR-ROTOR", "Honda", "Civic", 2010, 2015, id=va.id, part_id=hub.id)
        ],
        cross_references=[CrossReferenceRow("ACR-ROTOR", "K1", "Moog", id=cr.id, acr_part_id=hub.id)],
        strategy=MatchingStrategy.IDENTITY,
    )
    result = _import(repo, parsed)
    assert result.summary.updates == 2
    assert repo.vehicle_applications[va.id].part_id == rotor.id
    assert repo.cross_references[cr.id].acr_part_id == rotor.id


def test_snapshot_keeps_vehicle_applications_sharing_a_key(repo):
    part = repo.seed_part("ACR-HUB")
    repo.seed_vehicle_application(part, "Ford", "F150", 2001, 2004)
    repo.seed_vehicle_application(part, "FORD", "f150", 2001, 2010)
    _import(repo, ParsedWorkbook(parts=[PartRow("ACR-HUB", part_type="Hub")]))
    (record,) = repo.history
    assert sorted(v.end_year for v in record.snapshot_data.vehicle_applications) == [2004, 2010]
