from __future__ import annotations

import pytest

from catalog_import.models.history import Snapshot
from catalog_import.models.rows import ModifiedBy, PartRow, VehicleApplicationRow
from catalog_import.models.workbook import ImportMetadata, ParsedWorkbook
from catalog_import.services.diff_engine import generate_diff
from catalog_import.services.history_stack import ImportHistoryStack
from catalog_import.services.import_service import ImportService
from catalog_import.services.rollback_service import (
    RollbackConflictError,
    RollbackExecutionError,
    RollbackService,
    SequentialRollbackError,
    detect_conflicts,
)


def _import(repo, parsed, name="catalog.xlsx"):
    diff = generate_diff(parsed, repo.fetch_existing_data())
    return ImportService(repo).execute_import(parsed, diff, ImportMetadata(file_name=name, file_size=1))


def test_history_stack_top_and_listing(repo):
    assert ImportHistoryStack(repo).top() is None
    first = _import(repo, ParsedWorkbook(parts=[PartRow("ACR-1")]), "a.xlsx")
    second = _import(repo, ParsedWorkbook(parts=[PartRow("ACR-2")]), "b.xlsx")
    stack = ImportHistoryStack(repo)
    assert stack.top().id == second.import_id
    listing = stack.list()
    assert [(e["id"], e["can_rollback"]) for e in listing] == [
        (second.import_id, True),
        (first.import_id, False),
    ]
    assert "snapshot_data" not in listing[0]


def test_rollback_restores_pre_image(repo):
    part = repo.seed_part("ACR-1", part_type="Hub")
    before = repo.state()
    result = _import(repo, ParsedWorkbook(parts=[PartRow("ACR-1", part_type="Bearing"), PartRow("ACR-2")]))

    rolled = RollbackService(repo).rollback_to_import(result.import_id)

    assert rolled.restored_counts == {"parts": 1, "vehicle_applications": 0, "cross_references": 0}
    assert repo.parts[part.id].part_type == "Hub"
    assert repo.parts[part.id].modified_by.is_manual
    assert repo.state()[:3] == before[:3]
    assert repo.history == []


def test_rollback_must_be_sequential(repo):
    first = _import(repo, ParsedWorkbook(parts=[PartRow("ACR-1")]))
    second = _import(repo, ParsedWorkbook(parts=[PartRow("ACR-1", part_type="Hub")]))
    service = RollbackService(repo)
    with pytest.raises(SequentialRollbackError) as exc_info:
        service.rollback_to_import(first.import_id)
    assert exc_info.value.newest_import_id == second.import_id
    assert len(repo.history) == 2

    service.rollback_to_import(second.import_id)
    service.rollback_to_import(first.import_id)
    assert repo.parts == {}


def test_rollback_unknown_import(repo):
    with pytest.raises(RollbackExecutionError, match="not found"):
        RollbackService(repo).rollback_to_import("00000000-0000-4000-8000-000000000000")


def test_rollback_refused_on_manual_edit(repo):
    result = _import(repo, ParsedWorkbook(parts=[PartRow("ACR-1", part_type="Hub")]))
    part = repo.part_by_sku("ACR-1")
    repo.manual_edit("parts", part.id, part_type="Edited")
    state = repo.state()

    with pytest.raises(RollbackConflictError) as exc_info:
        RollbackService(repo).rollback_to_import(result.import_id)

    err = exc_info.value
    assert err.conflict_count == 1
    assert err.conflicting_keys == ["ACR-1"]
    # the part did not exist before the import
    assert err.conflicts[0].fields == ()
    assert repo.state() == state


def test_rollback_failure_leaves_state(repo):
    result = _import(repo, ParsedWorkbook(parts=[PartRow("ACR-1")]))
    state = repo.state()
    repo.fail_on = "restore_snapshot"
    with pytest.raises(RollbackExecutionError, match="rollback failed"):
        RollbackService(repo).rollback_to_import(result.import_id)
    assert repo.state() == state


def test_detect_conflicts_only_manual_rows():
    import_tag = ModifiedBy.by_import("imp-1")
    pre = Snapshot(parts=(PartRow("ACR-1", part_type="Hub", id="p1", modified_by=ModifiedBy.manual()),))
    current = Snapshot(
        parts=(
            PartRow("ACR-1", part_type="Bearing", id="p1", modified_by=import_tag),
            PartRow("ACR-2", id="p2", modified_by=import_tag),
        ),
        vehicle_applications=(
            VehicleApplicationRow("ACR-1", "Ford", "F150", 2001, 2004, id="v1", part_id="p1", modified_by=ModifiedBy.manual()),
        ),
    )
    (conflict,) = detect_conflicts(pre, current)
    assert conflict.table == "vehicle_applications"
    assert conflict.key == "ACR-1::FORD::F150::2001"


def test_detect_conflicts_reports_differing_fields():
    pre = Snapshot(parts=(PartRow("ACR-1", part_type="Hub", id="p1", modified_by=ModifiedBy.manual()),))
    same = Snapshot(parts=(PartRow("ACR-1", part_type="Hub", id="p1", modified_by=ModifiedBy.manual()),))
    edited = Snapshot(parts=(PartRow("ACR-1", part_type="Rotor", id="p1", modified_by=ModifiedBy.manual()),))
    assert detect_conflicts(pre, same) == []
    (conflict,) = detect_conflicts(pre, edited)
    assert conflict.fields == ("part_type",)
