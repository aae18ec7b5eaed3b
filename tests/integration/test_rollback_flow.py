from __future__ import annotations

from catalog_import.logging.error_log import ErrorLogBuffer
from catalog_import.models.workbook import ImportMetadata
from catalog_import.services.pipeline import execute_upload, rollback_execute, rollback_list


def _execute(repo, make_workbook, name, **sheets):
    data = make_workbook(**sheets)
    result = execute_upload(data, repo, ImportMetadata(file_name=name, file_size=len(data)))
    assert result["success"] is True, result
    return result["import_id"]


def test_import_then_rollback_restores_exact_state(repo, make_workbook):
    hub = repo.seed_part("ACR-HUB", part_type="Hub", specifications="Bolt pattern 5x114.3, 28 splines")
    repo.seed_vehicle_application(hub, "Ford", "F150", 2001, 2004)
    repo.seed_cross_reference(hub, "Moog", "513123")
    before = repo.state()

    import_id = _execute(
        repo,
        make_workbook,
        "change.xlsx",
        parts=[{"ACR_SKU": "ACR-HUB", "Part_Type": "Hub Assembly"}, {"ACR_SKU": "ACR-NEW"}],
        vehicle_applications=[
            {"ACR_SKU": "ACR-NEW", "Make": "Kia", "Model": "Rio", "Start_Year": 2015, "End_Year": 2020}
        ],
    )
    assert repo.state()[:3] != before[:3]

    result = rollback_execute(import_id, repo)
    assert result["success"] is True
    assert result["restored_counts"] == {"parts": 1, "vehicle_applications": 1, "cross_references": 1}
    assert repo.state()[:3] == before[:3]
    assert rollback_list(repo) == {"snapshots": []}


def test_rollbacks_walk_the_stack_newest_first(repo, make_workbook):
    first = _execute(repo, make_workbook, "one.xlsx", parts=[{"ACR_SKU": "ACR-1"}])
    second = _execute(repo, make_workbook, "two.xlsx", parts=[{"ACR_SKU": "ACR-1"}, {"ACR_SKU": "ACR-2"}])
    third = _execute(repo, make_workbook, "three.xlsx", parts=[{"ACR_SKU": "ACR-3"}])

    listing = rollback_list(repo)["snapshots"]
    assert [s["id"] for s in listing] == [third, second, first]
    assert [s["can_rollback"] for s in listing] == [True, False, False]

    refused = rollback_execute(first, repo)
    assert refused["error"] == "sequential_rollback"
    assert refused["newest_import_id"] == third

    assert rollback_execute(third, repo)["success"] is True
    assert {p.acr_sku for p in repo.parts.values()} == {"ACR-1", "ACR-2"}
    assert rollback_execute(second, repo)["success"] is True
    assert {p.acr_sku for p in repo.parts.values()} == {"ACR-1"}
    assert rollback_execute(first, repo)["success"] is True
    assert repo.parts == {}


def test_manual_edit_blocks_rollback(repo, make_workbook, tmp_path):
    repo.seed_part("ACR-HUB", part_type="Hub")
    import_id = _execute(
        repo,
        make_workbook,
        "change.xlsx",
        parts=[{"ACR_SKU": "ACR-HUB", "Part_Type": "Hub"}],
        vehicle_applications=[
            {"ACR_SKU": "ACR-HUB", "Make": "Ford", "Model": "F150", "Start_Year": 2001, "End_Year": 2004}
        ],
    )
    (va_id,) = repo.vehicle_applications
    repo.manual_edit("vehicle_applications", va_id, end_year=2009)
    state = repo.state()

    error_log = ErrorLogBuffer(tmp_path)
    result = rollback_execute(import_id, repo, error_log=error_log)

    assert result["success"] is False
    assert result["error"] == "rollback_conflict"
    assert result["conflict_count"] == 1
    assert result["conflicting_keys"] == ["ACR-HUB::FORD::F150::2001"]
    assert result["conflicts"][0]["table"] == "vehicle_applications"
    assert repo.state() == state
    assert len(error_log) == 1


def test_unknown_import_id(repo):
    result = rollback_execute("00000000-0000-4000-8000-000000000000", repo)
    assert result == {
        "success": False,
        "error": "rollback_failed",
        "message": "import 00000000-0000-4000-8000-000000000000 not found in history",
    }


def test_rollback_keeps_vehicle_applications_sharing_a_key(repo, make_workbook):
    hub = repo.seed_part("ACR-HUB", part_type="Hub")
    repo.seed_vehicle_application(hub, "Ford", "F150", 2001, 2004)
    repo.seed_vehicle_application(hub, "FORD", "f150", 2001, 2010)
    before = repo.state()

    import_id = _execute(repo, make_workbook, "parts.xlsx", parts=[{"ACR_SKU": "ACR-HUB", "Part_Type": "Hub Assembly"}])
    result = rollback_execute(import_id, repo)

    assert result["success"] is True
    assert result["restored_counts"]["vehicle_applications"] == 2
    assert repo.state()[:3] == before[:3]
    assert sorted(v.end_year for v in repo.vehicle_applications.values()) == [2004, 2010]
