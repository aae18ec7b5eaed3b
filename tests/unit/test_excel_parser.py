from __future__ import annotations

import pandas as pd
import pytest

from catalog_import.excel.parser import normalize_sku, parse_workbook
from catalog_import.excel.reader import ParseError, clean_cell, normalize_sheet
from catalog_import.models.workbook import MatchingStrategy


def _part(sku, **extra):
    row = {"ACR_SKU": sku, "Part_Type": "Hub Assembly", "Position_Type": "Front"}
    row.update(extra)
    return row


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("acr-1001", "ACR-1001"),
        ("  ACR  1001 ", "ACR 1001"),
        ("NEW-001", "ACRNEW-001"),
        ("acrnew-001", "ACRNEW-001"),
        (512001, "ACR512001"),
        (None, None),
        ("   ", None),
    ],
)
def test_normalize_sku(raw, expected):
    assert normalize_sku(raw) == expected


@pytest.mark.parametrize("raw", ["acr-1", " x 2 ", "ACRACR", "New  Part"])
def test_normalize_sku_is_idempotent(raw):
    once = normalize_sku(raw)
    assert normalize_sku(once) == once


def test_normalize_sku_custom_prefix():
    assert normalize_sku("100", prefix="xyz") == "XYZ100"
    assert normalize_sku("100", prefix="") == "100"


def test_clean_cell():
    assert clean_cell("  a ") == "a"
    assert clean_cell("   ") is None
    assert clean_cell(float("nan")) is None
    assert clean_cell(2010.0) == 2010
    assert clean_cell(2.5) == 2.5
    assert clean_cell("NA") == "NA"


def test_parse_plain_workbook(make_workbook):
    data = make_workbook(
        parts=[_part("acr-1"), _part("ACR-2", Workflow_Status="inactive")],
        vehicle_applications=[
            {"ACR_SKU": "acr-1", "Make": "Honda", "Model": "Civic", "Start_Year": 2010, "End_Year": 2015}
        ],
        cross_references=[{"ACR_SKU": "ACR-1", "Competitor_Brand": "Moog", "Competitor_SKU": "m-513"}],
    )
    parsed = parse_workbook(data, "catalog.xlsx")

    assert parsed.strategy is MatchingStrategy.BUSINESS_KEY
    assert parsed.row_counts == {"parts": 2, "vehicle_applications": 1, "cross_references": 1}
    p1, p2 = parsed.parts
    assert p1.acr_sku == "ACR-1"
    assert p1.workflow_status == "ACTIVE"
    assert p1.row_number == 2
    assert p2.workflow_status == "INACTIVE"
    assert p2.row_number == 3
    va = parsed.vehicle_applications[0]
    assert (va.acr_sku, va.start_year, va.end_year) == ("ACR-1", 2010, 2015)
    cr = parsed.cross_references[0]
    assert cr.competitor_sku == "M-513"
    assert cr.competitor_brand == "Moog"
    assert cr.id is None


def test_parse_identity_columns_select_identity_strategy(make_workbook):
    ident = "0b6a4c3e-2f7d-4a59-9d0e-9f1f6b1c2a11"
    data = make_workbook(parts=[{**_part("ACR-1"), "_id": ident}], identity=True)
    parsed = parse_workbook(data, "export.xlsx")
    assert parsed.strategy is MatchingStrategy.IDENTITY
    assert parsed.parts[0].id == ident


def test_parse_header_below_title_rows(make_workbook):
    data = make_workbook(parts=[_part("ACR-1")], title_rows=1)
    parsed = parse_workbook(data, "styled.xlsx")
    assert parsed.parts[0].acr_sku == "ACR-1"
    # title row + header row precede the first data row
    assert parsed.parts[0].row_number == 3


def test_parse_year_text_is_converted(make_workbook):
    data = make_workbook(
        parts=[_part("ACR-1")],
        vehicle_applications=[
            {"ACR_SKU": "ACR-1", "Make": "Ford", "Model": "F150", "Start_Year": "2001", "End_Year": "abc"}
        ],
    )
    va = parse_workbook(data, "c.xlsx").vehicle_applications[0]
    assert va.start_year == 2001
    assert va.end_year == "abc"


def test_parse_empty_sheets_give_zero_rows(make_workbook):
    parsed = parse_workbook(make_workbook(parts=[_part("ACR-1")]), "c.xlsx")
    assert parsed.vehicle_applications == []
    assert parsed.cross_references == []
    assert parse_workbook(make_workbook(), "c.xlsx").is_empty


def test_parse_rejects_extension():
    with pytest.raises(ParseError, match="unsupported file type"):
        parse_workbook(b"irrelevant", "catalog.csv")


def test_parse_rejects_empty_and_garbage():
    with pytest.raises(ParseError, match="empty"):
        parse_workbook(b"", "c.xlsx")
    with pytest.raises(ParseError, match="not a valid spreadsheet"):
        parse_workbook(b"this is not a zip file", "c.xlsx")


def test_parse_rejects_oversize(make_workbook):
    data = make_workbook(parts=[_part("ACR-1")])
    with pytest.raises(ParseError, match="exceeds"):
        parse_workbook(data + b"\0" * (1024 * 1024), "c.xlsx", max_file_size_mb=1)


def test_parse_missing_sheet(tmp_path):
    p = tmp_path / "one_sheet.xlsx"
    with pd.ExcelWriter(p, engine="openpyxl") as writer:
        pd.DataFrame([["ACR_SKU"], ["ACR-1"]]).to_excel(writer, sheet_name="Parts", header=False, index=False)
    with pytest.raises(ParseError, match="missing required sheet: 'Vehicle Applications'"):
        parse_workbook(p.read_bytes(), p.name)


def test_normalize_sheet_missing_required_headers():
    df = pd.DataFrame([["ACR_SKU", "Part_Type"], ["ACR-1", "Hub"]])
    with pytest.raises(ParseError, match="missing columns"):
        normalize_sheet(df, "Parts")


def test_normalize_sheet_duplicate_headers():
    df = pd.DataFrame([["ACR_SKU", "Make", "Make", "Model", "Start_Year", "End_Year"]])
    with pytest.raises(ParseError, match="duplicate columns"):
        normalize_sheet(df, "Vehicle Applications")


def test_normalize_sheet_header_not_found():
    df = pd.DataFrame([["title"], [None], [None], ["ACR_SKU"]])
    with pytest.raises(ParseError, match="header row"):
        normalize_sheet(df, "Cross References")


def test_normalize_sheet_skips_blank_rows_and_unknown_columns(caplog):
    df = pd.DataFrame(
        [
            ["ACR_SKU", "Competitor_Brand", "Competitor_SKU", "Notes"],
            ["ACR-1", "Moog", "K1", "x"],
            [None, None, None, None],
            ["ACR-2", None, "K2", None],
        ]
    )
    sheet = normalize_sheet(df, "Cross References")
    assert [r.row_number for r in sheet.rows] == [2, 4]
    assert "Notes" not in sheet.rows[0].values
    assert "ignoring unknown columns" in caplog.text
