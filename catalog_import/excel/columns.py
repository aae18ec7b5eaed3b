from __future__ import annotations

"""Fixed workbook layout shared by the reader, parser and export writer."""

PARTS_SHEET = "Parts"
VEHICLE_APPLICATIONS_SHEET = "Vehicle Applications"
CROSS_REFERENCES_SHEET = "Cross References"

SHEET_NAMES = (PARTS_SHEET, VEHICLE_APPLICATIONS_SHEET, CROSS_REFERENCES_SHEET)

# sheet name -> key used in payloads / summaries
SHEET_KEYS = {
    PARTS_SHEET: "parts",
    VEHICLE_APPLICATIONS_SHEET: "vehicle_applications",
    CROSS_REFERENCES_SHEET: "cross_references",
}
SHEET_NAME_BY_KEY = {v: k for k, v in SHEET_KEYS.items()}

# identity columns written only by our own export (hidden in the workbook)
HIDDEN_COLUMNS: dict[str, tuple[str, ...]] = {
    PARTS_SHEET: ("_id",),
    VEHICLE_APPLICATIONS_SHEET: ("_id", "_part_id"),
    CROSS_REFERENCES_SHEET: ("_id", "_acr_part_id"),
}

REQUIRED_HEADERS: dict[str, tuple[str, ...]] = {
    PARTS_SHEET: (
        "ACR_SKU",
        "Part_Type",
        "Position_Type",
        "ABS_Type",
        "Bolt_Pattern",
        "Drive_Type",
        "Specifications",
    ),
    VEHICLE_APPLICATIONS_SHEET: ("ACR_SKU", "Make", "Model", "Start_Year", "End_Year"),
    CROSS_REFERENCES_SHEET: ("ACR_SKU", "Competitor_Brand", "Competitor_SKU"),
}

OPTIONAL_HEADERS: dict[str, tuple[str, ...]] = {
    PARTS_SHEET: ("Workflow_Status",),
    VEHICLE_APPLICATIONS_SHEET: (),
    CROSS_REFERENCES_SHEET: (),
}

# column order used by the export writer
EXPORT_COLUMNS: dict[str, tuple[str, ...]] = {
    name: HIDDEN_COLUMNS[name] + REQUIRED_HEADERS[name] + OPTIONAL_HEADERS[name]
    for name in SHEET_NAMES
}

COLUMN_WIDTHS = {
    "ACR_SKU": 15,
    "Part_Type": 20,
    "Position_Type": 15,
    "ABS_Type": 12,
    "Bolt_Pattern": 15,
    "Drive_Type": 12,
    "Specifications": 40,
    "Workflow_Status": 15,
    "Make": 15,
    "Model": 20,
    "Start_Year": 12,
    "End_Year": 12,
    "Competitor_Brand": 20,
    "Competitor_SKU": 20,
}

IDENTITY_HEADER = "ACR_SKU"  # marks the header row


def known_headers(sheet_name: str) -> tuple[str, ...]:
    return EXPORT_COLUMNS[sheet_name]


def header_to_field(header: str) -> str:
    """Map a header to the row attribute name (``_part_id`` -> ``part_id``)."""
    return header.lstrip("_").lower()
