from __future__ import annotations

import logging
from pathlib import PurePath
from typing import Any

from ..models.rows import CrossReferenceRow, PartRow, VehicleApplicationRow, WorkflowStatus
from ..models.workbook import MatchingStrategy, ParsedWorkbook
from .columns import (
    CROSS_REFERENCES_SHEET,
    PARTS_SHEET,
    SHEET_NAMES,
    VEHICLE_APPLICATIONS_SHEET,
)
from .reader import DEFAULT_MAX_FILE_SIZE_MB, ParseError, SheetRow, normalize_sheet, read_workbook

"""Spreadsheet parser: raw workbook bytes -> typed catalog rows.

Identifiers are normalized to their canonical form here so supplier casing and
prefix inconsistencies never show up as spurious diffs. The matching strategy
is decided once, from the Parts sheet header.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_SKU_PREFIX",
    "ALLOWED_EXTENSIONS",
    "normalize_sku",
    "parse_workbook",
]

DEFAULT_SKU_PREFIX = "ACR"
ALLOWED_EXTENSIONS = (".xlsx", ".xlsm")


def normalize_sku(value: Any, prefix: str = DEFAULT_SKU_PREFIX) -> str | None:
    """Canonical SKU: trimmed, inner whitespace collapsed, upper case, prefixed.

    Idempotent: normalizing a canonical SKU returns it unchanged.
    """
    if value is None:
        return None
    text = " ".join(str(value).split()).upper()
    if not text:
        return None
    prefix = (prefix or "").upper()
    if prefix and not text.startswith(prefix):
        text = prefix + text
    return text


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _year(value: Any) -> Any:
    # integers pass through; numeric text is converted; anything else is kept for validation
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return value


def _status(value: Any) -> str:
    text = _text(value)
    return text.upper() if text else WorkflowStatus.ACTIVE.value


def _part(row: SheetRow, prefix: str) -> PartRow:
    v = row.values
    return PartRow(
        acr_sku=normalize_sku(v.get("ACR_SKU"), prefix),
        part_type=_text(v.get("Part_Type")),
        position_type=_text(v.get("Position_Type")),
        abs_type=_text(v.get("ABS_Type")),
        bolt_pattern=_text(v.get("Bolt_Pattern")),
        drive_type=_text(v.get("Drive_Type")),
        specifications=_text(v.get("Specifications")),
        workflow_status=_status(v.get("Workflow_Status")),
        id=_text(v.get("_id")),
        row_number=row.row_number,
    )


def _vehicle_application(row: SheetRow, prefix: str) -> VehicleApplicationRow:
    v = row.values
    return VehicleApplicationRow(
        acr_sku=normalize_sku(v.get("ACR_SKU"), prefix),
        make=_text(v.get("Make")),
        model=_text(v.get("Model")),
        start_year=_year(v.get("Start_Year")),
        end_year=_year(v.get("End_Year")),
        id=_text(v.get("_id")),
        part_id=_text(v.get("_part_id")),
        row_number=row.row_number,
    )


def _cross_reference(row: SheetRow, prefix: str) -> CrossReferenceRow:
    v = row.values
    competitor_sku = _text(v.get("Competitor_SKU"))
    return CrossReferenceRow(
        acr_sku=normalize_sku(v.get("ACR_SKU"), prefix),
        competitor_sku=competitor_sku.upper() if competitor_sku else None,
        competitor_brand=_text(v.get("Competitor_Brand")),
        id=_text(v.get("_id")),
        acr_part_id=_text(v.get("_acr_part_id")),
        row_number=row.row_number,
    )


def parse_workbook(
    data: bytes,
    file_name: str | None = None,
    *,
    sku_prefix: str = DEFAULT_SKU_PREFIX,
    max_file_size_mb: int = DEFAULT_MAX_FILE_SIZE_MB,
) -> ParsedWorkbook:
    """Parse an uploaded workbook.

    Raises ParseError when the file is not a readable spreadsheet, lacks one of
    the three sheets or carries an unrecognized header set. Empty sheets are
    returned as zero rows; deciding whether that is acceptable is up to
    validation.
    """
    if file_name is not None and PurePath(file_name).suffix.lower() not in ALLOWED_EXTENSIONS:
        raise ParseError(f"unsupported file type: {file_name} (expected {', '.join(ALLOWED_EXTENSIONS)})")

    raw = read_workbook(data, SHEET_NAMES, max_file_size_mb=max_file_size_mb)
    sheets = {name: normalize_sheet(raw[name], name) for name in SHEET_NAMES}

    strategy = (
        MatchingStrategy.IDENTITY
        if sheets[PARTS_SHEET].has_identity_columns
        else MatchingStrategy.BUSINESS_KEY
    )
    parsed = ParsedWorkbook(
        parts=[_part(r, sku_prefix) for r in sheets[PARTS_SHEET].rows],
        vehicle_applications=[
            _vehicle_application(r, sku_prefix) for r in sheets[VEHICLE_APPLICATIONS_SHEET].rows
        ],
        cross_references=[_cross_reference(r, sku_prefix) for r in sheets[CROSS_REFERENCES_SHEET].rows],
        strategy=strategy,
        file_name=file_name,
    )
    counts = parsed.row_counts
    logger.info(
        "parsed %s: parts=%d vehicle_applications=%d cross_references=%d strategy=%s",
        file_name or "<upload>",
        counts["parts"],
        counts["vehicle_applications"],
        counts["cross_references"],
        strategy.value,
    )
    return parsed
