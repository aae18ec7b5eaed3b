from __future__ import annotations

import io
import logging
from typing import Any

import pandas as pd
from openpyxl.utils import get_column_letter

from ..models.existing_data import ExistingData
from .columns import (
    COLUMN_WIDTHS,
    CROSS_REFERENCES_SHEET,
    EXPORT_COLUMNS,
    HIDDEN_COLUMNS,
    PARTS_SHEET,
    VEHICLE_APPLICATIONS_SHEET,
)

"""Catalog export: current storage -> workbook bytes.

Identity columns are written first and hidden so the file can be edited and
uploaded again; a re-upload of an unmodified export diffs to no changes.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "export_workbook",
]


def _sheet_records(existing: ExistingData) -> dict[str, list[dict[str, Any]]]:
    parts = sorted(existing.all_rows("parts"), key=lambda p: p.acr_sku or "")
    vas = sorted(
        existing.all_rows("vehicle_applications"),
        key=lambda v: (v.acr_sku or "", v.make or "", v.model or "", str(v.start_year)),
    )
    crs = sorted(
        existing.all_rows("cross_references"),
        key=lambda c: (c.acr_sku or "", c.competitor_brand or "", c.competitor_sku or ""),
    )
    return {
        PARTS_SHEET: [
            {
                "_id": p.id,
                "ACR_SKU": p.acr_sku,
                "Part_Type": p.part_type,
                "Position_Type": p.position_type,
                "ABS_Type": p.abs_type,
                "Bolt_Pattern": p.bolt_pattern,
                "Drive_Type": p.drive_type,
                "Specifications": p.specifications,
                "Workflow_Status": p.workflow_status,
            }
            for p in parts
        ],
        VEHICLE_APPLICATIONS_SHEET: [
            {
                "_id": v.id,
                "_part_id": v.part_id,
                "ACR_SKU": v.acr_sku,
                "Make": v.make,
                "Model": v.model,
                "Start_Year": v.start_year,
                "End_Year": v.end_year,
            }
            for v in vas
        ],
        CROSS_REFERENCES_SHEET: [
            {
                "_id": c.id,
                "_acr_part_id": c.acr_part_id,
                "ACR_SKU": c.acr_sku,
                "Competitor_Brand": c.competitor_brand,
                "Competitor_SKU": c.competitor_sku,
            }
            for c in crs
        ],
    }


def export_workbook(existing: ExistingData) -> bytes:
    """Write the three catalog sheets to an in-memory .xlsx file."""
    buffer = io.BytesIO()
    records = _sheet_records(existing)
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for sheet_name, rows in records.items():
            columns = list(EXPORT_COLUMNS[sheet_name])
            df = pd.DataFrame(rows, columns=columns, dtype=object)
            df.to_excel(writer, sheet_name=sheet_name, index=False)
            ws = writer.sheets[sheet_name]
            for idx, col in enumerate(columns, start=1):
                dim = ws.column_dimensions[get_column_letter(idx)]
                if col in HIDDEN_COLUMNS[sheet_name]:
                    dim.hidden = True
                else:
                    dim.width = COLUMN_WIDTHS.get(col, 15)
            logger.debug("export sheet '%s': %d rows", sheet_name, len(rows))
    return buffer.getvalue()
