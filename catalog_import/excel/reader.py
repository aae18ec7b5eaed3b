from __future__ import annotations

import io
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from .columns import IDENTITY_HEADER, REQUIRED_HEADERS, known_headers

"""Workbook reader.

Raw sheets are read through pandas (openpyxl engine) without a header, then
normalized: the header row is located among the first few rows (plain files
have it on row 1, styled exports may carry title rows above it), required
headers are checked and every data row keeps its 1-based spreadsheet row number.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "ParseError",
    "SheetRow",
    "SheetData",
    "read_workbook",
    "normalize_sheet",
    "clean_cell",
]

HEADER_SEARCH_ROWS = 3
DEFAULT_MAX_FILE_SIZE_MB = 50


class ParseError(Exception):
    """Raised when the upload cannot be read as a catalog workbook."""


@dataclass(frozen=True)
class SheetRow:
    row_number: int  # 1-based, as shown by spreadsheet applications
    values: dict[str, Any]


@dataclass
class SheetData:
    sheet_name: str
    columns: list[str] = field(default_factory=list)
    rows: list[SheetRow] = field(default_factory=list)

    @property
    def has_identity_columns(self) -> bool:
        return any(c.startswith("_") for c in self.columns)


def read_workbook(
    data: bytes,
    sheet_names: Iterable[str],
    max_file_size_mb: int = DEFAULT_MAX_FILE_SIZE_MB,
) -> dict[str, pd.DataFrame]:
    """Read the required sheets of an uploaded workbook as raw DataFrames.

    Raises ParseError for oversize or unreadable files and for missing sheets.
    """
    if not data:
        raise ParseError("file is empty")
    limit = max_file_size_mb * 1024 * 1024
    if len(data) > limit:
        raise ParseError(f"file exceeds {max_file_size_mb} MB limit ({len(data)} bytes)")
    try:
        xls = pd.ExcelFile(io.BytesIO(data), engine="openpyxl")
    except Exception as e:
        raise ParseError(f"not a valid spreadsheet: {e}") from e

    available = {str(n) for n in xls.sheet_names}
    dfs: dict[str, pd.DataFrame] = {}
    for name in sheet_names:
        if name not in available:
            raise ParseError(f"missing required sheet: '{name}'")
        # keep_default_na=False: literal "NA"/"N/A" stay as text
        dfs[name] = xls.parse(name, header=None, keep_default_na=False, na_values=[""])
    return dfs


def clean_cell(value: Any) -> Any:
    """Trim strings, blank -> None, integral floats -> int."""
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _find_header_row(df: pd.DataFrame) -> int | None:
    for idx in range(min(HEADER_SEARCH_ROWS, df.shape[0])):
        cells = [clean_cell(v) for v in df.iloc[idx].tolist()]
        if IDENTITY_HEADER in [str(c) for c in cells if c is not None]:
            return idx
    return None


def normalize_sheet(df: pd.DataFrame, sheet_name: str) -> SheetData:
    """Turn a raw sheet into header names plus numbered data rows.

    A completely blank sheet gives zero rows. A sheet with content but no
    recognizable header, duplicate headers or missing required headers raises
    ParseError.
    """
    if df.shape[0] == 0 or df.isna().all().all():
        return SheetData(sheet_name=sheet_name)

    header_idx = _find_header_row(df)
    if header_idx is None:
        raise ParseError(
            f"sheet '{sheet_name}': header row with '{IDENTITY_HEADER}' not found "
            f"in the first {HEADER_SEARCH_ROWS} rows"
        )
    columns = []
    for c in df.iloc[header_idx].tolist():
        cleaned = clean_cell(c)
        columns.append("" if cleaned is None else str(cleaned))

    named = [c for c in columns if c]
    duplicates = sorted({c for c in named if named.count(c) > 1})
    if duplicates:
        raise ParseError(f"sheet '{sheet_name}' has duplicate columns: {duplicates}")
    missing = [c for c in REQUIRED_HEADERS[sheet_name] if c not in named]
    if missing:
        raise ParseError(f"sheet '{sheet_name}' missing columns: {missing}")
    known = set(known_headers(sheet_name))
    unknown = [c for c in named if c not in known]
    if unknown:
        logger.warning("sheet '%s': ignoring unknown columns %s", sheet_name, unknown)

    rows: list[SheetRow] = []
    for idx in range(header_idx + 1, df.shape[0]):
        raw = df.iloc[idx]
        if raw.isna().all():
            continue
        values: dict[str, Any] = {}
        for col, val in zip(columns, raw.tolist(), strict=False):
            if col in known:
                values[col] = clean_cell(val)
        if all(v is None for v in values.values()):
            continue
        rows.append(SheetRow(row_number=idx + 1, values=values))
    return SheetData(sheet_name=sheet_name, columns=named, rows=rows)
