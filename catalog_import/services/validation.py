from __future__ import annotations

import logging
import re
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

from ..excel.columns import CROSS_REFERENCES_SHEET, PARTS_SHEET, VEHICLE_APPLICATIONS_SHEET
from ..models.existing_data import ExistingData
from ..models.keys import CrossReferenceKey, key_of
from ..models.rows import CrossReferenceRow, PartRow, VehicleApplicationRow, WorkflowStatus
from ..models.validation import (
    ErrorCode,
    Severity,
    ValidationIssue,
    ValidationResult,
    ValidationSummary,
    WarningCode,
)
from ..models.workbook import MatchingStrategy, ParsedWorkbook
from .matching import match_sheet

"""Validation engine.

Structural and referential checks produce blocking errors; suspicious changes
against stored data produce advisory warnings. Data problems are always
reported as issues and never raised. ``valid`` is true iff there are no errors.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "MAX_LENGTHS",
    "MIN_YEAR",
    "ValidationEngine",
    "validate",
]

MAX_LENGTHS = {
    "acr_sku": 50,
    "part_type": 100,
    "position_type": 50,
    "abs_type": 20,
    "bolt_pattern": 50,
    "drive_type": 50,
    "make": 50,
    "model": 100,
    "competitor_brand": 50,
    "competitor_sku": 50,
}

COLUMN_NAMES = {
    "acr_sku": "ACR_SKU",
    "part_type": "Part_Type",
    "position_type": "Position_Type",
    "abs_type": "ABS_Type",
    "bolt_pattern": "Bolt_Pattern",
    "drive_type": "Drive_Type",
    "specifications": "Specifications",
    "workflow_status": "Workflow_Status",
    "make": "Make",
    "model": "Model",
    "start_year": "Start_Year",
    "end_year": "End_Year",
    "competitor_brand": "Competitor_Brand",
    "competitor_sku": "Competitor_SKU",
    "id": "_id",
    "part_id": "_part_id",
    "acr_part_id": "_acr_part_id",
}

MIN_YEAR = 1900
YEARS_AHEAD = 2
SPEC_SHRINK_RATIO = 0.5

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _same(a: Any, b: Any) -> bool:
    return (None if _blank(a) else a) == (None if _blank(b) else b)


def _is_year(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class ValidationEngine:
    """Checks a parsed workbook against structural rules and stored data.

    One engine can validate many uploads; all per-run state lives in a
    ``_Run`` instance.
    """

    def __init__(self, *, current_year: int | None = None) -> None:
        self.current_year = current_year or datetime.now(UTC).year

    @property
    def max_year(self) -> int:
        return self.current_year + YEARS_AHEAD

    def validate(self, parsed: ParsedWorkbook, existing: ExistingData | None = None) -> ValidationResult:
        if parsed is None:
            raise TypeError("parsed workbook is required")
        existing = existing if existing is not None else ExistingData.empty()
        run = _Run(self, parsed, existing)
        run.check()
        summary = ValidationSummary.of(run.errors, run.warnings)
        logger.info(
            "validation: errors=%d warnings=%d", summary.total_errors, summary.total_warnings
        )
        return ValidationResult(errors=run.errors, warnings=run.warnings, summary=summary)


class _Run:
    def __init__(self, engine: ValidationEngine, parsed: ParsedWorkbook, existing: ExistingData) -> None:
        self.engine = engine
        self.parsed = parsed
        self.existing = existing
        self.identity = parsed.strategy is MatchingStrategy.IDENTITY
        self.errors: list[ValidationIssue] = []
        self.warnings: list[ValidationIssue] = []

    # -- issue helpers -------------------------------------------------
    def error(
        self,
        code: ErrorCode,
        message: str,
        sheet: str | None = None,
        row: int | None = None,
        column: str | None = None,
        value: Any = None,
        expected: str | None = None,
        rows: Sequence[int] = (),
    ) -> None:
        self.errors.append(
            ValidationIssue(
                code=code,
                severity=Severity.ERROR,
                message=message,
                sheet=sheet,
                row=row,
                column=column,
                value=value,
                expected=expected,
                rows=tuple(rows) if rows else ((row,) if row is not None else ()),
            )
        )

    def warn(
        self,
        code: WarningCode,
        message: str,
        sheet: str | None = None,
        row: int | None = None,
        column: str | None = None,
        value: Any = None,
        expected: str | None = None,
    ) -> None:
        self.warnings.append(
            ValidationIssue(
                code=code,
                severity=Severity.WARNING,
                message=message,
                sheet=sheet,
                row=row,
                column=column,
                value=value,
                expected=expected,
                rows=(row,) if row is not None else (),
            )
        )

    # -- shared checks ---------------------------------------------------
    def required(self, sheet: str, row: Any, names: Iterable[str]) -> None:
        for name in names:
            if _blank(getattr(row, name)):
                column = COLUMN_NAMES[name]
                self.error(
                    ErrorCode.EMPTY_REQUIRED_FIELD,
                    f"{column} is required",
                    sheet,
                    row.row_number,
                    column,
                )

    def lengths(self, sheet: str, row: Any, names: Iterable[str]) -> None:
        for name in names:
            value = getattr(row, name)
            limit = MAX_LENGTHS[name]
            if isinstance(value, str) and len(value) > limit:
                column = COLUMN_NAMES[name]
                self.error(
                    ErrorCode.STRING_EXCEEDS_MAX_LENGTH,
                    f"{column} exceeds {limit} characters ({len(value)})",
                    sheet,
                    row.row_number,
                    column,
                    value,
                    f"<= {limit} characters",
                )

    def identity_format(self, sheet: str, row: Any, name: str) -> bool:
        value = getattr(row, name)
        if value is None:
            return False
        if not UUID_RE.match(str(value)):
            column = COLUMN_NAMES[name]
            self.error(
                ErrorCode.INVALID_UUID_FORMAT,
                f"{column} is not a valid identity",
                sheet,
                row.row_number,
                column,
                value,
                "UUID",
            )
            return False
        return True

    def duplicate_identities(self, sheet: str, rows: Sequence[Any]) -> None:
        seen: dict[str, list[int]] = defaultdict(list)
        for row in rows:
            if row.id:
                seen[row.id].append(row.row_number)
        for ident, numbers in seen.items():
            if len(numbers) > 1:
                self.error(
                    ErrorCode.DUPLICATE_ROW_KEY,
                    f"_id {ident} appears on rows {', '.join(map(str, numbers))}",
                    sheet,
                    numbers[0],
                    "_id",
                    ident,
                    rows=numbers,
                )

    # -- run ----------------------------------------------------------------
    def check(self) -> None:
        if self.parsed.is_empty:
            self.error(ErrorCode.EMPTY_WORKBOOK, "all sheets are empty; nothing to import")
            return
        deleted_skus = self.check_parts()
        resolvable = (
            {p.acr_sku for p in self.parsed.parts if p.acr_sku}
            | {str(k) for k in self.existing.parts}
        ) - deleted_skus
        self.check_vehicle_applications(resolvable)
        self.check_cross_references(resolvable)

    def parent(self, sheet: str, row: Any, resolvable: set[str], id_field: str) -> None:
        """ACR_SKU decides the parent; an identity parent only has to exist."""
        parent_id = getattr(row, id_field)
        if self.identity and parent_id is not None:
            if not self.identity_format(sheet, row, id_field):
                return
            if parent_id not in self.existing.parts_by_id:
                column = COLUMN_NAMES[id_field]
                self.error(
                    ErrorCode.ORPHANED_FOREIGN_KEY,
                    f"{column} {parent_id} does not reference an existing part",
                    sheet,
                    row.row_number,
                    column,
                    parent_id,
                )
                return
        if row.acr_sku and row.acr_sku not in resolvable:
            self.error(
                ErrorCode.ORPHANED_FOREIGN_KEY,
                f"ACR_SKU {row.acr_sku} does not match any part in this file or the catalog",
                sheet,
                row.row_number,
                "ACR_SKU",
                row.acr_sku,
            )

    def check_parts(self) -> set[str]:
        sheet = PARTS_SHEET
        rows: list[PartRow] = self.parsed.parts
        by_sku: dict[str, list[int]] = defaultdict(list)
        for row in rows:
            self.required(sheet, row, ("acr_sku",))
            self.lengths(
                sheet,
                row,
                ("acr_sku", "part_type", "position_type", "abs_type", "bolt_pattern", "drive_type"),
            )
            if row.workflow_status not in WorkflowStatus.values():
                self.error(
                    ErrorCode.INVALID_WORKFLOW_STATUS,
                    f"Workflow_Status '{row.workflow_status}' is not recognized",
                    sheet,
                    row.row_number,
                    "Workflow_Status",
                    row.workflow_status,
                    " | ".join(WorkflowStatus.values()),
                )
            if self.identity and self.identity_format(sheet, row, "id"):
                if row.id not in self.existing.parts_by_id:
                    self.error(
                        ErrorCode.UUID_NOT_IN_DATABASE,
                        f"_id {row.id} does not exist in the catalog",
                        sheet,
                        row.row_number,
                        "_id",
                        row.id,
                    )
            if row.acr_sku:
                by_sku[row.acr_sku].append(row.row_number)

        for sku, numbers in by_sku.items():
            if len(numbers) > 1:
                self.error(
                    ErrorCode.DUPLICATE_ACR_SKU,
                    f"ACR_SKU {sku} appears on rows {', '.join(map(str, numbers))}",
                    sheet,
                    numbers[0],
                    "ACR_SKU",
                    sku,
                    rows=numbers,
                )
        self.duplicate_identities(sheet, rows)

        matched = match_sheet("parts", rows, self.existing, self.parsed.strategy)
        for row, m in zip(rows, matched.matches, strict=True):
            old = m.existing
            if old is None:
                continue
            if m.by_identity and old.acr_sku != row.acr_sku:
                self.warn(
                    WarningCode.ACR_SKU_CHANGED,
                    f"ACR_SKU changes from {old.acr_sku} to {row.acr_sku}",
                    sheet,
                    row.row_number,
                    "ACR_SKU",
                    row.acr_sku,
                    old.acr_sku,
                )
            if not _same(old.part_type, row.part_type):
                self.warn(
                    WarningCode.PART_TYPE_CHANGED,
                    f"Part_Type changes from {old.part_type!r} to {row.part_type!r}",
                    sheet,
                    row.row_number,
                    "Part_Type",
                    row.part_type,
                    old.part_type,
                )
            if not _same(old.position_type, row.position_type):
                self.warn(
                    WarningCode.POSITION_TYPE_CHANGED,
                    f"Position_Type changes from {old.position_type!r} to {row.position_type!r}",
                    sheet,
                    row.row_number,
                    "Position_Type",
                    row.position_type,
                    old.position_type,
                )
            old_len = len(old.specifications or "")
            new_len = len(row.specifications or "")
            if old_len and new_len < old_len * SPEC_SHRINK_RATIO:
                self.warn(
                    WarningCode.SPECIFICATIONS_SHORTENED,
                    f"Specifications shortened from {old_len} to {new_len} characters",
                    sheet,
                    row.row_number,
                    "Specifications",
                    row.specifications,
                    old.specifications,
                )

        deleted: set[str] = set()
        if rows:
            for old in matched.unmatched:
                deleted.add(old.acr_sku or "")
                self.warn(
                    WarningCode.PART_DELETED,
                    f"part {old.acr_sku} is not in the file and will be deleted "
                    "together with its vehicle applications and cross references",
                    sheet,
                    value=old.acr_sku,
                )
        return deleted

    def check_vehicle_applications(self, resolvable: set[str]) -> None:
        sheet = VEHICLE_APPLICATIONS_SHEET
        rows: list[VehicleApplicationRow] = self.parsed.vehicle_applications
        min_year, max_year = MIN_YEAR, self.engine.max_year
        by_key: dict[Any, list[int]] = defaultdict(list)
        for row in rows:
            self.required(sheet, row, ("acr_sku", "make", "model", "start_year", "end_year"))
            self.lengths(sheet, row, ("make", "model"))
            years_ok = True
            for name in ("start_year", "end_year"):
                value = getattr(row, name)
                if value is None:
                    years_ok = False
                    continue
                column = COLUMN_NAMES[name]
                if not _is_year(value):
                    years_ok = False
                    self.error(
                        ErrorCode.INVALID_NUMBER_FORMAT,
                        f"{column} must be a whole number",
                        sheet,
                        row.row_number,
                        column,
                        value,
                        "integer year",
                    )
                elif not (min_year <= value <= max_year):
                    self.error(
                        ErrorCode.YEAR_OUT_OF_RANGE,
                        f"{column} {value} is outside {min_year}-{max_year}",
                        sheet,
                        row.row_number,
                        column,
                        value,
                        f"{min_year}-{max_year}",
                    )
            if years_ok and row.start_year > row.end_year:
                self.error(
                    ErrorCode.INVALID_YEAR_RANGE,
                    f"Start_Year {row.start_year} is after End_Year {row.end_year}",
                    sheet,
                    row.row_number,
                    "Start_Year",
                    row.start_year,
                    "Start_Year <= End_Year",
                )
            if self.identity and self.identity_format(sheet, row, "id"):
                if row.id not in self.existing.vehicle_applications_by_id:
                    self.error(
                        ErrorCode.UUID_NOT_IN_DATABASE,
                        f"_id {row.id} does not exist in the catalog",
                        sheet,
                        row.row_number,
                        "_id",
                        row.id,
                    )
            self.parent(sheet, row, resolvable, "part_id")
            if row.acr_sku and row.make and row.model and row.start_year is not None:
                by_key[key_of(row)].append(row.row_number)

        for key, numbers in by_key.items():
            if len(numbers) > 1:
                self.error(
                    ErrorCode.DUPLICATE_ROW_KEY,
                    f"vehicle application {key} appears on rows {', '.join(map(str, numbers))}",
                    sheet,
                    numbers[0],
                    value=str(key),
                    rows=numbers,
                )
        self.duplicate_identities(sheet, rows)

        matched = match_sheet("vehicle_applications", rows, self.existing, self.parsed.strategy)
        for row, m in zip(rows, matched.matches, strict=True):
            old = m.existing
            if old is None:
                continue
            if all(_is_year(y) for y in (old.start_year, old.end_year, row.start_year, row.end_year)):
                if row.start_year > old.start_year or row.end_year < old.end_year:
                    self.warn(
                        WarningCode.YEAR_RANGE_NARROWED,
                        f"year range narrows from {old.start_year}-{old.end_year} "
                        f"to {row.start_year}-{row.end_year}",
                        sheet,
                        row.row_number,
                        "Start_Year",
                        f"{row.start_year}-{row.end_year}",
                        f"{old.start_year}-{old.end_year}",
                    )
            if m.by_identity and not _same(old.make, row.make):
                self.warn(
                    WarningCode.VEHICLE_MAKE_CHANGED,
                    f"Make changes from {old.make!r} to {row.make!r}",
                    sheet,
                    row.row_number,
                    "Make",
                    row.make,
                    old.make,
                )
            if m.by_identity and not _same(old.model, row.model):
                self.warn(
                    WarningCode.VEHICLE_MODEL_CHANGED,
                    f"Model changes from {old.model!r} to {row.model!r}",
                    sheet,
                    row.row_number,
                    "Model",
                    row.model,
                    old.model,
                )
        if rows:
            for old in matched.unmatched:
                self.warn(
                    WarningCode.VEHICLE_APPLICATION_DELETED,
                    f"vehicle application {key_of(old)} is not in the file and will be deleted",
                    sheet,
                    value=str(key_of(old)),
                )

    def check_cross_references(self, resolvable: set[str]) -> None:
        sheet = CROSS_REFERENCES_SHEET
        rows: list[CrossReferenceRow] = self.parsed.cross_references
        known = self.existing.cross_reference_signatures()
        for row in rows:
            self.required(sheet, row, ("acr_sku", "competitor_sku"))
            self.lengths(sheet, row, ("acr_sku", "competitor_brand", "competitor_sku"))
            if self.identity and self.identity_format(sheet, row, "id"):
                if CrossReferenceKey(row.id) not in self.existing.cross_references:
                    self.error(
                        ErrorCode.UUID_NOT_IN_DATABASE,
                        f"_id {row.id} does not exist in the catalog",
                        sheet,
                        row.row_number,
                        "_id",
                        row.id,
                    )
            self.parent(sheet, row, resolvable, "acr_part_id")
        self.duplicate_identities(sheet, rows)

        matched = match_sheet("cross_references", rows, self.existing, self.parsed.strategy)
        for row, m in zip(rows, matched.matches, strict=True):
            old = m.existing
            if old is None:
                signature = (
                    row.acr_sku or "",
                    (row.competitor_brand or "").upper(),
                    (row.competitor_sku or "").upper(),
                )
                if row.id is None and signature in known:
                    self.warn(
                        WarningCode.CROSS_REFERENCE_ALREADY_EXISTS,
                        f"{row.competitor_brand or ''} {row.competitor_sku} is already mapped to "
                        f"{row.acr_sku}; a second copy will be added",
                        sheet,
                        row.row_number,
                        "Competitor_SKU",
                        row.competitor_sku,
                    )
                continue
            if m.by_identity and not _same(old.competitor_brand, row.competitor_brand):
                self.warn(
                    WarningCode.COMPETITOR_BRAND_CHANGED,
                    f"Competitor_Brand changes from {old.competitor_brand!r} to {row.competitor_brand!r}",
                    sheet,
                    row.row_number,
                    "Competitor_Brand",
                    row.competitor_brand,
                    old.competitor_brand,
                )


def validate(parsed: ParsedWorkbook, existing: ExistingData | None = None) -> ValidationResult:
    """Validate with a default engine (current calendar year)."""
    return ValidationEngine().validate(parsed, existing)
