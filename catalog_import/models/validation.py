from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

"""Validation issue and result models.

Issue codes are stable machine-readable identifiers: ``E``-prefixed codes block
an import, ``W``-prefixed codes are advisory only. Numbering has gaps; codes
that were retired are never reused.
"""

__all__ = [
    "Severity",
    "ErrorCode",
    "WarningCode",
    "ValidationIssue",
    "ValidationSummary",
    "ValidationResult",
    "GENERAL_SHEET",
]

GENERAL_SHEET = "General"


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


class ErrorCode(str, Enum):
    DUPLICATE_ACR_SKU = "E2_DUPLICATE_ACR_SKU"
    EMPTY_REQUIRED_FIELD = "E3_EMPTY_REQUIRED_FIELD"
    INVALID_UUID_FORMAT = "E4_INVALID_UUID_FORMAT"
    ORPHANED_FOREIGN_KEY = "E5_ORPHANED_FOREIGN_KEY"
    INVALID_YEAR_RANGE = "E6_INVALID_YEAR_RANGE"
    STRING_EXCEEDS_MAX_LENGTH = "E7_STRING_EXCEEDS_MAX_LENGTH"
    YEAR_OUT_OF_RANGE = "E8_YEAR_OUT_OF_RANGE"
    INVALID_NUMBER_FORMAT = "E9_INVALID_NUMBER_FORMAT"
    EMPTY_WORKBOOK = "E10_EMPTY_WORKBOOK"
    UUID_NOT_IN_DATABASE = "E19_UUID_NOT_IN_DATABASE"
    DUPLICATE_ROW_KEY = "E21_DUPLICATE_ROW_KEY"
    INVALID_WORKFLOW_STATUS = "E22_INVALID_WORKFLOW_STATUS"


class WarningCode(str, Enum):
    ACR_SKU_CHANGED = "W1_ACR_SKU_CHANGED"
    YEAR_RANGE_NARROWED = "W2_YEAR_RANGE_NARROWED"
    PART_TYPE_CHANGED = "W3_PART_TYPE_CHANGED"
    POSITION_TYPE_CHANGED = "W4_POSITION_TYPE_CHANGED"
    VEHICLE_APPLICATION_DELETED = "W6_VEHICLE_APPLICATION_DELETED"
    SPECIFICATIONS_SHORTENED = "W7_SPECIFICATIONS_SHORTENED"
    VEHICLE_MAKE_CHANGED = "W8_VEHICLE_MAKE_CHANGED"
    VEHICLE_MODEL_CHANGED = "W9_VEHICLE_MODEL_CHANGED"
    COMPETITOR_BRAND_CHANGED = "W10_COMPETITOR_BRAND_CHANGED"
    PART_DELETED = "W11_PART_DELETED"
    CROSS_REFERENCE_ALREADY_EXISTS = "W12_CROSS_REFERENCE_ALREADY_EXISTS"


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


@dataclass(frozen=True)
class ValidationIssue:
    code: ErrorCode | WarningCode
    severity: Severity
    message: str
    sheet: str | None = None
    row: int | None = None  # 1-based spreadsheet row
    column: str | None = None
    value: Any = None
    expected: str | None = None
    rows: tuple[int, ...] = ()  # every row involved (duplicates)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "severity": self.severity.value,
            "message": self.message,
            "sheet": self.sheet,
            "row": self.row,
            "column": self.column,
            "value": _json_safe(self.value),
            "expected": self.expected,
            "rows": list(self.rows),
        }


@dataclass(frozen=True)
class ValidationSummary:
    total_errors: int = 0
    total_warnings: int = 0
    errors_by_sheet: dict[str, int] = field(default_factory=dict)
    warnings_by_sheet: dict[str, int] = field(default_factory=dict)

    @classmethod
    def of(cls, errors: list[ValidationIssue], warnings: list[ValidationIssue]) -> ValidationSummary:
        return cls(
            total_errors=len(errors),
            total_warnings=len(warnings),
            errors_by_sheet=dict(Counter(i.sheet or GENERAL_SHEET for i in errors)),
            warnings_by_sheet=dict(Counter(i.sheet or GENERAL_SHEET for i in warnings)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_errors": self.total_errors,
            "total_warnings": self.total_warnings,
            "errors_by_sheet": dict(self.errors_by_sheet),
            "warnings_by_sheet": dict(self.warnings_by_sheet),
        }


@dataclass(frozen=True)
class ValidationResult:
    errors: list[ValidationIssue]
    warnings: list[ValidationIssue]
    summary: ValidationSummary

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [i.to_dict() for i in self.errors],
            "warnings": [i.to_dict() for i in self.warnings],
            "summary": self.summary.to_dict(),
        }
