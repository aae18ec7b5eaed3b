"""Domain models for the catalog import pipeline."""

from .diff import DiffItem, DiffOperation, DiffResult, DiffSummary, SheetDiff, SheetSummary
from .existing_data import ExistingData
from .history import ImportHistoryRecord, ImportResult, RollbackConflict, RollbackResult, Snapshot
from .keys import BusinessKey, CrossReferenceKey, PartKey, VehicleApplicationKey, key_of
from .rows import CrossReferenceRow, ModifiedBy, PartRow, VehicleApplicationRow, WorkflowStatus
from .validation import ErrorCode, Severity, ValidationIssue, ValidationResult, WarningCode
from .workbook import ImportMetadata, MatchingStrategy, ParsedWorkbook

__all__ = [
    # Rows and keys
    "PartRow",
    "VehicleApplicationRow",
    "CrossReferenceRow",
    "ModifiedBy",
    "WorkflowStatus",
    "BusinessKey",
    "PartKey",
    "VehicleApplicationKey",
    "CrossReferenceKey",
    "key_of",
    # Workbook / storage views
    "ParsedWorkbook",
    "MatchingStrategy",
    "ImportMetadata",
    "ExistingData",
    # Validation
    "ErrorCode",
    "WarningCode",
    "Severity",
    "ValidationIssue",
    "ValidationResult",
    # Diff
    "DiffOperation",
    "DiffItem",
    "SheetDiff",
    "SheetSummary",
    "DiffSummary",
    "DiffResult",
    # History
    "Snapshot",
    "ImportHistoryRecord",
    "ImportResult",
    "RollbackConflict",
    "RollbackResult",
]
