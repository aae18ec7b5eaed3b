from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the JSON Lines error log.

``row=-1`` is the sentinel for workbook-level problems (parse failures,
transaction failures) where no spreadsheet row applies.
"""

__all__ = [
    "ErrorRecord",
    "UNKNOWN_ROW",
]

UNKNOWN_ROW = -1


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: uploaded file name
        sheet: sheet name, or "<WORKBOOK>" for file-level errors
        row: 1-based spreadsheet row, -1 when not row specific
        error_type: issue code or UPPER_SNAKE error class
        message: human readable description
    """
    timestamp: str
    file: str
    sheet: str
    row: int
    error_type: str
    message: str

    @staticmethod
    def create(file: str, sheet: str, row: int, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            sheet=sheet,
            row=row,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # fixed key set: no extra keys may leak into the log
        return json.dumps(asdict(self), ensure_ascii=False)
