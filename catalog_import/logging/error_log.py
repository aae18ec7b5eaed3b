from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from ..models.error_record import UNKNOWN_ROW, ErrorRecord
from ..models.validation import ValidationIssue

"""Error log buffering.

- JSON Lines with a fixed schema (no extra keys)
- one ``errors-YYYYMMDD-HHMMSS.log`` (UTC) per run, created on first flush
- records are buffered and written in one go by ``flush()``
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
    "WORKBOOK_SHEET",
]

DEFAULT_LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"
WORKBOOK_SHEET = "<WORKBOOK>"


class ErrorLogBuffer:
    """In-memory buffer of error records; ``flush()`` appends them as JSON Lines.

    Serial use only.
    """

    def __init__(self, logs_dir: Path | str = DEFAULT_LOGS_DIR) -> None:
        self.logs_dir = Path(logs_dir)
        self._records: list[ErrorRecord] = []
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self.logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self.logs_dir / f"errors-{stamp}.log"
        return self._file_path

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)

    def add_issue(self, file: str, issue: ValidationIssue) -> None:
        self.append(
            ErrorRecord.create(
                file=file,
                sheet=issue.sheet or WORKBOOK_SHEET,
                row=issue.row if issue.row is not None else UNKNOWN_ROW,
                error_type=issue.code.value,
                message=issue.message,
            )
        )

    def add_failure(self, file: str, error_type: str, message: str) -> None:
        self.append(
            ErrorRecord.create(
                file=file,
                sheet=WORKBOOK_SHEET,
                row=UNKNOWN_ROW,
                error_type=error_type,
                message=message,
            )
        )

    def __len__(self) -> int:
        return len(self._records)

    def flush(self) -> Path | None:
        """Write buffered records; returns the log path, or None when nothing was written."""
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
