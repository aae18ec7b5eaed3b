from __future__ import annotations

from typing import Any

"""SUMMARY line rendering.

One line per CLI action, ``key=value`` pairs separated by single spaces:

    SUMMARY action=validate valid=true errors=0 warnings=2 parts=5 vehicle_applications=10 cross_references=15
    SUMMARY action=execute status=success import_id=<id> adds=30 updates=0 deletes=0 elapsed_ms=12
    SUMMARY action=rollback status=success import_id=<id> parts=5 vehicle_applications=10 cross_references=15 elapsed_ms=8
"""

__all__ = [
    "render_summary_line",
]


def _fmt(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "-"
    return str(value)


def render_summary_line(action: str, payload: dict[str, Any]) -> str:
    """Render the SUMMARY line for a pipeline payload.

    >>> render_summary_line("history", {"snapshots": [{}, {}]})
    'SUMMARY action=history snapshots=2'
    """
    fields: list[tuple[str, Any]] = [("action", action)]
    if "valid" in payload:
        summary = payload.get("summary", {})
        fields.append(("valid", payload["valid"]))
        if "error" in payload:
            fields.append(("error", payload["error"]))
        fields.append(("errors", summary.get("total_errors", 0)))
        fields.append(("warnings", summary.get("total_warnings", 0)))
        fields.extend((payload.get("row_counts") or {}).items())
        if "diff" in payload:
            diff_summary = payload["diff"]["summary"]
            for k in ("adds", "updates", "deletes", "unchanged"):
                fields.append((k, diff_summary[k]))
    elif "success" in payload:
        fields.append(("status", "success" if payload["success"] else payload.get("error", "failed")))
        if payload.get("import_id"):
            fields.append(("import_id", payload["import_id"]))
        if "summary" in payload and "adds" in payload["summary"]:
            for k in ("adds", "updates", "deletes"):
                fields.append((k, payload["summary"][k]))
        if "restored_counts" in payload:
            fields.extend(payload["restored_counts"].items())
        if "conflict_count" in payload:
            fields.append(("conflicts", payload["conflict_count"]))
        if "execution_time_ms" in payload:
            fields.append(("elapsed_ms", payload["execution_time_ms"]))
    elif "snapshots" in payload:
        fields.append(("snapshots", len(payload["snapshots"])))
    elif "rows" in payload:
        fields.extend(payload["rows"].items())
    return "SUMMARY " + " ".join(f"{k}={_fmt(v)}" for k, v in fields)
