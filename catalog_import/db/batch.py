from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from psycopg2.extras import execute_values

"""Batched INSERT / UPDATE / DELETE on top of psycopg2.extras.execute_values.

Table and column names are trusted identifiers supplied by the repository,
never user input. Values always travel as query parameters.
"""

__all__ = [
    "BatchOperationError",
    "BatchMetrics",
    "BatchResult",
    "batch_insert",
    "batch_update",
    "batch_delete",
]

DEFAULT_PAGE_SIZE = 1000


class BatchOperationError(Exception):
    pass


@dataclass(frozen=True)
class BatchMetrics:
    """Timing of a single batched statement."""
    operation: str  # insert | update | delete
    table: str
    batch_size: int
    elapsed_seconds: float


@dataclass(frozen=True)
class BatchResult:
    affected_rows: int
    returned_values: list[tuple[Any, ...]] | None = None


def _quote(name: str) -> str:
    return f'"{name}"'


def _template(columns: Sequence[str], casts: Mapping[str, str] | None) -> str:
    casts = casts or {}
    parts = [f"%s::{casts[c]}" if c in casts else "%s" for c in columns]
    return f"({','.join(parts)})"


def _run(
    operation: str,
    cursor: Any,
    table: str,
    sql: str,
    rows: list[Sequence[Any]],
    *,
    template: str | None = None,
    fetch: bool = False,
    page_size: int = DEFAULT_PAGE_SIZE,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> list[tuple[Any, ...]] | None:
    start = time.time()
    try:
        return execute_values(cursor, sql, rows, template=template, page_size=page_size, fetch=fetch)
    except Exception as e:
        raise BatchOperationError(f"{operation} {table} failed: {e}") from e
    finally:
        if metrics_callback is not None:
            metrics_callback(
                BatchMetrics(
                    operation=operation,
                    table=table,
                    batch_size=len(rows),
                    elapsed_seconds=time.time() - start,
                )
            )


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    returning: Sequence[str] | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> BatchResult:
    """INSERT rows; with ``returning`` the named columns of every inserted row
    are returned in insertion order (used to learn generated identities)."""
    rows_list = list(rows)
    if not rows_list:
        return BatchResult(affected_rows=0, returned_values=[] if returning else None)

    sql = f"INSERT INTO {table} ({','.join(_quote(c) for c in columns)}) VALUES %s"
    if returning:
        sql += f" RETURNING {','.join(_quote(c) for c in returning)}"
    returned = _run(
        "insert",
        cursor,
        table,
        sql,
        rows_list,
        fetch=bool(returning),
        page_size=page_size,
        metrics_callback=metrics_callback,
    )
    return BatchResult(affected_rows=len(rows_list), returned_values=list(returned) if returning else None)


def batch_update(
    cursor: Any,
    table: str,
    key_column: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    casts: Mapping[str, str] | None = None,
    extra_set: Mapping[str, str] | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> BatchResult:
    """UPDATE ... FROM (VALUES ...) keyed on ``key_column``.

    Each row is ``(key, *values)`` in ``columns`` order. ``casts`` types the
    VALUES list (text literals are not coerced there); ``extra_set`` adds raw
    SQL assignments such as ``updated_at = now()``.
    """
    rows_list = list(rows)
    if not rows_list:
        return BatchResult(affected_rows=0)

    all_columns = [key_column, *columns]
    assignments = [f"{_quote(c)} = v.{_quote(c)}" for c in columns]
    assignments += [f"{_quote(c)} = {expr}" for c, expr in (extra_set or {}).items()]
    sql = (
        f"UPDATE {table} AS t SET {', '.join(assignments)} "
        f"FROM (VALUES %s) AS v ({','.join(_quote(c) for c in all_columns)}) "
        f"WHERE t.{_quote(key_column)} = v.{_quote(key_column)}"
    )
    _run(
        "update",
        cursor,
        table,
        sql,
        rows_list,
        template=_template(all_columns, casts),
        page_size=page_size,
        metrics_callback=metrics_callback,
    )
    return BatchResult(affected_rows=len(rows_list))


def batch_delete(
    cursor: Any,
    table: str,
    key_column: str,
    keys: Iterable[Any],
    key_cast: str | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> BatchResult:
    rows_list = [(k,) for k in keys]
    if not rows_list:
        return BatchResult(affected_rows=0)

    sql = (
        f"DELETE FROM {table} AS t USING (VALUES %s) AS v ({_quote(key_column)}) "
        f"WHERE t.{_quote(key_column)} = v.{_quote(key_column)}"
    )
    template = f"(%s::{key_cast})" if key_cast else None
    _run(
        "delete",
        cursor,
        table,
        sql,
        rows_list,
        template=template,
        page_size=page_size,
        metrics_callback=metrics_callback,
    )
    return BatchResult(affected_rows=len(rows_list))
