from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import psycopg2

from ..config.loader import DatabaseConfig

"""PostgreSQL connection helper.

Connection settings resolve in this order:
    1. environment variables (``.env`` is loaded into the environment first,
       overriding what the process already had)
         - DATABASE_URL / PGDSN: full DSN used as is
         - PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
    2. the ``database`` section of the YAML config (fallback for anything missing)
"""

logger = logging.getLogger(__name__)

__all__ = [
    "resolve_dsn",
    "db_cursor",
]


def resolve_dsn(db_cfg: DatabaseConfig) -> str:
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def db_cursor(db_cfg: DatabaseConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    """Yield a cursor on an autocommit connection.

    Autocommit is on so the repository's explicit BEGIN ... COMMIT is the only
    transaction boundary (the driver would otherwise open its own).
    """
    conn = psycopg2.connect(resolve_dsn(db_cfg))
    conn.autocommit = True
    try:
        with conn.cursor() as cur:
            yield cur
    finally:
        conn.close()
        logger.debug("database connection closed")
