from __future__ import annotations

import re
import sqlite3
from collections.abc import Sequence
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from reportops.errors import BackingStoreError


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class QueryResult:
    rows: list[dict[str, Any]]
    columns: list[str]
    row_count: int
    sql: str
    params: list[Any]
    db_path: str


# (pattern on the lowercased driver message, user-facing message)
_ERROR_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"no such table"), "Database table not found"),
    (re.compile(r"no such column"), "Database column not found"),
    (re.compile(r"database is locked|database table is locked"), "Database is busy - please try again"),
    (re.compile(r"unable to open database"), "Unable to open database file"),
    (re.compile(r"interrupted"), "Database query was interrupted"),
    (re.compile(r"syntax error|incomplete input"), "Database query error"),
]


def classify_error(exc: Exception, sql: str, params: Sequence[Any]) -> BackingStoreError:
    text = str(exc).lower()
    message = f"Database query failed: {exc}"
    for pattern, friendly in _ERROR_PATTERNS:
        if pattern.search(text):
            message = friendly
            break
    logger.error(
        "db_query_failed",
        error=str(exc),
        error_type=type(exc).__name__,
        query=sql.strip()[:200],
        param_count=len(params),
    )
    return BackingStoreError(message, original_error=str(exc), query=sql.strip()[:200])


def connect(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def query(db_path: str, sql: str, params: Sequence[Any] | None = None) -> QueryResult:
    """Run one read-only parameterized statement and return its rows as dicts.

    Every failure, including a missing database file, surfaces as BackingStoreError.
    """
    bound = list(params or [])
    if not Path(db_path).exists():
        logger.error("db_file_missing", db_path=db_path)
        raise BackingStoreError(f"SQLite db not found: {db_path}", db_path=db_path)

    try:
        with closing(connect(db_path)) as conn:
            cur = conn.execute(sql, bound)
            rows = [dict(r) for r in cur.fetchall()]
            columns = [d[0] for d in (cur.description or [])]
    except sqlite3.Error as exc:
        raise classify_error(exc, sql, bound) from exc

    return QueryResult(
        rows=rows,
        columns=columns,
        row_count=len(rows),
        sql=sql,
        params=bound,
        db_path=db_path,
    )
