"""SQLite schema for the ads, CRM and analytics tables the reports read."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Mapping
from contextlib import closing
from pathlib import Path
from typing import Any

import structlog


logger = structlog.get_logger(__name__)


TABLES: dict[str, str] = {
    "ad_spend": """CREATE TABLE ad_spend (
        date TEXT, network TEXT, account_id TEXT,
        campaign_id TEXT, campaign_name TEXT,
        adset_id TEXT, adset_name TEXT,
        ad_id TEXT, ad_name TEXT,
        cost REAL, clicks INTEGER, impressions INTEGER, conversions INTEGER
    );""",
    "customer": """CREATE TABLE customer (
        id INTEGER PRIMARY KEY, country TEXT, date_registered TEXT
    );""",
    "source": """CREATE TABLE source (
        id INTEGER PRIMARY KEY, source TEXT
    );""",
    "product": """CREATE TABLE product (
        id INTEGER PRIMARY KEY, product_name TEXT
    );""",
    "subscription": """CREATE TABLE subscription (
        id INTEGER PRIMARY KEY, customer_id INTEGER, product_id INTEGER,
        source_id INTEGER, date_create TEXT, deleted INTEGER DEFAULT 0,
        tracking_id_4 TEXT, tracking_id_2 TEXT, tracking_id TEXT
    );""",
    "invoice": """CREATE TABLE invoice (
        id INTEGER PRIMARY KEY, subscription_id INTEGER, customer_id INTEGER,
        type INTEGER, deleted INTEGER DEFAULT 0, is_marked INTEGER DEFAULT 0,
        tag TEXT, order_date TEXT, product_id INTEGER, source_id INTEGER,
        tracking_id_4 TEXT, tracking_id_2 TEXT, tracking_id TEXT
    );""",
    "page_views": """CREATE TABLE page_views (
        created_at TEXT, url_path TEXT, page_type TEXT, utm_source TEXT,
        device_type TEXT, country_code TEXT, visitor_id TEXT,
        active_time_s REAL, hero_scroll_passed INTEGER, form_view INTEGER
    );""",
    "sessions": """CREATE TABLE sessions (
        session_start TEXT, entry_url_path TEXT, entry_utm_source TEXT,
        entry_device_type TEXT, entry_country_code TEXT, visit_number INTEGER,
        page_views INTEGER, active_time_s REAL, bounced INTEGER
    );""",
}


def init_db(db_path: str, *, replace: bool = True) -> None:
    p = Path(db_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    if replace and p.exists():
        p.unlink()

    with closing(sqlite3.connect(db_path)) as conn:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        for ddl in TABLES.values():
            conn.execute(ddl)
        conn.commit()

    logger.info("db_initialized", db_path=db_path, tables=len(TABLES))


def insert_rows(db_path: str, table: str, rows: Iterable[Mapping[str, Any]]) -> int:
    """Bulk insert dict rows; columns are the union of the rows' keys, missing values are NULL."""
    rows = list(rows)
    if not rows:
        return 0
    if table not in TABLES:
        raise ValueError(f"Unknown table: {table}")
    cols = list(dict.fromkeys(c for row in rows for c in row))
    placeholders = ", ".join(["?"] * len(cols))
    insert_sql = f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({placeholders});"
    with closing(sqlite3.connect(db_path)) as conn:
        conn.executemany(insert_sql, ([row.get(c) for c in cols] for row in rows))
        conn.commit()
    return len(rows)
