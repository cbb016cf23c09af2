from __future__ import annotations

from datetime import date
from typing import Any


def parse_iso_date(value: str) -> date:
    return date.fromisoformat(value)


def iso_date(d: date) -> str:
    return d.strftime("%Y-%m-%d")


def to_int(value: Any, default: int = 0) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    s = str(value).strip()
    if s == "":
        return default
    try:
        return int(float(s))
    except ValueError:
        return default


def to_float(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return float(value)
    s = str(value).strip()
    if s == "":
        return default
    try:
        return float(s)
    except ValueError:
        return default


def safe_div(n: float, d: float) -> float:
    """Divide, returning 0.0 when the denominator is zero.

    This is the one zero-sentinel policy for derived metrics: 0/0 and x/0
    both resolve to 0.0. ``reportops.metrics.derived_sql`` emits the same
    rule for SQL-side computation.
    """
    if not d:
        return 0.0
    return n / d


def round_money(value: float) -> float:
    return float(f"{value:.2f}")


def display_value(value: Any) -> str:
    if value is None:
        return "Unknown"
    s = str(value).strip()
    return s or "Unknown"


def to_number(value: Any) -> int | float:
    """Like ``to_float`` but integers (and integral strings) stay ``int``."""
    if value is None or isinstance(value, bool):
        return int(value or 0)
    if isinstance(value, (int, float)):
        return value
    s = str(value).strip()
    try:
        return int(s)
    except ValueError:
        return to_float(s)
