"""Date presets and date-range parsing.

All presets are evaluated against "today" in the canonical timezone
(``REPORTOPS_TIMEZONE``). Weeks start on Monday and are plain date
arithmetic, so a week spanning New Year is still one seven-day range.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from reportops.config import get_settings
from reportops.errors import InvalidDateRange
from reportops.util import iso_date, parse_iso_date


class DatePreset(str, Enum):
    TODAY = "today"
    YESTERDAY = "yesterday"
    LAST_7_DAYS = "last7days"
    LAST_14_DAYS = "last14days"
    LAST_30_DAYS = "last30days"
    LAST_90_DAYS = "last90days"
    THIS_WEEK = "thisWeek"
    LAST_WEEK = "lastWeek"
    THIS_MONTH = "thisMonth"
    LAST_MONTH = "lastMonth"


_LAST_N_DAYS = {
    DatePreset.LAST_7_DAYS: 7,
    DatePreset.LAST_14_DAYS: 14,
    DatePreset.LAST_30_DAYS: 30,
    DatePreset.LAST_90_DAYS: 90,
}


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise InvalidDateRange(
                f"End date {iso_date(self.end)} is before start date {iso_date(self.start)}",
                start=iso_date(self.start),
                end=iso_date(self.end),
            )

    def as_params(self) -> tuple[str, str]:
        return iso_date(self.start), iso_date(self.end)

    def to_dict(self) -> dict[str, str]:
        return {"start": iso_date(self.start), "end": iso_date(self.end)}


def today_in_timezone(tz: str | None = None) -> date:
    tz = tz or get_settings().timezone
    try:
        zone = ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidDateRange(f"Unknown timezone: {tz}", timezone=tz) from exc
    return datetime.now(zone).date()


def parse_date_range(start: str | date, end: str | date) -> DateRange:
    try:
        s = start if isinstance(start, date) else parse_iso_date(str(start).strip())
        e = end if isinstance(end, date) else parse_iso_date(str(end).strip())
    except (TypeError, ValueError) as exc:
        raise InvalidDateRange(f"Dates must be YYYY-MM-DD, got {start!r}..{end!r}", start=str(start), end=str(end)) from exc
    return DateRange(s, e)


def _start_of_week(d: date) -> date:
    return d - timedelta(days=d.weekday())


def parse_preset(preset: str | DatePreset) -> DatePreset:
    try:
        return DatePreset(preset)
    except ValueError:
        allowed = ", ".join(p.value for p in DatePreset)
        raise InvalidDateRange(f"Unknown date preset {preset!r}; expected one of: {allowed}", preset=str(preset)) from None


def resolve_preset(preset: str | DatePreset, today: date | None = None) -> DateRange:
    p = parse_preset(preset)
    today = today or today_in_timezone()

    if p is DatePreset.TODAY:
        return DateRange(today, today)
    if p is DatePreset.YESTERDAY:
        y = today - timedelta(days=1)
        return DateRange(y, y)
    if p in _LAST_N_DAYS:
        return DateRange(today - timedelta(days=_LAST_N_DAYS[p] - 1), today)
    if p is DatePreset.THIS_WEEK:
        return DateRange(_start_of_week(today), today)
    if p is DatePreset.LAST_WEEK:
        start = _start_of_week(today) - timedelta(days=7)
        return DateRange(start, start + timedelta(days=6))
    if p is DatePreset.THIS_MONTH:
        return DateRange(today.replace(day=1), today)
    # lastMonth: ends on "day 0" of this month
    end = today.replace(day=1) - timedelta(days=1)
    return DateRange(end.replace(day=1), end)


def detect_preset(start: date, end: date, today: date | None = None) -> DatePreset | None:
    """Inverse of ``resolve_preset``.

    When two presets resolve to the same range (``thisWeek`` on a Monday is
    also ``today``), the one declared first wins.
    """
    today = today or today_in_timezone()
    for p in DatePreset:
        r = resolve_preset(p, today)
        if r.start == start and r.end == end:
            return p
    return None
