"""Saved report views and their resolution into query parameters.

A relative view stores only its preset; the concrete dates are computed each
time the view is resolved, so "last 7 days" saved last week yields this
week's range today.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Literal

from pydantic import BaseModel, Field

from reportops.dates import DateRange, detect_preset, parse_date_range, parse_preset, resolve_preset
from reportops.errors import InvalidDateRange
from reportops.query_builder import TableFilter, normalize_direction


class SavedView(BaseModel):
    name: str | None = None
    date_mode: Literal["relative", "absolute"] = "relative"
    date_preset: str | None = None
    date_start: str | None = None
    date_end: str | None = None
    dimensions: list[str] = Field(default_factory=list)
    filters: list[TableFilter] = Field(default_factory=list)
    sort_by: str | None = None
    sort_direction: str | None = None


@dataclass(frozen=True)
class ResolvedView:
    date_range: DateRange
    dimensions: list[str]
    filters: list[TableFilter]
    sort_by: str | None
    sort_direction: str


def resolve_view(view: SavedView, today: date | None = None) -> ResolvedView:
    if view.date_mode == "relative":
        if not view.date_preset:
            raise InvalidDateRange("Relative views need a date preset", view=view.name)
        date_range = resolve_preset(parse_preset(view.date_preset), today)
    else:
        if not view.date_start or not view.date_end:
            raise InvalidDateRange("Absolute views need both date_start and date_end", view=view.name)
        date_range = parse_date_range(view.date_start, view.date_end)

    return ResolvedView(
        date_range=date_range,
        dimensions=list(view.dimensions),
        filters=list(view.filters),
        sort_by=view.sort_by,
        sort_direction=normalize_direction(view.sort_direction),
    )


def view_from_range(
    date_range: DateRange,
    *,
    today: date | None = None,
    **fields: object,
) -> SavedView:
    """Build a view for saving; a range matching a preset is stored as that preset."""
    preset = detect_preset(date_range.start, date_range.end, today)
    if preset is not None:
        return SavedView(date_mode="relative", date_preset=preset.value, **fields)
    start, end = date_range.as_params()
    return SavedView(date_mode="absolute", date_start=start, date_end=end, **fields)
