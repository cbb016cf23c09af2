"""Tests for saved views."""

from datetime import date

import pytest
from pydantic import ValidationError as PydanticValidationError

from reportops.dates import DateRange
from reportops.errors import InvalidDateRange, InvalidSortDirection
from reportops.views import SavedView, resolve_view, view_from_range


class TestResolveView:
    def test_relative_view_is_resolved_at_use_time(self) -> None:
        view = SavedView(date_mode="relative", date_preset="last7days", dimensions=["network", "campaign"])

        first = resolve_view(view, today=date(2026, 2, 10))
        week_later = resolve_view(view, today=date(2026, 2, 17))

        assert first.date_range == DateRange(date(2026, 2, 4), date(2026, 2, 10))
        assert week_later.date_range == DateRange(date(2026, 2, 11), date(2026, 2, 17))
        assert first.dimensions == ["network", "campaign"]

    def test_absolute_view_ignores_today(self) -> None:
        view = SavedView(date_mode="absolute", date_start="2026-01-01", date_end="2026-01-31", date_preset="today")
        a = resolve_view(view, today=date(2026, 2, 10))
        b = resolve_view(view, today=date(2027, 6, 1))
        assert a.date_range == b.date_range == DateRange(date(2026, 1, 1), date(2026, 1, 31))

    def test_filters_and_sort_carry_through(self) -> None:
        view = SavedView(
            date_preset="today",
            filters=[{"field": "campaign", "operator": "contains", "value": "Brand"}],
            sort_by="clicks",
            sort_direction="asc",
        )
        resolved = resolve_view(view, today=date(2026, 2, 10))
        assert resolved.filters[0].value == "Brand"
        assert resolved.sort_by == "clicks"
        assert resolved.sort_direction == "ASC"

    @pytest.mark.parametrize(
        "view",
        [
            SavedView(date_mode="relative"),
            SavedView(date_mode="relative", date_preset="last8days"),
            SavedView(date_mode="absolute", date_start="2026-01-01"),
            SavedView(date_mode="absolute", date_start="2026-02-01", date_end="2026-01-01"),
            SavedView(date_mode="absolute", date_start="01/02/2026", date_end="2026-03-01"),
        ],
    )
    def test_invalid_dates(self, view: SavedView) -> None:
        with pytest.raises(InvalidDateRange):
            resolve_view(view, today=date(2026, 2, 10))

    def test_invalid_sort_direction(self) -> None:
        with pytest.raises(InvalidSortDirection):
            resolve_view(SavedView(date_preset="today", sort_direction="up"), today=date(2026, 2, 10))

    def test_unknown_date_mode_is_rejected_by_the_model(self) -> None:
        with pytest.raises(PydanticValidationError):
            SavedView(date_mode="rolling")


class TestViewFromRange:
    def test_preset_range_is_saved_as_relative(self) -> None:
        today = date(2026, 2, 11)
        view = view_from_range(DateRange(date(2026, 2, 9), date(2026, 2, 11)), today=today, dimensions=["country"])
        assert view.date_mode == "relative"
        assert view.date_preset == "thisWeek"
        assert view.dimensions == ["country"]

    def test_custom_range_is_saved_as_absolute(self) -> None:
        view = view_from_range(DateRange(date(2026, 1, 3), date(2026, 1, 9)), today=date(2026, 2, 11))
        assert view.date_mode == "absolute"
        assert (view.date_start, view.date_end) == ("2026-01-03", "2026-01-09")
