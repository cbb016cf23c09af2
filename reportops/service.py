"""Report entry points: one drill-down level per ``query`` call."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable, Mapping, Sequence
from datetime import date
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from reportops import db
from reportops.config import MAX_LIMIT, get_settings
from reportops.crm import aggregate_crm_rows, aggregate_ots_rows
from reportops.dates import DateRange
from reportops.errors import InvalidParentFilters, ReconciliationMismatch, ValidationError
from reportops.query_builder import (
    BuiltQuery,
    QueryOptions,
    TableFilter,
    build_crm_rows_query,
    build_ots_rows_query,
    build_query,
    clamp_limit,
    normalize_direction,
)
from reportops.reconcile import merge
from reportops.registry import Dimension, get_family, get_metric
from reportops.tree import (
    ReportRow,
    attach_children,
    build_parent_filters,
    decode_key,
    find_by_key,
    group_keys_by_depth,
)
from reportops.util import display_value
from reportops.views import ResolvedView, SavedView, resolve_view


logger = structlog.get_logger(__name__)


def _table_filters(filters: Iterable[TableFilter | Mapping[str, Any]] | None) -> list[TableFilter]:
    out: list[TableFilter] = []
    for f in filters or ():
        if isinstance(f, TableFilter):
            out.append(f)
            continue
        try:
            out.append(TableFilter.model_validate(f))
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid table filter: {f!r}", errors=exc.errors()) from exc
    return out


def _sort_rows(rows: list[ReportRow], current: Dimension, sort_by: str, direction: str) -> list[ReportRow]:
    def own_value(row: ReportRow) -> str:
        return decode_key(row.key).values[-1]

    if current.temporal:
        return sorted(rows, key=own_value, reverse=True)
    # two stable passes: value ASC breaks ties of the metric sort
    rows = sorted(rows, key=own_value)
    return sorted(rows, key=lambda r: r.metrics.get(sort_by, 0), reverse=direction == "DESC")


def _current_dimension(ad_query: BuiltQuery | None, crm_query: BuiltQuery | None) -> Dimension:
    q = ad_query if ad_query is not None else crm_query
    if q is None:
        raise ReconciliationMismatch("No statement was built for this level")
    return q.dimension


class ReportService:
    def __init__(self, ads_db_path: str | None = None, crm_db_path: str | None = None) -> None:
        settings = get_settings()
        self.ads_db_path = ads_db_path or settings.ads_db_path
        self.crm_db_path = crm_db_path or settings.crm_db_path

    async def query(
        self,
        family: str,
        dimensions: Sequence[str],
        depth: int,
        date_range: DateRange,
        parent_filters: Mapping[str, Any] | None = None,
        filters: Iterable[TableFilter | Mapping[str, Any]] | None = None,
        sort_by: str | None = None,
        sort_direction: str | None = None,
        limit: int | None = None,
        caller: str | None = None,
    ) -> list[ReportRow]:
        """Rows for ``dimensions[depth]`` under the parent given by ``parent_filters``.

        ``parent_filters`` must hold a value for each of ``dimensions[:depth]``.
        For families with both an ad-spend and a CRM source the two statements
        run concurrently and are merged once both have finished.
        """
        started = time.perf_counter()
        fam = get_family(family)
        dims = list(dimensions)
        parent_filters = dict(parent_filters or {})
        row_limit = clamp_limit(limit)
        sort_key = sort_by or fam.default_sort
        get_metric(fam.id, sort_key)
        direction = normalize_direction(sort_direction)

        # everything is validated and built before any statement runs
        merged_family = fam.aggregate is not None and fam.crm is not None
        options = QueryOptions(
            family=fam.id,
            date_range=date_range,
            dimensions=dims,
            depth=depth,
            parent_filters=parent_filters,
            filters=_table_filters(filters),
            sort_by=sort_by,
            sort_direction=direction,
            limit=MAX_LIMIT if merged_family else row_limit,
        )
        ad_query = build_query(options) if fam.aggregate is not None else None
        crm_query = build_crm_rows_query(options) if fam.crm is not None else None
        ots_query = build_ots_rows_query(options) if fam.ots is not None else None

        missing = [d for d in dims[:depth] if d not in parent_filters]
        if missing:
            raise InvalidParentFilters(
                f"Depth {depth} needs parent values for: {', '.join(missing)}",
                missing=missing,
            )
        parent_values = [display_value(parent_filters[d]) for d in dims[:depth]]

        ad_rows, crm_rows, ots_rows = await self._fetch(
            (self.ads_db_path, ad_query),
            (self.crm_db_path, crm_query),
            (self.crm_db_path, ots_query),
        )
        current = _current_dimension(ad_query, crm_query)
        if crm_query is not None and fam.crm_rule is not None:
            crm_rows = aggregate_crm_rows(crm_rows, rule=fam.crm_rule, dimension=crm_query.dimension)
        if ots_query is not None and fam.crm_rule is not None:
            # merge() sums these with the subscription counts of the same value
            crm_rows += aggregate_ots_rows(ots_rows, rule=fam.crm_rule, dimension=ots_query.dimension)

        raw = [m for source in (fam.aggregate, fam.crm, fam.ots) if source is not None for m in source.metrics]
        rows = merge(
            ad_rows,
            crm_rows,
            derived=fam.derived,
            parent_values=parent_values,
            has_children=depth < len(dims) - 1,
            ad_metrics=[m.id for m in fam.aggregate.metrics] if fam.aggregate else (),
            crm_metrics=[m.id for source in (fam.crm, fam.ots) if source is not None for m in source.metrics],
            money_metrics=[m.id for m in raw if m.money],
        )
        if fam.crm is not None:
            # SQL already ordered and limited single-statement families
            rows = _sort_rows(rows, current, sort_key, direction)[:row_limit]

        logger.info(
            "report_query_completed",
            family=fam.id,
            dimension=dims[depth],
            depth=depth,
            rows=len(rows),
            caller=caller,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return rows

    async def _fetch(self, *statements: tuple[str, BuiltQuery | None]) -> list[list[dict[str, Any]]]:
        async def run(db_path: str, q: BuiltQuery | None) -> list[dict[str, Any]]:
            if q is None:
                return []
            result = await asyncio.to_thread(db.query, db_path, q.statement, q.parameters)
            return result.rows

        # every statement is waited for; a failure on any side fails the whole request
        results = await asyncio.gather(*(run(path, q) for path, q in statements), return_exceptions=True)
        errors = [r for r in results if isinstance(r, BaseException)]
        for extra in errors[1:]:
            logger.error("report_statement_failed", error=str(extra), error_type=type(extra).__name__)
        if errors:
            raise errors[0]
        return [r for r in results if not isinstance(r, BaseException)]

    def resolve_saved_view(self, view: SavedView | Mapping[str, Any], today: date | None = None) -> ResolvedView:
        if not isinstance(view, SavedView):
            try:
                view = SavedView.model_validate(view)
            except PydanticValidationError as exc:
                raise ValidationError("Invalid saved view", errors=exc.errors()) from exc
        return resolve_view(view, today)

    async def rebuild_tree(
        self,
        family: str,
        dimensions: Sequence[str],
        date_range: DateRange,
        expanded_keys: Iterable[str] = (),
        filters: Iterable[TableFilter | Mapping[str, Any]] | None = None,
        sort_by: str | None = None,
        sort_direction: str | None = None,
        limit: int | None = None,
        caller: str | None = None,
    ) -> list[ReportRow]:
        """Re-fetch the root level and every previously expanded row that is still reachable.

        Keys are processed shallowest first; a key whose parent is no longer in
        the tree, or that sits on the last dimension, is dropped.
        """
        dims = list(dimensions)
        expanded = list(expanded_keys)
        table_filters = _table_filters(filters)
        common = dict(
            family=family,
            dimensions=dims,
            date_range=date_range,
            filters=table_filters,
            sort_by=sort_by,
            sort_direction=sort_direction,
            limit=limit,
            caller=caller,
        )
        tree = await self.query(depth=0, **common)

        for depth, keys in group_keys_by_depth(expanded).items():
            if depth >= len(dims) - 1:
                continue
            reachable = [k for k in keys if find_by_key(tree, k) is not None]
            if not reachable:
                continue
            levels = await asyncio.gather(
                *(
                    self.query(depth=depth + 1, parent_filters=build_parent_filters(k, dims), **common)
                    for k in reachable
                )
            )
            for key, children in zip(reachable, levels):
                tree = attach_children(tree, key, children)

        logger.info("report_tree_rebuilt", family=family, expanded=len(expanded), caller=caller)
        return tree
