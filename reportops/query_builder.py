"""Parameterized SQL for one drill-down level.

The statement text is assembled only from registry column expressions,
registry metric expressions and fixed keywords. Dates, parent-filter values,
table-filter values and the row limit are all bound ``?`` parameters, in the
same order as their placeholders.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel

from reportops.config import DEFAULT_LIMIT, MAX_LIMIT, MIN_LIMIT
from reportops.dates import DateRange
from reportops.errors import DepthOutOfRange, InvalidSortDirection, ValidationError
from reportops.metrics import RawMetric, derived_sql
from reportops.registry import Dimension, ReportFamily, Source, get_dimension, get_family, get_metric


UNKNOWN = "Unknown"

FilterOperator = Literal["equals", "not_equals", "contains", "not_contains"]


class TableFilter(BaseModel):
    field: str
    operator: FilterOperator = "equals"
    value: str


@dataclass(frozen=True)
class QueryOptions:
    family: str
    date_range: DateRange
    dimensions: Sequence[str]
    depth: int = 0
    parent_filters: Mapping[str, Any] = field(default_factory=dict)
    filters: Sequence[TableFilter] = ()
    sort_by: str | None = None
    sort_direction: str | None = None
    limit: int | None = None


@dataclass(frozen=True)
class BuiltQuery:
    statement: str
    parameters: list[Any]
    dimension: Dimension
    source: Source


def clamp_limit(limit: int | None) -> int:
    if limit is None:
        return DEFAULT_LIMIT
    return max(MIN_LIMIT, min(MAX_LIMIT, int(limit)))


def normalize_direction(direction: str | None) -> str:
    if direction is None:
        return "DESC"
    d = str(direction).strip().upper()
    if d not in ("ASC", "DESC"):
        raise InvalidSortDirection(f"Sort direction must be ASC or DESC, got {direction!r}", sort_direction=str(direction))
    return d


def _is_unknown(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() in ("", UNKNOWN))


def _null_condition(dim: Dimension) -> str:
    return dim.null_check or f"{dim.column} IS NULL"


def _equals(dim: Dimension, value: Any, params: list[Any], *, negate: bool = False) -> str:
    if _is_unknown(value):
        cond = _null_condition(dim)
        return f"NOT {cond}" if negate else cond

    if dim.expand is not None:
        values = dim.expand(str(value)) or [str(value).strip().lower()]
        params.extend(values)
        marks = ", ".join("?" for _ in values)
        if negate:
            return f"({dim.column} IS NULL OR {dim.column} NOT IN ({marks}))"
        return f"{dim.column} IN ({marks})"

    params.append(value)
    if negate:
        return f"({dim.column} IS NULL OR {dim.column} <> ?)"
    return f"{dim.column} = ?"


def _contains_expanded(
    dim: Dimension, expand: Callable[[str], list[str]], f: TableFilter, params: list[Any]
) -> str:
    # match the pattern against the shared values, then filter on their stored forms
    values = expand(f.value)
    marks = ", ".join("?" for _ in values)
    params.extend(values)
    if f.operator == "contains":
        return f"{dim.column} IN ({marks})" if values else "0 = 1"
    return f"({dim.column} IS NULL OR {dim.column} NOT IN ({marks}))" if values else "1 = 1"


def _table_filter(dim: Dimension, f: TableFilter, params: list[Any]) -> str:
    if f.operator == "equals":
        return _equals(dim, f.value, params)
    if f.operator == "not_equals":
        return _equals(dim, f.value, params, negate=True)
    if dim.expand_contains is not None:
        return _contains_expanded(dim, dim.expand_contains, f, params)
    params.append(f"%{f.value}%")
    if f.operator == "contains":
        return f"{dim.column} LIKE ?"
    return f"({dim.column} IS NULL OR {dim.column} NOT LIKE ?)"


def _validate(options: QueryOptions, family: ReportFamily, source: Source) -> tuple[list[Dimension], Dimension]:
    dims = [get_dimension(family.id, d, source=source) for d in options.dimensions]
    depth = options.depth
    if isinstance(depth, bool) or not isinstance(depth, int) or not 0 <= depth < len(dims):
        raise DepthOutOfRange(depth, len(dims))
    return dims, dims[depth]


def _where(options: QueryOptions, family: ReportFamily, source: Source) -> tuple[list[str], list[Any]]:
    params: list[Any] = list(options.date_range.as_params())
    conditions = [f"{source.date_column} BETWEEN ? AND ?", *source.where]

    for dim_id, value in options.parent_filters.items():
        dim = get_dimension(family.id, dim_id, source=source)
        conditions.append(_equals(dim, value, params))

    for f in options.filters:
        dim = get_dimension(family.id, f.field, source=source)
        conditions.append(_table_filter(dim, f, params))

    return conditions, params


def _order_by(options: QueryOptions, family: ReportFamily, current: Dimension, selected: set[str]) -> str:
    # validated even for temporal dimensions
    sort_by = options.sort_by or family.default_sort
    get_metric(family.id, sort_by)
    direction = normalize_direction(options.sort_direction)

    if current.temporal:
        return "dimension_value DESC"
    if sort_by not in selected:
        # a metric from the other source; the merged rows are re-sorted later
        sort_by, direction = (family.default_sort, "DESC") if family.default_sort in selected else (None, direction)
    if sort_by is None:
        return "dimension_value ASC"
    return f"{sort_by} {direction}, dimension_value ASC"


def build_query(options: QueryOptions) -> BuiltQuery:
    """One aggregate statement grouped by ``dimensions[depth]``.

    Raw metrics are summed and every derived metric whose components are in
    this source is recomputed from those sums in the same SELECT.
    """
    family = get_family(options.family)
    source = family.aggregate
    if source is None:
        raise ValidationError(f"{family.id} has no aggregate source", family=family.id)

    _, current = _validate(options, family, source)
    conditions, params = _where(options, family, source)

    raw: dict[str, RawMetric] = {m.id: m for m in source.metrics}
    select = [f"{current.column} AS dimension_value"]
    if current.label:
        select.append(f"MAX({current.label}) AS dimension_label")
    select += [f"{m.expr} AS {m.id}" for m in source.metrics]
    derived = [d for d in family.derived if d.numerator in raw and d.denominator in raw]
    select += [f"{derived_sql(d, raw)} AS {d.id}" for d in derived]

    order_by = _order_by(options, family, current, set(raw) | {d.id for d in derived})
    params.append(clamp_limit(options.limit))

    statement = (
        "SELECT\n  "
        + ",\n  ".join(select)
        + f"\nFROM {source.from_clause}\nWHERE "
        + "\n  AND ".join(conditions)
        + f"\nGROUP BY {current.column}\nORDER BY {order_by}\nLIMIT ?"
    )
    return BuiltQuery(statement=statement, parameters=params, dimension=current, source=source)


_CRM_ROW_COLUMNS = (
    "s.id AS subscription_id",
    "s.customer_id AS customer_id",
    "s.deleted AS subscription_deleted",
    "i.id AS invoice_id",
    "i.deleted AS invoice_deleted",
    "i.tag AS invoice_tag",
    "i.is_marked AS invoice_marked",
    "uo.id AS upsell_id",
    "uo.deleted AS upsell_deleted",
    "uo.is_marked AS upsell_marked",
    "uo.tag AS upsell_tag",
    "s.tracking_id_4 AS tracking_id_4",
    "s.tracking_id_2 AS tracking_id_2",
    "s.tracking_id AS tracking_id",
    "sr.source AS source",
    "CASE WHEN DATE(c.date_registered) = DATE(s.date_create) THEN 1 ELSE 0 END AS new_customer",
)

_OTS_ROW_COLUMNS = (
    "i.id AS invoice_id",
    "i.deleted AS invoice_deleted",
    "i.is_marked AS invoice_marked",
    "i.tracking_id_4 AS tracking_id_4",
    "i.tracking_id_2 AS tracking_id_2",
    "i.tracking_id AS tracking_id",
    "sr.source AS source",
)


def _rows_query(options: QueryOptions, family: ReportFamily, source: Source, columns: Sequence[str], order_by: str) -> BuiltQuery:
    _, current = _validate(options, family, source)
    conditions, params = _where(options, family, source)
    # sort_by/sort_direction are applied after aggregation but still validated here
    get_metric(family.id, options.sort_by or family.default_sort)
    normalize_direction(options.sort_direction)

    select = [f"{current.column} AS dimension_value", *columns]
    statement = (
        "SELECT\n  "
        + ",\n  ".join(select)
        + f"\nFROM {source.from_clause}\nWHERE "
        + "\n  AND ".join(conditions)
        + f"\nORDER BY {order_by}"
    )
    return BuiltQuery(statement=statement, parameters=params, dimension=current, source=source)


def build_crm_rows_query(options: QueryOptions) -> BuiltQuery:
    """Flattened subscription x trial-invoice x upsell rows for ``dimensions[depth]``.

    Nothing is aggregated here: each row has to pass the eligibility
    predicates before it is counted (see ``reportops.crm``).
    """
    family = get_family(options.family)
    if family.crm is None:
        raise ValidationError(f"{family.id} has no CRM source", family=family.id)
    return _rows_query(options, family, family.crm, _CRM_ROW_COLUMNS, "s.id, i.id, uo.id")


def build_ots_rows_query(options: QueryOptions) -> BuiltQuery:
    """Flattened one-time-sale invoice rows, one per invoice."""
    family = get_family(options.family)
    if family.ots is None:
        raise ValidationError(f"{family.id} has no one-time-sale source", family=family.id)
    return _rows_query(options, family, family.ots, _OTS_ROW_COLUMNS, "i.id")
