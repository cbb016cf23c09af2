"""Raw and derived metric definitions.

Raw metrics are aggregated directly (in SQL, or in Python for CRM rows).
Derived metrics are ratios of two raw metrics and are only ever computed
from aggregated raw sums, never summed or averaged themselves.

Zero-sentinel policy: a derived metric whose denominator is zero is 0.0,
whether the numerator is zero or not. ``derived_sql`` and
``compute_derived`` are the only two places that divide.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, MutableMapping
from dataclasses import dataclass

from reportops.util import safe_div


@dataclass(frozen=True)
class RawMetric:
    id: str
    # SQL aggregate expression; None for metrics counted in Python (CRM rows)
    expr: str | None = None
    money: bool = False


@dataclass(frozen=True)
class DerivedMetric:
    id: str
    numerator: str
    denominator: str
    scale: float = 1.0
    money: bool = False


def derived_sql(metric: DerivedMetric, raw: Mapping[str, RawMetric]) -> str:
    num = raw[metric.numerator].expr
    den = raw[metric.denominator].expr
    if num is None or den is None:
        raise ValueError(f"{metric.id} depends on a metric with no SQL expression")
    scaled = f" * {metric.scale:g}" if metric.scale != 1.0 else ""
    expr = f"COALESCE(CAST({num} AS REAL) / NULLIF({den}, 0), 0){scaled}"
    return f"ROUND({expr}, 2)" if metric.money else expr


def compute_derived(bag: MutableMapping[str, float], derived: Iterable[DerivedMetric]) -> MutableMapping[str, float]:
    for m in derived:
        value = safe_div(float(bag.get(m.numerator, 0) or 0), float(bag.get(m.denominator, 0) or 0)) * m.scale
        bag[m.id] = round(value, 2) if m.money else value
    return bag
