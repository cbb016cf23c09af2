"""Join ad-spend aggregates with CRM aggregates into report rows."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from reportops.metrics import DerivedMetric, compute_derived
from reportops.registry import network_for_source, sources_for_network
from reportops.tree import ReportRow, make_row
from reportops.util import display_value, round_money, to_number


__all__ = ["AD_RAW", "CRM_RAW", "merge", "network_for_source", "sources_for_network"]


AD_RAW = ("cost", "clicks", "impressions", "conversions")
CRM_RAW = ("customers", "subscriptions", "trials", "trials_approved", "upsells", "upsells_approved", "ots", "ots_approved")


def merge(
    ad_rows: Iterable[Mapping[str, Any]],
    crm_rows: Iterable[Mapping[str, Any]],
    *,
    derived: Sequence[DerivedMetric] = (),
    parent_values: Sequence[Any] = (),
    has_children: bool = False,
    ad_metrics: Sequence[str] = AD_RAW,
    crm_metrics: Sequence[str] = CRM_RAW,
    money_metrics: Sequence[str] = ("cost",),
) -> list[ReportRow]:
    """Full outer join on ``dimension_value``.

    A value present on one side only keeps its row with the other side's
    raw metrics at zero. Derived metrics are computed once, from the merged
    raw sums. Output order is ad rows first (in their order), then CRM-only
    values.
    """
    merged: dict[str, dict[str, Any]] = {}

    def _slot(value: Any) -> dict[str, Any]:
        k = display_value(value)
        if k not in merged:
            merged[k] = {"label": None, "metrics": {m: 0 for m in (*ad_metrics, *crm_metrics)}}
        return merged[k]

    for r in ad_rows:
        slot = _slot(r.get("dimension_value"))
        if r.get("dimension_label") and not slot["label"]:
            slot["label"] = str(r["dimension_label"])
        for m in ad_metrics:
            slot["metrics"][m] += to_number(r.get(m))

    for r in crm_rows:
        slot = _slot(r.get("dimension_value"))
        for m in crm_metrics:
            slot["metrics"][m] += to_number(r.get(m))

    out: list[ReportRow] = []
    for value, slot in merged.items():
        for m in money_metrics:
            if m in slot["metrics"]:
                slot["metrics"][m] = round_money(slot["metrics"][m])
        bag = compute_derived(slot["metrics"], derived)
        out.append(
            make_row(
                parent_values,
                value,
                slot["label"] or value,
                bag,
                has_children=has_children,
            )
        )
    return out
