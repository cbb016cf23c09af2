"""CRM counting on top of the flattened subscription x invoice rows.

The SQL side only selects rows; whether a row counts is decided by
``reportops.eligibility``, so the geography dashboard and the attribution
report can never apply different rules.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any

import structlog

from reportops.eligibility import (
    is_eligible_for_attribution,
    is_eligible_for_baseline,
    is_eligible_ots,
    upsell_parent_id,
)
from reportops.registry import Dimension
from reportops.util import to_int


logger = structlog.get_logger(__name__)

PREDICATES: dict[str, Callable[[Any], bool]] = {
    "baseline": is_eligible_for_baseline,
    "attribution": is_eligible_for_attribution,
}

OTS_PREDICATES: dict[str, Callable[[Any], bool]] = {
    "baseline": is_eligible_ots,
    "attribution": lambda row: is_eligible_ots(row, attribution=True),
}

CRM_COUNTS = ("customers", "subscriptions", "trials", "trials_approved", "upsells", "upsells_approved")
OTS_COUNTS = ("ots", "ots_approved")


def _dimension_value(dim: Dimension, value: Any) -> Any:
    if dim.normalize is not None:
        return dim.normalize(None if value is None else str(value))
    if isinstance(value, str) and value.strip() == "":
        return None
    return value


def _counts_upsell(r: Mapping[str, Any]) -> bool:
    if r.get("upsell_id") is None or to_int(r.get("upsell_deleted")) == 1:
        return False
    parent = upsell_parent_id(r.get("upsell_tag"))
    return parent is not None and parent == to_int(r.get("subscription_id"), default=-1)


def _finish(buckets: dict[Any, dict[str, set[Any]]]) -> list[dict[str, Any]]:
    return [
        {"dimension_value": value, **{metric: len(ids) for metric, ids in b.items()}}
        for value, b in buckets.items()
    ]


def aggregate_crm_rows(
    rows: Iterable[Mapping[str, Any]],
    *,
    rule: str,
    dimension: Dimension,
) -> list[dict[str, Any]]:
    """Count eligible rows per dimension value.

    Returns one dict per value with ``dimension_value`` plus the raw CRM
    metrics: ``customers`` (distinct new customers), ``subscriptions``,
    ``trials`` and ``trials_approved`` (distinct marked trial invoices), and
    ``upsells``/``upsells_approved`` (distinct upsell invoices whose tag names
    a counted subscription as parent).
    """
    predicate = PREDICATES[rule]
    buckets: dict[Any, dict[str, set[Any]]] = {}
    seen = skipped = 0

    for r in rows:
        seen += 1
        if not predicate(r):
            skipped += 1
            continue
        value = _dimension_value(dimension, r.get("dimension_value"))
        b = buckets.setdefault(value, {m: set() for m in CRM_COUNTS})
        b["subscriptions"].add(r.get("subscription_id"))
        if to_int(r.get("new_customer")) == 1 and r.get("customer_id") is not None:
            b["customers"].add(r.get("customer_id"))
        invoice_id = r.get("invoice_id")
        b["trials"].add(invoice_id)
        if to_int(r.get("invoice_marked")) == 1:
            b["trials_approved"].add(invoice_id)
        if _counts_upsell(r):
            b["upsells"].add(r["upsell_id"])
            if to_int(r.get("upsell_marked")) == 1:
                b["upsells_approved"].add(r["upsell_id"])

    logger.debug("crm_rows_aggregated", rule=rule, rows=seen, ineligible=skipped, groups=len(buckets))
    return _finish(buckets)


def aggregate_ots_rows(
    rows: Iterable[Mapping[str, Any]],
    *,
    rule: str,
    dimension: Dimension,
) -> list[dict[str, Any]]:
    """Count one-time-sale invoices (``ots``) and marked ones (``ots_approved``) per dimension value."""
    predicate = OTS_PREDICATES[rule]
    buckets: dict[Any, dict[str, set[Any]]] = {}
    skipped = 0

    for r in rows:
        if not predicate(r):
            skipped += 1
            continue
        value = _dimension_value(dimension, r.get("dimension_value"))
        b = buckets.setdefault(value, {m: set() for m in OTS_COUNTS})
        b["ots"].add(r["invoice_id"])
        if to_int(r.get("invoice_marked")) == 1:
            b["ots_approved"].add(r["invoice_id"])

    logger.debug("ots_rows_aggregated", rule=rule, ineligible=skipped, groups=len(buckets))
    return _finish(buckets)
