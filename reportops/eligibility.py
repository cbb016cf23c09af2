"""Which CRM orders count.

Every code path that counts CRM subscriptions goes through the two
predicates below. They take one flattened subscription x invoice row (the
shape ``query_builder.build_crm_rows_query`` selects) and never raise: a row
that is not a mapping, lacks a field, or carries a flag that cannot be read
is ineligible.

Rules, in order:

1. subscription deleted
2. matched invoice deleted
3. no invoice of the relevant type
4. invoice tag links it to a parent subscription (upsell)
5. attribution only: campaign, ad set or ad tracking id missing
6. attribution only: no resolved traffic source

One-time sales (standalone invoices) use rule 2 and, for attribution, rules
5 and 6 on the invoice's own tracking ids and source.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any


UPSELL_TAG_MARKER = "parent-sub-id="

TRACKING_FIELDS = ("tracking_id_4", "tracking_id_2", "tracking_id")
BASELINE_FIELDS = ("subscription_deleted", "invoice_deleted", "invoice_id", "invoice_tag")
ATTRIBUTION_FIELDS = BASELINE_FIELDS + TRACKING_FIELDS + ("source",)
OTS_FIELDS = ("invoice_id", "invoice_deleted")

_UPSELL_PARENT = re.compile(re.escape(UPSELL_TAG_MARKER) + r"(\d+)")

_TRUE = {"1", "true", "yes", "y", "t"}
_FALSE = {"0", "false", "no", "n", "f"}


def _flag(value: Any) -> bool | None:
    """Read a 0/1 style flag. None means the value could not be read."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return {0: False, 1: True}.get(value)
    if isinstance(value, str):
        s = value.strip().lower()
        if s in _TRUE:
            return True
        if s in _FALSE:
            return False
    return None


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        # CRM exports write missing tracking ids as the string "null"
        return value.strip().lower() not in ("", "null")
    return True


def _attribution_reasons(row: Mapping[str, Any]) -> list[str]:
    reasons = []
    if not all(_present(row[f]) for f in TRACKING_FIELDS):
        reasons.append("no_tracking_id")
    if not _present(row["source"]):
        reasons.append("no_source")
    return reasons


def ineligibility_reasons(row: Any, *, attribution: bool = False) -> list[str]:
    """Every rule the row fails, in rule order. Empty means eligible."""
    if not isinstance(row, Mapping):
        return ["malformed"]
    required = ATTRIBUTION_FIELDS if attribution else BASELINE_FIELDS
    if any(f not in row for f in required):
        return ["malformed"]

    reasons: list[str] = []

    sub_deleted = _flag(row["subscription_deleted"])
    if sub_deleted is None:
        return ["malformed"]
    if sub_deleted:
        reasons.append("subscription_deleted")

    has_invoice = _present(row["invoice_id"])
    inv_deleted = _flag(row["invoice_deleted"])
    if has_invoice:
        if inv_deleted is None:
            return ["malformed"]
        if inv_deleted:
            reasons.append("invoice_deleted")
    else:
        reasons.append("no_invoice")

    tag = row["invoice_tag"]
    if tag is not None and not isinstance(tag, str):
        return ["malformed"]
    if tag and UPSELL_TAG_MARKER in tag:
        reasons.append("upsell")

    if attribution:
        reasons += _attribution_reasons(row)

    return reasons


def is_eligible_for_baseline(row: Any) -> bool:
    return not ineligibility_reasons(row)


def is_eligible_for_attribution(row: Any) -> bool:
    # 1-4 are shared with the baseline predicate, so this is always a subset.
    return is_eligible_for_baseline(row) and not ineligibility_reasons(row, attribution=True)


def ots_ineligibility_reasons(row: Any, *, attribution: bool = False) -> list[str]:
    """Rules a one-time-sale invoice row fails. Empty means it counts."""
    if not isinstance(row, Mapping):
        return ["malformed"]
    required = OTS_FIELDS + TRACKING_FIELDS + ("source",) if attribution else OTS_FIELDS
    if any(f not in row for f in required) or not _present(row["invoice_id"]):
        return ["malformed"]

    deleted = _flag(row["invoice_deleted"])
    if deleted is None:
        return ["malformed"]
    reasons = ["invoice_deleted"] if deleted else []
    if attribution:
        reasons += _attribution_reasons(row)
    return reasons


def is_eligible_ots(row: Any, *, attribution: bool = False) -> bool:
    return not ots_ineligibility_reasons(row, attribution=attribution)


def upsell_parent_id(tag: Any) -> int | None:
    """The parent subscription id an upsell invoice tag points at, if any."""
    if not isinstance(tag, str):
        return None
    m = _UPSELL_PARENT.search(tag)
    return int(m.group(1)) if m else None
