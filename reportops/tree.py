"""Drill-down tree rows and their composite keys.

A row's key is the ``::``-joined list of dimension values from the root
level down to the row itself, so ``depth == key.count("::")``. The tree is
a plain list of root rows; ``children`` is None until a level is loaded.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

import structlog

from reportops.errors import DepthOutOfRange, ReconciliationMismatch


logger = structlog.get_logger(__name__)

KEY_SEPARATOR = "::"


@dataclass(frozen=True)
class ReportRow:
    key: str
    attribute: str
    depth: int
    has_children: bool
    metrics: dict[str, float] = field(default_factory=dict)
    children: list[ReportRow] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "key": self.key,
            "attribute": self.attribute,
            "depth": self.depth,
            "has_children": self.has_children,
            "metrics": dict(self.metrics),
        }
        if self.children is not None:
            out["children"] = [c.to_dict() for c in self.children]
        return out


@dataclass(frozen=True)
class DecodedKey:
    depth: int
    values: list[str]


def _mismatch(message: str, **details: Any) -> ReconciliationMismatch:
    logger.error("tree_consistency_failed", message=message, **details)
    return ReconciliationMismatch(message, **details)


def encode_key(values: Sequence[Any]) -> str:
    if not values:
        raise _mismatch("A row key needs at least one value")
    parts = [str(v) for v in values]
    for p in parts:
        if KEY_SEPARATOR in p:
            raise _mismatch(f"Dimension value {p!r} contains the key separator", value=p)
    return KEY_SEPARATOR.join(parts)


def decode_key(key: str) -> DecodedKey:
    values = key.split(KEY_SEPARATOR)
    return DecodedKey(depth=len(values) - 1, values=values)


def check_row(row: ReportRow) -> ReportRow:
    decoded = decode_key(row.key)
    if decoded.depth != row.depth:
        raise _mismatch(
            f"Row {row.key!r} carries depth {row.depth} but its key decodes to {decoded.depth}",
            key=row.key,
            depth=row.depth,
            decoded_depth=decoded.depth,
        )
    return row


def build_parent_filters(key: str, dimensions: Sequence[str]) -> dict[str, str]:
    """Filters that fetch the children of the row with ``key``.

    Each value of the key, the row's own value included, is paired with the
    dimension at the same position.
    """
    values = decode_key(key).values
    if len(values) > len(dimensions):
        raise DepthOutOfRange(len(values) - 1, len(dimensions))
    return dict(zip(dimensions, values))


def iter_rows(tree: Iterable[ReportRow]) -> Iterator[ReportRow]:
    """Depth-first over loaded rows."""
    for row in tree:
        yield row
        if row.children:
            yield from iter_rows(row.children)


def find_by_key(tree: Iterable[ReportRow], key: str) -> ReportRow | None:
    for row in iter_rows(tree):
        if row.key == key:
            return row
    return None


def _check_children(parent: ReportRow, rows: Sequence[ReportRow]) -> None:
    prefix = parent.key + KEY_SEPARATOR
    for child in rows:
        check_row(child)
        if child.depth != parent.depth + 1 or not child.key.startswith(prefix):
            raise _mismatch(
                f"Row {child.key!r} cannot be a child of {parent.key!r}",
                parent_key=parent.key,
                child_key=child.key,
            )


def attach_children(tree: Sequence[ReportRow], parent_key: str, rows: Sequence[ReportRow]) -> list[ReportRow]:
    """Return a new tree with ``rows`` loaded under ``parent_key``. The input is not modified."""
    found = False

    def _walk(nodes: Sequence[ReportRow]) -> list[ReportRow]:
        nonlocal found
        out: list[ReportRow] = []
        for node in nodes:
            if node.key == parent_key:
                _check_children(node, rows)
                found = True
                out.append(replace(node, children=list(rows)))
            elif node.children and parent_key.startswith(node.key + KEY_SEPARATOR):
                out.append(replace(node, children=_walk(node.children)))
            else:
                out.append(node)
        return out

    new_tree = _walk(tree)
    if not found:
        raise _mismatch(f"Parent row {parent_key!r} is not loaded", parent_key=parent_key)
    return new_tree


def update_has_children(tree: Sequence[ReportRow], dimension_count: int) -> list[ReportRow]:
    """Recompute ``has_children`` after the dimension path changed length."""
    out: list[ReportRow] = []
    for node in tree:
        has_children = node.depth < dimension_count - 1
        children = node.children
        if children is not None:
            children = update_has_children(children, dimension_count) if has_children else None
        out.append(replace(node, has_children=has_children, children=children))
    return out


def group_keys_by_depth(keys: Iterable[str]) -> dict[int, list[str]]:
    grouped: dict[int, list[str]] = {}
    for key in dict.fromkeys(keys):
        grouped.setdefault(decode_key(key).depth, []).append(key)
    return dict(sorted(grouped.items()))


def make_row(
    parent_values: Sequence[Any],
    value: Any,
    attribute: str,
    metrics: Mapping[str, float],
    *,
    has_children: bool,
) -> ReportRow:
    key = encode_key([*parent_values, value])
    return check_row(
        ReportRow(
            key=key,
            attribute=attribute,
            depth=len(parent_values),
            has_children=has_children,
            metrics=dict(metrics),
        )
    )
