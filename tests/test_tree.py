"""Tests for row keys and the drill-down tree."""

import pytest

from reportops.errors import DepthOutOfRange, ReconciliationMismatch
from reportops.tree import (
    ReportRow,
    attach_children,
    build_parent_filters,
    check_row,
    decode_key,
    encode_key,
    find_by_key,
    group_keys_by_depth,
    iter_rows,
    make_row,
    update_has_children,
)


DIMS = ["network", "campaign", "adset", "ad"]


def _row(*values: str, has_children: bool = True) -> ReportRow:
    return make_row(list(values[:-1]), values[-1], values[-1], {"cost": 1.0}, has_children=has_children)


@pytest.fixture
def tree() -> list[ReportRow]:
    return [_row("Google Ads"), _row("Facebook")]


class TestKeys:
    def test_encode_decode(self) -> None:
        key = encode_key(["Google Ads", "g_c1", "g_c1_as1"])
        assert key == "Google Ads::g_c1::g_c1_as1"
        decoded = decode_key(key)
        assert decoded.depth == 2
        assert decoded.values == ["Google Ads", "g_c1", "g_c1_as1"]

    def test_root_key_has_depth_zero(self) -> None:
        assert decode_key("Unknown").depth == 0

    def test_separator_inside_value_is_rejected(self) -> None:
        with pytest.raises(ReconciliationMismatch):
            encode_key(["Google Ads", "bad::value"])

    def test_empty_path_is_rejected(self) -> None:
        with pytest.raises(ReconciliationMismatch):
            encode_key([])

    def test_non_string_values_are_stringified(self) -> None:
        assert encode_key(["/offer", 2]) == "/offer::2"

    def test_made_rows_are_consistent(self) -> None:
        for values in (["a"], ["a", "b"], ["a", "b", "c", "d"]):
            row = _row(*values)
            assert decode_key(row.key).depth == row.depth == len(values) - 1

    def test_check_row_rejects_wrong_depth(self) -> None:
        with pytest.raises(ReconciliationMismatch) as exc_info:
            check_row(ReportRow(key="a::b", attribute="b", depth=0, has_children=True))
        assert exc_info.value.status_code == 500
        assert not exc_info.value.client_correctable


class TestParentFilters:
    def test_includes_every_value_of_the_key(self) -> None:
        assert build_parent_filters("Google Ads::g_c1", DIMS) == {"network": "Google Ads", "campaign": "g_c1"}

    def test_root_row(self) -> None:
        assert build_parent_filters("Facebook", DIMS) == {"network": "Facebook"}

    def test_key_deeper_than_path(self) -> None:
        with pytest.raises(DepthOutOfRange):
            build_parent_filters("a::b::c", ["network", "campaign"])


class TestAttachChildren:
    def test_attach_and_find(self, tree: list[ReportRow]) -> None:
        children = [_row("Google Ads", "g_c1"), _row("Google Ads", "g_c2")]
        new_tree = attach_children(tree, "Google Ads", children)

        assert find_by_key(new_tree, "Google Ads::g_c2") == children[1]
        assert find_by_key(new_tree, "Google Ads").children == children

    def test_input_tree_is_not_modified(self, tree: list[ReportRow]) -> None:
        attach_children(tree, "Google Ads", [_row("Google Ads", "g_c1")])
        assert tree[0].children is None
        assert find_by_key(tree, "Google Ads::g_c1") is None

    def test_attach_two_levels_deep(self, tree: list[ReportRow]) -> None:
        tree = attach_children(tree, "Google Ads", [_row("Google Ads", "g_c1")])
        tree = attach_children(tree, "Google Ads::g_c1", [_row("Google Ads", "g_c1", "as1")])
        found = find_by_key(tree, "Google Ads::g_c1::as1")
        assert found is not None and found.depth == 2
        for row in iter_rows(tree):
            assert decode_key(row.key).depth == row.depth

    def test_missing_parent(self, tree: list[ReportRow]) -> None:
        with pytest.raises(ReconciliationMismatch):
            attach_children(tree, "TikTok", [_row("TikTok", "t1")])

    def test_child_under_wrong_parent(self, tree: list[ReportRow]) -> None:
        with pytest.raises(ReconciliationMismatch):
            attach_children(tree, "Google Ads", [_row("Facebook", "fb_c1")])

    def test_child_with_wrong_depth(self, tree: list[ReportRow]) -> None:
        with pytest.raises(ReconciliationMismatch):
            attach_children(tree, "Google Ads", [_row("Google Ads", "g_c1", "as1")])

    def test_find_never_looks_past_loaded_rows(self, tree: list[ReportRow]) -> None:
        assert find_by_key(tree, "Google Ads::g_c1") is None


class TestRebuildHelpers:
    def test_update_has_children_drops_levels_past_the_path(self, tree: list[ReportRow]) -> None:
        tree = attach_children(tree, "Google Ads", [_row("Google Ads", "g_c1")])
        shrunk = update_has_children(tree, dimension_count=1)
        assert all(not r.has_children for r in shrunk)
        assert shrunk[0].children is None

    def test_update_has_children_keeps_loaded_levels(self, tree: list[ReportRow]) -> None:
        tree = attach_children(tree, "Google Ads", [_row("Google Ads", "g_c1", has_children=False)])
        grown = update_has_children(tree, dimension_count=3)
        assert grown[0].has_children
        assert grown[0].children is not None and grown[0].children[0].has_children

    def test_group_keys_by_depth(self) -> None:
        grouped = group_keys_by_depth(["a::b", "a", "c", "a::b::c", "a"])
        assert grouped == {0: ["a", "c"], 1: ["a::b"], 2: ["a::b::c"]}
        assert list(grouped) == [0, 1, 2]
