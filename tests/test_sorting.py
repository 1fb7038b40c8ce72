"""Tests for row, group and tree ordering."""

import math

import pytest

from sysglance.models import GroupedProcess
from sysglance.sorting import (
    SortColumn,
    SortDirection,
    SortState,
    numeric_key,
    sort_groups,
    sort_rows,
    sort_tree,
    text_key,
)
from sysglance.tree import build_tree
from tests.conftest import make_row

ASC = SortDirection.ASCENDING
DESC = SortDirection.DESCENDING


def group(name: str, count: int, cpu: float = 0.0, pids: set[int] | None = None) -> GroupedProcess:
    return GroupedProcess(
        name=name,
        total_cpu_percent=cpu,
        total_mem_bytes=0,
        count=count,
        member_pids=frozenset(pids or {count * 100}),
    )


class TestSortState:
    def test_default(self):
        state = SortState()
        assert state.column is SortColumn.CPU
        assert state.descending

    def test_toggled(self):
        assert SortState(SortColumn.PID, ASC).toggled() == SortState(SortColumn.PID, DESC)

    def test_next_column_skips_count_outside_grouped(self):
        state = SortState(SortColumn.TOTAL_WRITE)
        assert state.next_column().column is SortColumn.CPU
        assert state.next_column(grouped=True).column is SortColumn.COUNT

    def test_next_column_uses_natural_direction(self):
        assert SortState(SortColumn.PID).next_column().direction is ASC  # NAME
        assert SortState(SortColumn.CPU).next_column().direction is DESC  # MEM


class TestKeys:
    def test_numeric_key_orders_nan_first(self):
        values = [3.0, math.nan, None, 1.0]
        assert sorted(values, key=numeric_key)[2:] == [1.0, 3.0]

    def test_text_key_is_case_insensitive(self):
        assert text_key("Bash") == text_key("bash")


class TestSortRows:
    """Tests for sort_rows()."""

    def test_descending_cpu(self):
        rows = [make_row(1, cpu=1.0), make_row(2, cpu=9.0), make_row(3, cpu=5.0)]
        ordered = sort_rows(rows, SortState(SortColumn.CPU, DESC))
        assert [row.pid for row in ordered] == [2, 3, 1]

    def test_ties_break_on_pid_ascending_both_ways(self):
        rows = [make_row(3, cpu=1.0), make_row(1, cpu=1.0), make_row(2, cpu=1.0)]
        for direction in (ASC, DESC):
            ordered = sort_rows(rows, SortState(SortColumn.CPU, direction))
            assert [row.pid for row in ordered] == [1, 2, 3]

    def test_text_column(self):
        rows = [make_row(1, name="zsh"), make_row(2, name="Bash"), make_row(3, name="cron")]
        ordered = sort_rows(rows, SortState(SortColumn.NAME, ASC))
        assert [row.name for row in ordered] == ["Bash", "cron", "zsh"]

    def test_nan_sorts_last_when_descending(self):
        rows = [make_row(1, mem_percent=math.nan), make_row(2, mem_percent=5.0)]
        ordered = sort_rows(rows, SortState(SortColumn.MEM_PERCENT, DESC))
        assert [row.pid for row in ordered] == [2, 1]

    def test_count_rejected(self):
        with pytest.raises(ValueError):
            sort_rows([make_row(1)], SortState(SortColumn.COUNT, DESC))

    def test_input_not_mutated(self):
        rows = [make_row(2, cpu=1.0), make_row(1, cpu=2.0)]
        sort_rows(rows, SortState())
        assert [row.pid for row in rows] == [2, 1]


class TestSortGroups:
    """Tests for sort_groups()."""

    def test_by_count(self):
        groups = [group("a", 1), group("b", 3), group("c", 2)]
        ordered = sort_groups(groups, SortState(SortColumn.COUNT, DESC))
        assert [g.count for g in ordered] == [3, 2, 1]
        reverse = sort_groups(groups, SortState(SortColumn.COUNT, ASC))
        assert [g.count for g in reverse] == [1, 2, 3]

    def test_ties_break_on_name(self):
        groups = [group("zsh", 2), group("bash", 2), group("cron", 2)]
        for direction in (ASC, DESC):
            ordered = sort_groups(groups, SortState(SortColumn.COUNT, direction))
            assert [g.name for g in ordered] == ["bash", "cron", "zsh"]

    def test_pid_uses_first_pid(self):
        groups = [group("a", 1, pids={50, 7}), group("b", 1, pids={20})]
        ordered = sort_groups(groups, SortState(SortColumn.PID, ASC))
        assert [g.name for g in ordered] == ["a", "b"]


class TestSortTree:
    def test_children_sorted_within_parent(self):
        rows = [
            make_row(1, parent_pid=0, cpu=0.0),
            make_row(2, parent_pid=1, cpu=1.0),
            make_row(3, parent_pid=1, cpu=5.0),
            make_row(4, parent_pid=0, cpu=9.0),
            # Busier than its parent but stays under it
            make_row(5, parent_pid=2, cpu=50.0),
        ]
        tree = sort_tree(build_tree(rows), SortState(SortColumn.CPU, DESC))
        assert [node.pid for node in tree.root.children] == [4, 1]
        assert [node.pid for node in tree.node(1).children] == [3, 2]
        assert [node.pid for node in tree.node(2).children] == [5]

    def test_count_rejected(self):
        with pytest.raises(ValueError):
            sort_tree(build_tree([make_row(1)]), SortState(SortColumn.COUNT, DESC))
