"""Ordering of process rows, name groups and tree levels.

Every sort is a total order: ties on the chosen column fall back to pid
ascending (rows) or name then first pid (groups), in both directions.
"""

import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sysglance.models import GroupedProcess, ProcessRow
from sysglance.tree import ProcessTree, TreeNode


class SortDirection(Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"

    def reversed(self) -> "SortDirection":
        if self is SortDirection.ASCENDING:
            return SortDirection.DESCENDING
        return SortDirection.ASCENDING


class SortColumn(Enum):
    """Sortable columns of the process table."""

    CPU = "cpu"
    MEM = "mem"
    MEM_PERCENT = "mem%"
    PID = "pid"
    NAME = "name"
    COMMAND = "command"
    USER = "user"
    STATE = "state"
    READ = "read"
    WRITE = "write"
    TOTAL_READ = "tread"
    TOTAL_WRITE = "twrite"
    COUNT = "count"

    @property
    def numeric(self) -> bool:
        return self not in _TEXT_COLUMNS

    @property
    def grouped_only(self) -> bool:
        return self is SortColumn.COUNT

    @property
    def default_direction(self) -> SortDirection:
        """Numbers read best largest-first, text alphabetically."""
        return SortDirection.DESCENDING if self.numeric else SortDirection.ASCENDING


_TEXT_COLUMNS = {SortColumn.NAME, SortColumn.COMMAND, SortColumn.USER, SortColumn.STATE}

_ROW_ATTRIBUTES = {
    SortColumn.CPU: "cpu_percent",
    SortColumn.MEM: "mem_bytes",
    SortColumn.MEM_PERCENT: "mem_percent",
    SortColumn.PID: "pid",
    SortColumn.NAME: "name",
    SortColumn.COMMAND: "command_line",
    SortColumn.USER: "user",
    SortColumn.STATE: "state",
    SortColumn.READ: "read_rate",
    SortColumn.WRITE: "write_rate",
    SortColumn.TOTAL_READ: "read_bytes_total",
    SortColumn.TOTAL_WRITE: "write_bytes_total",
}

_GROUP_ATTRIBUTES = {
    SortColumn.CPU: "total_cpu_percent",
    SortColumn.MEM: "total_mem_bytes",
    SortColumn.MEM_PERCENT: "total_mem_percent",
    SortColumn.PID: "first_pid",
    SortColumn.NAME: "name",
    SortColumn.COMMAND: "name",
    SortColumn.USER: "name",
    SortColumn.STATE: "name",
    SortColumn.READ: "total_read_rate",
    SortColumn.WRITE: "total_write_rate",
    SortColumn.TOTAL_READ: "total_read_bytes",
    SortColumn.TOTAL_WRITE: "total_write_bytes",
    SortColumn.COUNT: "count",
}


@dataclass(slots=True, frozen=True)
class SortState:
    column: SortColumn = SortColumn.CPU
    direction: SortDirection = SortDirection.DESCENDING

    @property
    def descending(self) -> bool:
        return self.direction is SortDirection.DESCENDING

    def toggled(self) -> "SortState":
        """Same column, opposite direction."""
        return SortState(self.column, self.direction.reversed())

    def next_column(self, grouped: bool = False) -> "SortState":
        """Cycle to the next column valid for the mode, with its default direction."""
        columns = [c for c in SortColumn if grouped or not c.grouped_only]
        index = columns.index(self.column) if self.column in columns else -1
        column = columns[(index + 1) % len(columns)]
        return SortState(column, column.default_direction)


def numeric_key(value: Any) -> tuple[int, float]:
    """Sort key for numbers with NaN/None ordered below everything."""
    if value is None:
        return (0, 0.0)
    number = float(value)
    if math.isnan(number):
        return (0, 0.0)
    return (1, number)


def text_key(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    return str(value).casefold() if value is not None else ""


def _column_key(column: SortColumn, attribute: str) -> Callable[[Any], Any]:
    if column.numeric:
        return lambda item: numeric_key(getattr(item, attribute, None))
    return lambda item: text_key(getattr(item, attribute, None))


def _check_row_column(column: SortColumn) -> None:
    if column.grouped_only:
        raise ValueError(f"{column.value!r} can only be sorted in grouped mode")


def sort_rows(rows: Iterable[ProcessRow], state: SortState) -> list[ProcessRow]:
    """Flat rows ordered by column, pid ascending on ties."""
    _check_row_column(state.column)
    ordered = sorted(rows, key=lambda row: row.pid)
    key = _column_key(state.column, _ROW_ATTRIBUTES[state.column])
    ordered.sort(key=key, reverse=state.descending)
    return ordered


def sort_groups(groups: Iterable[GroupedProcess], state: SortState) -> list[GroupedProcess]:
    """Groups ordered by column, then name ascending, then first pid."""
    ordered = sorted(groups, key=lambda group: (text_key(group.name), group.first_pid))
    key = _column_key(state.column, _GROUP_ATTRIBUTES[state.column])
    ordered.sort(key=key, reverse=state.descending)
    return ordered


def sort_tree(tree: ProcessTree, state: SortState) -> ProcessTree:
    """Sort every node's children in place. Nodes never leave their parent."""
    _check_row_column(state.column)
    column_key = _column_key(state.column, _ROW_ATTRIBUTES[state.column])

    def node_key(node: TreeNode) -> Any:
        return column_key(node.row)

    stack = [tree.root]
    while stack:
        node = stack.pop()
        if len(node.children) > 1:
            node.children.sort(key=lambda child: child.pid)
            node.children.sort(key=node_key, reverse=state.descending)
        stack.extend(node.children)
    return tree
