"""Process hierarchy and name grouping.

Both views are rebuilt from the live snapshot every tick; nothing here is
patched incrementally.
"""

import math
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass, field

from sysglance.models import GroupedProcess, ProcessRow

# Pid of the synthetic node that adopts every process without a live parent
SYNTHETIC_ROOT_PID = -1


@dataclass(slots=True, eq=False)
class TreeNode:
    """A process in the tree. The synthetic root has row=None."""

    pid: int
    row: ProcessRow | None
    children: list["TreeNode"] = field(default_factory=list)

    @property
    def is_synthetic(self) -> bool:
        return self.row is None


@dataclass(slots=True, frozen=True)
class TreeRow:
    """One line of the flattened tree."""

    row: ProcessRow
    depth: int
    prefix: str  # Box-drawing guide shown before the name
    disabled: bool = False  # Kept only because a descendant matched the filter
    collapsed: bool = False
    has_children: bool = False


class ProcessTree:
    """Forest of processes under a synthetic root."""

    def __init__(self, root: TreeNode, index: dict[int, TreeNode]) -> None:
        self._root = root
        self._index = index

    @property
    def root(self) -> TreeNode:
        return self._root

    def __len__(self) -> int:
        """Number of real processes in the tree."""
        return len(self._index)

    def __contains__(self, pid: int) -> bool:
        return pid in self._index

    def node(self, pid: int) -> TreeNode | None:
        return self._index.get(pid)

    def walk(self) -> Iterator[TreeNode]:
        """Real nodes, depth first, children in their current order."""
        stack = list(reversed(self._root.children))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


def build_tree(rows: Iterable[ProcessRow]) -> ProcessTree:
    """Build the pid hierarchy in O(n).

    A process whose parent is unknown, itself, or not in this snapshot hangs
    off the synthetic root. Nodes caught in a parent cycle (possible with pid
    reuse) are re-attached to the root so every process stays visible.
    """
    root = TreeNode(pid=SYNTHETIC_ROOT_PID, row=None)
    index: dict[int, TreeNode] = {}
    order: list[TreeNode] = []
    for row in rows:
        node = TreeNode(pid=row.pid, row=row)
        index[row.pid] = node
        order.append(node)

    for node in order:
        parent_pid = node.row.parent_pid
        parent = index.get(parent_pid) if parent_pid is not None else None
        if parent is None or parent is node:
            root.children.append(node)
        else:
            parent.children.append(node)

    reachable = _count_reachable(root)
    if reachable < len(order):
        _attach_cycles(root, order)

    return ProcessTree(root, index)


def _count_reachable(root: TreeNode) -> int:
    count = 0
    stack = list(root.children)
    while stack:
        node = stack.pop()
        count += 1
        stack.extend(node.children)
    return count


def _attach_cycles(root: TreeNode, order: list[TreeNode]) -> None:
    seen: set[int] = set()
    stack = list(root.children)
    while stack:
        node = stack.pop()
        seen.add(node.pid)
        stack.extend(node.children)

    for node in order:
        if node.pid in seen:
            continue
        # Cut the edge into this node and hang it off the root
        parent = next(
            (candidate for candidate in order if node in candidate.children),
            None,
        )
        if parent is not None:
            parent.children.remove(node)
        root.children.append(node)
        stack = [node]
        while stack:
            current = stack.pop()
            seen.add(current.pid)
            stack.extend(current.children)


def group_processes(rows: Iterable[ProcessRow]) -> list[GroupedProcess]:
    """Aggregate same-named processes in one pass, in first-seen order."""
    totals: dict[str, dict] = {}
    for row in rows:
        entry = totals.get(row.name)
        if entry is None:
            entry = totals[row.name] = {
                "cpu": 0.0,
                "mem": 0,
                "mem_percent": 0.0,
                "read_rate": 0.0,
                "write_rate": 0.0,
                "read_bytes": 0,
                "write_bytes": 0,
                "pids": set(),
            }
        entry["cpu"] += row.cpu_percent
        entry["mem"] += row.mem_bytes
        mem_percent = getattr(row, "mem_percent", 0.0)
        if not math.isnan(mem_percent):
            entry["mem_percent"] += mem_percent
        entry["read_rate"] += getattr(row, "read_rate", 0.0)
        entry["write_rate"] += getattr(row, "write_rate", 0.0)
        entry["read_bytes"] += row.read_bytes_total
        entry["write_bytes"] += row.write_bytes_total
        entry["pids"].add(row.pid)

    return [
        GroupedProcess(
            name=name,
            total_cpu_percent=entry["cpu"],
            total_mem_bytes=entry["mem"],
            count=len(entry["pids"]),
            member_pids=frozenset(entry["pids"]),
            total_mem_percent=entry["mem_percent"],
            total_read_rate=entry["read_rate"],
            total_write_rate=entry["write_rate"],
            total_read_bytes=entry["read_bytes"],
            total_write_bytes=entry["write_bytes"],
        )
        for name, entry in totals.items()
    ]


def _mark_kept(
    node: TreeNode,
    predicate: Callable[[ProcessRow], bool],
    kept: dict[int, bool],
) -> bool:
    """Fill kept[pid] = matched for nodes that match or have a matching descendant."""
    # Iterative post-order; process trees can be deep enough to hit the recursion limit
    stack: list[tuple[TreeNode, bool]] = [(node, False)]
    keep_subtree: dict[int, bool] = {}
    while stack:
        current, visited = stack.pop()
        if not visited:
            stack.append((current, True))
            stack.extend((child, False) for child in current.children)
            continue
        matched = current.row is not None and predicate(current.row)
        any_child = any(keep_subtree[child.pid] for child in current.children)
        keep_subtree[current.pid] = matched or any_child
        if current.row is not None and (matched or any_child):
            kept[current.pid] = matched
    return keep_subtree[node.pid]


def flatten_tree(
    tree: ProcessTree,
    predicate: Callable[[ProcessRow], bool] | None = None,
    collapsed: Sequence[int] | set[int] | frozenset[int] = frozenset(),
) -> list[TreeRow]:
    """Depth-first rows with box-drawing prefixes.

    With a predicate, only nodes that match or lead to a match are emitted;
    the ones kept solely for their descendants are flagged disabled.
    """
    kept: dict[int, bool] | None = None
    if predicate is not None:
        kept = {}
        _mark_kept(tree.root, predicate, kept)

    collapsed = set(collapsed)
    result: list[TreeRow] = []

    def visible(children: list[TreeNode]) -> list[TreeNode]:
        if kept is None:
            return children
        return [child for child in children if child.pid in kept]

    # (node, depth, continuation flags of ancestors, is last sibling)
    stack: list[tuple[TreeNode, int, tuple[bool, ...], bool]] = []
    roots = visible(tree.root.children)
    for i in range(len(roots) - 1, -1, -1):
        stack.append((roots[i], 0, (), i == len(roots) - 1))

    while stack:
        node, depth, continuation, is_last = stack.pop()
        prefix = ""
        if depth > 0:
            prefix = "".join("│  " if more else "   " for more in continuation[1:])
            prefix += "└─ " if is_last else "├─ "
        children = visible(node.children)
        is_collapsed = node.pid in collapsed and bool(children)
        result.append(
            TreeRow(
                row=node.row,
                depth=depth,
                prefix=prefix,
                disabled=kept is not None and not kept[node.pid],
                collapsed=is_collapsed,
                has_children=bool(children),
            )
        )
        if is_collapsed:
            continue
        child_continuation = continuation + (not is_last,)
        for i in range(len(children) - 1, -1, -1):
            stack.append((children[i], depth + 1, child_continuation, i == len(children) - 1))

    return result
