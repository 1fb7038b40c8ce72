"""Dashboard state shared by every view.

The Dashboard is owned by the UI thread. It takes snapshots from the
collector, turns counters into rates, records graph history, and builds the
process view (flat, grouped or tree) on demand.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

import structlog

from sysglance.config import Config
from sysglance.errors import CollectionError, InvariantViolation, ParseError
from sysglance.history import (
    CPU_AVG,
    MEM_PERCENT,
    NET_RX,
    NET_TX,
    SWAP_PERCENT,
    HistoryStore,
    HistoryView,
    cpu_core_metric,
    disk_read_metric,
    disk_write_metric,
    temperature_metric,
)
from sysglance.models import GroupedProcess, ProcessRecord, ProcessRow, Snapshot
from sysglance.query.filter import QueryEngine
from sysglance.query.parser import SearchOptions
from sysglance.scaling import (
    AdaptiveScaler,
    ScaleBounds,
    ScalerBank,
    derive_rate,
    ladder_for_metric,
)
from sysglance.sorting import (
    SortColumn,
    SortDirection,
    SortState,
    sort_groups,
    sort_rows,
    sort_tree,
)
from sysglance.termination import (
    Killer,
    LiveProcess,
    Selection,
    TerminationCoordinator,
    TerminationReport,
    signal_from_name,
)
from sysglance.tree import TreeRow, build_tree, flatten_tree, group_processes

log = structlog.get_logger()


class ViewMode(Enum):
    FLAT = "flat"
    GROUPED = "grouped"
    TREE = "tree"


@dataclass(slots=True, frozen=True)
class ProcessView:
    """Rows ready for display.

    rows holds ProcessRow (flat), GroupedProcess (grouped) or TreeRow (tree).
    error is the parse error of the current query text, if any; the rows are
    then filtered with the last valid query.
    """

    mode: ViewMode
    rows: tuple[ProcessRow | GroupedProcess | TreeRow, ...]
    error: ParseError | None = None
    total: int = 0  # Processes in the snapshot before filtering


class Dashboard:
    """Ingests snapshots and answers the questions the UI asks each frame."""

    def __init__(
        self,
        config: Config | None = None,
        killer: Killer | None = None,
        live_processes: Callable[[], Iterable[ProcessRecord | LiveProcess]] | None = None,
    ) -> None:
        """
        Initialize the Dashboard.

        Args:
            config: Settings for history, scaling and process defaults.
            killer: OS layer used for termination. Defaults to psutil.
            live_processes: Source for resolving group kills, such as
                psutil_processes. Defaults to the newest ingested snapshot,
                which can be up to one tick old.
        """
        self._config = config or Config()
        history_cfg = self._config.history
        processes_cfg = self._config.processes

        self._history = HistoryStore(
            history_cfg.retention_seconds,
            self._config.collection.interval_seconds,
        )
        self._scalers = ScalerBank(
            headroom=self._config.scaling.headroom,
            hysteresis_ticks=self._config.scaling.hysteresis_ticks,
        )
        self._query = QueryEngine(
            SearchOptions(
                case_sensitive=processes_cfg.case_sensitive,
                whole_word=processes_cfg.whole_word,
                regex=processes_cfg.regex,
            )
        )

        self._grouped = processes_cfg.grouped
        self._tree = processes_cfg.tree and not self._grouped
        column = SortColumn(processes_cfg.default_sort)
        if column.grouped_only and not self._grouped:
            column = SortColumn.CPU
        if processes_cfg.descending:
            self._sort = SortState(column, SortDirection.DESCENDING)
        else:
            self._sort = SortState(column, SortDirection.ASCENDING)

        self._window = self._clamp_window(history_cfg.default_window_seconds)
        self._frozen = False
        self._collapsed: set[int] = set()

        self._snapshot: Snapshot | None = None
        # Newest snapshot even while frozen; group kills resolve against it
        self._live_snapshot: Snapshot | None = None
        self._rows: list[ProcessRow] = []
        self._stale = False
        self._last_error: CollectionError | None = None

        self._terminator = TerminationCoordinator(
            live_processes or self._live_processes,
            killer=killer,
            sig=signal_from_name(processes_cfg.kill_signal),
        )

    # -- state ---------------------------------------------------------------

    @property
    def config(self) -> Config:
        return self._config

    @property
    def history(self) -> HistoryStore:
        return self._history

    @property
    def snapshot(self) -> Snapshot | None:
        """Newest ingested snapshot."""
        return self._snapshot

    @property
    def rows(self) -> list[ProcessRow]:
        """Unfiltered process rows of the newest snapshot."""
        return self._rows

    @property
    def is_stale(self) -> bool:
        """True when the last collection attempt failed outright."""
        return self._stale

    @property
    def last_error(self) -> CollectionError | None:
        return self._last_error

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    @property
    def sort_state(self) -> SortState:
        return self._sort

    @property
    def grouped(self) -> bool:
        return self._grouped

    @property
    def tree_mode(self) -> bool:
        return self._tree

    @property
    def window(self) -> float:
        """Visible graph window in seconds."""
        return self._window

    @property
    def query_text(self) -> str:
        return self._query.text

    @property
    def query_error(self) -> ParseError | None:
        return self._query.error

    @property
    def search_options(self) -> SearchOptions:
        return self._query.options

    @property
    def collapsed(self) -> frozenset[int]:
        return frozenset(self._collapsed)

    # -- ingestion -----------------------------------------------------------

    def ingest(self, item: Snapshot | CollectionError | InvariantViolation | None) -> bool:
        """Take the newest item from the collector.

        Returns:
            True if a snapshot was applied. A CollectionError marks the
            dashboard stale and keeps the previous snapshot; while frozen,
            snapshots are dropped from the display but still used to resolve
            kills.

        Raises:
            InvariantViolation: When the collector published one.
        """
        if item is None:
            return False
        if isinstance(item, InvariantViolation):
            raise item
        if isinstance(item, CollectionError):
            self._stale = True
            self._last_error = item
            log.warning("collection_failed", error=str(item))
            return False

        newest = self._live_snapshot
        if newest is None or item.timestamp > newest.timestamp:
            self._live_snapshot = item
        if self._frozen:
            return False

        previous = self._snapshot
        if previous is not None and item.timestamp <= previous.timestamp:
            log.warning(
                "snapshot_out_of_order",
                timestamp=item.timestamp,
                newest=previous.timestamp,
            )
            return False

        elapsed = item.timestamp - previous.timestamp if previous is not None else 0.0
        if item.partial_errors:
            log.info("collection_partial", errors=list(item.partial_errors))

        self._rows = self._derive_rows(item, previous, elapsed)
        self._record_metrics(item, previous, elapsed)
        self._snapshot = item
        self._stale = False
        self._last_error = None

        live = {proc.pid for proc in item.processes}
        self._collapsed &= live

        self._advance_scalers(item.timestamp)
        return True

    def _derive_rows(
        self,
        snapshot: Snapshot,
        previous: Snapshot | None,
        elapsed: float,
    ) -> list[ProcessRow]:
        before = previous.process_index() if previous is not None else {}
        mem_total = snapshot.memory.total if snapshot.memory is not None else 0
        return [
            ProcessRow.from_record(proc, before.get(proc.pid), elapsed, mem_total)
            for proc in snapshot.processes
        ]

    def _record_metrics(
        self,
        snapshot: Snapshot,
        previous: Snapshot | None,
        elapsed: float,
    ) -> None:
        ts = snapshot.timestamp
        append = self._history.append

        if snapshot.cpu is not None:
            append(CPU_AVG, ts, snapshot.cpu.average)
            for i, value in enumerate(snapshot.cpu.per_core):
                append(cpu_core_metric(i), ts, value)

        if snapshot.memory is not None:
            append(MEM_PERCENT, ts, snapshot.memory.used_percent)
            append(SWAP_PERCENT, ts, snapshot.memory.swap_percent)

        # Rates need two consecutive readings of the same series
        if previous is not None and elapsed > 0:
            if snapshot.network is not None and previous.network is not None:
                net, prev_net = snapshot.network, previous.network
                rx = derive_rate(net.rx_bytes_total, prev_net.rx_bytes_total, elapsed)
                tx = derive_rate(net.tx_bytes_total, prev_net.tx_bytes_total, elapsed)
                append(NET_RX, ts, rx)
                append(NET_TX, ts, tx)

            prev_disks = {disk.name: disk for disk in previous.disks}
            for disk in snapshot.disks:
                prev_disk = prev_disks.get(disk.name)
                if prev_disk is None:
                    continue
                append(
                    disk_read_metric(disk.name),
                    ts,
                    derive_rate(disk.read_bytes_total, prev_disk.read_bytes_total, elapsed),
                )
                append(
                    disk_write_metric(disk.name),
                    ts,
                    derive_rate(disk.write_bytes_total, prev_disk.write_bytes_total, elapsed),
                )

        for reading in snapshot.temperatures:
            append(temperature_metric(reading.sensor_name), ts, reading.celsius)

    def _advance_scalers(self, now: float) -> None:
        start = now - self._window
        for metric in self._history.metrics():
            self._scalers.update(metric, self._history.range(metric, start, now).values())

    # -- graphs --------------------------------------------------------------

    def _graph_end(self) -> float | None:
        if self._snapshot is not None:
            return self._snapshot.timestamp
        return self._history.newest_timestamp()

    def history_slice(self, metric: str, window: float | None = None) -> HistoryView:
        """Points of a metric inside the visible window, ending at the newest snapshot."""
        window = self._window if window is None else window
        end = self._graph_end()
        if end is None:
            return self._history.range(metric, 0.0, -1.0)
        return self._history.range(metric, end - window, end)

    def graph_bounds(self, metric: str, window: float | None = None) -> ScaleBounds:
        """Axis bounds for a metric.

        For the current window these are the scaler's bounds as of the last
        ingested tick. Other windows, and metrics the scalers have not seen,
        get bounds computed from the visible data alone.
        """
        if (window is None or window == self._window) and metric in self._scalers:
            return self._scalers.get(metric).bounds
        scaler = AdaptiveScaler(
            ladder_for_metric(metric),
            headroom=self._config.scaling.headroom,
            hysteresis_ticks=self._config.scaling.hysteresis_ticks,
        )
        return scaler.update(self.history_slice(metric, window).values())

    def _clamp_window(self, seconds: float) -> float:
        low = self._config.history.min_window_seconds
        high = self._history.retention
        return min(max(seconds, low), high)

    def set_window(self, seconds: float) -> float:
        """Change the visible window (clamped) and restart axis scaling."""
        window = self._clamp_window(seconds)
        if window != self._window:
            self._window = window
            self._scalers.reset()
            log.debug("window_changed", seconds=window)
        return self._window

    def zoom_in(self) -> float:
        return self.set_window(self._window - self._config.history.window_step_seconds)

    def zoom_out(self) -> float:
        return self.set_window(self._window + self._config.history.window_step_seconds)

    # -- process view --------------------------------------------------------

    def current_view(
        self,
        query_string: str | None = None,
        sort_state: SortState | None = None,
        tree_mode: bool | None = None,
    ) -> ProcessView:
        """Filtered, sorted rows of the newest snapshot.

        Args:
            query_string: Replaces the active query when it differs from it.
            sort_state: Overrides the dashboard's sort for this call only.
            tree_mode: Overrides the dashboard's tree flag for this call only.
        """
        if query_string is not None and query_string != self._query.text:
            self._query.set_query(query_string)
        sort = sort_state or self._sort
        tree = self._tree if tree_mode is None else tree_mode
        if sort.column.grouped_only and (tree or not self._grouped):
            sort = SortState()
        predicate = self._query.matches if self._query.ast is not None else None

        if tree:
            process_tree = sort_tree(build_tree(self._rows), sort)
            rows: list = flatten_tree(process_tree, predicate, self._collapsed)
            mode = ViewMode.TREE
        elif self._grouped:
            rows = sort_groups(group_processes(self._query.filter(self._rows)), sort)
            mode = ViewMode.GROUPED
        else:
            rows = sort_rows(self._query.filter(self._rows), sort)
            mode = ViewMode.FLAT

        return ProcessView(
            mode=mode,
            rows=tuple(rows),
            error=self._query.error,
            total=len(self._rows),
        )

    def set_query(self, text: str) -> ParseError | None:
        """Set the filter text. On error the previous valid filter stays active."""
        return self._query.set_query(text)

    def set_search_options(
        self,
        case_sensitive: bool | None = None,
        whole_word: bool | None = None,
        regex: bool | None = None,
    ) -> ParseError | None:
        """Change text matching options and re-parse the query."""
        current = self._query.options
        options = SearchOptions(
            case_sensitive=current.case_sensitive if case_sensitive is None else case_sensitive,
            whole_word=current.whole_word if whole_word is None else whole_word,
            regex=current.regex if regex is None else regex,
        )
        return self._query.set_options(options)

    def set_sort(self, column: SortColumn, direction: SortDirection | None = None) -> SortState:
        """Sort by column, in its natural direction unless one is given.

        Raises:
            ValueError: For a grouped-only column outside grouped mode.
        """
        if column.grouped_only and not self._grouped:
            raise ValueError(f"{column.value!r} can only be sorted in grouped mode")
        self._sort = SortState(column, direction or column.default_direction)
        return self._sort

    def invert_sort(self) -> SortState:
        self._sort = self._sort.toggled()
        return self._sort

    def cycle_sort(self) -> SortState:
        self._sort = self._sort.next_column(grouped=self._grouped)
        return self._sort

    def _drop_grouped_sort(self) -> None:
        if self._sort.column.grouped_only and not self._grouped:
            self._sort = SortState()

    def toggle_grouped(self) -> bool:
        """Group by name. Grouping and tree mode exclude each other."""
        self._grouped = not self._grouped
        if self._grouped:
            self._tree = False
        self._drop_grouped_sort()
        return self._grouped

    def toggle_tree(self) -> bool:
        self._tree = not self._tree
        if self._tree:
            self._grouped = False
        self._drop_grouped_sort()
        return self._tree

    def toggle_collapsed(self, pid: int) -> bool:
        """Collapse or expand a tree node. Returns True if now collapsed."""
        if pid in self._collapsed:
            self._collapsed.discard(pid)
            return False
        self._collapsed.add(pid)
        return True

    def toggle_frozen(self) -> bool:
        self._frozen = not self._frozen
        log.debug("frozen_changed", frozen=self._frozen)
        return self._frozen

    def reset(self) -> None:
        """Forget graph history and axis state. The process table is kept."""
        self._history.clear()
        self._scalers.reset()
        log.info("history_reset")

    # -- termination ---------------------------------------------------------

    def _live_processes(self) -> tuple[ProcessRecord, ...]:
        if self._live_snapshot is None:
            return ()
        return self._live_snapshot.processes

    def submit_kill(self, selection: Selection) -> TerminationReport:
        """Send the configured signal to the selection's processes."""
        return self._terminator.submit(selection)
