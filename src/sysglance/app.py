"""sysglance - Main Textual application."""

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.widgets import DataTable, Footer, Input, Static
from textual.widgets.data_table import CellDoesNotExist, RowDoesNotExist

from sysglance.config import Config
from sysglance.engine import Dashboard, ProcessView, ViewMode
from sysglance.errors import ParseError
from sysglance.formatting import (
    format_bytes,
    format_duration,
    format_percent,
    format_rate,
    format_temperature,
)
from sysglance.history import CPU_AVG, MEM_PERCENT, NET_RX, NET_TX
from sysglance.models import GroupedProcess, ProcessRow, Snapshot
from sysglance.monitor import SnapshotChannel, SystemMonitor
from sysglance.sorting import SortColumn, SortState
from sysglance.sparkline import Sparkline
from sysglance.termination import (
    GroupSelection,
    ProcessSelection,
    Selection,
    psutil_processes,
)
from sysglance.tree import TreeRow

_BAR_WIDTH = 20


def _bar(percent: float, color: str) -> str:
    filled = min(_BAR_WIDTH, max(0, int(percent / 5)))
    return f"[{color}]█[/{color}]" * filled + "[dim]░[/dim]" * (_BAR_WIDTH - filled)


class HeaderStats(Static):
    """Header widget showing CPU, memory and temperature readings."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, temperature_unit: str = "celsius", **kwargs) -> None:
        """Initialize HeaderStats."""
        super().__init__(*args, **kwargs)
        self._temperature_unit = temperature_unit
        self._snapshot: Snapshot | None = None
        self._status: list[str] = []

    def compose(self) -> ComposeResult:
        """Compose the header stats layout."""
        yield Horizontal(
            Static(self._get_cpu_info(), id="cpu-info"),
            Static(self._get_mem_info(), id="mem-info"),
        )

    def update_stats(self, dashboard: Dashboard) -> None:
        """Update the statistics from the dashboard's newest snapshot."""
        self._snapshot = dashboard.snapshot
        status = []
        if dashboard.is_stale:
            status.append(f"[bold red]STALE[/] [dim]{dashboard.last_error}[/]")
        if dashboard.is_frozen:
            status.append("[bold yellow]FROZEN[/]")
        status.append(f"[dim]window {format_duration(dashboard.window)}[/]")
        self._status = status
        self.query_one("#cpu-info", Static).update(self._get_cpu_info())
        self.query_one("#mem-info", Static).update(self._get_mem_info())

    def _get_cpu_info(self) -> str:
        """Get CPU info display."""
        if self._snapshot is None or self._snapshot.cpu is None:
            return "Loading CPU info..."
        lines = []
        for i, usage in enumerate(self._snapshot.cpu.per_core):
            # Use escaped brackets for the bar container
            lines.append(f"CPU{i:<2} \\[{_bar(usage, 'green')}] {usage:5.1f}%")
        return "\n".join(lines)

    def _get_mem_info(self) -> str:
        """Get memory, temperature and status display."""
        if self._snapshot is None or self._snapshot.memory is None:
            return "Loading memory info..."
        mem = self._snapshot.memory
        mem_bar = _bar(mem.used_percent, "cyan")
        swap_bar = _bar(mem.swap_percent, "yellow")
        lines = [
            f"Mem\\[{mem_bar}] {format_bytes(mem.used)}/{format_bytes(mem.total)}",
            f"Swp\\[{swap_bar}] {format_bytes(mem.swap_used)}/{format_bytes(mem.swap_total)}",
        ]
        temps = self._snapshot.temperatures[:4]
        if temps:
            lines.append(
                "Temp: "
                + "  ".join(
                    f"{t.sensor_name} {format_temperature(t.celsius, self._temperature_unit)}"
                    for t in temps
                )
            )
        lines.append(" ".join(self._status))
        return "\n".join(lines)


class GraphPanel(Horizontal):
    """Sparklines for the headline metrics, scaled by the dashboard."""

    DEFAULT_CSS = """
    GraphPanel {
        height: auto;
    }

    GraphPanel Sparkline {
        border: round $primary;
    }
    """

    GRAPHS = [
        (CPU_AVG, "CPU"),
        (MEM_PERCENT, "MEM"),
        (NET_RX, "RX"),
        (NET_TX, "TX"),
    ]

    def __init__(self, *args, graph_height: int = 3, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._graph_height = graph_height

    def compose(self) -> ComposeResult:
        for _, label in self.GRAPHS:
            sparkline = Sparkline(height=self._graph_height, id=f"graph-{label.lower()}")
            sparkline.border_title = label
            yield sparkline

    def update_graphs(self, dashboard: Dashboard) -> None:
        for metric, label in self.GRAPHS:
            sparkline = self.query_one(f"#graph-{label.lower()}", Sparkline)
            bounds = dashboard.graph_bounds(metric)
            values = dashboard.history_slice(metric).values()
            sparkline.set_series(values, bounds.lower, bounds.upper)
            if metric in (NET_RX, NET_TX):
                top = format_rate(bounds.upper).strip()
            else:
                top = f"{bounds.upper:.0f}%"
            sparkline.border_title = f"{label} ≤ {top}"


# (label, SortColumn, width)
_PROCESS_COLUMNS = [
    ("PID", SortColumn.PID, 8),
    ("USER", SortColumn.USER, 10),
    ("S", SortColumn.STATE, 3),
    ("CPU%", SortColumn.CPU, 7),
    ("MEM%", SortColumn.MEM_PERCENT, 7),
    ("MEM", SortColumn.MEM, 8),
    ("R/s", SortColumn.READ, 10),
    ("W/s", SortColumn.WRITE, 10),
    ("T.READ", SortColumn.TOTAL_READ, 8),
    ("T.WRITE", SortColumn.TOTAL_WRITE, 8),
    ("NAME", SortColumn.NAME, 24),
    ("Command", SortColumn.COMMAND, None),
]

_GROUP_COLUMNS = [
    ("COUNT", SortColumn.COUNT, 6),
    ("NAME", SortColumn.NAME, 24),
    ("CPU%", SortColumn.CPU, 7),
    ("MEM%", SortColumn.MEM_PERCENT, 7),
    ("MEM", SortColumn.MEM, 8),
    ("R/s", SortColumn.READ, 10),
    ("W/s", SortColumn.WRITE, 10),
    ("T.READ", SortColumn.TOTAL_READ, 8),
    ("T.WRITE", SortColumn.TOTAL_WRITE, 8),
]


def _process_cells(row: ProcessRow, name: str) -> list[str]:
    return [
        str(row.pid),
        row.user[:10],
        row.state.letter,
        f"{row.cpu_percent:5.1f}",
        format_percent(row.mem_percent),
        format_bytes(row.mem_bytes),
        format_rate(row.read_rate),
        format_rate(row.write_rate),
        format_bytes(row.read_bytes_total),
        format_bytes(row.write_bytes_total),
        name,
        row.command_line[:80],
    ]


def _group_cells(group: GroupedProcess) -> list[str]:
    return [
        str(group.count),
        group.name,
        f"{group.total_cpu_percent:5.1f}",
        format_percent(group.total_mem_percent),
        format_bytes(group.total_mem_bytes),
        format_rate(group.total_read_rate),
        format_rate(group.total_write_rate),
        format_bytes(group.total_read_bytes),
        format_bytes(group.total_write_bytes),
    ]


def _tree_cells(entry: TreeRow) -> list[Text]:
    marker = "+ " if entry.collapsed else ""
    cells = _process_cells(entry.row, f"{entry.prefix}{marker}{entry.row.name}")
    style = "dim" if entry.disabled else ""
    return [Text(cell, style=style) for cell in cells]


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._mode: ViewMode | None = None
        self._sort: SortState | None = None

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

    def _set_columns(self, table: DataTable, mode: ViewMode, sort: SortState) -> None:
        if mode is self._mode and sort == self._sort:
            return
        table.clear(columns=True)
        columns = _GROUP_COLUMNS if mode is ViewMode.GROUPED else _PROCESS_COLUMNS
        for label, column, width in columns:
            if column is sort.column:
                label += " ▼" if sort.descending else " ▲"
            table.add_column(label, key=column.value, width=width)
        self._mode = mode
        self._sort = sort

    def update_view(self, view: ProcessView, sort: SortState) -> None:
        """
        Replace the table rows with a fresh view.

        The cursor stays on the same process (or group) when it is still
        present.
        """
        table = self.query_one("#process-table", DataTable)
        selected = self.selected_key()
        self._set_columns(table, view.mode, sort)
        table.clear()

        for entry in view.rows:
            if isinstance(entry, TreeRow):
                table.add_row(*_tree_cells(entry), key=str(entry.row.pid))
            elif isinstance(entry, GroupedProcess):
                table.add_row(*_group_cells(entry), key=f"group:{entry.name}")
            else:
                table.add_row(*_process_cells(entry, entry.name), key=str(entry.pid))

        if selected is not None:
            try:
                table.move_cursor(row=table.get_row_index(selected))
            except RowDoesNotExist:
                pass

    def selected_key(self) -> str | None:
        table = self.query_one("#process-table", DataTable)
        if table.row_count == 0:
            return None
        try:
            row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        except CellDoesNotExist:
            return None
        return row_key.value

    def selection(self) -> Selection | None:
        """The highlighted row as a kill selection."""
        key = self.selected_key()
        if key is None:
            return None
        if key.startswith("group:"):
            return GroupSelection(key.removeprefix("group:"))
        return ProcessSelection(int(key))


class SearchBar(Container):
    """Query input with an inline parse error."""

    DEFAULT_CSS = """
    SearchBar {
        height: auto;
        display: none;
    }

    SearchBar.visible {
        display: block;
    }

    #search-error {
        color: $error;
        height: auto;
    }
    """

    def compose(self) -> ComposeResult:
        yield Input(placeholder="Search: cpu > 5 mem > 100mb (firefox or chrome)", id="search")
        yield Static("", id="search-error")

    def show_error(self, error: ParseError | None) -> None:
        message = self.query_one("#search-error", Static)
        if error is None:
            message.update("")
            return
        # Input has a one-cell left padding
        caret = " " * (error.position + 1) + "^"
        message.update(Text(f"{caret} {error.reason}"))


class SysglanceApp(App):
    """Main sysglance application."""

    TITLE = "sysglance"
    SUB_TITLE = "System Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 6;
    }

    Horizontal {
        height: auto;
    }

    #cpu-info {
        width: 1fr;
        padding-right: 2;
    }

    #mem-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("slash", "search", "Search"),
        ("escape", "close_search", "Close search"),
        ("f6", "sort", "Sort"),
        ("i", "invert_sort", "Invert"),
        ("t", "tree", "Tree"),
        Binding("tab", "group", "Group", priority=True),
        ("space", "collapse", "Collapse"),
        ("k", "kill", "Kill"),
        ("f", "freeze", "Freeze"),
        ("ctrl+r", "reset", "Reset"),
        ("plus", "zoom_out", "Zoom out"),
        ("minus", "zoom_in", "Zoom in"),
        ("f1", "toggle_case", "Case"),
        ("f2", "toggle_whole_word", "Word"),
        ("f3", "toggle_regex", "Regex"),
    ]

    def __init__(
        self,
        config: Config | None = None,
        channel: SnapshotChannel | None = None,
        monitor: SystemMonitor | None = None,
        dashboard: Dashboard | None = None,
    ) -> None:
        """
        Initialize the SysglanceApp.

        Args:
            config: Application settings. Defaults to built-in defaults.
            channel: Where snapshots arrive. When given without a monitor,
                the caller is responsible for publishing into it.
            monitor: Collector thread to start and stop with the app.
            dashboard: State shared by the views.
        """
        super().__init__()
        self._config = config or Config()
        if channel is None:
            channel = monitor.channel if monitor is not None else SnapshotChannel()
            if monitor is None:
                monitor = SystemMonitor(channel, poll_rate=self._config.collection.interval_seconds)
        self._channel = channel
        self._monitor = monitor
        self._dashboard = dashboard or Dashboard(self._config, live_processes=psutil_processes)
        self.stopped_cleanly = True

    @property
    def dashboard(self) -> Dashboard:
        return self._dashboard

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(
            id="header-stats",
            temperature_unit=self._config.display.temperature_unit,
        )
        yield GraphPanel(id="graphs", graph_height=self._config.display.graph_height)
        yield SearchBar(id="search-bar")
        yield ProcessTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start the system monitor when the app is mounted."""
        if self._monitor is not None:
            self._monitor.start()
        # Set up a timer to poll the channel for updates
        self.set_interval(0.25, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Take the newest item from the channel and refresh the UI."""
        item = self._channel.latest()
        if item is None:
            return
        self._dashboard.ingest(item)
        self.refresh_view()

    def refresh_view(self) -> None:
        """Redraw header, graphs and the process table from the dashboard."""
        self.query_one("#header-stats", HeaderStats).update_stats(self._dashboard)
        self.query_one("#graphs", GraphPanel).update_graphs(self._dashboard)
        self._refresh_table()

    def _refresh_table(self) -> None:
        view = self._dashboard.current_view()
        self.query_one(ProcessTable).update_view(view, self._dashboard.sort_state)
        self.query_one("#search-bar", SearchBar).show_error(view.error)

    # -- search --------------------------------------------------------------

    def action_search(self) -> None:
        """Show and focus the search input."""
        bar = self.query_one("#search-bar", SearchBar)
        bar.add_class("visible")
        self.query_one("#search", Input).focus()

    def action_close_search(self) -> None:
        """Hide the search input. The filter stays active."""
        self.query_one("#search-bar", SearchBar).remove_class("visible")
        self.query_one("#process-table", DataTable).focus()

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id != "search":
            return
        self._dashboard.set_query(event.value)
        self._refresh_table()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "search":
            self.query_one("#process-table", DataTable).focus()

    def _toggle_search_option(self, name: str) -> None:
        enabled = not getattr(self._dashboard.search_options, name)
        self._dashboard.set_search_options(**{name: enabled})
        label = name.replace("_", " ")
        self.notify(f"{label}: {'on' if enabled else 'off'}")
        self._refresh_table()

    def action_toggle_case(self) -> None:
        self._toggle_search_option("case_sensitive")

    def action_toggle_whole_word(self) -> None:
        self._toggle_search_option("whole_word")

    def action_toggle_regex(self) -> None:
        self._toggle_search_option("regex")

    # -- sorting and modes ---------------------------------------------------

    def action_sort(self) -> None:
        """Cycle through sort columns."""
        state = self._dashboard.cycle_sort()
        self.notify(f"Sort: {state.column.value.upper()}")
        self._refresh_table()

    def action_invert_sort(self) -> None:
        self._dashboard.invert_sort()
        self._refresh_table()

    def action_tree(self) -> None:
        enabled = self._dashboard.toggle_tree()
        self.notify(f"Tree: {'on' if enabled else 'off'}")
        self._refresh_table()

    def action_group(self) -> None:
        enabled = self._dashboard.toggle_grouped()
        self.notify(f"Grouped: {'on' if enabled else 'off'}")
        self._refresh_table()

    def action_collapse(self) -> None:
        """Collapse or expand the highlighted process in tree mode."""
        if not self._dashboard.tree_mode:
            return
        selection = self.query_one(ProcessTable).selection()
        if isinstance(selection, ProcessSelection):
            self._dashboard.toggle_collapsed(selection.pid)
            self._refresh_table()

    def action_freeze(self) -> None:
        frozen = self._dashboard.toggle_frozen()
        self.notify("Frozen" if frozen else "Unfrozen")
        self.refresh_view()

    def action_reset(self) -> None:
        self._dashboard.reset()
        self.notify("History reset")
        self.refresh_view()

    def action_zoom_in(self) -> None:
        self._dashboard.zoom_in()
        self.refresh_view()

    def action_zoom_out(self) -> None:
        self._dashboard.zoom_out()
        self.refresh_view()

    # -- termination ---------------------------------------------------------

    def action_kill(self) -> None:
        """Signal the highlighted process or group."""
        selection = self.query_one(ProcessTable).selection()
        if selection is None:
            return
        report = self._dashboard.submit_kill(selection)
        self.notify(report.summary(), severity="information" if report.ok else "error")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        if self._monitor is not None:
            self.stopped_cleanly = self._monitor.stop(
                timeout=self._config.collection.shutdown_timeout
            )
        self.exit()
