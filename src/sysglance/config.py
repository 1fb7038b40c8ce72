"""Configuration system for sysglance."""

from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit

from sysglance.sorting import SortColumn
from sysglance.termination import signal_from_name

MIN_INTERVAL_SECONDS = 0.25

TEMPERATURE_UNITS = ("celsius", "fahrenheit", "kelvin")


@dataclass
class CollectionConfig:
    """Sampling configuration."""

    interval_seconds: float = 1.0  # Seconds between snapshots
    shutdown_timeout: float = 2.0  # Max seconds to wait for the collector on exit


@dataclass
class HistoryConfig:
    """Graph history configuration."""

    retention_seconds: float = 600.0  # History kept per metric
    default_window_seconds: float = 60.0  # Visible graph window on startup
    min_window_seconds: float = 30.0  # Smallest zoom
    window_step_seconds: float = 15.0  # Zoom step for +/-


@dataclass
class ScalingConfig:
    """Adaptive graph axis configuration."""

    headroom: float = 1.1  # Axis bound must exceed peak * headroom
    hysteresis_ticks: int = 3  # Consecutive ticks below a rung before shrinking


@dataclass
class ProcessesConfig:
    """Process table defaults."""

    default_sort: str = "cpu"
    descending: bool = True
    tree: bool = False
    grouped: bool = False
    case_sensitive: bool = False
    whole_word: bool = False
    regex: bool = False
    kill_signal: str = "SIGTERM"


@dataclass
class DisplayConfig:
    """Display settings."""

    temperature_unit: str = "celsius"
    graph_height: int = 3  # Rows per graph (1-4)


@dataclass
class LoggingConfig:
    """Log file rotation."""

    log_max_bytes: int = 5 * 1024 * 1024  # Max log file size (5MB)
    log_backup_count: int = 3  # Number of backup log files to keep


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively."""
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        else:
            table.add(f.name, value)
    return table


def _section(cls: type, data: dict) -> object:
    """Build a section dataclass from TOML data, defaulting missing keys."""
    defaults = cls()
    values = {f.name: data.get(f.name, getattr(defaults, f.name)) for f in fields(cls)}
    return cls(**values)


@dataclass
class Config:
    """Main configuration container."""

    collection: CollectionConfig = field(default_factory=CollectionConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    scaling: ScalingConfig = field(default_factory=ScalingConfig)
    processes: ProcessesConfig = field(default_factory=ProcessesConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "sysglance"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "sysglance"

    @property
    def log_path(self) -> Path:
        return self.state_dir / "sysglance.log"

    def validate(self) -> None:
        """Raise ValueError for out-of-range settings."""
        if self.collection.interval_seconds < MIN_INTERVAL_SECONDS:
            raise ValueError(
                f"interval_seconds must be >= {MIN_INTERVAL_SECONDS}, "
                f"got {self.collection.interval_seconds}"
            )
        if self.collection.shutdown_timeout <= 0:
            raise ValueError(
                f"shutdown_timeout must be > 0, got {self.collection.shutdown_timeout}"
            )

        history = self.history
        if history.retention_seconds <= 0:
            raise ValueError(f"retention_seconds must be > 0, got {history.retention_seconds}")
        if not 0 < history.min_window_seconds <= history.retention_seconds:
            raise ValueError(
                f"min_window_seconds must be in (0, {history.retention_seconds}], "
                f"got {history.min_window_seconds}"
            )
        if history.window_step_seconds <= 0:
            raise ValueError(
                f"window_step_seconds must be > 0, got {history.window_step_seconds}"
            )

        if not 1.0 <= self.scaling.headroom <= 1.5:
            raise ValueError(f"headroom must be between 1.0 and 1.5, got {self.scaling.headroom}")
        if self.scaling.hysteresis_ticks < 1:
            raise ValueError(
                f"hysteresis_ticks must be >= 1, got {self.scaling.hysteresis_ticks}"
            )

        valid_sorts = [c.value for c in SortColumn]
        if self.processes.default_sort not in valid_sorts:
            raise ValueError(
                f"Invalid default_sort: {self.processes.default_sort!r}. "
                f"Must be one of {valid_sorts}"
            )
        if self.processes.default_sort == "count" and not self.processes.grouped:
            raise ValueError("default_sort 'count' requires grouped = true")
        signal_from_name(self.processes.kill_signal)

        if self.display.temperature_unit not in TEMPERATURE_UNITS:
            raise ValueError(
                f"Invalid temperature_unit: {self.display.temperature_unit!r}. "
                f"Must be one of {list(TEMPERATURE_UNITS)}"
            )
        if not 1 <= self.display.graph_height <= 4:
            raise ValueError(f"graph_height must be 1-4, got {self.display.graph_height}")

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_toml())

    def to_toml(self) -> str:
        """Render every section as a TOML document."""
        doc = tomlkit.document()
        for name in ("collection", "history", "scaling", "processes", "display", "logging"):
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())
        return tomlkit.dumps(doc)

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        Raises:
            ValueError: If the file cannot be parsed or holds invalid values.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f).unwrap()
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        config = cls(
            collection=_section(CollectionConfig, data.get("collection", {})),
            history=_section(HistoryConfig, data.get("history", {})),
            scaling=_section(ScalingConfig, data.get("scaling", {})),
            processes=_section(ProcessesConfig, data.get("processes", {})),
            display=_section(DisplayConfig, data.get("display", {})),
            logging=_section(LoggingConfig, data.get("logging", {})),
        )
        config.validate()
        return config
