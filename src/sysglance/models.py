"""Data models for sysglance.

Everything here is produced once per collection tick and never mutated.
"""

import math
from dataclasses import dataclass, field
from enum import Enum

from sysglance.errors import DuplicatePidError


class ProcessState(Enum):
    """Scheduler state of a process."""

    RUNNING = "running"
    SLEEPING = "sleeping"
    DISK_SLEEP = "disk-sleep"
    STOPPED = "stopped"
    ZOMBIE = "zombie"
    IDLE = "idle"
    DEAD = "dead"
    UNKNOWN = "unknown"

    @classmethod
    def from_status(cls, status: str | None) -> "ProcessState":
        """Map a psutil status string or a single-letter ps code to a state."""
        if not status:
            return cls.UNKNOWN
        key = status.strip().lower()
        if key in _STATE_ALIASES:
            return _STATE_ALIASES[key]
        try:
            return cls(key)
        except ValueError:
            return cls.UNKNOWN

    @property
    def letter(self) -> str:
        """Single-letter code as shown by ps/top."""
        return _STATE_LETTERS[self]


_STATE_ALIASES = {
    "r": ProcessState.RUNNING,
    "s": ProcessState.SLEEPING,
    "d": ProcessState.DISK_SLEEP,
    "t": ProcessState.STOPPED,
    "tracing-stop": ProcessState.STOPPED,
    "z": ProcessState.ZOMBIE,
    "i": ProcessState.IDLE,
    "x": ProcessState.DEAD,
    "waking": ProcessState.RUNNING,
    "waiting": ProcessState.SLEEPING,
    "locked": ProcessState.DISK_SLEEP,
    "parked": ProcessState.IDLE,
}

_STATE_LETTERS = {
    ProcessState.RUNNING: "R",
    ProcessState.SLEEPING: "S",
    ProcessState.DISK_SLEEP: "D",
    ProcessState.STOPPED: "T",
    ProcessState.ZOMBIE: "Z",
    ProcessState.IDLE: "I",
    ProcessState.DEAD: "X",
    ProcessState.UNKNOWN: "?",
}


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable record of one process at one tick."""

    pid: int
    parent_pid: int | None
    name: str
    command_line: str
    user: str
    state: ProcessState
    cpu_percent: float  # 0.0 - 100.0 * core_count
    mem_bytes: int  # Resident set size
    read_bytes_total: int  # Cumulative
    write_bytes_total: int  # Cumulative
    start_time: float  # Epoch seconds


@dataclass(slots=True, frozen=True)
class CpuReading:
    """CPU utilisation per core plus the average across cores."""

    per_core: tuple[float, ...]
    average: float


@dataclass(slots=True, frozen=True)
class MemoryReading:
    """RAM and swap usage in bytes."""

    total: int
    used: int
    swap_total: int
    swap_used: int

    @property
    def used_percent(self) -> float:
        return 100.0 * self.used / self.total if self.total else 0.0

    @property
    def swap_percent(self) -> float:
        return 100.0 * self.swap_used / self.swap_total if self.swap_total else 0.0


@dataclass(slots=True, frozen=True)
class NetworkReading:
    """Cumulative bytes received and transmitted across all interfaces."""

    rx_bytes_total: int
    tx_bytes_total: int


@dataclass(slots=True, frozen=True)
class DiskReading:
    """Cumulative bytes read from and written to one disk."""

    name: str
    read_bytes_total: int
    write_bytes_total: int


@dataclass(slots=True, frozen=True)
class TemperatureReading:
    sensor_name: str
    celsius: float


@dataclass(slots=True, frozen=True)
class Snapshot:
    """One complete telemetry sample.

    A series that could not be read this tick is left as None (or an empty
    tuple) and described in partial_errors.
    """

    timestamp: float
    processes: tuple[ProcessRecord, ...] = ()
    cpu: CpuReading | None = None
    memory: MemoryReading | None = None
    network: NetworkReading | None = None
    disks: tuple[DiskReading, ...] = ()
    temperatures: tuple[TemperatureReading, ...] = ()
    partial_errors: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        seen: set[int] = set()
        for proc in self.processes:
            if proc.pid in seen:
                raise DuplicatePidError(proc.pid)
            seen.add(proc.pid)

    def process_index(self) -> dict[int, ProcessRecord]:
        """Map pid to record."""
        return {proc.pid: proc for proc in self.processes}


@dataclass(slots=True, frozen=True)
class ProcessRow:
    """A process as displayed: the record plus values derived across ticks."""

    pid: int
    parent_pid: int | None
    name: str
    command_line: str
    user: str
    state: ProcessState
    cpu_percent: float
    mem_bytes: int
    read_bytes_total: int
    write_bytes_total: int
    start_time: float
    read_rate: float = 0.0  # Bytes per second
    write_rate: float = 0.0  # Bytes per second
    mem_percent: float = math.nan

    @classmethod
    def from_record(
        cls,
        record: ProcessRecord,
        previous: ProcessRecord | None = None,
        elapsed: float = 0.0,
        mem_total: int = 0,
    ) -> "ProcessRow":
        """Derive a row from this tick's record and the same pid's previous one.

        A previous record with a different start time belongs to a reused pid
        and is ignored.
        """
        read_rate = write_rate = 0.0
        if previous is not None and previous.start_time == record.start_time and elapsed > 0:
            read_rate = max(0.0, (record.read_bytes_total - previous.read_bytes_total) / elapsed)
            write_rate = max(0.0, (record.write_bytes_total - previous.write_bytes_total) / elapsed)
        mem_percent = 100.0 * record.mem_bytes / mem_total if mem_total > 0 else math.nan
        return cls(
            pid=record.pid,
            parent_pid=record.parent_pid,
            name=record.name,
            command_line=record.command_line,
            user=record.user,
            state=record.state,
            cpu_percent=record.cpu_percent,
            mem_bytes=record.mem_bytes,
            read_bytes_total=record.read_bytes_total,
            write_bytes_total=record.write_bytes_total,
            start_time=record.start_time,
            read_rate=read_rate,
            write_rate=write_rate,
            mem_percent=mem_percent,
        )


@dataclass(slots=True, frozen=True)
class GroupedProcess:
    """Same-named processes aggregated into one row."""

    name: str
    total_cpu_percent: float
    total_mem_bytes: int
    count: int
    member_pids: frozenset[int] = field(default_factory=frozenset)
    total_mem_percent: float = 0.0
    total_read_rate: float = 0.0
    total_write_rate: float = 0.0
    total_read_bytes: int = 0
    total_write_bytes: int = 0

    @property
    def first_pid(self) -> int:
        """Lowest member pid, used as a secondary tie-break."""
        return min(self.member_pids) if self.member_pids else -1
