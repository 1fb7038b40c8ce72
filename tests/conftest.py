"""Shared test fixtures and builders for sysglance."""

import pytest

from sysglance.config import Config
from sysglance.errors import TerminationError
from sysglance.models import (
    CpuReading,
    MemoryReading,
    NetworkReading,
    ProcessRecord,
    ProcessRow,
    ProcessState,
    Snapshot,
)


def make_record(
    pid: int,
    name: str = "proc",
    parent_pid: int | None = 1,
    cpu: float = 0.0,
    mem: int = 0,
    user: str = "alice",
    state: ProcessState = ProcessState.SLEEPING,
    command_line: str | None = None,
    read_total: int = 0,
    write_total: int = 0,
    start_time: float = 1000.0,
) -> ProcessRecord:
    """Build a ProcessRecord with sensible defaults."""
    return ProcessRecord(
        pid=pid,
        parent_pid=parent_pid,
        name=name,
        command_line=command_line if command_line is not None else f"/usr/bin/{name}",
        user=user,
        state=state,
        cpu_percent=cpu,
        mem_bytes=mem,
        read_bytes_total=read_total,
        write_bytes_total=write_total,
        start_time=start_time,
    )


def make_row(
    pid: int,
    name: str = "proc",
    parent_pid: int | None = 1,
    cpu: float = 0.0,
    mem: int = 0,
    mem_percent: float = 0.0,
    read_rate: float = 0.0,
    write_rate: float = 0.0,
    **kwargs,
) -> ProcessRow:
    """Build a ProcessRow, i.e. a record plus derived rates."""
    record = make_record(pid, name=name, parent_pid=parent_pid, cpu=cpu, mem=mem, **kwargs)
    return ProcessRow(
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


def make_snapshot(
    timestamp: float,
    processes: tuple[ProcessRecord, ...] | list[ProcessRecord] = (),
    cpu: float | None = 25.0,
    cores: int = 2,
    mem_total: int = 8 * 1024**3,
    mem_used: int = 2 * 1024**3,
    rx_total: int | None = 0,
    tx_total: int | None = 0,
    **kwargs,
) -> Snapshot:
    """Build a Snapshot. Pass cpu=None or rx_total=None to leave a series out."""
    return Snapshot(
        timestamp=timestamp,
        processes=tuple(processes),
        cpu=CpuReading(per_core=(cpu,) * cores, average=cpu) if cpu is not None else None,
        memory=MemoryReading(
            total=mem_total,
            used=mem_used,
            swap_total=1024**3,
            swap_used=0,
        ),
        network=(
            NetworkReading(rx_bytes_total=rx_total, tx_bytes_total=tx_total or 0)
            if rx_total is not None
            else None
        ),
        **kwargs,
    )


class FakeKiller:
    """Records kill requests; pids in `refuse` fail with the given reason."""

    def __init__(self, refuse: dict[int, str] | None = None) -> None:
        self.refuse = refuse or {}
        self.calls: list[tuple[int, int]] = []

    def kill(self, pid: int, sig: int) -> None:
        self.calls.append((pid, sig))
        if pid in self.refuse:
            raise TerminationError(pid, self.refuse[pid])


@pytest.fixture
def config() -> Config:
    """Default config with a short history for fast tests."""
    cfg = Config()
    cfg.history.retention_seconds = 120.0
    cfg.history.default_window_seconds = 60.0
    cfg.history.min_window_seconds = 30.0
    cfg.history.window_step_seconds = 15.0
    return cfg


@pytest.fixture
def killer() -> FakeKiller:
    return FakeKiller()
