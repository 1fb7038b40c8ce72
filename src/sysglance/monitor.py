"""System telemetry collection for sysglance."""

import threading
import time
from collections.abc import Callable
from queue import Empty, Full, Queue
from typing import TypeVar

import psutil
import structlog

from sysglance.config import MIN_INTERVAL_SECONDS
from sysglance.errors import CollectionError, InvariantViolation
from sysglance.models import (
    CpuReading,
    DiskReading,
    MemoryReading,
    NetworkReading,
    ProcessRecord,
    ProcessState,
    Snapshot,
    TemperatureReading,
)

log = structlog.get_logger()

T = TypeVar("T")

_PROCESS_ATTRS = [
    "pid",
    "ppid",
    "name",
    "cmdline",
    "username",
    "status",
    "cpu_percent",
    "memory_info",
    "io_counters",
    "create_time",
]


class SystemCollector:
    """
    Reads one Snapshot from psutil per poll.

    A series that cannot be read (sensors, disks, network) is left out of the
    snapshot and noted in partial_errors. Failing to list processes at all is
    a total failure and raises CollectionError.
    """

    def __init__(self) -> None:
        # Initialize CPU percent (first call returns 0.0)
        psutil.cpu_percent(percpu=True)

    def poll(self) -> Snapshot:
        """Collect a snapshot of the current system state."""
        errors: list[str] = []
        timestamp = time.monotonic()

        cpu = self._read(self._collect_cpu, "cpu", errors)
        memory = self._read(self._collect_memory, "memory", errors)
        network = self._read(self._collect_network, "network", errors)
        disks = self._read(self._collect_disks, "disks", errors) or ()
        temperatures = self._read(self._collect_temperatures, "temperatures", errors) or ()

        try:
            processes = self._collect_processes()
        except (psutil.Error, OSError) as e:
            raise CollectionError(f"cannot list processes: {e}") from e

        return Snapshot(
            timestamp=timestamp,
            processes=processes,
            cpu=cpu,
            memory=memory,
            network=network,
            disks=disks,
            temperatures=temperatures,
            partial_errors=tuple(errors),
        )

    @staticmethod
    def _read(collect: Callable[[], T], series: str, errors: list[str]) -> T | None:
        try:
            return collect()
        except (psutil.Error, OSError, RuntimeError) as e:
            errors.append(f"{series}: {e}")
            return None

    @staticmethod
    def _collect_cpu() -> CpuReading:
        # Non-blocking, uses previous call's data
        per_core = tuple(psutil.cpu_percent(percpu=True))
        average = sum(per_core) / len(per_core) if per_core else 0.0
        return CpuReading(per_core=per_core, average=average)

    @staticmethod
    def _collect_memory() -> MemoryReading:
        mem = psutil.virtual_memory()
        swap = psutil.swap_memory()
        return MemoryReading(
            total=mem.total,
            used=mem.used,
            swap_total=swap.total,
            swap_used=swap.used,
        )

    @staticmethod
    def _collect_network() -> NetworkReading:
        counters = psutil.net_io_counters()
        if counters is None:
            raise RuntimeError("no network interfaces")
        return NetworkReading(
            rx_bytes_total=counters.bytes_recv,
            tx_bytes_total=counters.bytes_sent,
        )

    @staticmethod
    def _collect_disks() -> tuple[DiskReading, ...]:
        counters = psutil.disk_io_counters(perdisk=True)
        if not counters:
            return ()
        return tuple(
            DiskReading(name=name, read_bytes_total=c.read_bytes, write_bytes_total=c.write_bytes)
            for name, c in sorted(counters.items())
        )

    @staticmethod
    def _collect_temperatures() -> tuple[TemperatureReading, ...]:
        # Not available on every platform
        if not hasattr(psutil, "sensors_temperatures"):
            return ()
        readings = []
        for chip, entries in sorted(psutil.sensors_temperatures().items()):
            for i, entry in enumerate(entries):
                label = entry.label or str(i)
                readings.append(
                    TemperatureReading(sensor_name=f"{chip}.{label}", celsius=entry.current)
                )
        return tuple(readings)

    def _collect_processes(self) -> tuple[ProcessRecord, ...]:
        """
        Collect records of all running processes.

        Processes that exit mid-poll are skipped; attributes we are not
        allowed to read come back as None and fall back to empty values.
        """
        processes: list[ProcessRecord] = []

        for proc in psutil.process_iter(attrs=_PROCESS_ATTRS):
            try:
                info = proc.info
                cmdline = info.get("cmdline") or []
                name = info.get("name") or ""
                command_line = " ".join(cmdline) if cmdline else name

                mem_info = info.get("memory_info")
                io = info.get("io_counters")

                processes.append(
                    ProcessRecord(
                        pid=info["pid"],
                        parent_pid=info.get("ppid"),
                        name=name,
                        command_line=command_line,
                        user=info.get("username") or "",
                        state=ProcessState.from_status(info.get("status")),
                        cpu_percent=info.get("cpu_percent") or 0.0,
                        mem_bytes=mem_info.rss if mem_info else 0,
                        read_bytes_total=io.read_bytes if io else 0,
                        write_bytes_total=io.write_bytes if io else 0,
                        start_time=info.get("create_time") or 0.0,
                    )
                )
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue

        return tuple(processes)


class SnapshotChannel:
    """Hand-off of the newest collector output to the UI thread.

    Holds at most one item. Publishing replaces an item the consumer has not
    taken yet, so the consumer always sees the newest snapshot.
    """

    def __init__(self) -> None:
        self._queue: Queue[Snapshot | CollectionError | InvariantViolation] = Queue(maxsize=1)

    def publish(self, item: Snapshot | CollectionError | InvariantViolation) -> None:
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except Full:
                try:
                    self._queue.get_nowait()
                except Empty:
                    pass

    def latest(self) -> Snapshot | CollectionError | InvariantViolation | None:
        """Take the newest item without blocking, or None if there is none."""
        try:
            return self._queue.get_nowait()
        except Empty:
            return None


class SystemMonitor:
    """
    Polls a collector in a separate daemon thread and publishes each result
    to a SnapshotChannel.

    A failed poll publishes the CollectionError instead of a snapshot and the
    loop keeps running. An InvariantViolation is published as is and ends the
    loop; the consumer re-raises it.
    """

    def __init__(
        self,
        channel: SnapshotChannel,
        poll_rate: float = 1.0,
        collector: SystemCollector | None = None,
    ) -> None:
        """
        Initialize the SystemMonitor.

        Args:
            channel: Where snapshots are published.
            poll_rate: How often to poll the system (in seconds). Minimum 0.25s.
            collector: Snapshot source. Defaults to a psutil SystemCollector.
        """
        self._channel = channel
        self._poll_rate = max(MIN_INTERVAL_SECONDS, poll_rate)
        self._collector = collector or SystemCollector()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def channel(self) -> SnapshotChannel:
        return self._channel

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(MIN_INTERVAL_SECONDS, value)

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="SystemMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 2.0) -> bool:
        """
        Stop the monitoring thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).

        Returns:
            False if the thread was still running after the timeout. It is a
            daemon thread and is left to die with the process.
        """
        self._stop_event.set()
        if self._thread is None:
            return True
        self._thread.join(timeout=timeout)
        stopped = not self._thread.is_alive()
        if not stopped:
            log.warning("monitor_stop_timeout", timeout=timeout)
        self._thread = None
        return stopped

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self._channel.publish(self._collector.poll())
            except CollectionError as e:
                log.warning("collection_failed", error=str(e))
                self._channel.publish(e)
            except InvariantViolation as e:
                log.error("collection_invariant_violated", error=str(e))
                self._channel.publish(e)
                return
            except Exception as e:
                log.exception("collection_crashed")
                self._channel.publish(CollectionError(f"unexpected error: {e}"))

            # Wait for poll_rate seconds or until stop is requested
            self._stop_event.wait(timeout=self._poll_rate)
