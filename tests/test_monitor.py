"""Tests for telemetry collection and the collector thread."""

import os
import threading
import time

import psutil
import pytest

from sysglance.errors import CollectionError, DuplicatePidError
from sysglance.models import ProcessRecord, Snapshot
from sysglance.monitor import SnapshotChannel, SystemCollector, SystemMonitor
from tests.conftest import make_snapshot


def wait_for(channel: SnapshotChannel, timeout: float = 5.0):
    """Poll the channel until an item arrives."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        item = channel.latest()
        if item is not None:
            return item
        time.sleep(0.02)
    raise AssertionError(f"nothing published within {timeout}s")


class ScriptedCollector:
    """Returns snapshots with increasing timestamps, or raises on demand."""

    def __init__(self, fail_with: Exception | None = None) -> None:
        self.fail_with = fail_with
        self.polls = 0

    def poll(self) -> Snapshot:
        self.polls += 1
        if self.fail_with is not None:
            raise self.fail_with
        return make_snapshot(float(self.polls))


class BlockingCollector:
    """Blocks inside poll() until released."""

    def __init__(self) -> None:
        self.release = threading.Event()

    def poll(self) -> Snapshot:
        self.release.wait()
        return make_snapshot(1.0)


class TestSnapshotChannel:
    """Tests for SnapshotChannel."""

    def test_empty(self):
        assert SnapshotChannel().latest() is None

    def test_publish_then_take(self):
        channel = SnapshotChannel()
        snapshot = make_snapshot(1.0)
        channel.publish(snapshot)
        assert channel.latest() is snapshot
        assert channel.latest() is None

    def test_publish_replaces_unconsumed(self):
        channel = SnapshotChannel()
        channel.publish(make_snapshot(1.0))
        channel.publish(make_snapshot(2.0))
        channel.publish(make_snapshot(3.0))
        assert channel.latest().timestamp == 3.0
        assert channel.latest() is None

    def test_carries_errors(self):
        channel = SnapshotChannel()
        error = CollectionError("boom")
        channel.publish(error)
        assert channel.latest() is error


class TestSystemMonitor:
    """Tests for SystemMonitor class."""

    def test_monitor_creation(self):
        monitor = SystemMonitor(SnapshotChannel(), collector=ScriptedCollector())
        assert monitor.poll_rate == 1.0
        assert not monitor.is_running

    def test_poll_rate_minimum(self):
        monitor = SystemMonitor(SnapshotChannel(), poll_rate=0.01, collector=ScriptedCollector())
        assert monitor.poll_rate == 0.25
        monitor.poll_rate = 0.1
        assert monitor.poll_rate == 0.25
        monitor.poll_rate = 2.0
        assert monitor.poll_rate == 2.0

    def test_publishes_snapshots(self):
        channel = SnapshotChannel()
        monitor = SystemMonitor(channel, poll_rate=0.25, collector=ScriptedCollector())
        monitor.start()
        try:
            assert monitor.is_running
            assert isinstance(wait_for(channel), Snapshot)
        finally:
            assert monitor.stop()
        assert not monitor.is_running

    def test_start_twice_is_harmless(self):
        monitor = SystemMonitor(SnapshotChannel(), collector=ScriptedCollector())
        monitor.start()
        try:
            monitor.start()
            assert monitor.is_running
        finally:
            monitor.stop()

    def test_collection_error_is_published(self):
        channel = SnapshotChannel()
        collector = ScriptedCollector(fail_with=CollectionError("cannot list processes"))
        monitor = SystemMonitor(channel, poll_rate=0.25, collector=collector)
        monitor.start()
        try:
            item = wait_for(channel)
            assert isinstance(item, CollectionError)
            assert item.message == "cannot list processes"
        finally:
            monitor.stop()

    def test_unexpected_error_does_not_kill_the_loop(self):
        channel = SnapshotChannel()
        collector = ScriptedCollector(fail_with=RuntimeError("bug"))
        monitor = SystemMonitor(channel, poll_rate=0.25, collector=collector)
        monitor.start()
        try:
            item = wait_for(channel)
            assert isinstance(item, CollectionError)
            assert "bug" in item.message
            wait_for(channel)
            assert monitor.is_running
            assert collector.polls >= 2
        finally:
            monitor.stop()

    def test_invariant_violation_ends_the_loop(self):
        channel = SnapshotChannel()
        collector = ScriptedCollector(fail_with=DuplicatePidError(42))
        monitor = SystemMonitor(channel, poll_rate=0.25, collector=collector)
        monitor.start()
        try:
            item = wait_for(channel)
            assert isinstance(item, DuplicatePidError)
            assert item.pid == 42
            assert monitor.stop()
            assert collector.polls == 1
        finally:
            monitor.stop()

    def test_stop_without_start(self):
        assert SystemMonitor(SnapshotChannel(), collector=ScriptedCollector()).stop()

    def test_stop_times_out(self):
        collector = BlockingCollector()
        monitor = SystemMonitor(SnapshotChannel(), collector=collector)
        monitor.start()
        try:
            assert not monitor.stop(timeout=0.1)
        finally:
            collector.release.set()


class TestSystemCollector:
    """Tests against the real system through psutil."""

    def test_poll(self):
        snapshot = SystemCollector().poll()
        assert snapshot.processes
        assert all(isinstance(proc, ProcessRecord) for proc in snapshot.processes)
        assert snapshot.memory is not None
        assert snapshot.memory.total > 0

    def test_timestamps_increase(self):
        collector = SystemCollector()
        first = collector.poll()
        second = collector.poll()
        assert second.timestamp > first.timestamp

    def test_sees_own_process(self):
        pids = {proc.pid for proc in SystemCollector().poll().processes}
        assert os.getpid() in pids

    def test_failing_series_is_partial(self, monkeypatch):
        def broken():
            raise OSError("sensor unavailable")

        collector = SystemCollector()
        monkeypatch.setattr(psutil, "net_io_counters", broken)
        snapshot = collector.poll()
        assert snapshot.network is None
        assert any(error.startswith("network:") for error in snapshot.partial_errors)
        assert snapshot.processes

    def test_process_listing_failure_is_total(self, monkeypatch):
        def broken(*args, **kwargs):
            raise psutil.AccessDenied()

        collector = SystemCollector()
        monkeypatch.setattr(psutil, "process_iter", broken)
        with pytest.raises(CollectionError):
            collector.poll()
