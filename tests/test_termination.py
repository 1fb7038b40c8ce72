"""Tests for kill request resolution and execution."""

import os
import signal

import psutil
import pytest

from sysglance.errors import TerminationError
from sysglance.termination import (
    GroupSelection,
    ProcessSelection,
    PsutilKiller,
    TerminationCoordinator,
    TerminationReport,
    psutil_processes,
    signal_from_name,
)
from sysglance.tree import SYNTHETIC_ROOT_PID
from tests.conftest import FakeKiller, make_record


class TestSignalFromName:
    @pytest.mark.parametrize("name", ["SIGTERM", "sigterm", "term", "15", " TERM "])
    def test_sigterm_spellings(self, name):
        assert signal_from_name(name) is signal.SIGTERM

    def test_sigkill(self):
        assert signal_from_name("KILL") is signal.SIGKILL

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown signal"):
            signal_from_name("SIGBOGUS")


class TestTerminationReport:
    def test_empty(self):
        report = TerminationReport()
        assert report.ok
        assert report.summary() == "No processes to kill"

    def test_summary(self):
        report = TerminationReport(succeeded=[2, 3], failed={1: "permission denied"})
        assert not report.ok
        assert report.summary() == "Killed 2 processes; failed 1 (1: permission denied)"

    def test_summary_single(self):
        assert TerminationReport(succeeded=[4]).summary() == "Killed 1 process"


class TestTerminationCoordinator:
    """Tests for TerminationCoordinator."""

    def test_single_process(self, killer):
        coordinator = TerminationCoordinator(lambda: [], killer=killer)
        report = coordinator.submit(ProcessSelection(42))
        assert report.succeeded == [42]
        assert killer.calls == [(42, signal.SIGTERM)]

    def test_synthetic_root_resolves_to_nothing(self, killer):
        coordinator = TerminationCoordinator(lambda: [], killer=killer)
        assert coordinator.resolve(ProcessSelection(SYNTHETIC_ROOT_PID)) == ()
        report = coordinator.submit(ProcessSelection(SYNTHETIC_ROOT_PID))
        assert report.summary() == "No processes to kill"
        assert killer.calls == []

    def test_group_resolves_live(self, killer):
        live = [make_record(3, name="chrome"), make_record(1, name="chrome")]
        coordinator = TerminationCoordinator(lambda: live, killer=killer)
        assert coordinator.resolve(GroupSelection("chrome")) == (1, 3)

        # Membership changes between ticks are picked up on the next request
        live = [make_record(1, name="chrome"), make_record(7, name="chrome")]
        assert coordinator.resolve(GroupSelection("chrome")) == (1, 7)

    def test_failure_does_not_stop_the_rest(self):
        killer = FakeKiller(refuse={1: "permission denied"})
        live = [make_record(pid, name="worker") for pid in (1, 2, 3)]
        coordinator = TerminationCoordinator(lambda: live, killer=killer)
        report = coordinator.submit(GroupSelection("worker"))
        assert report.succeeded == [2, 3]
        assert report.failed == {1: "permission denied"}
        assert [pid for pid, _ in killer.calls] == [1, 2, 3]

    def test_os_error_is_reported(self):
        class BrokenKiller:
            def kill(self, pid, sig):
                raise PermissionError(1, "Operation not permitted")

        coordinator = TerminationCoordinator(lambda: [], killer=BrokenKiller())
        report = coordinator.submit(ProcessSelection(9))
        assert report.failed == {9: "Operation not permitted"}

    def test_unexpected_error_does_not_stop_the_rest(self):
        class FlakyKiller(FakeKiller):
            def kill(self, pid, sig):
                self.calls.append((pid, sig))
                if pid == 1:
                    raise ValueError("boom")

        killer = FlakyKiller()
        coordinator = TerminationCoordinator(lambda: [], killer=killer)
        report = coordinator.execute([1, 2, 3])
        assert report.succeeded == [2, 3]
        assert report.failed == {1: "boom"}
        assert [pid for pid, _ in killer.calls] == [1, 2, 3]

    def test_custom_signal(self, killer):
        coordinator = TerminationCoordinator(lambda: [], killer=killer, sig=signal.SIGKILL)
        coordinator.submit(ProcessSelection(5))
        assert coordinator.signal == signal.SIGKILL
        assert killer.calls == [(5, signal.SIGKILL)]

    def test_not_a_selection(self, killer):
        coordinator = TerminationCoordinator(lambda: [], killer=killer)
        with pytest.raises(TypeError):
            coordinator.resolve("chrome")  # type: ignore[arg-type]


class TestPsutilKiller:
    def test_missing_process(self, monkeypatch):
        def vanished(pid):
            raise psutil.NoSuchProcess(pid)

        monkeypatch.setattr(psutil, "Process", vanished)
        with pytest.raises(TerminationError) as excinfo:
            PsutilKiller().kill(123, signal.SIGTERM)
        assert excinfo.value.pid == 123
        assert excinfo.value.reason == "no such process"

    def test_access_denied(self, monkeypatch):
        class Guarded:
            def __init__(self, pid):
                self.pid = pid

            def send_signal(self, sig):
                raise psutil.AccessDenied(self.pid)

        monkeypatch.setattr(psutil, "Process", Guarded)
        with pytest.raises(TerminationError, match="permission denied"):
            PsutilKiller().kill(1, signal.SIGTERM)

    def test_invalid_pid(self, monkeypatch):
        def refuse(pid):
            raise ValueError("pid must be a positive integer (got 0)")

        monkeypatch.setattr(psutil, "Process", refuse)
        with pytest.raises(TerminationError) as excinfo:
            PsutilKiller().kill(0, signal.SIGTERM)
        assert excinfo.value.pid == 0
        assert "positive integer" in excinfo.value.reason

    def test_other_psutil_error(self, monkeypatch):
        class Expired:
            def __init__(self, pid):
                self.pid = pid

            def send_signal(self, sig):
                raise psutil.TimeoutExpired(1, self.pid)

        monkeypatch.setattr(psutil, "Process", Expired)
        with pytest.raises(TerminationError):
            PsutilKiller().kill(5, signal.SIGTERM)


class TestPsutilProcesses:
    def test_includes_own_process(self):
        own = psutil.Process(os.getpid())
        live = {proc.pid: proc.name for proc in psutil_processes()}
        assert live[own.pid] == own.name()

    def test_group_resolves_against_fresh_process_list(self, killer):
        coordinator = TerminationCoordinator(psutil_processes, killer=killer)
        name = psutil.Process(os.getpid()).name()
        assert os.getpid() in coordinator.resolve(GroupSelection(name))
