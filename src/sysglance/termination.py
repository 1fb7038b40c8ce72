"""Turning a UI selection into kill requests.

Group selections are resolved against a live re-read of the process list at
the moment of the request, and every target is attempted even when earlier
ones fail.
"""

import signal
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

import psutil
import structlog

from sysglance.errors import TerminationError
from sysglance.models import ProcessRecord
from sysglance.tree import SYNTHETIC_ROOT_PID

log = structlog.get_logger()


@dataclass(slots=True, frozen=True)
class ProcessSelection:
    """A single process row."""

    pid: int


@dataclass(slots=True, frozen=True)
class GroupSelection:
    """A grouped row: every live process with this name."""

    name: str


Selection = ProcessSelection | GroupSelection


@dataclass(slots=True, frozen=True)
class LiveProcess:
    """Pid and name of a running process, read at kill time."""

    pid: int
    name: str


def psutil_processes() -> list[LiveProcess]:
    """Re-read the process list. Only pid and name are fetched."""
    return [
        LiveProcess(proc.info["pid"], proc.info.get("name") or "")
        for proc in psutil.process_iter(["pid", "name"])
    ]


@dataclass(slots=True)
class TerminationReport:
    succeeded: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        """One-line description for a status message."""
        if not self.succeeded and not self.failed:
            return "No processes to kill"
        parts = []
        if self.succeeded:
            suffix = "" if len(self.succeeded) == 1 else "es"
            parts.append(f"Killed {len(self.succeeded)} process{suffix}")
        if self.failed:
            reasons = ", ".join(f"{pid}: {reason}" for pid, reason in sorted(self.failed.items()))
            parts.append(f"failed {len(self.failed)} ({reasons})")
        return "; ".join(parts)


class Killer(Protocol):
    def kill(self, pid: int, sig: int) -> None:
        """Deliver sig to pid, raising TerminationError on failure."""


class PsutilKiller:
    """Sends signals through psutil."""

    def kill(self, pid: int, sig: int) -> None:
        try:
            psutil.Process(pid).send_signal(sig)
        except psutil.ZombieProcess as e:
            raise TerminationError(pid, "zombie process") from e
        except psutil.NoSuchProcess as e:
            raise TerminationError(pid, "no such process") from e
        except psutil.AccessDenied as e:
            raise TerminationError(pid, "permission denied") from e
        except psutil.Error as e:
            raise TerminationError(pid, str(e) or type(e).__name__) from e
        except ValueError as e:
            # psutil refuses pid 0 and negative pids
            raise TerminationError(pid, str(e)) from e


def signal_from_name(name: str) -> signal.Signals:
    """Resolve "SIGTERM", "term" or "15" to a signal."""
    key = name.strip().upper()
    if key.isdigit():
        return signal.Signals(int(key))
    if not key.startswith("SIG"):
        key = "SIG" + key
    try:
        return signal.Signals[key]
    except KeyError:
        raise ValueError(f"Unknown signal: {name!r}") from None


class TerminationCoordinator:
    """Resolves selections to pids and sends one request per pid."""

    def __init__(
        self,
        live_processes: Callable[[], Iterable[ProcessRecord | LiveProcess]],
        killer: Killer | None = None,
        sig: int = signal.SIGTERM,
    ) -> None:
        """
        Initialize the TerminationCoordinator.

        Args:
            live_processes: Returns the running processes (pid and name).
                Called on every resolve, never cached.
            killer: OS layer used to deliver signals. Defaults to psutil.
            sig: Signal sent to each target.
        """
        self._live_processes = live_processes
        self._killer = killer or PsutilKiller()
        self._signal = sig

    @property
    def signal(self) -> int:
        return self._signal

    def resolve(self, selection: Selection) -> tuple[int, ...]:
        """Target pids for a selection, read live."""
        if isinstance(selection, ProcessSelection):
            if selection.pid == SYNTHETIC_ROOT_PID:
                return ()
            return (selection.pid,)
        if isinstance(selection, GroupSelection):
            return tuple(
                sorted(
                    proc.pid
                    for proc in self._live_processes()
                    if proc.name == selection.name and proc.pid != SYNTHETIC_ROOT_PID
                )
            )
        raise TypeError(f"not a selection: {selection!r}")

    def execute(self, targets: Sequence[int]) -> TerminationReport:
        """Signal every target; a failure never stops the remaining ones."""
        report = TerminationReport()
        for pid in targets:
            try:
                self._killer.kill(pid, self._signal)
            except TerminationError as e:
                report.failed[pid] = e.reason
                log.warning("kill_failed", pid=pid, reason=e.reason)
            except OSError as e:
                reason = e.strerror or str(e)
                report.failed[pid] = reason
                log.warning("kill_failed", pid=pid, reason=reason)
            except Exception as e:
                reason = str(e) or type(e).__name__
                report.failed[pid] = reason
                log.exception("kill_crashed", pid=pid)
            else:
                report.succeeded.append(pid)
        log.info(
            "kill_executed",
            signal=self._signal,
            succeeded=report.succeeded,
            failed=report.failed,
        )
        return report

    def submit(self, selection: Selection) -> TerminationReport:
        return self.execute(self.resolve(selection))
