"""Error taxonomy for sysglance.

Recoverable conditions (a failed collection, a malformed filter, a kill that
the OS refused) have their own exception types so callers can degrade
gracefully. Invariant violations are programming errors and are meant to
propagate.
"""


class SysglanceError(Exception):
    """Base class for all sysglance errors."""


class CollectionError(SysglanceError):
    """Telemetry collection failed.

    A partial error means a single series (one disk, one sensor) could not be
    read; the rest of the snapshot is still usable. A total error means no
    snapshot could be produced this tick.
    """

    def __init__(self, message: str, partial: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.partial = partial


class ParseError(SysglanceError):
    """Malformed process filter query."""

    def __init__(self, position: int, reason: str) -> None:
        super().__init__(f"{reason} (at position {position})")
        self.position = position
        self.reason = reason

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParseError):
            return NotImplemented
        return (self.position, self.reason) == (other.position, other.reason)

    def __hash__(self) -> int:
        return hash((self.position, self.reason))


class TerminationError(SysglanceError):
    """The OS refused or failed a termination request for one pid."""

    def __init__(self, pid: int, reason: str) -> None:
        super().__init__(f"pid {pid}: {reason}")
        self.pid = pid
        self.reason = reason


class InvariantViolation(SysglanceError):
    """Internal invariant broken. Never caught inside sysglance."""


class DuplicatePidError(InvariantViolation):
    """A snapshot contained the same pid twice."""

    def __init__(self, pid: int) -> None:
        super().__init__(f"duplicate pid {pid} in snapshot")
        self.pid = pid
