"""Adaptive axis bounds for time-series graphs.

Bounds are picked from a ladder of "nice" magnitudes. Growing is immediate;
shrinking waits until the data has stayed under a smaller rung for a number
of consecutive ticks, so the axis does not flicker when usage hovers around a
rung boundary.
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class Rung:
    bound: float
    step: float  # Distance between axis labels


@dataclass(slots=True, frozen=True)
class Ladder:
    """Ascending sequence of candidate axis bounds."""

    name: str
    rungs: tuple[Rung, ...]

    def index_for(self, peak: float, headroom: float = 1.0) -> int:
        """Index of the smallest rung that holds peak * headroom.

        Falls back to the top rung when the peak exceeds every rung.
        """
        target = peak * headroom
        for i, rung in enumerate(self.rungs):
            if rung.bound >= target:
                return i
        return len(self.rungs) - 1


@dataclass(slots=True, frozen=True)
class ScaleBounds:
    lower: float
    upper: float
    step: float


def _bytes_ladder() -> Ladder:
    rungs = tuple(Rung(bound=1024.0**k, step=1024.0**k / 4) for k in range(1, 6))
    return Ladder("bytes", rungs)


def _decimal_ladder() -> Ladder:
    rungs = []
    for exponent in range(0, 13):
        magnitude = 10.0**exponent
        rungs.append(Rung(bound=1 * magnitude, step=0.2 * magnitude))
        rungs.append(Rung(bound=2 * magnitude, step=0.5 * magnitude))
        rungs.append(Rung(bound=5 * magnitude, step=1 * magnitude))
    return Ladder("decimal", tuple(rungs))


BYTES_LADDER = _bytes_ladder()
DECIMAL_LADDER = _decimal_ladder()
PERCENT_LADDER = Ladder("percent", (Rung(bound=100.0, step=25.0),))


def ladder_for_metric(metric: str) -> Ladder:
    """Choose the ladder that suits a metric's unit."""
    prefix = metric.split(".", 1)[0]
    if prefix in ("net", "disk"):
        return BYTES_LADDER
    if prefix in ("cpu", "mem", "swap"):
        return PERCENT_LADDER
    return DECIMAL_LADDER


def derive_rate(current_total: float, previous_total: float, elapsed_seconds: float) -> float:
    """Per-second rate between two cumulative counter readings.

    Counter resets give negative deltas and are clamped to 0. A zero or
    negative elapsed time gives 0 instead of inf/NaN.
    """
    if elapsed_seconds <= 0:
        return 0.0
    return max(0.0, (current_total - previous_total) / elapsed_seconds)


def _peak(values: Iterable[float]) -> float:
    peak = 0.0
    for value in values:
        if math.isfinite(value) and value > peak:
            peak = value
    return peak


class AdaptiveScaler:
    """Tracks the axis rung for one series across ticks."""

    def __init__(
        self,
        ladder: Ladder,
        headroom: float = 1.1,
        hysteresis_ticks: int = 3,
    ) -> None:
        if headroom < 1.0:
            raise ValueError(f"headroom must be >= 1.0, got {headroom}")
        if hysteresis_ticks < 1:
            raise ValueError(f"hysteresis_ticks must be >= 1, got {hysteresis_ticks}")
        self._ladder = ladder
        self._headroom = headroom
        self._hysteresis_ticks = hysteresis_ticks
        self._index: int | None = None
        self._below_count = 0

    @property
    def ladder(self) -> Ladder:
        return self._ladder

    @property
    def bounds(self) -> ScaleBounds:
        """Current bounds without advancing state (lowest rung before any update)."""
        rung = self._ladder.rungs[self._index or 0]
        return ScaleBounds(lower=0.0, upper=rung.bound, step=rung.step)

    def update(self, values: Iterable[float]) -> ScaleBounds:
        """Advance one tick with the currently visible values."""
        target = self._ladder.index_for(_peak(values), self._headroom)

        if self._index is None or target > self._index:
            self._index = target
            self._below_count = 0
        elif target < self._index:
            self._below_count += 1
            if self._below_count >= self._hysteresis_ticks:
                self._index = target
                self._below_count = 0
        else:
            self._below_count = 0

        return self.bounds

    def reset(self) -> None:
        self._index = None
        self._below_count = 0


class ScalerBank:
    """One AdaptiveScaler per metric, created on first use."""

    def __init__(self, headroom: float = 1.1, hysteresis_ticks: int = 3) -> None:
        self._headroom = headroom
        self._hysteresis_ticks = hysteresis_ticks
        self._scalers: dict[str, AdaptiveScaler] = {}

    def get(self, metric: str) -> AdaptiveScaler:
        scaler = self._scalers.get(metric)
        if scaler is None:
            scaler = AdaptiveScaler(
                ladder_for_metric(metric),
                headroom=self._headroom,
                hysteresis_ticks=self._hysteresis_ticks,
            )
            self._scalers[metric] = scaler
        return scaler

    def __contains__(self, metric: str) -> bool:
        return metric in self._scalers

    def update(self, metric: str, values: Iterable[float]) -> ScaleBounds:
        return self.get(metric).update(values)

    def reset(self) -> None:
        self._scalers.clear()
