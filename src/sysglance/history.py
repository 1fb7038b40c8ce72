"""Bounded time-series storage for graphed telemetry.

Each metric keeps the points that fall inside the retention window, up to a
fixed capacity derived from the window and the sampling interval. Memory use
is therefore fixed by configuration, no matter how long the app runs.
"""

import math
from collections import deque
from collections.abc import Iterator

import structlog

log = structlog.get_logger()

# Metric names
CPU_AVG = "cpu.avg"
MEM_PERCENT = "mem.percent"
SWAP_PERCENT = "swap.percent"
NET_RX = "net.rx"
NET_TX = "net.tx"


def cpu_core_metric(index: int) -> str:
    return f"cpu.{index}"


def disk_read_metric(name: str) -> str:
    return f"disk.{name}.read"


def disk_write_metric(name: str) -> str:
    return f"disk.{name}.write"


def temperature_metric(sensor: str) -> str:
    return f"temp.{sensor}"


Point = tuple[float, float]


class HistoryView:
    """Lazy view over the points of one series inside [start, end].

    Iteration re-reads the underlying series each time, so a view can be
    iterated any number of times. It must be consumed on the thread that owns
    the store.
    """

    def __init__(self, series: deque[Point] | None, start: float, end: float) -> None:
        self._series = series
        self._start = start
        self._end = end

    def __iter__(self) -> Iterator[Point]:
        if not self._series or self._start > self._end:
            return
        for timestamp, value in self._series:
            if timestamp < self._start:
                continue
            if timestamp > self._end:
                break
            yield timestamp, value

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __bool__(self) -> bool:
        return next(iter(self), None) is not None

    def values(self) -> list[float]:
        """Values only, oldest first."""
        return [value for _, value in self]

    def __repr__(self) -> str:
        return f"HistoryView(start={self._start}, end={self._end})"


class HistoryStore:
    """Per-metric ring of (timestamp, value) points.

    Timestamps must be strictly increasing within a metric. Appending evicts
    points older than the retention window from the head of the series, so
    each append is amortized O(1).
    """

    def __init__(self, retention_seconds: float, interval_seconds: float) -> None:
        """
        Initialize the HistoryStore.

        Args:
            retention_seconds: How much history to keep per metric.
            interval_seconds: Expected time between appends. Together with the
                retention this fixes the per-metric capacity.
        """
        if retention_seconds <= 0:
            raise ValueError(f"retention_seconds must be > 0, got {retention_seconds}")
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0, got {interval_seconds}")
        self._retention = float(retention_seconds)
        self._capacity = math.ceil(retention_seconds / interval_seconds)
        self._series: dict[str, deque[Point]] = {}

    @property
    def retention(self) -> float:
        return self._retention

    @property
    def capacity(self) -> int:
        """Maximum number of points kept per metric."""
        return self._capacity

    def __len__(self) -> int:
        """Number of metrics with at least one point."""
        return len(self._series)

    def __contains__(self, metric: str) -> bool:
        return metric in self._series

    def metrics(self) -> list[str]:
        return list(self._series)

    def series_length(self, metric: str) -> int:
        series = self._series.get(metric)
        return len(series) if series is not None else 0

    def append(self, metric: str, timestamp: float, value: float) -> bool:
        """
        Append a point to a metric.

        Returns:
            True if stored, False if rejected because the timestamp does not
            come strictly after the metric's newest point.
        """
        series = self._series.get(metric)
        if series is None:
            series = deque(maxlen=self._capacity)
            self._series[metric] = series
        elif timestamp <= series[-1][0]:
            log.warning(
                "history_out_of_order",
                metric=metric,
                timestamp=timestamp,
                newest=series[-1][0],
            )
            return False

        series.append((timestamp, value))

        cutoff = timestamp - self._retention
        while series[0][0] < cutoff:
            series.popleft()
        return True

    def range(self, metric: str, start: float, end: float) -> HistoryView:
        """Points of a metric with start <= timestamp <= end.

        Unknown metrics and windows outside the retained data give an empty
        view.
        """
        return HistoryView(self._series.get(metric), start, end)

    def latest(self, metric: str) -> Point | None:
        """Newest point of a metric, if any."""
        series = self._series.get(metric)
        if not series:
            return None
        return series[-1]

    def newest_timestamp(self) -> float | None:
        """Newest timestamp across all metrics."""
        newest = [series[-1][0] for series in self._series.values() if series]
        return max(newest) if newest else None

    def clear(self) -> None:
        """Drop all series."""
        self._series.clear()
