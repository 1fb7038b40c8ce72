"""Sparkline widget for time-series graphs.

Values are drawn against an explicit [min_value, max_value] range supplied
by the caller, so the axis can be managed by the adaptive scaler instead of
jumping with every new peak.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from enum import Enum
from typing import TYPE_CHECKING

from rich.text import Text
from textual.reactive import reactive
from textual.widgets import Static

if TYPE_CHECKING:
    from textual.app import RenderResult


class SparklineMode(Enum):
    """Rendering mode for sparkline characters."""

    BLOCKS = "blocks"  # ▁▂▃▄▅▆▇█ - solid bars
    BRAILLE = "braille"  # ⡀⣀⣄⣤⣦⣶⣷⣿ - dot patterns


class Sparkline(Static):
    """A multi-row sparkline.

    Each row adds 8 vertical levels:
    - height=1: 8 levels (▁ to █)
    - height=2: 16 levels (bottom row fills first, then top)
    - height=3: 24 levels
    - height=4: 32 levels

    Only the newest values that fit the widget width are drawn, newest on the
    right.
    """

    # Character sets for each mode (9 levels: empty + 8 filled)
    CHARS: dict[SparklineMode, str] = {
        SparklineMode.BLOCKS: " ▁▂▃▄▅▆▇█",
        SparklineMode.BRAILLE: " ⡀⣀⣄⣤⣦⣶⣷⣿",
    }
    LEVELS_PER_ROW = 8

    DEFAULT_CSS = """
    Sparkline {
        width: 1fr;
        height: auto;
    }
    """

    data: reactive[list[float]] = reactive(list, always_update=True)

    def __init__(
        self,
        height: int = 1,
        max_value: float = 100,
        min_value: float = 0,
        mode: SparklineMode = SparklineMode.BLOCKS,
        color_func: Callable[[float], str] | None = None,
        **kwargs,
    ) -> None:
        """Initialize sparkline.

        Args:
            height: Number of character rows (1-4). Each row adds 8 levels.
            max_value: Top of the vertical axis.
            min_value: Bottom of the vertical axis.
            mode: Character set to use (BLOCKS or BRAILLE).
            color_func: Function mapping value to Rich color string.
            **kwargs: Passed to Static.__init__
        """
        super().__init__(**kwargs)
        self._height = max(1, min(4, height))  # Clamp to 1-4
        self._max_value = max_value
        self._min_value = min_value
        self._mode = mode
        self._color_func = color_func

    @property
    def max_value(self) -> float:
        return self._max_value

    @property
    def min_value(self) -> float:
        return self._min_value

    def set_series(self, values: Sequence[float], min_value: float, max_value: float) -> None:
        """Replace the data and the axis range in one refresh."""
        self._min_value = min_value
        self._max_value = max_value
        self.data = list(values)

    def clear(self) -> None:
        """Clear all data."""
        self.data = []

    def _visible(self) -> list[float]:
        width = self.size.width
        if width > 0 and len(self.data) > width:
            return self.data[-width:]
        return self.data

    def render(self) -> RenderResult:
        """Render the sparkline as Rich Text."""
        values = self._visible()
        if not values:
            return Text(" " * max(1, self.size.width))

        # Rows are built bottom to top
        rows: list[Text] = [Text() for _ in range(self._height)]
        for value in values:
            column_chars = self._render_column(self._scale_value(value))
            color = self._color_func(value) if self._color_func else ""
            for row_idx, char in enumerate(column_chars):
                if color:
                    rows[row_idx].append(char, style=color)
                else:
                    rows[row_idx].append(char)

        return Text("\n").join(reversed(rows))

    def _scale_value(self, value: float) -> int:
        """Scale a value to 0..(height * LEVELS_PER_ROW).

        Values outside [min_value, max_value] and NaN are clamped.
        """
        total_levels = self._height * self.LEVELS_PER_ROW
        span = self._max_value - self._min_value
        if span <= 0 or value != value:
            return 0
        normalized = (value - self._min_value) / span
        normalized = max(0.0, min(1.0, normalized))
        return int(round(normalized * total_levels))

    def _render_column(self, level: int) -> list[str]:
        """Render a single column as list of characters, bottom row first."""
        chars = self.CHARS[self._mode]
        result: list[str] = []

        for row in range(self._height):
            remaining = level - row * self.LEVELS_PER_ROW
            if remaining <= 0:
                result.append(chars[0])
            elif remaining >= self.LEVELS_PER_ROW:
                result.append(chars[self.LEVELS_PER_ROW])
            else:
                result.append(chars[remaining])

        return result

    def watch_data(self, new_data: list[float]) -> None:
        """React to data changes by refreshing the widget."""
        self.refresh()
