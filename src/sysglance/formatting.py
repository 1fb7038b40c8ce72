"""Formatting utilities for consistent output across CLI and TUI."""

import math

_BYTE_UNITS = ["B", "K", "M", "G", "T"]

_TEMPERATURE_SUFFIX = {"celsius": "°C", "fahrenheit": "°F", "kelvin": "K"}


def format_bytes(size: float | None) -> str:
    """Format bytes as human-readable string."""
    if size is None or (isinstance(size, float) and math.isnan(size)):
        return "    -"
    for unit in _BYTE_UNITS:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{int(size):5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_rate(bytes_per_second: float) -> str:
    """Format a byte rate, e.g. " 12.0K/s"."""
    return f"{format_bytes(bytes_per_second)}/s"


def format_percent(value: float) -> str:
    if math.isnan(value):
        return "    -"
    return f"{value:5.1f}"


def convert_temperature(celsius: float, unit: str) -> float:
    """Convert a Celsius reading to celsius, fahrenheit or kelvin."""
    if unit == "celsius":
        return celsius
    if unit == "fahrenheit":
        return celsius * 9 / 5 + 32
    if unit == "kelvin":
        return celsius + 273.15
    raise ValueError(f"Unknown temperature unit: {unit!r}")


def format_temperature(celsius: float, unit: str = "celsius") -> str:
    """Format a temperature in the configured unit, e.g. "45°C"."""
    return f"{convert_temperature(celsius, unit):.0f}{_TEMPERATURE_SUFFIX[unit]}"


def format_duration(seconds: float) -> str:
    """Format a duration compactly.

    Returns:
        "45s", "2m30s", "1h05m" or "3d04h"
    """
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}s"
    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m{secs:02d}s" if secs else f"{minutes}m"
    hours, minutes = divmod(minutes, 60)
    if hours < 24:
        return f"{hours}h{minutes:02d}m"
    days, hours = divmod(hours, 24)
    return f"{days}d{hours:02d}h"
