"""Display helpers for durations, ratios and timestamps."""

from __future__ import annotations

import math
from typing import Any, Optional, Union

from core.models import parse_timestamp


Number = Union[int, float]


def _plain(value: Number) -> Number:
    """Drop the fractional part of integral floats so 500.0 prints as 500."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def format_duration(duration_ms: Optional[Number]) -> str:
    """Render a millisecond duration as ms, seconds or minutes and seconds."""
    if duration_ms is None:
        return "N/A"
    if duration_ms < 1000:
        return f"{_plain(duration_ms)}ms"
    if duration_ms < 60000:
        return f"{duration_ms / 1000:.2f}s"
    minutes = int(duration_ms // 60000)
    # Remaining seconds are rounded half-up, so 119.5s renders as "1m 60s".
    seconds = math.floor((duration_ms % 60000) / 1000 + 0.5)
    return f"{minutes}m {seconds}s"


def format_efficiency(value: Optional[float]) -> str:
    if value is None:
        return "0.0%"
    return f"{value:.1f}%"


def format_timestamp(value: Any) -> str:
    """Show a timestamp in local time, or the raw text when it cannot be parsed."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return str(value) if value else "N/A"
    return parsed.astimezone().strftime("%Y-%m-%d %H:%M:%S")
