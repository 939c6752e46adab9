"""
Configuration primitives for rate limiting.

Defines time windows and the rule object consumed by the algorithms.
"""

import re
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum


class RateLimitAlgorithm(Enum):
    """Available rate limiting algorithms."""

    SLIDING_WINDOW = "sliding_window"
    FIXED_WINDOW = "fixed_window"


class TimeWindow:
    """Time window for rate limits."""

    _PATTERN = re.compile(r"^(\d+)([smhd]|min|sec|hour|day)$")
    _UNITS = {
        "s": 1,
        "sec": 1,
        "m": 60,
        "min": 60,
        "h": 3600,
        "hour": 3600,
        "d": 86400,
        "day": 86400,
    }

    def __init__(self, value: "str | int | timedelta | TimeWindow") -> None:
        if isinstance(value, TimeWindow):
            self.seconds: int = value.seconds
        elif isinstance(value, str):
            self.seconds = self._parse_string(value)
        elif isinstance(value, int):
            self.seconds = value
        elif isinstance(value, timedelta):
            self.seconds = int(value.total_seconds())
        else:
            raise ValueError(f"Invalid time window value: {value}")

    def _parse_string(self, value: str) -> int:
        """Parse string time window (e.g., '1min', '5s', '1h')."""
        match = self._PATTERN.match(value.lower().strip())
        if not match:
            raise ValueError(f"Invalid time window format: {value}")

        number, unit = match.groups()
        return int(number) * self._UNITS[unit]

    @property
    def timedelta(self) -> timedelta:
        return timedelta(seconds=self.seconds)

    def __str__(self) -> str:
        if self.seconds < 60:
            return f"{self.seconds}s"
        elif self.seconds < 3600:
            return f"{self.seconds // 60}min"
        elif self.seconds < 86400:
            return f"{self.seconds // 3600}h"
        else:
            return f"{self.seconds // 86400}d"

    def __repr__(self) -> str:
        return f"TimeWindow({self.seconds}s)"


@dataclass
class RateLimitRule:
    """Configuration for a single rate limit rule."""

    limit: int  # Number of requests allowed
    window: TimeWindow
    algorithm: RateLimitAlgorithm = RateLimitAlgorithm.SLIDING_WINDOW
    identifier: str | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.window, TimeWindow):
            self.window = TimeWindow(self.window)
