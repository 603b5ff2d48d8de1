"""
Time utilities.

All timestamps inside the service are Unix milliseconds. Components that
depend on "now" take a Clock so tests can drive time explicitly.
"""

import time
from datetime import UTC, datetime
from typing import Protocol


def get_timestamp_ms() -> int:
    """
    Get current timestamp in milliseconds.

    Returns:
        Current Unix timestamp in milliseconds.
    """
    return time.time_ns() // 1_000_000


def get_timestamp_us() -> int:
    """
    Get current timestamp in microseconds.

    Returns:
        Current Unix timestamp in microseconds.
    """
    return time.time_ns() // 1000


def seconds_to_ms(seconds: float) -> int:
    """Convert a Unix timestamp in seconds to milliseconds."""
    return int(seconds * 1000)


def format_timestamp_ms(timestamp_ms: int, include_date: bool = True) -> str:
    """
    Format millisecond timestamp for logging.

    Example:
        >>> format_timestamp_ms(1704067200123)
        '2024-01-01 00:00:00.123'
        >>> format_timestamp_ms(1704067200123, include_date=False)
        '00:00:00.123'
    """
    seconds, millis = divmod(timestamp_ms, 1000)
    dt = datetime.fromtimestamp(seconds, tz=UTC)

    if include_date:
        return f"{dt.strftime('%Y-%m-%d %H:%M:%S')}.{millis:03d}"
    return f"{dt.strftime('%H:%M:%S')}.{millis:03d}"


class Clock(Protocol):
    """Source of the current time in milliseconds."""

    def now_ms(self) -> int: ...


class SystemClock:
    """Wall clock backed by time.time_ns()."""

    __slots__ = ()

    def now_ms(self) -> int:
        return get_timestamp_ms()


class LatencyTimer:
    """
    Context manager for measuring operation latency.

    Example:
        >>> with LatencyTimer() as timer:
        ...     do_something()
        >>> print(f"Latency: {timer.latency_us}μs")
    """

    __slots__ = ("start_us", "end_us", "latency_us")

    def __init__(self) -> None:
        self.start_us: int = 0
        self.end_us: int = 0
        self.latency_us: int = 0

    def __enter__(self) -> "LatencyTimer":
        self.start_us = get_timestamp_us()
        return self

    def __exit__(self, *args: object) -> None:
        self.end_us = get_timestamp_us()
        self.latency_us = self.end_us - self.start_us
