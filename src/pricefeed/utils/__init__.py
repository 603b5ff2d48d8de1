"""Utility functions for the price service."""

from pricefeed.utils.time import (
    Clock,
    LatencyTimer,
    SystemClock,
    format_timestamp_ms,
    get_timestamp_ms,
    get_timestamp_us,
    seconds_to_ms,
)


__all__ = [
    "Clock",
    "LatencyTimer",
    "SystemClock",
    "format_timestamp_ms",
    "get_timestamp_ms",
    "get_timestamp_us",
    "seconds_to_ms",
]
