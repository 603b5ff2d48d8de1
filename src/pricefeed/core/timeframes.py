"""
Chart timeframe definitions.

A timeframe is a chart view: how far back candles are shown, how wide the
buckets are when candles have to be rebuilt from local history, and which
`days` window to request from the upstream OHLC endpoint.

The dashboard selector names candle widths rather than ranges: `4H` is the
week of 4-hourly candles and `1D` the month of daily candles.
"""

import logging
from dataclasses import dataclass
from typing import Final

from pricefeed.config.constants import DAY_MS, DEFAULT_TIMEFRAME, HOUR_MS, MINUTE_MS


logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Timeframe:
    """Lookback window, reconstruction bucket and upstream range of a chart view."""

    key: str
    lookback_ms: int
    bucket_ms: int
    upstream_days: int

    @property
    def lookback_minutes(self) -> int:
        return self.lookback_ms // MINUTE_MS

    def window_start(self, now_ms: int) -> int:
        """Oldest timestamp still inside the view."""
        return now_ms - self.lookback_ms

    def bucket_start(self, timestamp_ms: int) -> int:
        """Align a timestamp to the start of its bucket."""
        return (timestamp_ms // self.bucket_ms) * self.bucket_ms


TIMEFRAMES: Final[dict[str, Timeframe]] = {
    tf.key: tf
    for tf in (
        Timeframe("1H", lookback_ms=HOUR_MS, bucket_ms=5 * MINUTE_MS, upstream_days=1),
        # 4-hourly candles over a week, as the upstream serves them for days=7
        Timeframe("4H", lookback_ms=7 * DAY_MS, bucket_ms=4 * HOUR_MS, upstream_days=7),
        Timeframe("24H", lookback_ms=DAY_MS, bucket_ms=HOUR_MS, upstream_days=1),
        Timeframe("7D", lookback_ms=7 * DAY_MS, bucket_ms=4 * HOUR_MS, upstream_days=7),
        Timeframe("30D", lookback_ms=30 * DAY_MS, bucket_ms=DAY_MS, upstream_days=30),
        Timeframe("90D", lookback_ms=90 * DAY_MS, bucket_ms=DAY_MS, upstream_days=90),
        Timeframe("1Y", lookback_ms=365 * DAY_MS, bucket_ms=DAY_MS, upstream_days=365),
    )
}

TIMEFRAME_ALIASES: Final[dict[str, str]] = {
    "1D": "30D",
    "1W": "7D",
    "1M": "30D",
    "3M": "90D",
    "12M": "1Y",
}


def find_timeframe(interval: str) -> Timeframe | None:
    """
    Look up a timeframe by key or alias (case-insensitive).

    Returns:
        The timeframe, or None if the interval is not recognized.
    """
    key = interval.strip().upper()
    key = TIMEFRAME_ALIASES.get(key, key)
    return TIMEFRAMES.get(key)


def resolve_timeframe(interval: str) -> Timeframe:
    """
    Resolve an interval string, falling back to the default view.

    Unknown intervals are not an error on the chart path; they are logged and
    served as the default timeframe.
    """
    timeframe = find_timeframe(interval)
    if timeframe is None:
        logger.warning(f"Unknown interval {interval!r}, using {DEFAULT_TIMEFRAME}")
        return TIMEFRAMES[DEFAULT_TIMEFRAME]
    return timeframe


def interval_to_minutes(interval: str) -> int:
    """Lookback window of an interval in minutes."""
    return resolve_timeframe(interval).lookback_minutes
