"""
Rolling per-asset price history.

Keeps recent spot prices in time order so short timeframe charts can be
drawn, and so candles can be rebuilt locally when the upstream OHLC endpoint
is unavailable.
"""

import logging
from collections import deque

from pricefeed.config.constants import (
    DEFAULT_HISTORY_MAX_POINTS,
    DEFAULT_HISTORY_RETENTION_HOURS,
    HOUR_MS,
    MINUTE_MS,
)
from pricefeed.core.types import HistoryPoint
from pricefeed.utils.time import Clock, SystemClock


logger = logging.getLogger(__name__)


class PriceHistoryBuffer:
    """
    Append-only, time-bounded store of price points per symbol.

    Features:
    - Sliding-window eviction after every append
    - Hard cap on points per symbol (oldest dropped first)
    - Same-timestamp points collapse into one
    - Non-positive prices rejected silently
    """

    __slots__ = ("_clock", "_retention_ms", "_max_points", "_points")

    def __init__(
        self,
        clock: Clock | None = None,
        retention_hours: int = DEFAULT_HISTORY_RETENTION_HOURS,
        max_points: int = DEFAULT_HISTORY_MAX_POINTS,
    ) -> None:
        """
        Initialize an empty buffer.

        Args:
            clock: Time source used for pruning and queries.
            retention_hours: Age after which points are evicted.
            max_points: Maximum points kept per symbol.
        """
        self._clock = clock or SystemClock()
        self._retention_ms = retention_hours * HOUR_MS
        self._max_points = max_points
        self._points: dict[str, deque[HistoryPoint]] = {}

    def append(self, symbol: str, price: float, timestamp: int) -> bool:
        """
        Record a price observation.

        Args:
            symbol: Asset symbol.
            price: Observed price; values <= 0 are ignored.
            timestamp: Observation time in Unix milliseconds.

        Returns:
            True if the point was stored.
        """
        if price <= 0:
            return False

        key = symbol.upper()
        points = self._points.get(key)
        if points is None:
            points = deque(maxlen=self._max_points)
            self._points[key] = points

        stored = True
        if points and timestamp < points[-1].timestamp:
            logger.debug(f"Discarding out-of-order point for {key} at {timestamp}")
            stored = False
        elif points and timestamp == points[-1].timestamp:
            points[-1] = HistoryPoint(timestamp=timestamp, price=price)
        else:
            points.append(HistoryPoint(timestamp=timestamp, price=price))

        self._prune(key, points)
        # A point already older than the retention window is pruned right away
        return stored and bool(points) and points[-1].timestamp == timestamp

    def _prune(self, symbol: str, points: deque[HistoryPoint]) -> None:
        """Drop points older than the retention window."""
        cutoff = self._clock.now_ms() - self._retention_ms
        while points and points[0].timestamp < cutoff:
            points.popleft()
        if not points:
            del self._points[symbol]

    def query(self, symbol: str, window_minutes: float) -> list[HistoryPoint]:
        """
        Get points from the last `window_minutes`, oldest first.

        Args:
            symbol: Asset symbol.
            window_minutes: Lookback window.

        Returns:
            Points with timestamp >= now - window.
        """
        points = self._points.get(symbol.upper())
        if not points:
            return []

        cutoff = self._clock.now_ms() - int(window_minutes * MINUTE_MS)
        return [p for p in points if p.timestamp >= cutoff]

    def latest(self, symbol: str) -> HistoryPoint | None:
        """Get the newest point for a symbol."""
        points = self._points.get(symbol.upper())
        return points[-1] if points else None

    def size(self, symbol: str) -> int:
        """Number of points held for a symbol."""
        points = self._points.get(symbol.upper())
        return len(points) if points else 0

    @property
    def symbols(self) -> list[str]:
        """Symbols with at least one point."""
        return list(self._points)

    @property
    def retention_ms(self) -> int:
        return self._retention_ms

    def clear(self, symbol: str | None = None) -> None:
        """
        Clear history.

        Args:
            symbol: Specific symbol to clear, or None for all.
        """
        if symbol is None:
            self._points.clear()
        else:
            self._points.pop(symbol.upper(), None)
