"""
Type definitions for the price service.

This module contains the dataclasses and TypedDicts shared by the upstream
client, the history buffer, the candle resolver and the broadcaster. Using
slots=True for memory efficiency and faster attribute access.
"""

from dataclasses import dataclass, field
from typing import Any, TypedDict


# =============================================================================
# Market Data Types
# =============================================================================


@dataclass(slots=True, frozen=True)
class PriceSample:
    """
    Latest spot price observation for one asset.

    Timestamps are Unix milliseconds as reported by the upstream source.
    """

    symbol: str
    price: float
    change_percent_24h: float
    volume_24h: float
    timestamp: int

    def is_newer_than(self, other: "PriceSample | None") -> bool:
        """Check whether this sample may replace `other` (equal timestamps allowed)."""
        return other is None or self.timestamp >= other.timestamp

    def to_dict(self) -> dict[str, Any]:
        """Wire representation with camelCase keys."""
        return {
            "symbol": self.symbol,
            "price": self.price,
            "changePercent24h": self.change_percent_24h,
            "volume24h": self.volume_24h,
            "timestamp": self.timestamp,
        }


@dataclass(slots=True, frozen=True)
class HistoryPoint:
    """Single price observation stored in the history buffer."""

    timestamp: int
    price: float

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "price": self.price}


@dataclass(slots=True, frozen=True)
class Candle:
    """
    OHLC summary of price movement over a time bucket.

    `time` is the bucket start in Unix milliseconds.
    """

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @classmethod
    def flat(cls, time: int, price: float) -> "Candle":
        """Create a candle with open == high == low == close."""
        return cls(time=time, open=price, high=price, low=price, close=price)

    @classmethod
    def zero(cls) -> "Candle":
        """Create an all-zero candle."""
        return cls(time=0, open=0.0, high=0.0, low=0.0, close=0.0, volume=0.0)

    @property
    def is_consistent(self) -> bool:
        """Check low <= open, close <= high."""
        return self.low <= min(self.open, self.close) and self.high >= max(self.open, self.close)

    def to_dict(self) -> dict[str, Any]:
        return {
            "time": self.time,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


@dataclass(slots=True)
class CandleCacheEntry:
    """
    Cached candle series for one (symbol, timeframe) key.

    Overwritten on every successful fetch of the same key; never evicted.
    """

    symbol: str
    timeframe: str
    candles: list[Candle] = field(default_factory=list)
    fetched_at: int = 0

    @property
    def key(self) -> tuple[str, str]:
        return (self.symbol, self.timeframe)

    def age_ms(self, now_ms: int) -> int:
        """Milliseconds since the entry was fetched."""
        return now_ms - self.fetched_at

    def is_fresh(self, now_ms: int, ttl_ms: int) -> bool:
        """Check whether the entry is younger than the TTL."""
        return self.age_ms(now_ms) < ttl_ms


# =============================================================================
# Wire Types
# =============================================================================


class LiveMessage(TypedDict):
    """Outbound subscriber message."""

    type: str
    payload: dict[str, Any]
