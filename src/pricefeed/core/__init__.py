"""Core data model, timeframes and exception hierarchy."""

from pricefeed.core.exceptions import PriceFeedError, UnknownAssetError
from pricefeed.core.timeframes import TIMEFRAMES, Timeframe, find_timeframe, resolve_timeframe
from pricefeed.core.types import (
    Candle,
    CandleCacheEntry,
    HistoryPoint,
    LiveMessage,
    PriceSample,
)


__all__ = [
    "Candle",
    "CandleCacheEntry",
    "HistoryPoint",
    "LiveMessage",
    "PriceFeedError",
    "PriceSample",
    "TIMEFRAMES",
    "Timeframe",
    "UnknownAssetError",
    "find_timeframe",
    "resolve_timeframe",
]
