"""Market data state: price history and candle resolution."""

from pricefeed.market.candles import (
    CandleCache,
    CandleResolver,
    build_candles_from_history,
)
from pricefeed.market.history import PriceHistoryBuffer


__all__ = [
    "CandleCache",
    "CandleResolver",
    "PriceHistoryBuffer",
    "build_candles_from_history",
]
