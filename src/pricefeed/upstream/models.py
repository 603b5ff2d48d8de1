"""
Pydantic models for CoinGecko API responses.

These models provide type-safe parsing of upstream responses
with automatic validation.
"""

from typing import Final

from pydantic import BaseModel, Field, RootModel, TypeAdapter

from pricefeed.core.types import Candle, PriceSample
from pricefeed.utils.time import seconds_to_ms


class SimplePriceEntry(BaseModel):
    """Single coin entry from /simple/price."""

    usd: float = 0.0
    usd_24h_change: float | None = None
    usd_24h_vol: float | None = None
    last_updated_at: float | None = Field(default=None, description="Unix seconds")

    model_config = {"extra": "ignore"}

    def to_sample(self, symbol: str, fallback_ms: int) -> PriceSample:
        """
        Convert to a PriceSample.

        Args:
            symbol: Asset symbol the coin id maps to.
            fallback_ms: Timestamp to use when the upstream omits last_updated_at.
        """
        timestamp = (
            seconds_to_ms(self.last_updated_at)
            if self.last_updated_at is not None
            else fallback_ms
        )
        return PriceSample(
            symbol=symbol,
            price=self.usd,
            change_percent_24h=self.usd_24h_change or 0.0,
            volume_24h=self.usd_24h_vol or 0.0,
            timestamp=timestamp,
        )


class SimplePriceResponse(RootModel[dict[str, SimplePriceEntry]]):
    """Response of /simple/price keyed by coin id."""

    def get(self, coin_id: str) -> SimplePriceEntry | None:
        return self.root.get(coin_id)


# [timestamp_ms, open, high, low, close]
OHLCRow = tuple[float, float, float, float, float]

OHLC_ADAPTER: Final[TypeAdapter[list[OHLCRow]]] = TypeAdapter(list[OHLCRow])


def rows_to_candles(rows: list[OHLCRow]) -> list[Candle]:
    """Convert OHLC rows to candles (the endpoint carries no volume)."""
    return [
        Candle(time=int(ts), open=o, high=h, low=low, close=c, volume=0.0)
        for ts, o, h, low, c in rows
    ]
