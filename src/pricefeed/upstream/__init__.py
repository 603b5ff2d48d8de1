"""Upstream market-data integration (CoinGecko)."""

from pricefeed.upstream.client import (
    CoinGeckoClient,
    RateLimitedError,
    TransientUpstreamError,
    UpstreamAPIError,
    UpstreamError,
)
from pricefeed.upstream.models import SimplePriceEntry, SimplePriceResponse
from pricefeed.upstream.rate_limiter import RateLimiter


__all__ = [
    "CoinGeckoClient",
    "RateLimitedError",
    "RateLimiter",
    "SimplePriceEntry",
    "SimplePriceResponse",
    "TransientUpstreamError",
    "UpstreamAPIError",
    "UpstreamError",
]
