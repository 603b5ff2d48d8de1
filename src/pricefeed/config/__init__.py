"""Configuration module for the price service."""

from pricefeed.config.constants import (
    COINGECKO_IDS,
    COINGECKO_REST_URL,
    DEFAULT_CANDLE_CACHE_TTL,
    DEFAULT_OHLC_RETRY_DELAYS,
    DEFAULT_POLL_INTERVAL,
)
from pricefeed.config.settings import Settings, get_settings


__all__ = [
    "Settings",
    "get_settings",
    "COINGECKO_IDS",
    "COINGECKO_REST_URL",
    "DEFAULT_CANDLE_CACHE_TTL",
    "DEFAULT_OHLC_RETRY_DELAYS",
    "DEFAULT_POLL_INTERVAL",
]
