"""
Service constants and default configuration values.

This module contains all hardcoded values used throughout the price service.
Values are organized by category for easy maintenance and auditing.
"""

from typing import Final


# =============================================================================
# CoinGecko API Endpoints
# =============================================================================

COINGECKO_REST_URL: Final[str] = "https://api.coingecko.com/api/v3"

ENDPOINT_SIMPLE_PRICE: Final[str] = "/simple/price"
ENDPOINT_OHLC: Final[str] = "/coins/{coin_id}/ohlc"

API_KEY_HEADER: Final[str] = "x-cg-demo-api-key"
QUOTE_CURRENCY: Final[str] = "usd"


# =============================================================================
# Tracked Assets
# =============================================================================

# Symbol -> CoinGecko coin id
COINGECKO_IDS: Final[dict[str, str]] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "USDT": "tether",
}


# =============================================================================
# Polling & Rate Limiting
# =============================================================================

# CoinGecko's public tier allows only a few calls per minute
DEFAULT_POLL_INTERVAL: Final[float] = 20.0  # seconds
DEFAULT_CALLS_PER_MINUTE: Final[int] = 30
DEFAULT_HTTP_TIMEOUT: Final[float] = 10.0  # seconds

# Backoff before each OHLC retry (3 retries, 4 attempts total)
DEFAULT_OHLC_RETRY_DELAYS: Final[tuple[float, ...]] = (1.0, 2.0, 5.0)


# =============================================================================
# Price History & Candles
# =============================================================================

DEFAULT_HISTORY_RETENTION_HOURS: Final[int] = 24
DEFAULT_HISTORY_MAX_POINTS: Final[int] = 5000

DEFAULT_CANDLE_CACHE_TTL: Final[float] = 60.0  # seconds
DEFAULT_CANDLE_LIMIT: Final[int] = 100
DEFAULT_TIMEFRAME: Final[str] = "24H"


# =============================================================================
# Time Units
# =============================================================================

SECOND_MS: Final[int] = 1000
MINUTE_MS: Final[int] = 60 * SECOND_MS
HOUR_MS: Final[int] = 60 * MINUTE_MS
DAY_MS: Final[int] = 24 * HOUR_MS


# =============================================================================
# Live Updates
# =============================================================================

DEFAULT_HEARTBEAT_INTERVAL: Final[float] = 30.0  # seconds

WS_CLOSE_POLICY_VIOLATION: Final[int] = 1008

EVENT_PRICE_UPDATE: Final[str] = "price_update"
EVENT_CONNECTED: Final[str] = "connected"
EVENT_PING: Final[str] = "ping"
EVENT_PONG: Final[str] = "pong"
EVENT_SUBSCRIBE: Final[str] = "subscribe"
EVENT_DEPOSIT_UPDATED: Final[str] = "deposit_updated"
EVENT_ADMIN_DEPOSITS_STREAM: Final[str] = "admin_deposits_stream"

JWT_ALGORITHM: Final[str] = "HS256"


# =============================================================================
# Logging & Telemetry
# =============================================================================

# `component` and `context` are filled in by the feed formatter
LOG_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(component)-20s | %(message)s%(context)s"
LOG_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

# Logger tree owned by the service and its per-component children
LOG_ROOT: Final[str] = "pricefeed"
LOG_COMPONENTS: Final[tuple[str, ...]] = (
    "config",
    "core",
    "upstream",
    "market",
    "realtime",
    "dashboard",
    "telemetry",
)

# Record attributes rendered as trailing context, in this order
LOG_CONTEXT_FIELDS: Final[tuple[str, ...]] = ("symbol", "interval", "subscriber")

# Maximum log queue size
MAX_LOG_QUEUE_SIZE: Final[int] = 10_000

# Number of upstream latency samples kept for stats
LATENCY_WINDOW_SIZE: Final[int] = 500
