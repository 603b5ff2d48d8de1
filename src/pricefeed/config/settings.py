"""
Application settings with environment variable support.

Uses Pydantic Settings for type-safe configuration with automatic
environment variable loading and validation.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pricefeed.config.constants import (
    COINGECKO_REST_URL,
    DEFAULT_CALLS_PER_MINUTE,
    DEFAULT_CANDLE_CACHE_TTL,
    DEFAULT_HEARTBEAT_INTERVAL,
    DEFAULT_HISTORY_MAX_POINTS,
    DEFAULT_HISTORY_RETENTION_HOURS,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_OHLC_RETRY_DELAYS,
    DEFAULT_POLL_INTERVAL,
    LOG_COMPONENTS,
)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Sensitive values use SecretStr for safe handling.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Upstream Market Data
    # =========================================================================

    coingecko_base_url: str = Field(
        default=COINGECKO_REST_URL,
        description="Base URL of the CoinGecko REST API",
    )
    coingecko_api_key: SecretStr | None = Field(
        default=None,
        description="Optional CoinGecko demo API key",
    )

    upstream_calls_per_minute: int = Field(
        default=DEFAULT_CALLS_PER_MINUTE,
        ge=1,
        le=500,
        description="Client-side budget of upstream calls per minute",
    )

    http_timeout_seconds: float = Field(
        default=DEFAULT_HTTP_TIMEOUT,
        gt=0.0,
        le=120.0,
        description="Total timeout for a single upstream HTTP request",
    )

    ohlc_retry_delays: list[float] = Field(
        default_factory=lambda: list(DEFAULT_OHLC_RETRY_DELAYS),
        description="Backoff delays (seconds) before each OHLC retry",
    )

    # =========================================================================
    # Polling, History & Candles
    # =========================================================================

    poll_interval_seconds: float = Field(
        default=DEFAULT_POLL_INTERVAL,
        ge=1.0,
        le=3600.0,
        description="Interval between spot price polls",
    )

    history_retention_hours: int = Field(
        default=DEFAULT_HISTORY_RETENTION_HOURS,
        ge=1,
        le=168,
        description="Sliding window of price history kept in memory",
    )

    history_max_points: int = Field(
        default=DEFAULT_HISTORY_MAX_POINTS,
        ge=10,
        le=1_000_000,
        description="Hard cap on history points kept per symbol",
    )

    candle_cache_ttl_seconds: float = Field(
        default=DEFAULT_CANDLE_CACHE_TTL,
        ge=0.0,
        le=3600.0,
        description="How long a fetched candle series is considered fresh",
    )

    # =========================================================================
    # Live Updates
    # =========================================================================

    jwt_secret: SecretStr = Field(
        ...,
        description="Secret used to verify subscriber bearer tokens",
    )

    heartbeat_interval_seconds: float = Field(
        default=DEFAULT_HEARTBEAT_INTERVAL,
        ge=1.0,
        le=600.0,
        description="Interval between subscriber liveness checks",
    )

    # =========================================================================
    # Server & Logging
    # =========================================================================

    host: str = Field(default="0.0.0.0", description="Bind address for the HTTP server")
    port: int = Field(default=5000, ge=1, le=65535, description="HTTP server port")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_levels: dict[str, Literal["DEBUG", "INFO", "WARNING", "ERROR"]] = Field(
        default_factory=dict,
        description='Per-component level overrides, e.g. {"upstream": "DEBUG"}',
    )
    log_file: Path | None = Field(default=None, description="Optional log file path")

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("jwt_secret", mode="after")
    @classmethod
    def validate_secret(cls, v: SecretStr) -> SecretStr:
        """Ensure the token secret is not empty."""
        if not v.get_secret_value():
            raise ValueError("JWT secret cannot be empty")
        return v

    @field_validator("log_levels", mode="after")
    @classmethod
    def validate_log_levels(cls, v: dict[str, str]) -> dict[str, str]:
        """Only service components can be tuned."""
        unknown = set(v) - set(LOG_COMPONENTS)
        if unknown:
            raise ValueError(f"Unknown log components: {', '.join(sorted(unknown))}")
        return v

    @field_validator("ohlc_retry_delays", mode="after")
    @classmethod
    def validate_retry_delays(cls, v: list[float]) -> list[float]:
        """Reject negative backoff delays."""
        if any(delay < 0 for delay in v):
            raise ValueError("Retry delays must be non-negative")
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def max_ohlc_attempts(self) -> int:
        """Total OHLC attempts (initial request plus retries)."""
        return len(self.ohlc_retry_delays) + 1


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are loaded only once.
    Clear cache with `get_settings.cache_clear()` if needed.
    """
    return Settings()  # type: ignore[call-arg, unused-ignore]
