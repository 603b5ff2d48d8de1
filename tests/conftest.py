"""
Pytest configuration and shared fixtures.

Provides reusable test fixtures for all test modules.
"""

import pytest

from pricefeed.config.constants import HOUR_MS
from pricefeed.config.settings import Settings
from pricefeed.core.types import Candle
from pricefeed.market.candles import CandleCache, CandleResolver
from pricefeed.market.history import PriceHistoryBuffer
from pricefeed.realtime.broadcaster import LiveUpdateBroadcaster
from pricefeed.telemetry.metrics import MetricsCollector
from tests.mocks import FakeClock, FakeUpstreamClient
from tests.mocks.tokens import TEST_SECRET


# =============================================================================
# Infrastructure Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    """Manually advanced clock."""
    return FakeClock()


@pytest.fixture
def metrics() -> MetricsCollector:
    """Fresh metrics collector."""
    return MetricsCollector()


@pytest.fixture
def settings() -> Settings:
    """Settings that never touch the network or the environment."""
    return Settings(
        jwt_secret=TEST_SECRET,
        ohlc_retry_delays=[0.0, 0.0, 0.0],
        poll_interval_seconds=3600.0,
        heartbeat_interval_seconds=600.0,
        _env_file=None,
    )


# =============================================================================
# Market Data Fixtures
# =============================================================================


@pytest.fixture
def btc_candles(clock: FakeClock) -> list[Candle]:
    """Three hourly BTC candles ending one hour ago."""
    now = clock.now_ms()
    return [
        Candle(now - 3 * HOUR_MS, 49000.0, 49500.0, 48800.0, 49200.0),
        Candle(now - 2 * HOUR_MS, 49200.0, 50100.0, 49100.0, 50000.0),
        Candle(now - 1 * HOUR_MS, 50000.0, 50200.0, 49900.0, 50050.0),
    ]


@pytest.fixture
def upstream(btc_candles: list[Candle]) -> FakeUpstreamClient:
    """Fake upstream with BTC, ETH and SOL prices and BTC candles."""
    return FakeUpstreamClient(
        prices={"BTC": 50000.0, "ETH": 2500.0, "SOL": 100.0},
        candles={"BTC": btc_candles},
    )


@pytest.fixture
def history(clock: FakeClock) -> PriceHistoryBuffer:
    """Empty history buffer on the fake clock."""
    return PriceHistoryBuffer(clock=clock)


@pytest.fixture
def resolver(
    upstream: FakeUpstreamClient,
    history: PriceHistoryBuffer,
    clock: FakeClock,
    metrics: MetricsCollector,
) -> CandleResolver:
    """Candle resolver wired to the fake upstream."""
    return CandleResolver(
        client=upstream,
        history=history,
        cache=CandleCache(),
        clock=clock,
        ttl_seconds=60.0,
        metrics=metrics,
    )


@pytest.fixture
def broadcaster(clock: FakeClock, metrics: MetricsCollector) -> LiveUpdateBroadcaster:
    """Broadcaster with a long heartbeat so tests drive liveness by hand."""
    return LiveUpdateBroadcaster(heartbeat_interval=600.0, clock=clock, metrics=metrics)
