"""
Unit tests for the candle cache and fallback resolver.

Tests every resolution tier and the guarantee that a chart request always
gets a non-empty, well-formed answer.
"""

import asyncio

import pytest

from pricefeed.config.constants import HOUR_MS, MINUTE_MS
from pricefeed.core.timeframes import TIMEFRAMES
from pricefeed.core.types import Candle, HistoryPoint, PriceSample
from pricefeed.market.candles import CandleCache, CandleResolver, build_candles_from_history
from pricefeed.market.history import PriceHistoryBuffer
from pricefeed.telemetry.metrics import MetricsCollector, candle_tier_counter
from tests.mocks import FakeClock, FakeUpstreamClient


def _spot(symbol: str, price: float, timestamp: int = 0) -> PriceSample:
    return PriceSample(
        symbol=symbol,
        price=price,
        change_percent_24h=0.0,
        volume_24h=0.0,
        timestamp=timestamp,
    )


class TestBuildCandlesFromHistory:
    """Tests for history bucketing."""

    def test_single_bucket(self) -> None:
        """Test first/max/min/last aggregation."""
        points = [
            HistoryPoint(0, 100.0),
            HistoryPoint(60_000, 110.0),
            HistoryPoint(120_000, 95.0),
            HistoryPoint(180_000, 105.0),
        ]

        candles = build_candles_from_history(points, TIMEFRAMES["1H"])

        assert candles == [Candle(0, 100.0, 110.0, 95.0, 105.0)]

    def test_multiple_buckets(self) -> None:
        """Test that each bucket becomes one candle, oldest first."""
        points = [
            HistoryPoint(0, 100.0),
            HistoryPoint(5 * MINUTE_MS, 101.0),
            HistoryPoint(6 * MINUTE_MS, 99.0),
            HistoryPoint(20 * MINUTE_MS, 102.0),
        ]

        candles = build_candles_from_history(points, TIMEFRAMES["1H"])

        assert [c.time for c in candles] == [0, 5 * MINUTE_MS, 20 * MINUTE_MS]
        assert candles[0] == Candle.flat(0, 100.0)
        assert candles[1] == Candle(5 * MINUTE_MS, 101.0, 101.0, 99.0, 99.0)
        assert all(c.is_consistent for c in candles)

    def test_empty(self) -> None:
        """Test that no points give no candles."""
        assert build_candles_from_history([], TIMEFRAMES["24H"]) == []


class TestCandleCache:
    """Tests for CandleCache."""

    def test_put_and_get(self, btc_candles: list[Candle]) -> None:
        """Test storing and retrieving a series."""
        cache = CandleCache()

        cache.put("btc", "24H", btc_candles, fetched_at=1000)
        entry = cache.get("BTC", "24H")

        assert entry is not None
        assert entry.candles == btc_candles
        assert entry.fetched_at == 1000
        assert ("btc", "24H") in cache
        assert len(cache) == 1

    def test_overwrite(self, btc_candles: list[Candle]) -> None:
        """Test that a newer fetch replaces the entry."""
        cache = CandleCache()
        cache.put("BTC", "24H", btc_candles, fetched_at=1000)
        cache.put("BTC", "24H", btc_candles[:1], fetched_at=2000)

        entry = cache.get("BTC", "24H")
        assert entry is not None
        assert len(entry.candles) == 1
        assert entry.fetched_at == 2000

    def test_freshness(self) -> None:
        """Test TTL freshness boundary."""
        cache = CandleCache()
        entry = cache.put("BTC", "1H", [Candle.flat(0, 1.0)], fetched_at=0)

        assert entry.is_fresh(59_999, 60_000)
        assert not entry.is_fresh(60_000, 60_000)


class TestCandleResolver:
    """Tests for CandleResolver."""

    def test_tier_order(self, resolver: CandleResolver) -> None:
        """Test that tiers are tried in degradation order."""
        assert resolver.tiers == [
            "fresh_cache",
            "upstream",
            "stale_cache",
            "history",
            "spot_price",
            "zero",
        ]

    @pytest.mark.asyncio
    async def test_upstream_candles(
        self,
        resolver: CandleResolver,
        btc_candles: list[Candle],
        metrics: MetricsCollector,
    ) -> None:
        """Test that upstream candles are served and cached."""
        candles = await resolver.get_candles("btc", "24H", 100)

        assert candles == btc_candles
        assert ("BTC", "24H") in resolver.cache
        assert metrics.get_counter(candle_tier_counter("upstream")) == 1

    @pytest.mark.asyncio
    async def test_cache_hit_within_ttl(
        self,
        resolver: CandleResolver,
        upstream: FakeUpstreamClient,
        clock: FakeClock,
        metrics: MetricsCollector,
    ) -> None:
        """Test that two calls within the TTL fetch upstream once."""
        first = await resolver.get_candles("BTC", "24H", 100)
        clock.advance(seconds=30)
        second = await resolver.get_candles("BTC", "24H", 100)

        assert upstream.ohlc_calls == 1
        assert first == second
        assert metrics.get_counter(candle_tier_counter("fresh_cache")) == 1

    @pytest.mark.asyncio
    async def test_refetch_after_ttl(
        self,
        resolver: CandleResolver,
        upstream: FakeUpstreamClient,
        clock: FakeClock,
    ) -> None:
        """Test that an expired entry triggers a new fetch."""
        await resolver.get_candles("BTC", "24H", 100)
        clock.advance(seconds=61)
        await resolver.get_candles("BTC", "24H", 100)

        assert upstream.ohlc_calls == 2

    @pytest.mark.asyncio
    async def test_concurrent_requests_share_fetch(
        self,
        resolver: CandleResolver,
        upstream: FakeUpstreamClient,
    ) -> None:
        """Test that concurrent requests for one key fetch upstream once."""
        results = await asyncio.gather(
            resolver.get_candles("BTC", "24H", 100),
            resolver.get_candles("BTC", "24H", 100),
        )

        assert upstream.ohlc_calls == 1
        assert results[0] == results[1]

    @pytest.mark.asyncio
    async def test_stale_cache_on_upstream_failure(
        self,
        resolver: CandleResolver,
        upstream: FakeUpstreamClient,
        clock: FakeClock,
        btc_candles: list[Candle],
        metrics: MetricsCollector,
    ) -> None:
        """Test that a stale entry is served when the upstream fails."""
        await resolver.get_candles("BTC", "24H", 100)
        clock.advance(seconds=120)
        upstream.ohlc_error = True

        candles = await resolver.get_candles("BTC", "24H", 100)

        assert candles == btc_candles
        assert metrics.get_counter(candle_tier_counter("stale_cache")) == 1

    @pytest.mark.asyncio
    async def test_history_reconstruction(
        self,
        resolver: CandleResolver,
        upstream: FakeUpstreamClient,
        history: PriceHistoryBuffer,
        clock: FakeClock,
        metrics: MetricsCollector,
    ) -> None:
        """Test that history is bucketed when upstream and cache are empty."""
        upstream.ohlc_error = True
        now = clock.now_ms()
        history.append("SOL", 100.0, now - 40 * MINUTE_MS)
        history.append("SOL", 104.0, now - 38 * MINUTE_MS)
        history.append("SOL", 98.0, now - 10 * MINUTE_MS)

        candles = await resolver.get_candles("SOL", "1H", 100)

        assert len(candles) == 2
        assert candles != [Candle.zero()]
        assert all(c.is_consistent for c in candles)
        assert metrics.get_counter(candle_tier_counter("history")) == 1

    @pytest.mark.asyncio
    async def test_spot_price_single_candle(
        self,
        resolver: CandleResolver,
        upstream: FakeUpstreamClient,
        clock: FakeClock,
    ) -> None:
        """Test a flat candle at the spot price when nothing else is known."""
        upstream.ohlc_error = True
        resolver.set_spot_lookup(
            lambda symbol: _spot("ETH", 2500.0) if symbol == "ETH" else None
        )

        candles = await resolver.get_candles("ETH", "1H", 10)

        assert len(candles) == 1
        candle = candles[0]
        assert (candle.open, candle.high, candle.low, candle.close) == (
            2500.0,
            2500.0,
            2500.0,
            2500.0,
        )
        assert candle.time == clock.now_ms()

    @pytest.mark.asyncio
    async def test_spot_falls_back_to_latest_history(
        self,
        upstream: FakeUpstreamClient,
        history: PriceHistoryBuffer,
        clock: FakeClock,
    ) -> None:
        """Test that the newest history point stands in for a missing spot price."""
        upstream.ohlc_error = True
        history.append("ETH", 2400.0, clock.now_ms() - 2 * HOUR_MS)
        resolver = CandleResolver(client=upstream, history=history, clock=clock)

        candles = await resolver.get_candles("ETH", "1H", 10)

        assert candles == [Candle.flat(clock.now_ms(), 2400.0)]

    @pytest.mark.asyncio
    async def test_unknown_asset_zero_candle(
        self,
        resolver: CandleResolver,
        metrics: MetricsCollector,
    ) -> None:
        """Test that an asset never observed yields one all-zero candle."""
        candles = await resolver.get_candles("DOGE", "24H", 100)

        assert candles == [Candle.zero()]
        assert metrics.get_counter(candle_tier_counter("zero")) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("symbol", ["BTC", "ETH", "SOL", "USDT", "XYZ"])
    @pytest.mark.parametrize("interval", ["1H", "4H", "24H", "7D", "30D", "90D", "1Y", "??"])
    async def test_never_empty_when_upstream_fails(
        self,
        resolver: CandleResolver,
        upstream: FakeUpstreamClient,
        symbol: str,
        interval: str,
    ) -> None:
        """Test that results are non-empty and well-formed under upstream failure."""
        upstream.ohlc_error = True

        candles = await resolver.get_candles(symbol, interval, 50)

        assert candles
        assert all(c.is_consistent for c in candles)

    @pytest.mark.asyncio
    async def test_unexpected_error_falls_through(
        self,
        resolver: CandleResolver,
        upstream: FakeUpstreamClient,
    ) -> None:
        """Test that a tier raising an unexpected exception is skipped."""

        async def broken(symbol: str, interval: str) -> list[Candle]:
            raise RuntimeError("boom")

        upstream.fetch_ohlc = broken  # type: ignore[method-assign]

        candles = await resolver.get_candles("BTC", "24H", 100)

        assert candles == [Candle.zero()]

    @pytest.mark.asyncio
    async def test_limit(self, resolver: CandleResolver, btc_candles: list[Candle]) -> None:
        """Test that only the newest `limit` candles are returned."""
        assert await resolver.get_candles("BTC", "24H", 2) == btc_candles[-2:]
        assert await resolver.get_candles("BTC", "24H", 0) == btc_candles[-1:]

    @pytest.mark.asyncio
    async def test_window_keeps_newest_when_all_outside(
        self,
        resolver: CandleResolver,
        upstream: FakeUpstreamClient,
        clock: FakeClock,
    ) -> None:
        """Test that coarse upstream data still yields the newest candle."""
        now = clock.now_ms()
        upstream.candles["ETH"] = [
            Candle.flat(now - 8 * HOUR_MS, 2300.0),
            Candle.flat(now - 4 * HOUR_MS, 2400.0),
        ]

        candles = await resolver.get_candles("ETH", "1H", 100)

        assert candles == [Candle.flat(now - 4 * HOUR_MS, 2400.0)]

    @pytest.mark.asyncio
    async def test_window_filters_old_candles(
        self,
        resolver: CandleResolver,
        upstream: FakeUpstreamClient,
        clock: FakeClock,
    ) -> None:
        """Test that candles older than the lookback window are dropped."""
        now = clock.now_ms()
        upstream.candles["ETH"] = [
            Candle.flat(now - 30 * HOUR_MS, 2300.0),
            Candle.flat(now - 2 * HOUR_MS, 2400.0),
            Candle.flat(now - 30 * MINUTE_MS, 2500.0),
        ]

        candles = await resolver.get_candles("ETH", "24H", 100)

        assert [c.close for c in candles] == [2400.0, 2500.0]
