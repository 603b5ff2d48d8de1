"""
Unit tests for CoinGeckoClient.

Network calls are replaced by patching `_request`; backoff waits are
recorded instead of slept.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pricefeed.core.exceptions import UnknownAssetError
from pricefeed.core.types import Candle
from pricefeed.telemetry.metrics import UPSTREAM_RETRIES, MetricsCollector
from pricefeed.upstream.client import (
    CoinGeckoClient,
    RateLimitedError,
    TransientUpstreamError,
    UpstreamAPIError,
)
from tests.mocks import FakeClock


SPOT_PAYLOAD = {
    "bitcoin": {
        "usd": 50000.0,
        "usd_24h_change": 2.5,
        "usd_24h_vol": 30_000_000_000.0,
        "last_updated_at": 1_704_067_180,
    },
    "ethereum": {"usd": 2500.0, "usd_24h_change": -1.2, "usd_24h_vol": 12_000_000_000.0},
}

OHLC_PAYLOAD = [
    [1_704_060_000_000, 49000.0, 49500.0, 48800.0, 49200.0],
    [1_704_063_600_000, 49200.0, 50100.0, 49100.0, 50000.0],
]


class SleepRecorder:
    """Records backoff delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def client(clock: FakeClock, metrics: MetricsCollector, sleeper: SleepRecorder) -> CoinGeckoClient:
    return CoinGeckoClient(clock=clock, metrics=metrics, sleep=sleeper)


class TestSpotPrices:
    """Tests for fetch_spot_prices."""

    @pytest.mark.asyncio
    async def test_parses_samples(self, client: CoinGeckoClient, clock: FakeClock) -> None:
        """Test that payload entries become samples keyed by symbol."""
        with patch.object(client, "_request", AsyncMock(return_value=SPOT_PAYLOAD)) as request:
            samples = await client.fetch_spot_prices(["BTC", "ETH"])

        btc = samples["BTC"]
        assert btc.price == 50000.0
        assert btc.change_percent_24h == 2.5
        assert btc.timestamp == 1_704_067_180_000

        # No last_updated_at: stamped with the local clock
        assert samples["ETH"].timestamp == clock.now_ms()

        params = request.call_args.args[1]
        assert params["ids"] == "bitcoin,ethereum"
        assert params["vs_currencies"] == "usd"

    @pytest.mark.asyncio
    async def test_missing_coins_skipped(self, client: CoinGeckoClient) -> None:
        """Test that coins absent from the response are left out."""
        with patch.object(client, "_request", AsyncMock(return_value=SPOT_PAYLOAD)):
            samples = await client.fetch_spot_prices()

        assert set(samples) == {"BTC", "ETH"}

    @pytest.mark.asyncio
    async def test_rate_limit_is_soft_failure(
        self, client: CoinGeckoClient, sleeper: SleepRecorder
    ) -> None:
        """Test that a 429 returns an empty result without retrying."""
        request = AsyncMock(side_effect=RateLimitedError("Rate limited", status=429))
        with patch.object(client, "_request", request):
            samples = await client.fetch_spot_prices()

        assert samples == {}
        assert request.await_count == 1
        assert sleeper.delays == []

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, client: CoinGeckoClient) -> None:
        """Test that non-rate-limit failures are raised."""
        request = AsyncMock(side_effect=TransientUpstreamError("Network error"))
        with patch.object(client, "_request", request):
            with pytest.raises(TransientUpstreamError):
                await client.fetch_spot_prices()

    @pytest.mark.asyncio
    async def test_invalid_payload(self, client: CoinGeckoClient) -> None:
        """Test that a malformed payload raises an API error."""
        bad = {"bitcoin": {"usd": "not-a-number"}}
        with patch.object(client, "_request", AsyncMock(return_value=bad)):
            with pytest.raises(UpstreamAPIError):
                await client.fetch_spot_prices(["BTC"])

    @pytest.mark.asyncio
    async def test_unknown_symbol(self, client: CoinGeckoClient) -> None:
        """Test that untracked symbols are rejected before any request."""
        request = AsyncMock()
        with patch.object(client, "_request", request):
            with pytest.raises(UnknownAssetError):
                await client.fetch_spot_prices(["DOGE"])

        request.assert_not_awaited()


class TestOHLC:
    """Tests for fetch_ohlc."""

    @pytest.mark.asyncio
    async def test_parses_candles(self, client: CoinGeckoClient) -> None:
        """Test that rows become candles and the timeframe sets `days`."""
        request = AsyncMock(return_value=OHLC_PAYLOAD)
        with patch.object(client, "_request", request):
            candles = await client.fetch_ohlc("btc", "7D")

        assert candles[0] == Candle(1_704_060_000_000, 49000.0, 49500.0, 48800.0, 49200.0)
        assert len(candles) == 2

        endpoint, params = request.call_args.args[:2]
        assert endpoint == "/coins/bitcoin/ohlc"
        assert params == {"vs_currency": "usd", "days": "7"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("interval", "days"), [("1H", "1"), ("4H", "7"), ("1D", "30")])
    async def test_selector_intervals_request_matching_days(
        self, client: CoinGeckoClient, interval: str, days: str
    ) -> None:
        """Test the upstream range requested for each candle width."""
        request = AsyncMock(return_value=OHLC_PAYLOAD)
        with patch.object(client, "_request", request):
            await client.fetch_ohlc("BTC", interval)

        assert request.call_args.args[1]["days"] == days

    @pytest.mark.asyncio
    async def test_retries_with_fixed_delays(
        self,
        client: CoinGeckoClient,
        sleeper: SleepRecorder,
        metrics: MetricsCollector,
    ) -> None:
        """Test four attempts with 1s, 2s and 5s waits before giving up."""
        request = AsyncMock(side_effect=RateLimitedError("Rate limited", status=429))
        with patch.object(client, "_request", request):
            with pytest.raises(RateLimitedError):
                await client.fetch_ohlc("BTC", "24H")

        assert request.await_count == 4
        assert sleeper.delays == [1.0, 2.0, 5.0]
        assert metrics.get_counter(UPSTREAM_RETRIES) == 3

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(
        self, client: CoinGeckoClient, sleeper: SleepRecorder
    ) -> None:
        """Test that a later successful attempt is returned."""
        request = AsyncMock(
            side_effect=[
                TransientUpstreamError("Upstream error 503", status=503),
                OHLC_PAYLOAD,
            ]
        )
        with patch.object(client, "_request", request):
            candles = await client.fetch_ohlc("ETH", "24H")

        assert len(candles) == 2
        assert sleeper.delays == [1.0]

    @pytest.mark.asyncio
    async def test_api_error_not_retried(
        self, client: CoinGeckoClient, sleeper: SleepRecorder
    ) -> None:
        """Test that non-transient errors fail on the first attempt."""
        request = AsyncMock(side_effect=UpstreamAPIError("API error 404", status=404))
        with patch.object(client, "_request", request):
            with pytest.raises(UpstreamAPIError):
                await client.fetch_ohlc("SOL", "24H")

        assert request.await_count == 1
        assert sleeper.delays == []

    @pytest.mark.asyncio
    async def test_unknown_symbol(self, client: CoinGeckoClient) -> None:
        """Test that untracked symbols raise UnknownAssetError."""
        with pytest.raises(UnknownAssetError) as exc_info:
            await client.fetch_ohlc("DOGE", "24H")

        assert exc_info.value.symbol == "DOGE"


class TestResponseHandling:
    """Tests for HTTP status mapping."""

    @staticmethod
    def _response(status: int, body: str) -> MagicMock:
        response = MagicMock()
        response.status = status
        response.text = AsyncMock(return_value=body)
        return response

    @pytest.mark.asyncio
    async def test_success(self, client: CoinGeckoClient) -> None:
        """Test JSON decoding of a 200 response."""
        data = await client._handle_response(self._response(200, '{"ok": true}'))

        assert data == {"ok": True}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "error"),
        [
            (429, RateLimitedError),
            (500, TransientUpstreamError),
            (503, TransientUpstreamError),
            (400, UpstreamAPIError),
            (404, UpstreamAPIError),
        ],
    )
    async def test_error_statuses(
        self, client: CoinGeckoClient, status: int, error: type[Exception]
    ) -> None:
        """Test that error statuses map to the exception hierarchy."""
        with pytest.raises(error):
            await client._handle_response(self._response(status, "error"))

    @pytest.mark.asyncio
    async def test_invalid_json(self, client: CoinGeckoClient) -> None:
        """Test that an unparsable body raises an API error."""
        with pytest.raises(UpstreamAPIError):
            await client._handle_response(self._response(200, "<html>"))

    def test_tracked_symbols(self, client: CoinGeckoClient) -> None:
        """Test the default asset mapping."""
        assert client.symbols == ["BTC", "ETH", "SOL", "USDT"]
        assert client.coin_id("usdt") == "tether"
        assert client.max_attempts == 4
