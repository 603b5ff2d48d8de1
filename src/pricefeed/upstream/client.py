"""
Async CoinGecko REST API client.

Fetches spot prices and OHLC candles with:
- Connection pooling and keep-alive
- Fast JSON parsing with orjson
- Integrated per-minute rate limiting
- Bounded fixed-delay retries on the OHLC path
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Mapping
from contextlib import asynccontextmanager
from typing import Any

import aiohttp
import orjson
from pydantic import ValidationError

from pricefeed.config.constants import (
    API_KEY_HEADER,
    COINGECKO_IDS,
    COINGECKO_REST_URL,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_OHLC_RETRY_DELAYS,
    ENDPOINT_OHLC,
    ENDPOINT_SIMPLE_PRICE,
    QUOTE_CURRENCY,
)
from pricefeed.core.exceptions import PriceFeedError, UnknownAssetError
from pricefeed.core.timeframes import resolve_timeframe
from pricefeed.core.types import Candle, PriceSample
from pricefeed.telemetry.metrics import (
    UPSTREAM_ERRORS,
    UPSTREAM_RATE_LIMITED,
    UPSTREAM_REQUESTS,
    UPSTREAM_RETRIES,
    MetricsCollector,
)
from pricefeed.upstream.models import OHLC_ADAPTER, SimplePriceResponse, rows_to_candles
from pricefeed.upstream.rate_limiter import RateLimiter
from pricefeed.utils.time import Clock, LatencyTimer, SystemClock


logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class UpstreamError(PriceFeedError):
    """Base exception for upstream API failures."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class TransientUpstreamError(UpstreamError):
    """Network errors, timeouts and 5xx responses; worth retrying."""


class RateLimitedError(TransientUpstreamError):
    """HTTP 429 from the upstream API."""


class UpstreamAPIError(UpstreamError):
    """Non-retryable error response or malformed payload."""


class CoinGeckoClient:
    """
    Async CoinGecko REST API client.

    Features:
    - Single session with connection pooling
    - orjson for fast JSON parsing
    - Rate limiting before every request
    - Soft failure on spot-price rate limits, bounded retry on OHLC
    """

    def __init__(
        self,
        base_url: str = COINGECKO_REST_URL,
        api_key: str | None = None,
        coin_ids: Mapping[str, str] | None = None,
        rate_limiter: RateLimiter | None = None,
        retry_delays: Iterable[float] = DEFAULT_OHLC_RETRY_DELAYS,
        timeout_seconds: float = DEFAULT_HTTP_TIMEOUT,
        clock: Clock | None = None,
        metrics: MetricsCollector | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        """
        Initialize the CoinGecko client.

        Args:
            base_url: API base URL (without trailing slash).
            api_key: Optional demo API key.
            coin_ids: Symbol -> coin id mapping of tracked assets.
            rate_limiter: Optional rate limiter instance.
            retry_delays: Backoff before each OHLC retry, in seconds.
            timeout_seconds: Total timeout per HTTP request.
            clock: Time source for samples without an upstream timestamp.
            metrics: Metrics collector for request counters and latency.
            sleep: Awaitable used for backoff waits.
        """
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._coin_ids = {s.upper(): c for s, c in (coin_ids or COINGECKO_IDS).items()}
        self._rate_limiter = rate_limiter or RateLimiter()
        self._retry_delays = tuple(retry_delays)
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._clock = clock or SystemClock()
        self._metrics = metrics or MetricsCollector()
        self._sleep = sleep
        self._session: aiohttp.ClientSession | None = None

    @property
    def symbols(self) -> list[str]:
        """Symbols this client can fetch."""
        return list(self._coin_ids)

    @property
    def max_attempts(self) -> int:
        """Total OHLC attempts (initial request plus retries)."""
        return len(self._retry_delays) + 1

    def coin_id(self, symbol: str) -> str:
        """
        Map a symbol to its upstream coin id.

        Raises:
            UnknownAssetError: If the symbol is not tracked.
        """
        coin_id = self._coin_ids.get(symbol.upper())
        if coin_id is None:
            raise UnknownAssetError(symbol)
        return coin_id

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=20,
                keepalive_timeout=30,
                enable_cleanup_closed=True,
            )

            headers = {"Accept": "application/json"}
            if self._api_key:
                headers[API_KEY_HEADER] = self._api_key

            self._session = aiohttp.ClientSession(
                connector=connector,
                headers=headers,
                timeout=self._timeout,
                json_serialize=lambda x: orjson.dumps(x).decode(),
            )

        return self._session

    async def close(self) -> None:
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    @asynccontextmanager
    async def _request_context(self) -> AsyncIterator[aiohttp.ClientSession]:
        """Context manager for making requests."""
        session = await self._get_session()
        try:
            yield session
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientUpstreamError(f"Network error: {e!r}") from e

    async def _request(
        self,
        endpoint: str,
        params: dict[str, Any],
        metric: str = "upstream",
    ) -> Any:
        """
        Make a GET request.

        Args:
            endpoint: API endpoint relative to the base URL.
            params: Query parameters.
            metric: Latency metric name.

        Returns:
            Parsed JSON response.

        Raises:
            RateLimitedError: On HTTP 429.
            TransientUpstreamError: On network errors and 5xx responses.
            UpstreamAPIError: On other error responses or invalid JSON.
        """
        await self._rate_limiter.acquire()
        self._metrics.increment_counter(UPSTREAM_REQUESTS)

        url = f"{self._base_url}{endpoint}"

        try:
            with LatencyTimer() as timer:
                async with self._request_context() as session:
                    async with session.get(url, params=params) as response:
                        data = await self._handle_response(response)
        except RateLimitedError:
            self._metrics.increment_counter(UPSTREAM_RATE_LIMITED)
            raise
        except UpstreamError:
            self._metrics.increment_counter(UPSTREAM_ERRORS)
            raise

        self._metrics.record_latency(metric, timer.latency_us)
        return data

    async def _handle_response(self, response: aiohttp.ClientResponse) -> Any:
        """Validate status and parse the body."""
        text = await response.text()

        if response.status == 429:
            raise RateLimitedError("Rate limited by upstream", status=429)
        if response.status >= 500:
            raise TransientUpstreamError(
                f"Upstream error {response.status}: {text[:200]}", status=response.status
            )
        if response.status >= 400:
            raise UpstreamAPIError(
                f"API error {response.status}: {text[:200]}", status=response.status
            )

        try:
            return orjson.loads(text)
        except orjson.JSONDecodeError as e:
            raise UpstreamAPIError(f"Invalid JSON response: {e}") from e

    # =========================================================================
    # Spot Prices
    # =========================================================================

    async def fetch_spot_prices(
        self,
        symbols: Iterable[str] | None = None,
    ) -> dict[str, PriceSample]:
        """
        Fetch current USD prices with 24h change and volume.

        A rate-limited response is a soft failure: it is logged and an empty
        result is returned so the caller keeps its previous values until the
        next poll.

        Args:
            symbols: Symbols to fetch; defaults to all tracked assets.

        Returns:
            Samples keyed by symbol. Coins missing from the response are skipped.

        Raises:
            UnknownAssetError: If a symbol is not tracked.
            UpstreamError: On failures other than rate limiting.
        """
        wanted = [s.upper() for s in (symbols or self.symbols)]
        ids = {self.coin_id(symbol): symbol for symbol in wanted}

        params = {
            "ids": ",".join(ids),
            "vs_currencies": QUOTE_CURRENCY,
            "include_24hr_change": "true",
            "include_24hr_vol": "true",
            "include_last_updated_at": "true",
        }

        try:
            data = await self._request(ENDPOINT_SIMPLE_PRICE, params, metric="upstream.spot")
        except RateLimitedError:
            logger.warning("Spot prices rate limited, skipping this cycle")
            return {}

        try:
            parsed = SimplePriceResponse.model_validate(data)
        except ValidationError as e:
            raise UpstreamAPIError(f"Invalid price payload: {e}") from e

        now = self._clock.now_ms()
        samples: dict[str, PriceSample] = {}
        for coin_id, symbol in ids.items():
            entry = parsed.get(coin_id)
            if entry is None:
                logger.debug(f"No price for {symbol} ({coin_id}) in response")
                continue
            samples[symbol] = entry.to_sample(symbol, fallback_ms=now)

        return samples

    # =========================================================================
    # OHLC Candles
    # =========================================================================

    async def fetch_ohlc(self, symbol: str, interval: str) -> list[Candle]:
        """
        Fetch OHLC candles for a chart interval.

        Transient failures (rate limits, network errors, 5xx) are retried after
        each configured delay. The client never synthesizes data: once every
        attempt has failed, the last error is raised for the caller to handle.

        Args:
            symbol: Asset symbol.
            interval: Chart interval (e.g. "1H", "24H", "7D").

        Returns:
            Candles in upstream order (ascending time).

        Raises:
            UnknownAssetError: If the symbol is not tracked.
            UpstreamError: When the request fails permanently or retries run out.
        """
        coin_id = self.coin_id(symbol)
        timeframe = resolve_timeframe(interval)
        endpoint = ENDPOINT_OHLC.format(coin_id=coin_id)
        params = {"vs_currency": QUOTE_CURRENCY, "days": str(timeframe.upstream_days)}

        attempt = 0
        while True:
            attempt += 1
            try:
                data = await self._request(endpoint, params, metric="upstream.ohlc")
                break
            except TransientUpstreamError as e:
                if attempt > len(self._retry_delays):
                    logger.error(
                        f"OHLC for {symbol} failed after {attempt} attempts: {e}"
                    )
                    raise

                delay = self._retry_delays[attempt - 1]
                logger.warning(
                    f"OHLC for {symbol} attempt {attempt}/{self.max_attempts} failed "
                    f"({e}), retrying in {delay:.1f}s"
                )
                self._metrics.increment_counter(UPSTREAM_RETRIES)
                await self._sleep(delay)

        try:
            rows = OHLC_ADAPTER.validate_python(data)
        except ValidationError as e:
            raise UpstreamAPIError(f"Invalid OHLC payload: {e}") from e

        return rows_to_candles(rows)

    async def __aenter__(self) -> "CoinGeckoClient":
        await self._get_session()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
