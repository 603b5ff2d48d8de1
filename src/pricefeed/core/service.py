"""
Price service facade.

Wires the upstream client, history buffer, candle resolver, broadcaster and
polling scheduler together and exposes the read operations used by the HTTP
and websocket layers.
"""

import logging
from collections.abc import Iterable
from typing import Protocol

from pricefeed.config.constants import (
    DEFAULT_CANDLE_LIMIT,
    DEFAULT_POLL_INTERVAL,
    EVENT_PRICE_UPDATE,
)
from pricefeed.config.settings import Settings
from pricefeed.core.scheduler import PollingScheduler
from pricefeed.core.types import Candle, HistoryPoint, PriceSample
from pricefeed.market.candles import CandleCache, CandleResolver
from pricefeed.market.history import PriceHistoryBuffer
from pricefeed.realtime.broadcaster import LiveUpdateBroadcaster
from pricefeed.telemetry.metrics import POLL_TICKS, PRICES_DISCARDED, MetricsCollector
from pricefeed.upstream.client import CoinGeckoClient
from pricefeed.upstream.rate_limiter import RateLimiter
from pricefeed.utils.time import Clock, SystemClock


logger = logging.getLogger(__name__)


class PriceSource(Protocol):
    """Upstream surface needed by the service."""

    async def fetch_spot_prices(
        self,
        symbols: Iterable[str] | None = None,
    ) -> dict[str, PriceSample]: ...

    async def fetch_ohlc(self, symbol: str, interval: str) -> list[Candle]: ...

    async def close(self) -> None: ...


class PriceService:
    """
    Current prices, price history and candles for the tracked assets.

    Every poll updates the current-price map and the history buffer, then
    pushes a `price_update` event to all live subscribers.
    """

    def __init__(
        self,
        client: PriceSource,
        history: PriceHistoryBuffer,
        resolver: CandleResolver,
        broadcaster: LiveUpdateBroadcaster,
        clock: Clock | None = None,
        metrics: MetricsCollector | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        """
        Initialize the service.

        Args:
            client: Upstream price source.
            history: Rolling price history.
            resolver: Candle resolver sharing the same history buffer.
            broadcaster: Live update fan-out.
            clock: Time source for broadcast timestamps.
            metrics: Shared metrics collector.
            poll_interval: Seconds between polls.
        """
        self._client = client
        self._history = history
        self._resolver = resolver
        self._broadcaster = broadcaster
        self._clock = clock or SystemClock()
        self._metrics = metrics or MetricsCollector()

        self._prices: dict[str, PriceSample] = {}
        self._scheduler = PollingScheduler(
            self.refresh_prices,
            interval=poll_interval,
            metrics=self._metrics,
            name="prices",
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: PriceSource | None = None,
        clock: Clock | None = None,
    ) -> "PriceService":
        """
        Build a fully wired service from settings.

        Args:
            settings: Application settings.
            client: Upstream source override (a CoinGecko client by default).
            clock: Time source override.

        Returns:
            A service ready to be started.
        """
        clock = clock or SystemClock()
        metrics = MetricsCollector()

        if client is None:
            api_key = settings.coingecko_api_key
            client = CoinGeckoClient(
                base_url=settings.coingecko_base_url,
                api_key=api_key.get_secret_value() if api_key else None,
                rate_limiter=RateLimiter(settings.upstream_calls_per_minute),
                retry_delays=settings.ohlc_retry_delays,
                timeout_seconds=settings.http_timeout_seconds,
                clock=clock,
                metrics=metrics,
            )

        history = PriceHistoryBuffer(
            clock=clock,
            retention_hours=settings.history_retention_hours,
            max_points=settings.history_max_points,
        )
        broadcaster = LiveUpdateBroadcaster(
            heartbeat_interval=settings.heartbeat_interval_seconds,
            clock=clock,
            metrics=metrics,
        )

        service = cls(
            client=client,
            history=history,
            resolver=CandleResolver(
                client=client,
                history=history,
                cache=CandleCache(),
                clock=clock,
                ttl_seconds=settings.candle_cache_ttl_seconds,
                metrics=metrics,
            ),
            broadcaster=broadcaster,
            clock=clock,
            metrics=metrics,
            poll_interval=settings.poll_interval_seconds,
        )
        service.resolver.set_spot_lookup(service.get_price)
        return service

    # =========================================================================
    # Polling
    # =========================================================================

    async def refresh_prices(self) -> list[PriceSample]:
        """
        Poll the upstream once and publish the result.

        Out-of-order samples are discarded. An empty upstream result leaves
        the previous prices untouched and publishes nothing.

        Returns:
            Samples accepted in this poll.
        """
        self._metrics.increment_counter(POLL_TICKS)
        samples = await self._client.fetch_spot_prices()
        if not samples:
            logger.debug("No spot prices received this cycle")
            return []

        accepted: list[PriceSample] = []
        for symbol, sample in samples.items():
            key = symbol.upper()
            if not sample.is_newer_than(self._prices.get(key)):
                self._metrics.increment_counter(PRICES_DISCARDED)
                logger.debug(f"Discarding stale sample for {key} at {sample.timestamp}")
                continue

            self._prices[key] = sample
            accepted.append(sample)
            if sample.price > 0:
                self._history.append(key, sample.price, sample.timestamp)

        if accepted:
            await self._broadcaster.broadcast_all(
                EVENT_PRICE_UPDATE,
                {
                    "prices": [sample.to_dict() for sample in self.get_prices()],
                    "timestamp": self._clock.now_ms(),
                },
            )
            logger.debug(f"Updated {len(accepted)} price(s)")

        return accepted

    # =========================================================================
    # Queries
    # =========================================================================

    def get_prices(self) -> list[PriceSample]:
        """Current sample of every asset polled at least once."""
        return list(self._prices.values())

    def get_price(self, symbol: str) -> PriceSample | None:
        """Current sample of one asset, or None before its first poll."""
        return self._prices.get(symbol.upper())

    def get_historical_prices(self, symbol: str, minutes: float = 60) -> list[HistoryPoint]:
        """Price points from the last `minutes`, oldest first."""
        return self._history.query(symbol, minutes)

    async def get_candles(
        self,
        symbol: str,
        interval: str,
        limit: int = DEFAULT_CANDLE_LIMIT,
    ) -> list[Candle]:
        """Chart candles; never empty."""
        return await self._resolver.get_candles(symbol, interval, limit)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start polling and the subscriber heartbeat."""
        logger.info("Starting price service...")
        await self._scheduler.start()
        await self._broadcaster.start()

    async def stop(self) -> None:
        """Stop polling, close live connections and release the HTTP session."""
        logger.info("Stopping price service...")
        await self._scheduler.stop()
        await self._broadcaster.stop()
        await self._client.close()

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def broadcaster(self) -> LiveUpdateBroadcaster:
        return self._broadcaster

    @property
    def resolver(self) -> CandleResolver:
        return self._resolver

    @property
    def history(self) -> PriceHistoryBuffer:
        return self._history

    @property
    def scheduler(self) -> PollingScheduler:
        return self._scheduler

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    def status(self) -> dict[str, object]:
        """Health snapshot for the status endpoint."""
        return {
            "polling": self._scheduler.is_running,
            "ticks": self._scheduler.tick_count,
            "trackedPrices": len(self._prices),
            "connections": self._broadcaster.stats(),
            "metrics": self._metrics.to_dict(),
        }
