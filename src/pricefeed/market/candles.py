"""
Candle cache and fallback resolver.

Chart requests must always be answered. Candles are resolved through an
ordered chain of strategies and the first one that yields data wins:

    fresh cache -> upstream fetch -> stale cache -> history reconstruction
    -> flat candle at the current spot price -> all-zero candle

Degraded data is acceptable; an empty answer or an exception is not.
"""

import asyncio
import logging
import weakref
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

from pricefeed.config.constants import DEFAULT_CANDLE_CACHE_TTL, DEFAULT_CANDLE_LIMIT
from pricefeed.core.exceptions import PriceFeedError
from pricefeed.core.timeframes import Timeframe, resolve_timeframe
from pricefeed.core.types import Candle, CandleCacheEntry, HistoryPoint, PriceSample
from pricefeed.market.history import PriceHistoryBuffer
from pricefeed.telemetry.metrics import MetricsCollector, candle_tier_counter
from pricefeed.utils.time import Clock, SystemClock


logger = logging.getLogger(__name__)


class OHLCSource(Protocol):
    """Anything that can fetch upstream candles (the CoinGecko client in production)."""

    async def fetch_ohlc(self, symbol: str, interval: str) -> list[Candle]: ...


SpotLookup = Callable[[str], PriceSample | None]


@dataclass(slots=True, frozen=True)
class CandleRequest:
    """A single candle query as seen by the resolution strategies."""

    symbol: str
    timeframe: Timeframe
    limit: int
    now: int

    @property
    def window_start(self) -> int:
        return self.timeframe.window_start(self.now)


CandleStrategy = Callable[[CandleRequest], Awaitable[list[Candle] | None]]


class CandleCache:
    """
    Candle series keyed by (symbol, timeframe).

    Entries are overwritten by newer fetches and live for the process lifetime.
    """

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], CandleCacheEntry] = {}

    def get(self, symbol: str, timeframe: str) -> CandleCacheEntry | None:
        return self._entries.get((symbol.upper(), timeframe))

    def put(
        self,
        symbol: str,
        timeframe: str,
        candles: list[Candle],
        fetched_at: int,
    ) -> CandleCacheEntry:
        """Store (or replace) the series for a key."""
        entry = CandleCacheEntry(
            symbol=symbol.upper(),
            timeframe=timeframe,
            candles=list(candles),
            fetched_at=fetched_at,
        )
        self._entries[entry.key] = entry
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: tuple[str, str]) -> bool:
        symbol, timeframe = key
        return (symbol.upper(), timeframe) in self._entries


def build_candles_from_history(
    points: Iterable[HistoryPoint],
    timeframe: Timeframe,
) -> list[Candle]:
    """
    Aggregate time-ordered price points into fixed-width candles.

    Each bucket's first/max/min/last price become open/high/low/close, so
    every candle satisfies low <= open, close <= high. A bucket holding a
    single point yields a flat candle.

    Args:
        points: Price points sorted by ascending timestamp.
        timeframe: View whose bucket width sets the candle size.

    Returns:
        One candle per non-empty bucket, oldest first.
    """
    candles: list[Candle] = []
    bucket: int | None = None
    open_ = high = low = close = 0.0

    for point in points:
        start = timeframe.bucket_start(point.timestamp)
        if start != bucket:
            if bucket is not None:
                candles.append(Candle(bucket, open_, high, low, close))
            bucket = start
            open_ = high = low = close = point.price
        else:
            high = max(high, point.price)
            low = min(low, point.price)
            close = point.price

    if bucket is not None:
        candles.append(Candle(bucket, open_, high, low, close))

    return candles


class CandleResolver:
    """
    Serves OHLC candles with multi-tier fallback.

    Features:
    - Short-TTL cache per (symbol, timeframe)
    - Upstream fetch (retries are owned by the client)
    - Stale cache, history reconstruction and synthetic candles as fallbacks
    - Per-key request serialization so concurrent callers share one fetch
    - Never raises, never returns an empty list
    """

    def __init__(
        self,
        client: OHLCSource,
        history: PriceHistoryBuffer,
        cache: CandleCache | None = None,
        spot_lookup: SpotLookup | None = None,
        clock: Clock | None = None,
        ttl_seconds: float = DEFAULT_CANDLE_CACHE_TTL,
        metrics: MetricsCollector | None = None,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            client: Upstream OHLC source.
            history: Local price history used for reconstruction.
            cache: Candle cache (a private one is created if omitted).
            spot_lookup: Returns the current spot sample for a symbol.
            clock: Time source.
            ttl_seconds: Freshness window of cache entries.
            metrics: Collector for per-tier counters.
        """
        self._client = client
        self._history = history
        self._cache = cache if cache is not None else CandleCache()
        self._spot_lookup = spot_lookup
        self._clock = clock or SystemClock()
        self._ttl_ms = int(ttl_seconds * 1000)
        self._metrics = metrics or MetricsCollector()
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

        self._strategies: list[tuple[str, CandleStrategy]] = [
            ("fresh_cache", self._from_fresh_cache),
            ("upstream", self._from_upstream),
            ("stale_cache", self._from_stale_cache),
            ("history", self._from_history),
            ("spot_price", self._from_spot_price),
            ("zero", self._zero_candle),
        ]

    @property
    def cache(self) -> CandleCache:
        return self._cache

    def set_spot_lookup(self, spot_lookup: SpotLookup) -> None:
        """Attach the current-price lookup once the owning service exists."""
        self._spot_lookup = spot_lookup

    @property
    def tiers(self) -> list[str]:
        """Strategy names in resolution order."""
        return [name for name, _ in self._strategies]

    def _lock_for(self, key: tuple[str, str]) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def get_candles(
        self,
        symbol: str,
        interval: str,
        limit: int = DEFAULT_CANDLE_LIMIT,
    ) -> list[Candle]:
        """
        Resolve candles for a chart.

        Args:
            symbol: Asset symbol (case-insensitive).
            interval: Chart interval; unknown values use the default view.
            limit: Maximum number of candles returned (at least one).

        Returns:
            A non-empty list of candles, oldest first.
        """
        symbol = symbol.upper()
        timeframe = resolve_timeframe(interval)
        lock = self._lock_for((symbol, timeframe.key))

        async with lock:
            request = CandleRequest(
                symbol=symbol,
                timeframe=timeframe,
                limit=max(1, limit),
                now=self._clock.now_ms(),
            )

            for tier, strategy in self._strategies:
                try:
                    candles = await strategy(request)
                except Exception:
                    logger.exception(
                        f"Candle tier {tier} failed",
                        extra={"symbol": request.symbol, "interval": timeframe.key},
                    )
                    continue

                if candles:
                    self._metrics.increment_counter(candle_tier_counter(tier))
                    if tier not in ("fresh_cache", "upstream"):
                        logger.info(
                            f"Serving candles from {tier} fallback",
                            extra={"symbol": request.symbol, "interval": timeframe.key},
                        )
                    return candles[-request.limit :]

        return [Candle.zero()]

    def _window(self, candles: list[Candle], request: CandleRequest) -> list[Candle]:
        """
        Drop candles older than the timeframe's lookback window.

        The upstream only offers coarse granularity for some ranges; if the
        filter would remove every candle, the newest one is kept.
        """
        start = request.window_start
        windowed = [c for c in candles if c.time >= start]
        return windowed or candles[-1:]

    # =========================================================================
    # Resolution Strategies
    # =========================================================================

    async def _from_fresh_cache(self, request: CandleRequest) -> list[Candle] | None:
        entry = self._cache.get(request.symbol, request.timeframe.key)
        if entry is None or not entry.candles:
            return None
        if not entry.is_fresh(request.now, self._ttl_ms):
            return None
        return self._window(entry.candles, request)

    async def _from_upstream(self, request: CandleRequest) -> list[Candle] | None:
        try:
            candles = await self._client.fetch_ohlc(request.symbol, request.timeframe.key)
        except PriceFeedError as e:
            logger.warning(
                f"Upstream candles unavailable: {e}",
                extra={"symbol": request.symbol, "interval": request.timeframe.key},
            )
            return None

        if not candles:
            return None

        self._cache.put(
            request.symbol,
            request.timeframe.key,
            candles,
            fetched_at=self._clock.now_ms(),
        )
        return self._window(candles, request)

    async def _from_stale_cache(self, request: CandleRequest) -> list[Candle] | None:
        entry = self._cache.get(request.symbol, request.timeframe.key)
        if entry is None or not entry.candles:
            return None
        logger.debug(
            f"Using stale cache for {request.symbol} {request.timeframe.key} "
            f"(age {entry.age_ms(request.now) / 1000:.0f}s)"
        )
        return self._window(entry.candles, request)

    async def _from_history(self, request: CandleRequest) -> list[Candle] | None:
        # Query already restricts points to the lookback window
        points = self._history.query(request.symbol, request.timeframe.lookback_minutes)
        if not points:
            return None
        return build_candles_from_history(points, request.timeframe)

    async def _from_spot_price(self, request: CandleRequest) -> list[Candle] | None:
        price = 0.0
        if self._spot_lookup is not None:
            sample = self._spot_lookup(request.symbol)
            if sample is not None:
                price = sample.price

        if price <= 0:
            latest = self._history.latest(request.symbol)
            price = latest.price if latest else 0.0

        if price <= 0:
            return None
        return [Candle.flat(request.now, price)]

    async def _zero_candle(self, request: CandleRequest) -> list[Candle] | None:
        logger.warning("No price data, serving zero candle", extra={"symbol": request.symbol})
        return [Candle.zero()]
