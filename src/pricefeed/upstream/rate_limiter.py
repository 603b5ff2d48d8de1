"""
Token bucket rate limiter for upstream API requests.

Keeps the process under the market-data provider's per-minute call budget
so that rate-limit responses stay the exception rather than the rule.
"""

import asyncio
from dataclasses import dataclass, field

from pricefeed.config.constants import DEFAULT_CALLS_PER_MINUTE
from pricefeed.utils.time import get_timestamp_ms


@dataclass
class TokenBucket:
    """
    Token bucket implementation for rate limiting.

    Tokens are added at a constant rate up to a maximum capacity.
    Each request consumes one or more tokens.
    """

    capacity: int
    refill_rate: float  # tokens per second
    tokens: float = field(init=False)
    last_refill: int = field(init=False)  # milliseconds
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        """Initialize with full bucket."""
        self.tokens = float(self.capacity)
        self.last_refill = get_timestamp_ms()

    def _refill(self) -> None:
        """Add tokens based on elapsed time."""
        now = get_timestamp_ms()
        elapsed_seconds = (now - self.last_refill) / 1000.0

        self.tokens = min(
            self.capacity,
            self.tokens + (elapsed_seconds * self.refill_rate),
        )
        self.last_refill = now

    async def acquire(self, tokens: int = 1) -> float:
        """
        Acquire tokens, waiting if necessary.

        Args:
            tokens: Number of tokens to acquire.

        Returns:
            Seconds spent waiting for the tokens.
        """
        async with self._lock:
            self._refill()

            if self.tokens >= tokens:
                self.tokens -= tokens
                return 0.0

            tokens_needed = tokens - self.tokens
            wait_seconds = tokens_needed / self.refill_rate

            await asyncio.sleep(wait_seconds)
            self._refill()
            self.tokens -= tokens
            return wait_seconds

    async def try_acquire(self, tokens: int = 1) -> bool:
        """
        Try to acquire tokens without waiting.

        Returns:
            True if tokens were acquired, False if not enough available.
        """
        async with self._lock:
            self._refill()

            if self.tokens >= tokens:
                self.tokens -= tokens
                return True
            return False


class RateLimiter:
    """
    Per-minute call budget for the upstream market-data API.

    The bucket starts full, so a cold start can burst up to the whole
    per-minute budget before requests begin to queue.
    """

    def __init__(self, calls_per_minute: int = DEFAULT_CALLS_PER_MINUTE) -> None:
        """
        Initialize rate limiter.

        Args:
            calls_per_minute: Maximum upstream calls per rolling minute.
        """
        self._calls_per_minute = calls_per_minute
        self._bucket = TokenBucket(
            capacity=calls_per_minute,
            refill_rate=calls_per_minute / 60.0,
        )

    async def acquire(self) -> float:
        """Wait for permission to issue one upstream call; returns seconds waited."""
        return await self._bucket.acquire(1)

    async def try_acquire(self) -> bool:
        """Take a call slot if one is free right now."""
        return await self._bucket.try_acquire(1)

    @property
    def calls_per_minute(self) -> int:
        return self._calls_per_minute

    @property
    def available(self) -> float:
        """Get approximate number of calls available right now."""
        return self._bucket.tokens
