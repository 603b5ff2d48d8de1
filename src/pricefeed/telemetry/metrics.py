"""
Metrics collection for service monitoring.

Tracks upstream latencies, polling counters and candle fallback tiers
with efficient in-memory storage.
"""

import time
from collections import deque
from dataclasses import dataclass

from pricefeed.config.constants import LATENCY_WINDOW_SIZE


# Counter names shared by the components that record them
UPSTREAM_REQUESTS = "upstream.requests"
UPSTREAM_RATE_LIMITED = "upstream.rate_limited"
UPSTREAM_ERRORS = "upstream.errors"
UPSTREAM_RETRIES = "upstream.retries"
POLL_TICKS = "poll.ticks"
POLL_FAILURES = "poll.failures"
PRICES_DISCARDED = "prices.out_of_order"
LIVENESS_TERMINATED = "live.terminated"


def candle_tier_counter(tier: str) -> str:
    """Counter name for a candle resolution tier."""
    return f"candles.{tier}"


@dataclass
class LatencyStats:
    """Aggregated latency statistics."""

    min_us: int = 0
    max_us: int = 0
    avg_us: float = 0.0
    p50_us: int = 0
    p95_us: int = 0
    p99_us: int = 0
    count: int = 0


class MetricsCollector:
    """
    Collects and aggregates service metrics.

    Features:
    - Rolling window latency tracking
    - Counter-based event tracking
    - Per-minute rates since start
    """

    def __init__(
        self,
        latency_window_size: int = LATENCY_WINDOW_SIZE,
    ) -> None:
        """
        Initialize metrics collector.

        Args:
            latency_window_size: Number of samples to keep for latency stats.
        """
        self._window_size = latency_window_size
        self._latencies: dict[str, deque[int]] = {}
        self._counters: dict[str, int] = {}
        self._start_time = time.time()

    def record_latency(self, name: str, latency_us: int) -> None:
        """
        Record a latency measurement.

        Args:
            name: Metric name (e.g., "upstream.ohlc").
            latency_us: Latency in microseconds.
        """
        if name not in self._latencies:
            self._latencies[name] = deque(maxlen=self._window_size)

        self._latencies[name].append(latency_us)

    def increment_counter(self, name: str, value: int = 1) -> None:
        """
        Increment a counter.

        Args:
            name: Counter name.
            value: Amount to increment.
        """
        self._counters[name] = self._counters.get(name, 0) + value

    def get_counter(self, name: str) -> int:
        """Get counter value."""
        return self._counters.get(name, 0)

    def get_latency_stats(self, name: str) -> LatencyStats:
        """
        Get latency statistics for a metric.

        Args:
            name: Metric name.

        Returns:
            LatencyStats with aggregated values.
        """
        samples = self._latencies.get(name)
        if not samples:
            return LatencyStats()

        sorted_samples = sorted(samples)
        n = len(sorted_samples)

        return LatencyStats(
            min_us=sorted_samples[0],
            max_us=sorted_samples[-1],
            avg_us=sum(sorted_samples) / n,
            p50_us=sorted_samples[n // 2],
            p95_us=sorted_samples[int(n * 0.95)],
            p99_us=sorted_samples[int(n * 0.99)] if n > 1 else sorted_samples[-1],
            count=n,
        )

    @property
    def uptime_seconds(self) -> float:
        """Get uptime in seconds."""
        return time.time() - self._start_time

    def get_rates(self) -> dict[str, float]:
        """
        Calculate per-minute rates for counters.

        Returns:
            Dict of counter -> rate per minute.
        """
        minutes = self.uptime_seconds / 60
        if minutes == 0:
            return {}

        return {f"{name}_per_min": count / minutes for name, count in self._counters.items()}

    def to_dict(self) -> dict[str, object]:
        """Export all metrics as a dict."""
        latencies = {}
        for name in self._latencies:
            stats = self.get_latency_stats(name)
            latencies[name] = {
                "min": stats.min_us,
                "max": stats.max_us,
                "avg": stats.avg_us,
                "p50": stats.p50_us,
                "p99": stats.p99_us,
                "count": stats.count,
            }

        return {
            "uptime_seconds": self.uptime_seconds,
            "counters": dict(self._counters),
            "rates": self.get_rates(),
            "latencies": latencies,
        }

    def reset(self) -> None:
        """Reset all metrics."""
        self._latencies.clear()
        self._counters.clear()
        self._start_time = time.time()
