"""Telemetry module for logging and metrics."""

from pricefeed.telemetry.logger import FeedFormatter, LogPipeline, setup_logging
from pricefeed.telemetry.metrics import LatencyStats, MetricsCollector


__all__ = [
    "FeedFormatter",
    "LatencyStats",
    "LogPipeline",
    "MetricsCollector",
    "setup_logging",
]
