#!/usr/bin/env python3
"""
Upstream Probe Script.

Fetches live spot prices and candles from CoinGecko for every tracked asset
without starting the server. Useful to check connectivity and rate limits.

Usage:
    python scripts/probe_upstream.py [INTERVAL]
"""

import asyncio
import sys
from pathlib import Path

# Add src to path for direct execution
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pricefeed.config.constants import DEFAULT_TIMEFRAME
from pricefeed.core.exceptions import PriceFeedError
from pricefeed.telemetry.metrics import MetricsCollector
from pricefeed.upstream.client import CoinGeckoClient
from pricefeed.utils.time import format_timestamp_ms


async def main(interval: str) -> int:
    """Print spot prices and candle summaries."""
    print("=" * 60)
    print("  UPSTREAM PROBE")
    print("=" * 60)
    print()

    metrics = MetricsCollector()

    async with CoinGeckoClient(metrics=metrics) as client:
        print("Fetching spot prices...")
        try:
            samples = await client.fetch_spot_prices()
        except PriceFeedError as e:
            print(f"Spot request failed: {e}")
            return 1

        if not samples:
            print("No prices returned (rate limited?)")
        for symbol, sample in samples.items():
            print(
                f"  {symbol:<5} {sample.price:>14,.4f} USD  "
                f"{sample.change_percent_24h:+7.2f}%  "
                f"@ {format_timestamp_ms(sample.timestamp)}"
            )
        print()

        print(f"Fetching {interval} candles...")
        for symbol in client.symbols:
            try:
                candles = await client.fetch_ohlc(symbol, interval)
            except PriceFeedError as e:
                print(f"  {symbol:<5} failed: {e}")
                continue

            if not candles:
                print(f"  {symbol:<5} no candles")
                continue
            first, last = candles[0], candles[-1]
            print(
                f"  {symbol:<5} {len(candles):>4} candles  "
                f"{format_timestamp_ms(first.time)} -> {format_timestamp_ms(last.time)}  "
                f"last close {last.close:,.4f}"
            )
        print()

    # Summary
    print("=" * 60)
    print("  SUMMARY")
    print("=" * 60)
    print()
    for name, value in sorted(metrics.to_dict()["counters"].items()):  # type: ignore[union-attr]
        print(f"  {name:<24} {value}")

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else DEFAULT_TIMEFRAME)))
