"""
Live price ingestion and candle service.

Polls an upstream market-data API, keeps a rolling per-asset price history,
serves OHLC candles with graceful degradation, and pushes live updates to
connected subscribers.
"""

__version__ = "1.0.0"
__author__ = "Tim"
