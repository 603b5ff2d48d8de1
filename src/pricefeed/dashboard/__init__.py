"""HTTP and websocket surface of the price feed."""

from pricefeed.dashboard.server import create_app, main


__all__ = [
    "create_app",
    "main",
]
