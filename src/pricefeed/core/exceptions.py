"""Exception hierarchy shared across the price service."""


class PriceFeedError(Exception):
    """Base exception for price service errors."""


class UnknownAssetError(PriceFeedError):
    """Raised when a symbol has no upstream identifier."""

    def __init__(self, symbol: str) -> None:
        super().__init__(f"Unknown asset: {symbol}")
        self.symbol = symbol
