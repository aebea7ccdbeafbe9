"""Polymarket market-listing and order-book client."""

from pm_lifecycle.clients.polymarket.client import PolymarketClient
from pm_lifecycle.clients.polymarket.exceptions import (
    PolymarketAPIError,
    PolymarketError,
)
from pm_lifecycle.clients.polymarket.models import (
    Market,
    MarketToken,
    OrderBook,
    OrderLevel,
)

__all__ = [
    "Market",
    "MarketToken",
    "OrderBook",
    "OrderLevel",
    "PolymarketAPIError",
    "PolymarketClient",
    "PolymarketError",
]
