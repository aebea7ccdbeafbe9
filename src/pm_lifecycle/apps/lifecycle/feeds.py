"""Collaborator interfaces and their Polymarket implementations.

The drivers depend only on ``MarketFeed`` (snapshots per tick) and
``OrderBookSource`` (top-of-book quotes). The Polymarket adapters convert
typed client models into engine models and translate transport failures
into ``FeedUnavailable``.
"""

import logging
from typing import Protocol

import httpx

from pm_lifecycle.apps.lifecycle.exceptions import FeedUnavailable
from pm_lifecycle.apps.lifecycle.models import BookQuote, MarketSnapshot
from pm_lifecycle.clients.polymarket.client import PolymarketClient
from pm_lifecycle.clients.polymarket.exceptions import PolymarketAPIError
from pm_lifecycle.clients.polymarket.models import Market, OrderBook
from pm_lifecycle.core.timestamps import parse_timestamp

logger = logging.getLogger(__name__)

_DEFAULT_MAX_MARKETS = 15000


class MarketFeed(Protocol):
    """Collaborator that supplies the current market snapshots."""

    async def fetch_snapshots(self, now: int) -> list[MarketSnapshot]:
        """Return one snapshot per market as of ``now``.

        Raises:
            FeedUnavailable: If the snapshots could not be fetched.

        """
        ...


def market_to_snapshot(market: Market, now: int) -> MarketSnapshot | None:
    """Convert a typed Polymarket market into a snapshot.

    Returns:
        The snapshot, or ``None`` if the end date cannot be parsed.

    """
    try:
        end_time = parse_timestamp(market.end_date)
    except ValueError:
        logger.debug("Skipping market %s with end date %r", market.market_id, market.end_date)
        return None
    return MarketSnapshot(
        timestamp=now,
        market_id=market.market_id,
        question=market.question,
        outcome_prices=tuple(t.price for t in market.tokens),
        liquidity=market.liquidity,
        volume_24h=market.volume_24h,
        end_time=end_time,
        outcomes=tuple(t.outcome for t in market.tokens),
        token_ids=tuple(t.token_id for t in market.tokens),
        tags=market.tags,
        active=market.active,
    )


def book_to_quote(book: OrderBook) -> BookQuote | None:
    """Reduce an order book to its best levels, or ``None`` if a side is empty."""
    bid = book.best_bid
    ask = book.best_ask
    if bid is None or ask is None:
        return None
    return BookQuote(
        token_id=book.token_id,
        best_bid=bid.price,
        bid_size=bid.size,
        best_ask=ask.price,
        ask_size=ask.size,
    )


class PolymarketMarketFeed:
    """``MarketFeed`` backed by the Gamma market listing.

    Args:
        client: Polymarket client.
        max_markets: Upper bound on the number of markets scanned per tick.

    """

    def __init__(self, client: PolymarketClient, max_markets: int = _DEFAULT_MAX_MARKETS) -> None:
        """Initialize the feed."""
        self._client = client
        self._max_markets = max_markets

    async def fetch_snapshots(self, now: int) -> list[MarketSnapshot]:
        """Fetch every active market and convert it to a snapshot.

        Raises:
            FeedUnavailable: If the Gamma API could not be reached.

        """
        try:
            markets = await self._client.list_markets(max_markets=self._max_markets)
        except (PolymarketAPIError, httpx.HTTPError) as exc:
            msg = f"market listing failed: {exc}"
            raise FeedUnavailable(msg) from exc
        snapshots: list[MarketSnapshot] = []
        for market in markets:
            try:
                snapshot = market_to_snapshot(market, now)
            except ValueError:
                logger.debug("Skipping invalid market %s", market.market_id, exc_info=True)
                continue
            if snapshot is not None:
                snapshots.append(snapshot)
        logger.info("Fetched %d market snapshots", len(snapshots))
        return snapshots


class PolymarketOrderBookSource:
    """``OrderBookSource`` backed by the CLOB batch order-book endpoint."""

    def __init__(self, client: PolymarketClient) -> None:
        """Initialize the source with a Polymarket client."""
        self._client = client

    async def get_quotes(self, token_ids: list[str]) -> dict[str, BookQuote]:
        """Return top-of-book quotes; tokens without a usable book are omitted.

        Raises:
            FeedUnavailable: If the CLOB API could not be reached.

        """
        try:
            books = await self._client.get_order_books(token_ids, batch_size=len(token_ids) or 1)
        except (PolymarketAPIError, httpx.HTTPError) as exc:
            msg = f"order book lookup failed: {exc}"
            raise FeedUnavailable(msg) from exc
        quotes: dict[str, BookQuote] = {}
        for token_id, book in books.items():
            quote = book_to_quote(book)
            if quote is not None:
                quotes[token_id] = quote
        return quotes

