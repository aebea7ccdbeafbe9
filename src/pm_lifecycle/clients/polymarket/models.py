"""Typed data models for Polymarket prediction market data.

Provide frozen dataclasses that insulate the rest of the codebase from the
untyped dictionaries returned by the Gamma and CLOB APIs. All monetary
values use ``Decimal`` for precision.
"""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class OrderLevel:
    """Single price level in an order book.

    Args:
        price: Price of the level as a decimal between 0 and 1.
        size: Available quantity at this price level.

    """

    price: Decimal
    size: Decimal


@dataclass(frozen=True)
class OrderBook:
    """Typed order book snapshot for a Polymarket token.

    Contain the bid/ask ladder along with the computed spread and midpoint.
    Levels with a non-positive price or size are discarded during parsing,
    so ``bids[0]`` and ``asks[0]`` are always the best quotes when present.

    Args:
        token_id: CLOB token identifier for the market outcome.
        bids: Price levels on the buy side, ordered best-to-worst.
        asks: Price levels on the sell side, ordered best-to-worst.
        spread: Difference between best ask and best bid.
        midpoint: Average of best bid and best ask prices.

    """

    token_id: str
    bids: tuple[OrderLevel, ...]
    asks: tuple[OrderLevel, ...]
    spread: Decimal
    midpoint: Decimal

    @property
    def best_bid(self) -> OrderLevel | None:
        """Return the highest bid, or ``None`` for an empty bid side."""
        return self.bids[0] if self.bids else None

    @property
    def best_ask(self) -> OrderLevel | None:
        """Return the lowest ask, or ``None`` for an empty ask side."""
        return self.asks[0] if self.asks else None


@dataclass(frozen=True)
class MarketToken:
    """Represent one outcome token in a prediction market.

    Args:
        token_id: CLOB token identifier.
        outcome: Human-readable outcome label (e.g. "Yes" or "No").
        price: Current price between 0 and 1, reflecting implied probability.

    """

    token_id: str
    outcome: str
    price: Decimal


@dataclass(frozen=True)
class Market:
    """Typed representation of a Polymarket prediction market.

    Args:
        market_id: Gamma market identifier.
        condition_id: Unique identifier for the market condition.
        question: The prediction question.
        tokens: Outcome tokens with current prices.
        end_date: ISO-8601 date string when the market resolves.
        volume: Total trading volume in USD.
        volume_24h: Trading volume over the last 24 hours in USD.
        liquidity: Current available liquidity in USD.
        active: Whether the market is currently open for trading.
        tags: Category labels attached to the market.

    """

    market_id: str
    condition_id: str
    question: str
    tokens: tuple[MarketToken, ...]
    end_date: str
    volume: Decimal
    volume_24h: Decimal
    liquidity: Decimal
    active: bool
    tags: tuple[str, ...] = ()

    @property
    def is_binary(self) -> bool:
        """Return whether the market has exactly two outcome tokens."""
        return len(self.tokens) == 2  # noqa: PLR2004
