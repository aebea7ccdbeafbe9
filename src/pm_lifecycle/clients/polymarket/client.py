"""Typed async facade over the Polymarket Gamma and CLOB APIs.

Combine paged market listings from the Gamma API with batched order books
from the CLOB API. All public methods are async and return typed
dataclasses. CLOB calls go through the synchronous ``py-clob-client``
bridge in ``_clob_adapter`` and run in a worker thread.
"""

import asyncio
import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from pm_lifecycle.clients.polymarket import _clob_adapter
from pm_lifecycle.clients.polymarket._gamma_client import GammaClient
from pm_lifecycle.clients.polymarket.exceptions import PolymarketAPIError
from pm_lifecycle.clients.polymarket.models import Market, MarketToken, OrderBook, OrderLevel

logger = logging.getLogger(__name__)

_ZERO = Decimal(0)
_TWO = Decimal(2)
_DEFAULT_BOOK_BATCH = 10


class PolymarketClient:
    """Typed async client for Polymarket market listings and order books.

    Args:
        clob_url: Base URL for the Polymarket CLOB API.
        gamma_url: Base URL for the Gamma metadata API.
        timeout: Request timeout in seconds for Gamma requests.

    """

    CLOB_URL = "https://clob.polymarket.com"
    GAMMA_URL = GammaClient.BASE_URL

    def __init__(
        self,
        clob_url: str = CLOB_URL,
        gamma_url: str = GAMMA_URL,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the Polymarket client.

        Args:
            clob_url: Base URL for the Polymarket CLOB API.
            gamma_url: Base URL for the Gamma metadata API.
            timeout: Request timeout in seconds for Gamma requests.

        """
        self._gamma = GammaClient(base_url=gamma_url, timeout=timeout)
        self._clob_client: Any = _clob_adapter.create_clob_client(clob_url)
        self._clob_lock = asyncio.Lock()

    async def list_markets(self, *, max_markets: int = 15000) -> list[Market]:
        """Fetch and parse all active markets.

        Markets with fewer than two outcomes, mismatched outcome/price
        arrays, or unparseable fields are dropped.

        Args:
            max_markets: Upper bound on the number of markets scanned.

        Returns:
            Typed markets in listing order.

        Raises:
            PolymarketAPIError: When the Gamma API is unreachable.

        """
        raw_markets = await self._gamma.get_all_markets(max_markets=max_markets)
        markets: list[Market] = []
        for raw in raw_markets:
            try:
                market = self._parse_market(raw)
            except PolymarketAPIError:
                logger.debug("Skipping malformed market %s", raw.get("id"))
                continue
            if market is not None:
                markets.append(market)
        logger.info("Parsed %d usable markets", len(markets))
        return markets

    async def get_order_books(
        self,
        token_ids: list[str],
        *,
        batch_size: int = _DEFAULT_BOOK_BATCH,
    ) -> dict[str, OrderBook]:
        """Fetch typed order books in batches.

        Failed batches are logged and omitted from the result so callers
        can treat missing tokens as "unknown".

        Args:
            token_ids: CLOB token identifiers.
            batch_size: Number of tokens per ``/books`` request.

        Returns:
            Mapping of token id to parsed order book.

        """
        books: dict[str, OrderBook] = {}
        for start in range(0, len(token_ids), batch_size):
            batch = token_ids[start : start + batch_size]
            try:
                async with self._clob_lock:
                    raw_books = await asyncio.to_thread(
                        _clob_adapter.fetch_order_books, self._clob_client, batch
                    )
            except PolymarketAPIError as exc:
                logger.warning("Order book batch of %d tokens failed: %s", len(batch), exc)
                continue
            for index, raw in enumerate(raw_books):
                token_id = str(raw.get("asset_id") or (batch[index] if index < len(batch) else ""))
                if not token_id:
                    continue
                try:
                    books[token_id] = self._parse_order_book(token_id, raw)
                except PolymarketAPIError as exc:
                    logger.warning("Malformed order book for %s: %s", token_id, exc)
        return books

    async def close(self) -> None:
        """Close the Gamma HTTP client."""
        await self._gamma.close()

    async def __aenter__(self) -> "PolymarketClient":
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager."""
        await self.close()

    @staticmethod
    def _parse_market(raw: dict[str, Any]) -> Market | None:
        """Convert a raw Gamma API market dict into a typed Market.

        Args:
            raw: Market dictionary from the Gamma API.

        Returns:
            Typed Market, or ``None`` when the outcome arrays are unusable.

        """
        market_id = str(raw.get("id", ""))
        question = str(raw.get("question", ""))
        if not market_id or not question:
            return None
        tokens = _parse_tokens(raw)
        if len(tokens) < 2:  # noqa: PLR2004
            return None
        tags = tuple(
            str(tag.get("label", tag)) if isinstance(tag, dict) else str(tag)
            for tag in raw.get("tags") or ()
        )
        return Market(
            market_id=market_id,
            condition_id=str(raw.get("conditionId", raw.get("condition_id", ""))),
            question=question,
            tokens=tuple(tokens),
            end_date=str(raw.get("endDate", raw.get("end_date", "")) or ""),
            volume=_safe_decimal(raw.get("volume", "0")),
            volume_24h=_safe_decimal(raw.get("volume24hr", raw.get("volume", "0"))),
            liquidity=_safe_decimal(raw.get("liquidity", "0")),
            active=bool(raw.get("active", False)) and not bool(raw.get("closed", False)),
            tags=tags,
        )

    @staticmethod
    def _parse_order_book(token_id: str, raw: dict[str, Any]) -> OrderBook:
        """Convert a raw CLOB order book dict into a typed OrderBook.

        Args:
            token_id: CLOB token identifier.
            raw: Raw order book dictionary with ``bids`` and ``asks``.

        Returns:
            Typed OrderBook dataclass.

        """
        bids = tuple(
            sorted(
                _parse_levels(raw.get("bids") or []),
                key=lambda lvl: lvl.price,
                reverse=True,
            )
        )
        asks = tuple(sorted(_parse_levels(raw.get("asks") or []), key=lambda lvl: lvl.price))

        best_bid = bids[0].price if bids else _ZERO
        best_ask = asks[0].price if asks else _ZERO
        spread = best_ask - best_bid if best_bid and best_ask else _ZERO
        midpoint = (best_bid + best_ask) / _TWO if best_bid and best_ask else _ZERO

        return OrderBook(
            token_id=token_id,
            bids=bids,
            asks=asks,
            spread=spread,
            midpoint=midpoint,
        )


def _parse_levels(raw_levels: list[dict[str, Any]]) -> list[OrderLevel]:
    """Parse order book levels, discarding non-positive prices and sizes."""
    levels: list[OrderLevel] = []
    for level in raw_levels:
        price = _safe_decimal(level.get("price", "0"))
        size = _safe_decimal(level.get("size", "0"))
        if price > _ZERO and size > _ZERO:
            levels.append(OrderLevel(price=price, size=size))
    return levels


def _load_json_list(value: Any) -> list[Any]:
    """Decode a field that may be a JSON-encoded list or a plain list."""
    if isinstance(value, str):
        try:
            decoded: Any = json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return []
        return list(decoded) if isinstance(decoded, list) else []  # pyright: ignore[reportUnknownArgumentType]
    if isinstance(value, list):
        return list(value)  # pyright: ignore[reportUnknownArgumentType]
    return []


def _parse_tokens(raw: dict[str, Any]) -> list[MarketToken]:
    """Extract outcome tokens from a raw Gamma API market dictionary.

    Require the ``outcomes``, ``outcomePrices`` and ``clobTokenIds`` arrays
    to have equal length and drop outcomes whose price lies outside
    ``[0, 1]``.

    Args:
        raw: Market dictionary from the Gamma API.

    Returns:
        List of typed MarketToken instances (empty when the arrays disagree).

    """
    outcomes = _load_json_list(raw.get("outcomes", ""))
    prices = _load_json_list(raw.get("outcomePrices", ""))
    token_ids = _load_json_list(raw.get("clobTokenIds", ""))
    if not (len(outcomes) == len(prices) == len(token_ids)):
        return []

    tokens: list[MarketToken] = []
    for outcome, price_raw, token_id in zip(outcomes, prices, token_ids, strict=True):
        price = _safe_decimal(price_raw)
        if not (_ZERO <= price <= Decimal(1)):
            continue
        tokens.append(MarketToken(token_id=str(token_id), outcome=str(outcome), price=price))
    return tokens


def _safe_decimal(value: Any) -> Decimal:
    """Convert a value to Decimal, returning zero for None/empty strings.

    Raise ``PolymarketAPIError`` for values that are present but
    cannot be parsed into a valid Decimal, rather than silently
    substituting zero for genuinely corrupt data.

    Args:
        value: Value to convert (string, float, int, or None).

    Returns:
        Decimal representation, or ``Decimal("0")`` for None/empty.

    Raises:
        PolymarketAPIError: If the value is non-empty but malformed.

    """
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return _ZERO
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        msg = f"Cannot convert {value!r} to Decimal"
        raise PolymarketAPIError(msg=msg, status_code=0) from exc
    if not result.is_finite():
        msg = f"Non-finite decimal value: {value!r}"
        raise PolymarketAPIError(msg=msg, status_code=0)
    return result
