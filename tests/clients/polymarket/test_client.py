"""Tests for the Polymarket client facade."""

import json
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from pm_lifecycle.clients.polymarket.client import PolymarketClient, _safe_decimal
from pm_lifecycle.clients.polymarket.exceptions import PolymarketAPIError

_PRICE_YES = "0.72"
_PRICE_NO = "0.28"
_TOKEN_YES = "token_yes"
_TOKEN_NO = "token_no"
_EXPECTED_TOKEN_COUNT = 2
_STATUS_SERVER_ERROR = 500
_FETCH_BOOKS = "pm_lifecycle.clients.polymarket.client._clob_adapter.fetch_order_books"


def _make_gamma_market(
    market_id: str = "101",
    question: str = "Will Bitcoin reach $100K?",
    *,
    active: bool = True,
    closed: bool = False,
) -> dict[str, Any]:
    """Create a mock Gamma API market dictionary.

    Args:
        market_id: Gamma market identifier.
        question: Market question text.
        active: Whether the market is active.
        closed: Whether the market is closed.

    Returns:
        Dictionary matching Gamma API market response format.

    """
    return {
        "id": market_id,
        "conditionId": f"cond-{market_id}",
        "question": question,
        "outcomes": json.dumps(["Yes", "No"]),
        "outcomePrices": json.dumps([_PRICE_YES, _PRICE_NO]),
        "clobTokenIds": json.dumps([_TOKEN_YES, _TOKEN_NO]),
        "endDate": "2026-03-31T00:00:00Z",
        "volume": "250000",
        "volume24hr": "90000",
        "liquidity": "10000",
        "active": active,
        "closed": closed,
        "tags": [{"label": "Crypto"}, "Finance"],
    }


class TestListMarkets:
    """Tests for PolymarketClient.list_markets."""

    @pytest.fixture
    def client(self) -> PolymarketClient:
        """Create a client with default URLs."""
        return PolymarketClient()

    @pytest.mark.asyncio
    async def test_parses_market(self, client: PolymarketClient) -> None:
        """Parse a Gamma market into a typed Market."""
        with patch.object(
            client._gamma,
            "get_all_markets",
            new=AsyncMock(return_value=[_make_gamma_market()]),
        ):
            markets = await client.list_markets()

        assert len(markets) == 1
        market = markets[0]
        assert market.market_id == "101"
        assert market.condition_id == "cond-101"
        assert len(market.tokens) == _EXPECTED_TOKEN_COUNT
        assert market.tokens[0].token_id == _TOKEN_YES
        assert market.tokens[0].price == Decimal(_PRICE_YES)
        assert market.volume_24h == Decimal(90000)
        assert market.liquidity == Decimal(10000)
        assert market.tags == ("Crypto", "Finance")
        assert market.active
        assert market.is_binary

    @pytest.mark.asyncio
    async def test_closed_market_is_inactive(self, client: PolymarketClient) -> None:
        """Mark closed markets inactive."""
        raw = _make_gamma_market(closed=True)
        with patch.object(client._gamma, "get_all_markets", new=AsyncMock(return_value=[raw])):
            markets = await client.list_markets()
        assert not markets[0].active

    @pytest.mark.asyncio
    async def test_drops_mismatched_arrays(self, client: PolymarketClient) -> None:
        """Drop markets whose outcome and price arrays disagree."""
        raw = _make_gamma_market()
        raw["outcomePrices"] = json.dumps([_PRICE_YES])
        with patch.object(client._gamma, "get_all_markets", new=AsyncMock(return_value=[raw])):
            markets = await client.list_markets()
        assert markets == []

    @pytest.mark.asyncio
    async def test_drops_malformed_numbers(self, client: PolymarketClient) -> None:
        """Skip markets with corrupt numeric fields but keep the rest."""
        bad = _make_gamma_market(market_id="1")
        bad["liquidity"] = "not-a-number"
        good = _make_gamma_market(market_id="2")
        with patch.object(
            client._gamma, "get_all_markets", new=AsyncMock(return_value=[bad, good])
        ):
            markets = await client.list_markets()
        assert [m.market_id for m in markets] == ["2"]

    @pytest.mark.asyncio
    async def test_passes_max_markets(self, client: PolymarketClient) -> None:
        """Forward max_markets to the Gamma listing."""
        mock_list = AsyncMock(return_value=[])
        with patch.object(client._gamma, "get_all_markets", new=mock_list):
            await client.list_markets(max_markets=500)
        mock_list.assert_awaited_once_with(max_markets=500)


class TestGetOrderBooks:
    """Tests for PolymarketClient.get_order_books."""

    @pytest.fixture
    def client(self) -> PolymarketClient:
        """Create a client with default URLs."""
        return PolymarketClient()

    @pytest.mark.asyncio
    async def test_parses_and_sorts_levels(self, client: PolymarketClient) -> None:
        """Sort bids descending and asks ascending, dropping empty levels."""
        raw_book = {
            "asset_id": _TOKEN_YES,
            "bids": [
                {"price": "0.40", "size": "100"},
                {"price": "0.45", "size": "50"},
                {"price": "0.44", "size": "0"},
            ],
            "asks": [{"price": "0.50", "size": "30"}, {"price": "0.47", "size": "20"}],
        }
        with patch(_FETCH_BOOKS, return_value=[raw_book]):
            books = await client.get_order_books([_TOKEN_YES])

        book = books[_TOKEN_YES]
        assert [lvl.price for lvl in book.bids] == [Decimal("0.45"), Decimal("0.40")]
        assert [lvl.price for lvl in book.asks] == [Decimal("0.47"), Decimal("0.50")]
        assert book.spread == Decimal("0.02")
        assert book.midpoint == Decimal("0.46")

    @pytest.mark.asyncio
    async def test_batches_requests(self, client: PolymarketClient) -> None:
        """Split token ids into batches of batch_size."""
        with patch(_FETCH_BOOKS, return_value=[]) as mock_books:
            await client.get_order_books(["a", "b", "c"], batch_size=2)
        assert [c.args[1] for c in mock_books.call_args_list] == [["a", "b"], ["c"]]
        assert all(c.args[0] is client._clob_client for c in mock_books.call_args_list)

    @pytest.mark.asyncio
    async def test_failed_batch_is_omitted(self, client: PolymarketClient) -> None:
        """Omit tokens from a failed batch and keep the others."""
        ok_book = {"asset_id": "c", "bids": [], "asks": []}
        side_effect = [
            PolymarketAPIError(msg="down", status_code=_STATUS_SERVER_ERROR),
            [ok_book],
        ]
        with patch(_FETCH_BOOKS, side_effect=side_effect):
            books = await client.get_order_books(["a", "b", "c"], batch_size=2)
        assert list(books) == ["c"]
        assert books["c"].best_bid is None

    @pytest.mark.asyncio
    async def test_falls_back_to_request_order(self, client: PolymarketClient) -> None:
        """Use the requested token id when the book omits asset_id."""
        with patch(_FETCH_BOOKS, return_value=[{"asset_id": "", "bids": [], "asks": []}]):
            books = await client.get_order_books(["only"])
        assert "only" in books


class TestSafeDecimal:
    """Tests for _safe_decimal."""

    def test_empty_is_zero(self) -> None:
        """Return zero for None and blank strings."""
        assert _safe_decimal(None) == Decimal(0)
        assert _safe_decimal("  ") == Decimal(0)

    def test_parses_number(self) -> None:
        """Parse numeric input."""
        assert _safe_decimal("0.72") == Decimal("0.72")

    def test_malformed_raises(self) -> None:
        """Raise PolymarketAPIError for corrupt input."""
        with pytest.raises(PolymarketAPIError, match="Cannot convert"):
            _safe_decimal("abc")

    def test_non_finite_raises(self) -> None:
        """Raise PolymarketAPIError for non-finite input."""
        with pytest.raises(PolymarketAPIError, match="Non-finite"):
            _safe_decimal("inf")
