"""Tests for the Polymarket Gamma API client."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from pm_lifecycle.clients.polymarket._gamma_client import GammaClient
from pm_lifecycle.clients.polymarket.exceptions import PolymarketAPIError

_STATUS_OK = 200
_STATUS_SERVER_ERROR = 500
_EXPECTED_MARKET_COUNT = 2
_PAGE_SIZE = 2
_MAX_MARKETS = 6


def _response(status: int, payload: object) -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload
    return response


class TestGammaClient:
    """Test suite for GammaClient."""

    @pytest.fixture
    def client(self) -> GammaClient:
        """Create a GammaClient instance for testing."""
        return GammaClient(base_url="https://gamma-api.polymarket.com")

    def test_initialization(self) -> None:
        """Test client initializes with default base URL."""
        client = GammaClient()
        assert client.base_url == "https://gamma-api.polymarket.com"

    def test_trailing_slash_stripped(self) -> None:
        """Test trailing slash is stripped from base URL."""
        client = GammaClient(base_url="https://gamma-api.polymarket.com/")
        assert client.base_url == "https://gamma-api.polymarket.com"

    @pytest.mark.asyncio
    async def test_get_markets(self, client: GammaClient) -> None:
        """Test fetching a page of markets."""
        mock_request = AsyncMock(
            return_value=_response(_STATUS_OK, [{"id": "1"}, {"id": "2"}]),
        )
        with patch.object(client._http_client, "request", new=mock_request):
            result = await client.get_markets(limit=10, offset=20)

        assert len(result) == _EXPECTED_MARKET_COUNT
        params = mock_request.call_args.kwargs["params"]
        assert params["limit"] == 10
        assert params["offset"] == 20
        assert params["active"] is True

    @pytest.mark.asyncio
    async def test_error_response_raises(self, client: GammaClient) -> None:
        """Test an error status raises PolymarketAPIError."""
        mock_request = AsyncMock(
            return_value=_response(_STATUS_SERVER_ERROR, {"error": "boom"}),
        )
        with (
            patch.object(client._http_client, "request", new=mock_request),
            pytest.raises(PolymarketAPIError, match="boom"),
        ):
            await client.get_markets()

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, client: GammaClient) -> None:
        """Test a transport failure is wrapped in PolymarketAPIError."""
        mock_request = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with (
            patch.object(client._http_client, "request", new=mock_request),
            pytest.raises(PolymarketAPIError, match="HTTP request failed"),
        ):
            await client.get_markets()

    @pytest.mark.asyncio
    async def test_get_all_markets_concatenates_pages(self, client: GammaClient) -> None:
        """Test every page is requested and results are concatenated."""

        async def fake_get_markets(**kwargs: int) -> list[dict[str, str]]:
            return [{"id": f"{kwargs['offset']}-a"}, {"id": f"{kwargs['offset']}-b"}]

        with patch.object(client, "get_markets", side_effect=fake_get_markets):
            markets = await client.get_all_markets(page_size=_PAGE_SIZE, max_markets=_MAX_MARKETS)

        assert [m["id"] for m in markets] == ["0-a", "0-b", "2-a", "2-b", "4-a", "4-b"]

    @pytest.mark.asyncio
    async def test_get_all_markets_skips_failed_page(self, client: GammaClient) -> None:
        """Test a failing page is skipped while others succeed."""

        async def fake_get_markets(**kwargs: int) -> list[dict[str, str]]:
            if kwargs["offset"] == _PAGE_SIZE:
                raise PolymarketAPIError(msg="down", status_code=_STATUS_SERVER_ERROR)
            return [{"id": str(kwargs["offset"])}]

        with patch.object(client, "get_markets", side_effect=fake_get_markets):
            markets = await client.get_all_markets(page_size=_PAGE_SIZE, max_markets=_MAX_MARKETS)

        assert [m["id"] for m in markets] == ["0", "4"]

    @pytest.mark.asyncio
    async def test_get_all_markets_all_pages_fail(self, client: GammaClient) -> None:
        """Test the call raises when every page fails."""
        failing = AsyncMock(
            side_effect=PolymarketAPIError(msg="down", status_code=_STATUS_SERVER_ERROR),
        )
        with (
            patch.object(client, "get_markets", new=failing),
            pytest.raises(PolymarketAPIError, match="All Gamma market pages failed"),
        ):
            await client.get_all_markets(page_size=_PAGE_SIZE, max_markets=_MAX_MARKETS)

    @pytest.mark.asyncio
    async def test_context_manager_closes(self) -> None:
        """Test the async context manager closes the HTTP client."""
        client = GammaClient()
        with patch.object(client._http_client, "aclose", new=AsyncMock()) as mock_close:
            async with client:
                pass
        mock_close.assert_awaited_once()
