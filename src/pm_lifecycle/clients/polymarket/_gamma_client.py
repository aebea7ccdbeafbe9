r"""Async HTTP client for the Polymarket Gamma API.

The Gamma API (``https://gamma-api.polymarket.com``) provides market
metadata, prices, volume, and liquidity data.

Note:
    The Gamma API returns ``outcomes``, ``outcomePrices`` and
    ``clobTokenIds`` as JSON-encoded strings (e.g. ``"[\"0.72\",\"0.28\"]"``).
    Callers must call ``json.loads()`` on these fields before use.

"""

import asyncio
import logging
from typing import Any

import httpx

from pm_lifecycle.clients.polymarket._http import send_json
from pm_lifecycle.clients.polymarket.exceptions import PolymarketAPIError

logger = logging.getLogger(__name__)

_DEFAULT_PAGE_SIZE = 500
_DEFAULT_MAX_MARKETS = 15000
_DEFAULT_MAX_CONCURRENCY = 6


class GammaClient:
    """Async HTTP client for Polymarket Gamma API market metadata.

    Args:
        base_url: Base URL for the Gamma API.
        timeout: Request timeout in seconds.
        max_concurrency: Maximum number of pages fetched in parallel.

    """

    BASE_URL = "https://gamma-api.polymarket.com"

    def __init__(
        self,
        base_url: str = BASE_URL,
        timeout: float = 30.0,
        max_concurrency: int = _DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        """Initialize the Gamma API client.

        Args:
            base_url: Base URL for the Gamma API.
            timeout: Request timeout in seconds.
            max_concurrency: Maximum number of pages fetched in parallel.

        """
        self.base_url = base_url.rstrip("/")
        self._http_client = httpx.AsyncClient(timeout=timeout)
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def get_markets(
        self,
        *,
        active: bool = True,
        closed: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Fetch a paginated list of prediction markets.

        Args:
            active: Include only active (open) markets.
            closed: Include closed (resolved) markets.
            limit: Maximum number of markets to return.
            offset: Pagination offset.

        Returns:
            List of market dictionaries from the Gamma API.

        Raises:
            PolymarketAPIError: When the API returns an error response.

        """
        params: dict[str, str | int | bool] = {
            "limit": limit,
            "offset": offset,
            "active": active,
            "closed": closed,
        }
        return await send_json(self._http_client, "GET", f"{self.base_url}/markets", params=params)

    async def get_all_markets(
        self,
        *,
        page_size: int = _DEFAULT_PAGE_SIZE,
        max_markets: int = _DEFAULT_MAX_MARKETS,
    ) -> list[dict[str, Any]]:
        """Fetch every active market page concurrently.

        Pages that fail are logged and skipped. The call only raises when
        every page fails, since an empty listing would otherwise be
        indistinguishable from an outage.

        Args:
            page_size: Markets requested per page.
            max_markets: Upper bound on the total number of markets scanned.

        Returns:
            Concatenated market dictionaries from all successful pages.

        Raises:
            PolymarketAPIError: When no page could be fetched.

        """
        offsets = list(range(0, max_markets, page_size))

        async def _fetch_page(offset: int) -> list[dict[str, Any]]:
            async with self._semaphore:
                return await self.get_markets(limit=page_size, offset=offset)

        results = await asyncio.gather(
            *(_fetch_page(offset) for offset in offsets),
            return_exceptions=True,
        )
        markets: list[dict[str, Any]] = []
        failures = 0
        for offset, result in zip(offsets, results, strict=True):
            if isinstance(result, BaseException):
                failures += 1
                logger.warning("Gamma page at offset %d failed: %s", offset, result)
                continue
            markets.extend(result)
        if offsets and failures == len(offsets):
            raise PolymarketAPIError(msg="All Gamma market pages failed", status_code=503)
        logger.info("Fetched %d raw markets from %d pages", len(markets), len(offsets) - failures)
        return markets

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._http_client.aclose()

    async def __aenter__(self) -> "GammaClient":
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager."""
        await self.close()
