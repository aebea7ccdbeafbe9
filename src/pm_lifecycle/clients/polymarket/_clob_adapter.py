"""Isolated bridge to the untyped ``py-clob-client`` library.

This is the only module that imports from ``py_clob_client``. The lifecycle
engine reads order books to validate liquidity and never places orders, so
only the public, unauthenticated client is built here. Functions are
synchronous and return plain dictionaries; the facade runs them in a worker
thread and converts the result into typed dataclasses.
"""

import logging
from typing import Any, cast

from py_clob_client.client import ClobClient  # type: ignore[import-untyped]
from py_clob_client.clob_types import BookParams  # type: ignore[import-untyped]
from py_clob_client.exceptions import PolyApiException  # type: ignore[import-untyped]

from pm_lifecycle.clients.polymarket.exceptions import PolymarketAPIError

_HTTP_INTERNAL_ERROR = 500

logger = logging.getLogger(__name__)


def create_clob_client(host: str) -> ClobClient:  # type: ignore[no-any-unimported]
    """Create a read-only CLOB client for ``host``."""
    return ClobClient(host)  # type: ignore[no-any-return]


def fetch_order_books(client: Any, token_ids: list[str]) -> list[dict[str, Any]]:
    """Fetch order books for a batch of tokens in one ``POST /books`` call.

    Args:
        client: A ``ClobClient`` instance.
        token_ids: CLOB token identifiers.

    Returns:
        One dictionary per returned book with ``asset_id``, ``bids`` and
        ``asks`` keys; levels are ``{"price": str, "size": str}`` dicts.

    Raises:
        PolymarketAPIError: When the CLOB call fails.

    """
    if not token_ids:
        return []
    params = [BookParams(token_id=token_id) for token_id in token_ids]
    try:
        raw_books: Any = client.get_order_books(params)
    except PolyApiException as exc:
        status = getattr(exc, "status_code", None) or _HTTP_INTERNAL_ERROR
        raise PolymarketAPIError(
            msg=f"Failed to fetch {len(token_ids)} order books: {exc}",
            status_code=status,
        ) from exc
    except Exception as exc:
        raise PolymarketAPIError(
            msg=f"Failed to fetch {len(token_ids)} order books: {exc}",
            status_code=_HTTP_INTERNAL_ERROR,
        ) from exc
    if not isinstance(raw_books, list):
        logger.warning("Unexpected order book payload type: %s", type(raw_books).__name__)
        return []
    return [_normalize_order_book(raw) for raw in cast("list[Any]", raw_books)]


def _levels(raw_levels: Any) -> list[dict[str, str]]:
    levels: list[dict[str, str]] = []
    for level in raw_levels or []:
        if isinstance(level, dict):
            entry = cast("dict[str, Any]", level)
            levels.append(
                {"price": str(entry.get("price", "")), "size": str(entry.get("size", ""))}
            )
        else:
            levels.append({"price": str(level.price), "size": str(level.size)})
    return levels


def _normalize_order_book(raw: Any) -> dict[str, Any]:
    """Normalize an ``OrderBookSummary`` (or plain dict) to a dictionary.

    Args:
        raw: One entry of ``ClobClient.get_order_books``.

    Returns:
        Dictionary with ``asset_id``, ``bids`` and ``asks`` keys.

    """
    if isinstance(raw, dict):
        book = cast("dict[str, Any]", raw)
        return {
            "asset_id": str(book.get("asset_id") or ""),
            "bids": _levels(book.get("bids")),
            "asks": _levels(book.get("asks")),
        }
    return {
        "asset_id": str(getattr(raw, "asset_id", None) or ""),
        "bids": _levels(getattr(raw, "bids", None)),
        "asks": _levels(getattr(raw, "asks", None)),
    }
