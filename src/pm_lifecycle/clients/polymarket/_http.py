"""Shared request helpers for the httpx-based Polymarket clients."""

from typing import Any

import httpx

from pm_lifecycle.clients.polymarket._constants import HTTP_BAD_REQUEST
from pm_lifecycle.clients.polymarket.exceptions import PolymarketAPIError


async def send_json(
    http_client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    json_body: Any = None,
) -> Any:
    """Send a request and return the parsed JSON body.

    Args:
        http_client: Open ``httpx.AsyncClient``.
        method: HTTP method (``"GET"`` or ``"POST"``).
        url: Absolute request URL.
        params: Query parameters.
        json_body: JSON-serialisable request body.

    Returns:
        Parsed JSON response.

    Raises:
        PolymarketAPIError: When the request fails or the API returns an
            error response.

    """
    try:
        response = await http_client.request(method, url, params=params, json=json_body)
    except httpx.HTTPError as exc:
        raise PolymarketAPIError(
            msg=f"HTTP request failed: {exc}",
            status_code=HTTP_BAD_REQUEST,
        ) from exc

    if response.status_code >= HTTP_BAD_REQUEST:
        handle_error(response)

    result: Any = response.json()
    return result


def handle_error(response: httpx.Response) -> None:
    """Raise a PolymarketAPIError from an error response.

    Args:
        response: HTTP response with a non-2xx status code.

    Raises:
        PolymarketAPIError: Always raised with status code and message.

    """
    try:
        data = response.json()
        msg: str = data.get("message", data.get("error", f"HTTP {response.status_code}"))
    except Exception:
        msg = f"HTTP {response.status_code}"
    raise PolymarketAPIError(msg=msg, status_code=response.status_code)
