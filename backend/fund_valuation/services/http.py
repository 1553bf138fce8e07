"""Shared async HTTP client construction."""

import httpx

from fund_valuation.config import REQUEST_TIMEOUT, USER_AGENT


def create_http_client(
    transport: httpx.AsyncBaseTransport | None = None,
    timeout: float = REQUEST_TIMEOUT,
) -> httpx.AsyncClient:
    """Build the process-wide client every upstream call goes through."""
    return httpx.AsyncClient(
        timeout=timeout,
        headers={"User-Agent": USER_AGENT},
        follow_redirects=True,
        transport=transport,
    )
