"""
Shared HTTP client helpers.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx

from facesearch.core.config import settings


def default_timeout() -> httpx.Timeout:
    """Timeout applied to every outbound HTTP call."""
    return httpx.Timeout(
        settings.HTTP_TIMEOUT_SECONDS,
        connect=settings.HTTP_CONNECT_TIMEOUT_SECONDS
    )


@asynccontextmanager
async def http_client(
    client: Optional[httpx.AsyncClient] = None,
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Yield the given client, or a short-lived one with default timeouts.

    Clients passed in are owned by the caller and are not closed here.
    """
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=default_timeout(), follow_redirects=True) as owned:
        yield owned
