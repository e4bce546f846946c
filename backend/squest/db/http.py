"""Shared httpx client for the Supabase REST backend."""

import httpx

from squest.config import settings

http_client: httpx.AsyncClient | None = None


def get_http_client() -> httpx.AsyncClient:
    """Get or create the HTTP client singleton (lazy init)."""
    global http_client
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=settings.REMOTE_TIMEOUT_SECONDS)
    return http_client


async def close_http_client() -> None:
    global http_client
    if http_client is not None:
        await http_client.aclose()
        http_client = None
