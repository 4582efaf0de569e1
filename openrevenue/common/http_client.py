"""
Shared HTTP client configuration.

Every outbound call (payment providers, self-hosted revenue apps and job
webhooks) goes through create_api_client so timeouts, connection limits and
the User-Agent stay uniform.

Usage:
    async with create_api_client(extra_headers={"X-API-Key": key}) as client:
        response = await client.get(url)
"""

from typing import Dict, Optional

import httpx

from ..config.settings import settings

USER_AGENT = "OpenRevenue/1.0 (Revenue Sync)"

# Per client instance
CLIENT_LIMITS = httpx.Limits(max_connections=20, max_keepalive_connections=10)


def create_api_client(
    timeout: Optional[float] = None,
    extra_headers: Optional[Dict[str, str]] = None,
) -> httpx.AsyncClient:
    """Async client with the platform User-Agent and settings.request_timeout by default."""
    headers = {"User-Agent": USER_AGENT, **(extra_headers or {})}
    return httpx.AsyncClient(
        timeout=timeout or settings.request_timeout,
        headers=headers,
        limits=CLIENT_LIMITS,
        follow_redirects=True,
    )
