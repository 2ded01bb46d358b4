"""HTTP client factory for talking to the external resource API."""

import httpx

from resource_proxy.settings import Settings


def build_timeout(settings: Settings) -> httpx.Timeout:
    """Timeout applied to every outbound call, read timeout being the enforced one."""
    return httpx.Timeout(settings.read_timeout, connect=settings.connect_timeout)


def create_external_client(
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """
    Build an AsyncClient configured for the external resource API.

    Connection pooling is left to httpx defaults. ``transport`` lets tests and
    the smoke script swap in a mock upstream.
    """
    return httpx.AsyncClient(
        base_url=settings.external_api_base_url,
        timeout=build_timeout(settings),
        follow_redirects=False,
        transport=transport,
    )
