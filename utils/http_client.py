"""
HTTP client factory for outbound calls to the similarity scorer
"""
import httpx


def get_async_client(
    base_url: str = "",
    timeout: float = 3.0,
    max_connections: int = 20,
    max_keepalive: int = 5
) -> httpx.AsyncClient:
    """
    Return an AsyncClient with connection limits and a default timeout.

    Args:
        base_url: prefix for relative request URLs
        timeout: request timeout in seconds
        max_connections: maximum number of connections
        max_keepalive: maximum number of keep-alive connections
    """
    limits = httpx.Limits(max_keepalive_connections=max_keepalive, max_connections=max_connections)
    return httpx.AsyncClient(base_url=base_url, limits=limits, timeout=timeout)
