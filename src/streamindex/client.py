"""
StreamIndex Client — Search Engine Connection
=============================================

Builds the single long-lived AsyncElasticsearch client shared by every
bulk call in a process. The client pools connections and is safe for
concurrent use, so it is created once and passed to the executor.

The transport does not retry on its own: BatchExecutor owns the retry
schedule, so one executor attempt is exactly one HTTP request.
"""

from typing import Any, Dict, List, Optional

from elasticsearch import AsyncElasticsearch

from .config import SyncConfig


def create_client(
    hosts: Optional[List[str]] = None,
    api_key: Optional[str] = None,
    basic_auth: Optional[tuple] = None,
    verify_certs: bool = True,
    request_timeout: float = 30.0
) -> AsyncElasticsearch:
    """
    Create an async search client.

    Args:
        hosts: List of node URLs (default: ["http://localhost:9200"])
        api_key: API key for authentication
        basic_auth: Tuple of (username, password)
        verify_certs: Verify SSL certificates
        request_timeout: Default per-request timeout in seconds

    Returns:
        AsyncElasticsearch client; close it with `await client.close()`
    """
    conn_kwargs: Dict[str, Any] = {
        "hosts": hosts or ["http://localhost:9200"],
        "verify_certs": verify_certs,
        "request_timeout": request_timeout,
        "max_retries": 0,
        "retry_on_timeout": False,
    }

    if api_key:
        conn_kwargs["api_key"] = api_key
    elif basic_auth:
        conn_kwargs["basic_auth"] = basic_auth

    return AsyncElasticsearch(**conn_kwargs)


def client_from_config(config: SyncConfig) -> AsyncElasticsearch:
    """Create a client from a SyncConfig."""
    return create_client(
        hosts=config.hosts,
        api_key=config.api_key,
        basic_auth=config.basic_auth,
        verify_certs=config.verify_certs,
        request_timeout=config.request_timeout,
    )
