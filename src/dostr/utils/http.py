"""HTTP utilities for dostr.

Provides the connector factory shared by the relay transport and the source
adapters, so that upstream fetches take the same network path (direct or
SOCKS5/Tor) as relay traffic, plus bounded body readers that prevent memory
exhaustion from oversized upstream payloads.

Note:
    This module sits in the ``utils`` layer and depends only on stdlib and
    third-party libraries (``aiohttp``, ``aiohttp_socks``). It is importable
    from ``adapters`` and ``services`` without violating the diamond DAG.
"""

from __future__ import annotations

import json
from typing import Any

import aiohttp
from aiohttp_socks import ProxyConnector


DEFAULT_MAX_BODY_SIZE = 5 * 1024 * 1024


def make_connector(proxy_url: str | None = None) -> aiohttp.BaseConnector:
    """Create a connector for a direct or SOCKS5-proxied session.

    With a proxy, host names are resolved by the proxy (``rdns``) so that
    ``.onion`` addresses and DNS lookups never leak onto the local network.
    """
    if proxy_url:
        return ProxyConnector.from_url(proxy_url, rdns=True)
    return aiohttp.TCPConnector()


def create_session(
    proxy_url: str | None = None,
    timeout: float | None = None,  # noqa: ASYNC109
    headers: dict[str, str] | None = None,
) -> aiohttp.ClientSession:
    """Create a client session bound to the chosen network path."""
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    return aiohttp.ClientSession(
        connector=make_connector(proxy_url),
        timeout=client_timeout,
        headers=headers,
    )


async def read_bounded(response: aiohttp.ClientResponse, max_size: int) -> bytes:
    """Read an entire response body with size enforcement.

    Accumulates chunks from the response stream until EOF or the size limit
    is exceeded, which also handles chunked transfer-encoding correctly.

    Raises:
        ValueError: If the response body exceeds *max_size*.
    """
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await response.content.read(max_size + 1 - total)
        if not chunk:
            break
        total += len(chunk)
        if total > max_size:
            raise ValueError(f"Response body too large: >{max_size} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


async def read_bounded_json(response: aiohttp.ClientResponse, max_size: int) -> Any:
    """Read and parse a JSON response body with size enforcement.

    Raises:
        ValueError: If the body exceeds *max_size* or is not valid JSON.
    """
    body = await read_bounded(response, max_size)
    return json.loads(body)
