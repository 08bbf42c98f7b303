"""Relay transport for dostr.

Maintains one WebSocket connection per relay and exposes a uniform,
best-effort send operation over two network strategies:

* [TransportKind.DIRECT][dostr.models.constants.TransportKind]: a plain
  TCP/TLS connection opened from this host.
* [TransportKind.PROXIED][dostr.models.constants.TransportKind]: the same
  WebSocket tunnelled through a local SOCKS5 proxy (Tor), with host names
  resolved by the proxy.

Both strategies produce a [RelayConnection][dostr.utils.transport.RelayConnection],
so workers never know which path their events take.

Delivery is fire-and-forget: [RelayConnection.send()][dostr.utils.transport.RelayConnection.send]
logs a failure at DEBUG level and returns ``False`` instead of raising, and
[RelayTransport.broadcast()][dostr.utils.transport.RelayTransport.broadcast]
keeps going after a failed relay. A closed connection stays closed until the
bridge's reconnection sweep calls
[RelayTransport.reconnect()][dostr.utils.transport.RelayTransport.reconnect].

Examples:
    ```python
    transport = RelayTransport(relays, TransportKind.PROXIED)
    await transport.connect_all()
    delivered = await transport.broadcast(event)
    ```
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import TYPE_CHECKING, Any, Final

import aiohttp

from dostr.core.exceptions import ConnectivityError
from dostr.models.constants import TransportKind

from .http import make_connector


if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable

    from nostr_sdk import Event

    from dostr.models.relay import Relay


DEFAULT_PROXY_URL: Final[str] = "socks5://127.0.0.1:9050"
DEFAULT_CONNECT_TIMEOUT: Final[float] = 10.0
DEFAULT_SEND_TIMEOUT: Final[float] = 10.0
_WS_CLOSE_TIMEOUT: Final[float] = 5.0


logger = logging.getLogger("utils.transport")


def event_message(event: Event) -> str:
    """Serialize a signed event as a relay ``EVENT`` frame."""
    return json.dumps(["EVENT", json.loads(event.as_json())], ensure_ascii=False)


class RelayConnection:
    """One open WebSocket to one relay, shared send-only by every worker.

    Concurrent sends from different workers are serialized by an internal
    ``asyncio.Lock`` so frames are interleaved at message granularity and
    never corrupted.

    Attributes:
        relay: The [Relay][dostr.models.relay.Relay] this connection talks to.
        transport_kind: Network path the connection was opened over.
    """

    def __init__(
        self,
        relay: Relay,
        transport_kind: TransportKind,
        ws: aiohttp.ClientWebSocketResponse,
        session: aiohttp.ClientSession,
        *,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
    ) -> None:
        self.relay = relay
        self.transport_kind = transport_kind
        self._ws = ws
        self._session = session
        self._send_timeout = send_timeout
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"RelayConnection({self.peer_address!r}, {self.transport_kind.value}, closed={self.closed})"

    @property
    def peer_address(self) -> str:
        return self.relay.url

    @property
    def closed(self) -> bool:
        return self._ws.closed

    async def send_message(self, message: list[Any]) -> None:
        """Send one JSON frame to the relay.

        Raises:
            ConnectivityError: If the connection is closed or the write fails.
        """
        await self._send_raw(json.dumps(message, ensure_ascii=False))

    async def _send_raw(self, frame: str) -> None:
        async with self._lock:
            if self._ws.closed:
                raise ConnectivityError(f"connection to {self.peer_address} is closed")
            try:
                await asyncio.wait_for(self._ws.send_str(frame), timeout=self._send_timeout)
            except (aiohttp.ClientError, OSError, TimeoutError) as e:
                raise ConnectivityError(f"send to {self.peer_address} failed: {e}") from e

    async def send(self, event: Event) -> bool:
        """Publish a signed event; never raises.

        Returns:
            ``True`` if the frame was written, ``False`` if the relay is
            unreachable (logged at DEBUG level).
        """
        try:
            await self._send_raw(event_message(event))
        except ConnectivityError as e:
            logger.debug("send_failed relay=%s error=%s", self.peer_address, e)
            return False
        return True

    async def subscribe(self, subscription_id: str, filter_json: dict[str, Any]) -> None:
        """Open a ``REQ`` subscription on this connection.

        Raises:
            ConnectivityError: If the connection is closed or the write fails.
        """
        await self.send_message(["REQ", subscription_id, filter_json])

    async def messages(self) -> AsyncIterator[list[Any]]:
        """Yield relay frames until the connection closes.

        Frames that are not JSON arrays are skipped.
        """
        while not self._ws.closed:
            msg = await self._ws.receive()
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    frame = json.loads(msg.data)
                except ValueError:
                    logger.debug("invalid_frame relay=%s", self.peer_address)
                    continue
                if isinstance(frame, list) and frame:
                    yield frame
            elif msg.type in (
                aiohttp.WSMsgType.CLOSE,
                aiohttp.WSMsgType.CLOSING,
                aiohttp.WSMsgType.CLOSED,
                aiohttp.WSMsgType.ERROR,
            ):
                break

    async def close(self) -> None:
        """Close the WebSocket and its session with timeouts to prevent hanging."""
        # aiohttp can raise ClientError, ServerDisconnectedError, etc. during
        # close; teardown proceeds regardless.
        with contextlib.suppress(Exception):
            await asyncio.wait_for(self._ws.close(), timeout=_WS_CLOSE_TIMEOUT)
        with contextlib.suppress(Exception):
            await asyncio.wait_for(self._session.close(), timeout=_WS_CLOSE_TIMEOUT)


class RelayTransport:
    """Owns the relay connections and delivers events to all of them.

    Args:
        relays: Relays configured by the operator.
        transport_kind: Network path used for every connection.
        proxy_url: SOCKS5 proxy used when *transport_kind* is ``PROXIED``.
        connect_timeout: Seconds allowed for the WebSocket handshake.
    """

    def __init__(
        self,
        relays: Iterable[Relay],
        transport_kind: TransportKind,
        *,
        proxy_url: str = DEFAULT_PROXY_URL,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ) -> None:
        self._relays = list(relays)
        self.transport_kind = transport_kind
        self._proxy_url = proxy_url
        self._connect_timeout = connect_timeout
        self._connections: dict[str, RelayConnection] = {}

    @property
    def relays(self) -> list[Relay]:
        return list(self._relays)

    @property
    def proxy_url(self) -> str | None:
        """Proxy for upstream fetches taking the same path as relay traffic."""
        if self.transport_kind == TransportKind.PROXIED:
            return self._proxy_url
        return None

    @property
    def connections(self) -> list[RelayConnection]:
        """Snapshot of the current connections, open or closed."""
        return list(self._connections.values())

    @property
    def connected(self) -> list[RelayConnection]:
        """Snapshot of the connections that are currently open."""
        return [conn for conn in self._connections.values() if not conn.closed]

    async def connect(
        self,
        relay: Relay,
        transport_kind: TransportKind | None = None,
    ) -> RelayConnection:
        """Open a WebSocket to *relay* over the chosen network path.

        Raises:
            ConnectivityError: If the proxy or the relay cannot be reached.
        """
        kind = transport_kind or self.transport_kind
        proxy_url = self._proxy_url if kind == TransportKind.PROXIED else None
        session = aiohttp.ClientSession(connector=make_connector(proxy_url))
        try:
            ws = await asyncio.wait_for(
                session.ws_connect(relay.url, autoping=True, heartbeat=30.0),
                timeout=self._connect_timeout,
            )
        except asyncio.CancelledError:
            await session.close()
            raise
        except (aiohttp.ClientError, OSError, TimeoutError) as e:
            await session.close()
            raise ConnectivityError(f"cannot connect to {relay.url}: {e}") from e

        return RelayConnection(relay, kind, ws, session)

    async def connect_all(self) -> list[RelayConnection]:
        """Connect every configured relay; failures are logged and skipped."""
        return await self.reconnect()

    async def reconnect(self) -> list[RelayConnection]:
        """Re-open every relay that is missing or whose connection closed.

        Returns:
            The connections established by this call, so callers can
            subscribe and attach listeners to them.
        """
        established: list[RelayConnection] = []
        for relay in self._relays:
            current = self._connections.get(relay.url)
            if current is not None and not current.closed:
                continue
            if current is not None:
                await current.close()
            try:
                conn = await self.connect(relay)
            except ConnectivityError as e:
                logger.warning("connect_failed relay=%s error=%s", relay.url, e)
                self._connections.pop(relay.url, None)
                continue
            logger.info("connected relay=%s transport=%s", relay.url, conn.transport_kind)
            self._connections[relay.url] = conn
            established.append(conn)
        return established

    @staticmethod
    async def send(connection: RelayConnection, event: Event) -> bool:
        """Best-effort send of *event* on one connection; never raises."""
        return await connection.send(event)

    async def broadcast(
        self,
        event: Event,
        connections: Iterable[RelayConnection] | None = None,
    ) -> int:
        """Send *event* to every connection, one at a time, in order.

        A failed connection does not stop delivery to the rest.

        Returns:
            Number of connections the event was written to.
        """
        targets = self.connections if connections is None else connections
        delivered = 0
        for conn in targets:
            if await conn.send(event):
                delivered += 1
        return delivered

    async def close(self) -> None:
        """Close every connection."""
        for conn in self._connections.values():
            await conn.close()
        self._connections.clear()
