"""
Unit tests for utils.transport module.

Tests:
- event_message() frame serialization
- RelayConnection.send() never raises; closed and failing sockets
- RelayConnection.messages() frame iteration
- RelayTransport.broadcast() partial relay failure
- RelayTransport.reconnect() re-opening closed and missing relays
- RelayTransport.connect() error mapping
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from dostr.core.exceptions import ConnectivityError
from dostr.models import Relay, TransportKind
from dostr.nips.event_builders import build_text_note, sign_event
from dostr.utils.transport import RelayConnection, RelayTransport, event_message


# ============================================================================
# Helpers
# ============================================================================


def _make_ws(*, closed: bool = False) -> MagicMock:
    ws = MagicMock()
    ws.closed = closed
    ws.send_str = AsyncMock()
    ws.close = AsyncMock()
    return ws


def _make_connection(url: str, *, closed: bool = False) -> RelayConnection:
    session = MagicMock()
    session.close = AsyncMock()
    return RelayConnection(Relay(url), TransportKind.DIRECT, _make_ws(closed=closed), session)


@pytest.fixture
def event(bot_keys):
    return sign_event(build_text_note("hello relays"), bot_keys, 1_700_000_000)


# ============================================================================
# event_message
# ============================================================================


class TestEventMessage:
    def test_frame_shape(self, event):
        frame = json.loads(event_message(event))
        assert frame[0] == "EVENT"
        assert frame[1]["content"] == "hello relays"
        assert frame[1]["id"] == event.id().to_hex()


# ============================================================================
# RelayConnection
# ============================================================================


class TestRelayConnection:
    async def test_send_writes_frame(self, event):
        conn = _make_connection("wss://a.example")
        assert await conn.send(event) is True
        conn._ws.send_str.assert_awaited_once_with(event_message(event))

    async def test_send_on_closed_connection_returns_false(self, event):
        conn = _make_connection("wss://a.example", closed=True)
        assert await conn.send(event) is False
        conn._ws.send_str.assert_not_awaited()

    async def test_send_error_returns_false(self, event):
        conn = _make_connection("wss://a.example")
        conn._ws.send_str.side_effect = aiohttp.ClientConnectionError("reset")
        assert await conn.send(event) is False

    async def test_send_message_raises_when_closed(self):
        conn = _make_connection("wss://a.example", closed=True)
        with pytest.raises(ConnectivityError):
            await conn.send_message(["REQ", "sub", {}])

    async def test_subscribe_sends_req(self):
        conn = _make_connection("wss://a.example")
        await conn.subscribe("sub", {"kinds": [1]})
        frame = json.loads(conn._ws.send_str.await_args.args[0])
        assert frame == ["REQ", "sub", {"kinds": [1]}]

    async def test_messages_yields_json_arrays(self):
        conn = _make_connection("wss://a.example")
        texts = [
            MagicMock(type=aiohttp.WSMsgType.TEXT, data='["EVENT", "sub", {}]'),
            MagicMock(type=aiohttp.WSMsgType.TEXT, data="not json"),
            MagicMock(type=aiohttp.WSMsgType.TEXT, data='{"not": "a list"}'),
            MagicMock(type=aiohttp.WSMsgType.CLOSED, data=None),
        ]
        conn._ws.receive = AsyncMock(side_effect=texts)

        frames = [frame async for frame in conn.messages()]

        assert frames == [["EVENT", "sub", {}]]

    async def test_close(self):
        conn = _make_connection("wss://a.example")
        await conn.close()
        conn._ws.close.assert_awaited_once()
        conn._session.close.assert_awaited_once()


# ============================================================================
# RelayTransport
# ============================================================================


class TestBroadcast:
    async def test_partial_relay_failure_still_delivers_to_others(self, event):
        first = _make_connection("wss://a.example")
        second = _make_connection("wss://b.example", closed=True)
        third = _make_connection("wss://c.example")
        transport = RelayTransport([], TransportKind.DIRECT)

        delivered = await transport.broadcast(event, [first, second, third])

        assert delivered == 2
        first._ws.send_str.assert_awaited_once()
        second._ws.send_str.assert_not_awaited()
        third._ws.send_str.assert_awaited_once()

    async def test_send_error_in_middle_does_not_stop_broadcast(self, event):
        conns = [_make_connection(f"wss://{name}.example") for name in "abc"]
        conns[1]._ws.send_str.side_effect = OSError("broken pipe")
        transport = RelayTransport([], TransportKind.DIRECT)

        assert await transport.broadcast(event, conns) == 2

    async def test_static_send(self, event):
        conn = _make_connection("wss://a.example")
        assert await RelayTransport.send(conn, event) is True


class TestReconnect:
    async def test_connect_all_skips_failures(self):
        relays = [Relay("wss://a.example"), Relay("wss://b.example")]
        transport = RelayTransport(relays, TransportKind.DIRECT)
        ok = _make_connection("wss://a.example")

        with patch.object(
            transport, "connect", AsyncMock(side_effect=[ok, ConnectivityError("down")])
        ):
            established = await transport.connect_all()

        assert established == [ok]
        assert transport.connected == [ok]

    async def test_reconnect_only_reopens_closed(self):
        relays = [Relay("wss://a.example"), Relay("wss://b.example")]
        transport = RelayTransport(relays, TransportKind.DIRECT)
        alive = _make_connection("wss://a.example")
        dead = _make_connection("wss://b.example", closed=True)
        transport._connections = {"wss://a.example": alive, "wss://b.example": dead}
        fresh = _make_connection("wss://b.example")

        with patch.object(transport, "connect", AsyncMock(return_value=fresh)) as connect:
            established = await transport.reconnect()

        connect.assert_awaited_once_with(relays[1])
        dead._ws.close.assert_awaited_once()
        assert established == [fresh]
        assert set(transport.connected) == {alive, fresh}

    async def test_close_clears_connections(self):
        transport = RelayTransport([Relay("wss://a.example")], TransportKind.DIRECT)
        conn = _make_connection("wss://a.example")
        transport._connections = {"wss://a.example": conn}
        await transport.close()
        assert transport.connections == []


class TestConnect:
    async def test_connect_failure_raises_connectivity_error(self):
        transport = RelayTransport([], TransportKind.DIRECT, connect_timeout=1)
        session = MagicMock()
        session.ws_connect = AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))
        session.close = AsyncMock()

        with (
            patch("dostr.utils.transport.aiohttp.ClientSession", return_value=session),
            patch("dostr.utils.transport.make_connector"),
            pytest.raises(ConnectivityError, match="cannot connect"),
        ):
            await transport.connect(Relay("wss://a.example"))
        session.close.assert_awaited_once()

    async def test_proxied_connection_uses_proxy(self):
        transport = RelayTransport(
            [], TransportKind.PROXIED, proxy_url="socks5://127.0.0.1:9050"
        )
        session = MagicMock()
        session.ws_connect = AsyncMock(return_value=_make_ws())

        with (
            patch("dostr.utils.transport.aiohttp.ClientSession", return_value=session),
            patch("dostr.utils.transport.make_connector") as make_connector,
        ):
            conn = await transport.connect(Relay("ws://abcdefghijklmnop.onion"))

        make_connector.assert_called_once_with("socks5://127.0.0.1:9050")
        assert conn.transport_kind == TransportKind.PROXIED
        assert transport.proxy_url == "socks5://127.0.0.1:9050"

    def test_direct_has_no_proxy(self):
        assert RelayTransport([], TransportKind.DIRECT).proxy_url is None
