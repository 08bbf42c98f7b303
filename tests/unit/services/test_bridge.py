"""
Unit tests for services.bridge.service module.

Tests:
- command_filter(): text notes tagging the bot since startup
- announce(): bot profile with NIP-05 plus the hello note
- start_worker(): one task per source, idempotent
- run(): reconnection sweep attaches new connections, fails with no relay
- _listen(): verified command events reach the command handler
- Lifecycle: __aenter__ starts everything, __aexit__ tears it down
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from dostr.core.exceptions import ConnectivityError
from dostr.nips.event_builders import build_text_note, sign_event
from dostr.services.bridge import Bridge, BridgeConfig
from dostr.services.bridge.service import COMMAND_SUBSCRIPTION_ID


@pytest.fixture
def config(bridge_env) -> BridgeConfig:
    return BridgeConfig.from_env(bridge_env)


@pytest.fixture
def bridge(config, registry, mock_transport, mock_adapters, clock) -> Bridge:
    return Bridge(
        config,
        registry=registry,
        transport=mock_transport,
        adapters=mock_adapters,
        clock=clock,
    )


def _make_connection(frames=()) -> MagicMock:
    conn = MagicMock()
    conn.peer_address = "wss://relay.one.example"
    conn.subscribe = AsyncMock()

    async def messages():
        for frame in frames:
            yield frame

    conn.messages = messages
    return conn


# ============================================================================
# Bot Identity
# ============================================================================


class TestCommandFilter:
    def test_shape(self, bridge, bot_keys, clock):
        filter_json = bridge.command_filter()
        assert filter_json["kinds"] == [1]
        assert filter_json["#p"] == [bot_keys.public_key().to_hex()]
        assert filter_json["since"] == int(clock())


class TestAnnounce:
    async def test_profile_and_hello(self, bridge, mock_transport, bot_keys):
        await bridge.announce()

        profile, hello = [call.args[0] for call in mock_transport.broadcast.await_args_list]
        assert profile.kind().as_u16() == 0
        content = json.loads(profile.content())
        assert content["name"] == "dostr"
        assert content["nip05"] == "dostr@dostr.example.com"
        assert hello.kind().as_u16() == 1
        assert hello.content() == "Hello from dostr!"
        assert hello.author().to_hex() == bot_keys.public_key().to_hex()


# ============================================================================
# Workers
# ============================================================================


class TestStartWorker:
    async def test_idempotent(self, bridge, channel_source):
        first = bridge.start_worker(channel_source)
        second = bridge.start_worker(channel_source)

        assert first is second
        assert list(bridge.workers) == [channel_source.id]
        first.cancel()
        await asyncio.gather(first, return_exceptions=True)

    async def test_restarted_after_exit(self, bridge, channel_source):
        first = bridge.start_worker(channel_source)
        first.cancel()
        await asyncio.gather(first, return_exceptions=True)

        second = bridge.start_worker(channel_source)

        assert second is not first
        second.cancel()
        await asyncio.gather(second, return_exceptions=True)

    async def test_add_command_spawns_worker(self, bridge, registry):
        await bridge.commands.dispatch("!add", ["111"])
        task = bridge.workers["111"]
        assert registry.contains("111")
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)


# ============================================================================
# Reconnection Sweep
# ============================================================================


class TestRun:
    async def test_reconnected_relays_are_attached(self, bridge, mock_transport):
        conn = _make_connection()
        mock_transport.reconnect.return_value = [conn]
        mock_transport.connected = [conn]

        await bridge.run()
        await asyncio.sleep(0)

        conn.subscribe.assert_awaited_once()
        assert conn.subscribe.await_args.args[0] == COMMAND_SUBSCRIPTION_ID

    async def test_no_relay_connected(self, bridge, mock_transport):
        mock_transport.connected = []
        with pytest.raises(ConnectivityError):
            await bridge.run()

    async def test_subscribe_failure_skips_listener(self, bridge, mock_transport):
        conn = _make_connection()
        conn.subscribe.side_effect = ConnectivityError("closed")
        mock_transport.reconnect.return_value = [conn]
        mock_transport.connected = [conn]

        await bridge.run()

        assert bridge._background == set()


# ============================================================================
# Command Listener
# ============================================================================


class TestListen:
    async def test_command_event_answered(
        self, bridge, mock_transport, bot_keys, make_source, clock
    ):
        user = make_source().keys
        command = sign_event(
            build_text_note("!uptime", [["p", bot_keys.public_key().to_hex()]]), user, int(clock())
        )
        frames = [
            ["EOSE", COMMAND_SUBSCRIPTION_ID],
            ["EVENT", COMMAND_SUBSCRIPTION_ID, {"not": "an event"}],
            ["EVENT", COMMAND_SUBSCRIPTION_ID, json.loads(command.as_json())],
        ]

        await bridge._listen(_make_connection(frames))

        reply = mock_transport.broadcast.await_args.args[0]
        assert reply.content() == "Running for 0d 0h 0m 0s."

    async def test_tampered_event_dropped(
        self, bridge, mock_transport, bot_keys, make_source, clock
    ):
        user = make_source().keys
        command = sign_event(
            build_text_note("!help", [["p", bot_keys.public_key().to_hex()]]), user, int(clock())
        )
        data = json.loads(command.as_json())
        data["content"] = "!list"

        await bridge._listen(_make_connection([["EVENT", COMMAND_SUBSCRIPTION_ID, data]]))

        mock_transport.broadcast.assert_not_awaited()


# ============================================================================
# Lifecycle
# ============================================================================


class TestLifecycle:
    async def test_start_and_stop(self, bridge, registry, mock_transport, channel_source):
        await registry.insert(channel_source.id, "1" * 64, channel_source.display_name)
        conn = _make_connection()
        mock_transport.connect_all.return_value = [conn]
        mock_transport.connected = [conn]

        with (
            patch.object(bridge._identity, "start", AsyncMock()) as start,
            patch.object(bridge._identity, "stop", AsyncMock()) as stop,
        ):
            async with bridge:
                assert bridge.is_running
                assert list(bridge.workers) == [channel_source.id]
                conn.subscribe.assert_awaited_once()
                start.assert_awaited_once()

            stop.assert_awaited_once()

        mock_transport.close.assert_awaited_once()
        assert bridge.workers == {}
        assert not bridge.is_running

    async def test_failed_start_cleans_up(self, bridge, mock_transport):
        with (
            patch.object(bridge._identity, "start", AsyncMock(side_effect=OSError("in use"))),
            pytest.raises(OSError, match="in use"),
        ):
            async with bridge:
                pass

        mock_transport.close.assert_awaited_once()
        assert bridge._background == set()
