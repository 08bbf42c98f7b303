"""
Unit tests for adapters.channel module.

Tests:
- parse_timestamp() ISO 8601 conversion
- message_to_item() attachment handling
- ChannelAdapter.fetch_new_items() window filtering and malformed messages
- ChannelAdapter.exists() for non-numeric ids and missing channels
- ChannelAdapter.metadata() guild icon and topic
"""

from unittest.mock import AsyncMock, patch

import pytest

from dostr.adapters.channel import ChannelAdapter, message_to_item, parse_timestamp
from dostr.core.exceptions import FetchError


CHANNEL_ID = "1093877126541266984"


def _message(timestamp: str, content: str, attachments=()) -> dict:
    return {
        "id": "1",
        "content": content,
        "timestamp": timestamp,
        "attachments": [{"url": url} for url in attachments],
    }


@pytest.fixture
def adapter() -> ChannelAdapter:
    return ChannelAdapter("token", api_url="https://chat.example/api/")


# ============================================================================
# Helpers
# ============================================================================


class TestParseTimestamp:
    def test_utc(self):
        assert parse_timestamp("2023-11-14T22:13:20.123000+00:00") == 1_700_000_000

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")


class TestMessageToItem:
    def test_attachments_appended(self):
        item = message_to_item(
            _message("2023-11-14T22:13:20+00:00", "look", ["https://cdn.example/a.png"])
        )
        assert item.body == "look\nhttps://cdn.example/a.png"
        assert item.link is None

    def test_attachment_only(self):
        item = message_to_item(
            _message("2023-11-14T22:13:20+00:00", "", ["https://cdn.example/a.png"])
        )
        assert item.body == "https://cdn.example/a.png"

    def test_missing_timestamp(self):
        with pytest.raises(KeyError):
            message_to_item({"content": "hi"})


# ============================================================================
# ChannelAdapter
# ============================================================================


class TestFetchNewItems:
    async def test_window_filtering(self, adapter, channel_source):
        messages = [
            _message("2023-11-14T22:13:40+00:00", "newest"),
            _message("2023-11-14T22:13:20+00:00", "older"),
            {"content": "no timestamp"},
            "garbage",
        ]
        with patch.object(adapter, "_get", AsyncMock(return_value=messages)) as get:
            items = await adapter.fetch_new_items(channel_source, 1_700_000_010, 1_700_000_100)

        assert [item.body for item in items] == ["newest"]
        get.assert_awaited_once_with(f"/channels/{CHANNEL_ID}/messages", params={"limit": 50})

    async def test_non_list_response(self, adapter, channel_source):
        with (
            patch.object(adapter, "_get", AsyncMock(return_value={"message": "nope"})),
            pytest.raises(FetchError),
        ):
            await adapter.fetch_new_items(channel_source, 0, 1)


class TestExists:
    async def test_non_numeric_id(self, adapter):
        with patch.object(adapter, "_get", AsyncMock()) as get:
            assert await adapter.exists("jack") is False
        get.assert_not_awaited()

    async def test_found(self, adapter):
        with patch.object(adapter, "_get", AsyncMock(return_value={"id": CHANNEL_ID})):
            assert await adapter.exists(CHANNEL_ID) is True

    @pytest.mark.parametrize("status", [403, 404])
    async def test_missing(self, adapter, status):
        error = FetchError(f"HTTP {status}", status=status)
        with patch.object(adapter, "_get", AsyncMock(side_effect=error)):
            assert await adapter.exists(CHANNEL_ID) is False

    async def test_server_error_raises(self, adapter):
        error = FetchError("HTTP 502", status=502)
        with (
            patch.object(adapter, "_get", AsyncMock(side_effect=error)),
            pytest.raises(FetchError),
        ):
            await adapter.exists(CHANNEL_ID)


class TestMetadata:
    async def test_guild_icon_and_topic(self, adapter, channel_source):
        responses = {
            f"/channels/{CHANNEL_ID}": {"name": "general", "guild_id": "42", "topic": "Chat"},
            "/guilds/42": {"icon": "abc"},
        }

        async def fake_get(path, params=None):
            return responses[path]

        with patch.object(adapter, "_get", side_effect=fake_get):
            metadata = await adapter.metadata(channel_source)

        assert metadata.display_name == "general"
        assert metadata.picture == "https://cdn.discordapp.com/icons/42/abc.png"
        assert metadata.website == f"https://discord.com/channels/42/{CHANNEL_ID}"
        assert metadata.about.startswith("Chat\n\n")

    async def test_guild_failure_tolerated(self, adapter, channel_source):
        async def fake_get(path, params=None):
            if path.startswith("/guilds"):
                raise FetchError("HTTP 403", status=403)
            return {"name": "general", "guild_id": "42"}

        with patch.object(adapter, "_get", side_effect=fake_get):
            metadata = await adapter.metadata(channel_source)

        assert metadata.picture == ""

    async def test_resolve_display_name(self, adapter):
        with patch.object(adapter, "_get", AsyncMock(return_value={"name": "general"})):
            assert await adapter.resolve_display_name(CHANNEL_ID) == "general"
