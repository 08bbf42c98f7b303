"""
Chat-channel adapter polling a Discord channel's message history.

Uses the Discord REST API directly over ``aiohttp`` (bot token
authentication), so the same SOCKS5 proxy as the relay traffic can be
applied. Each poll asks for the latest ``history_limit`` messages of the
channel and keeps those created inside the poll window. Attachment URLs are
appended to the message text.
"""

from __future__ import annotations

import logging
from datetime import datetime
from http import HTTPStatus
from typing import Any, ClassVar, Final

import aiohttp

from dostr.core.exceptions import FetchError
from dostr.models.constants import SourceKind
from dostr.models.item import ContentItem
from dostr.models.source import FollowedSource  # noqa: TC001
from dostr.utils.http import DEFAULT_MAX_BODY_SIZE, create_session, read_bounded_json

from .base import SourceAdapter, SourceMetadata, filter_window


DEFAULT_API_URL: Final[str] = "https://discord.com/api/v10"
CDN_URL: Final[str] = "https://cdn.discordapp.com"

logger = logging.getLogger("adapters.channel")


def parse_timestamp(value: str) -> int:
    """Convert an ISO 8601 message timestamp to Unix seconds.

    Raises:
        ValueError: If *value* is not a valid ISO 8601 timestamp.
    """
    return int(datetime.fromisoformat(value).timestamp())


def message_to_item(message: dict[str, Any]) -> ContentItem:
    """Convert one message object from the history API.

    Raises:
        ValueError: If the message has no valid timestamp.
        KeyError: If the message has no timestamp at all.
    """
    parts = [message.get("content") or ""]
    parts.extend(
        attachment["url"]
        for attachment in message.get("attachments") or []
        if isinstance(attachment, dict) and attachment.get("url")
    )
    body = "\n".join(part for part in parts if part)
    return ContentItem(timestamp=parse_timestamp(message["timestamp"]), body=body)


class ChannelAdapter(SourceAdapter):
    """[SourceAdapter][dostr.adapters.base.SourceAdapter] for chat channels.

    Args:
        token: Bot token used in the ``Authorization`` header.
        api_url: Base URL of the REST API.
        proxy_url: Optional SOCKS5 proxy shared with the relay transport.
        timeout: Total timeout of one HTTP request, in seconds.
        history_limit: Number of most recent messages requested per poll.
    """

    kind: ClassVar[SourceKind] = SourceKind.CHANNEL

    def __init__(
        self,
        token: str,
        *,
        api_url: str = DEFAULT_API_URL,
        proxy_url: str | None = None,
        timeout: float = 30.0,  # noqa: ASYNC109
        history_limit: int = 50,
    ) -> None:
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._proxy_url = proxy_url
        self._timeout = timeout
        self._history_limit = history_limit

    def __repr__(self) -> str:
        return f"ChannelAdapter(api_url={self._api_url!r}, proxy={self._proxy_url is not None})"

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET an API path and return the decoded JSON body.

        Raises:
            FetchError: On network failure, a non-200 status, or invalid JSON.
        """
        url = f"{self._api_url}{path}"
        headers = {"Authorization": f"Bot {self._token}", "User-Agent": "dostr"}
        try:
            async with (
                create_session(self._proxy_url, self._timeout, headers) as session,
                session.get(url, params=params) as resp,
            ):
                if resp.status != HTTPStatus.OK:
                    raise FetchError(f"GET {path}: HTTP {resp.status}", status=resp.status)
                return await read_bounded_json(resp, DEFAULT_MAX_BODY_SIZE)
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            raise FetchError(f"GET {path}: {e}") from e

    async def fetch_new_items(
        self,
        source: FollowedSource,
        since: int,
        until: int,
    ) -> list[ContentItem]:
        messages = await self._get(
            f"/channels/{source.id}/messages", params={"limit": self._history_limit}
        )
        if not isinstance(messages, list):
            raise FetchError(f"expected a list of messages, got {type(messages).__name__}")

        items: list[ContentItem] = []
        for message in messages:
            if not isinstance(message, dict):
                continue
            try:
                items.append(message_to_item(message))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug("message_skipped channel=%s error=%s", source.id, e)
        return filter_window(items, since, until)

    async def metadata(self, source: FollowedSource) -> SourceMetadata:
        channel = await self._get(f"/channels/{source.id}")
        if not isinstance(channel, dict):
            raise FetchError("invalid channel object")

        name = channel.get("name") or source.id
        guild_id = channel.get("guild_id")
        picture = ""
        website = f"https://discord.com/channels/{guild_id}/{source.id}" if guild_id else ""
        if guild_id:
            try:
                guild = await self._get(f"/guilds/{guild_id}")
            except FetchError as e:
                logger.debug("guild_lookup_failed channel=%s error=%s", source.id, e)
            else:
                icon = guild.get("icon") if isinstance(guild, dict) else None
                if icon:
                    picture = f"{CDN_URL}/icons/{guild_id}/{icon}.png"

        about = f"Messages forwarded from {website or 'channel ' + source.id} by dostr bot."
        topic = channel.get("topic")
        if topic:
            about = f"{topic}\n\n{about}"
        return SourceMetadata(display_name=name, about=about, picture=picture, website=website)

    async def exists(self, source_id: str) -> bool:
        if not source_id.isdigit():
            return False
        try:
            await self._get(f"/channels/{source_id}")
        except FetchError as e:
            if e.status in (HTTPStatus.NOT_FOUND, HTTPStatus.FORBIDDEN):
                return False
            raise
        return True

    async def resolve_display_name(self, source_id: str) -> str:
        channel = await self._get(f"/channels/{source_id}")
        name = channel.get("name") if isinstance(channel, dict) else None
        return name or source_id
