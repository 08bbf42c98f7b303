"""
Syndication-feed adapter polling RSS/Atom documents.

A followed feed is either an absolute feed URL or a bare handle, which is
resolved through the configured feed proxy as ``{feed_proxy}/{handle}/rss``.
Every poll downloads the document, parses it with ``feedparser``, and keeps
the entries published inside the poll window.

Item descriptions are HTML. They are reduced to text with BeautifulSoup and
the URLs of embedded media (``img[src]``, ``a[href]``, ``source[src]``) are
appended so images and videos survive the conversion.
"""

from __future__ import annotations

import asyncio
import calendar
import logging
import re
from collections.abc import Mapping
from http import HTTPStatus
from typing import Any, ClassVar

import aiohttp
import feedparser  # type: ignore[import-untyped]
from bs4 import BeautifulSoup

from dostr.core.exceptions import FetchError
from dostr.models.constants import SourceKind
from dostr.models.item import ContentItem
from dostr.models.source import FollowedSource, is_url
from dostr.utils.http import DEFAULT_MAX_BODY_SIZE, create_session, read_bounded

from .base import SourceAdapter, SourceMetadata, filter_window


logger = logging.getLogger("adapters.feed")

_URL_RE = re.compile(r"\bhttps?://\S+")
_DISPLAY_NAME_MARKER = "/ @"
_MEDIA_SELECTORS = (("img", "src"), ("a", "href"), ("source", "src"))


def strip_html(html: str) -> str:
    """Reduce an HTML fragment to text followed by its media URLs."""
    if "<" not in html:
        return html.strip()
    soup = BeautifulSoup(html, "html.parser")
    media: list[str] = []
    for tag_name, attr in _MEDIA_SELECTORS:
        for element in soup.find_all(tag_name):
            link = element.get(attr)
            if isinstance(link, str) and link:
                media.append(link)
    text = soup.get_text().strip()
    return " ".join([text, *media]).strip()


def clean_about(description: str) -> str:
    """Profile "about" text: no HTML, URLs, line breaks or ``@`` signs."""
    text = description
    if "<" in text:
        text = BeautifulSoup(text, "html.parser").get_text()
    text = _URL_RE.sub("", text)
    return text.replace("\n", "").replace("@", "").strip()


def clean_display_name(title: str) -> str:
    """Feed title truncated at the ``/ @`` marker, on a single line."""
    name = title.split(_DISPLAY_NAME_MARKER, 1)[0]
    return " ".join(name.split())


def entry_timestamp(entry: Mapping[str, Any]) -> int | None:
    for key in ("published_parsed", "updated_parsed"):
        parsed_time = entry.get(key)
        if parsed_time:
            return calendar.timegm(parsed_time)
    return None


def entry_description(entry: Mapping[str, Any]) -> str:
    summary = entry.get("summary") or entry.get("description")
    if isinstance(summary, str) and summary:
        return summary
    content = entry.get("content") or []
    if isinstance(content, list) and content:
        first = content[0]
        if isinstance(first, Mapping):
            value = first.get("value")
            if isinstance(value, str):
                return value
    title = entry.get("title")
    return title if isinstance(title, str) else ""


def looks_like_feed(parsed: Any) -> bool:
    """Whether a parse result holds a feed rather than some other document."""
    return bool(parsed.entries) or bool(parsed.feed.get("title"))


def entries_to_items(entries: list[Any]) -> list[ContentItem]:
    """Convert parsed entries to items, skipping undated or invalid entries."""
    items: list[ContentItem] = []
    for entry in entries:
        timestamp = entry_timestamp(entry)
        if timestamp is None or timestamp < 0:
            logger.debug("entry_skipped reason=no_date link=%s", entry.get("link"))
            continue
        link = entry.get("link") or entry.get("id")
        try:
            item = ContentItem(
                timestamp=timestamp,
                body=strip_html(entry_description(entry)),
                link=link if isinstance(link, str) else None,
            )
        except ValueError as e:
            logger.debug("entry_skipped reason=invalid link=%s error=%s", entry.get("link"), e)
            continue
        items.append(item)
    return items


class FeedAdapter(SourceAdapter):
    """[SourceAdapter][dostr.adapters.base.SourceAdapter] for RSS/Atom feeds.

    Args:
        feed_proxy: Host or base URL of the feed proxy resolving handles.
        proxy_url: Optional SOCKS5 proxy shared with the relay transport.
        timeout: Total timeout of one HTTP request, in seconds.
    """

    kind: ClassVar[SourceKind] = SourceKind.FEED

    def __init__(
        self,
        feed_proxy: str,
        *,
        proxy_url: str | None = None,
        timeout: float = 30.0,  # noqa: ASYNC109
    ) -> None:
        base = feed_proxy.strip().rstrip("/")
        self._feed_proxy = base if is_url(base) else f"https://{base}"
        self._proxy_url = proxy_url
        self._timeout = timeout

    def feed_url(self, source_id: str) -> str:
        """URL of the feed document behind *source_id*."""
        if is_url(source_id):
            return source_id
        return f"{self._feed_proxy}/{source_id}/rss"

    async def _download(self, url: str) -> bytes:
        """Download a feed document.

        Raises:
            FetchError: On network failure or a non-200 status.
        """
        try:
            async with (
                create_session(self._proxy_url, self._timeout) as session,
                session.get(url) as resp,
            ):
                if resp.status != HTTPStatus.OK:
                    raise FetchError(f"GET {url}: HTTP {resp.status}", status=resp.status)
                return await read_bounded(resp, DEFAULT_MAX_BODY_SIZE)
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            raise FetchError(f"GET {url}: {e}") from e

    async def _parse(self, source_id: str) -> Any:
        """Download and parse the feed document.

        Raises:
            FetchError: On network failure, a non-200 status, or a document
                that is not a feed.
        """
        url = self.feed_url(source_id)
        body = await self._download(url)
        parsed = await asyncio.to_thread(feedparser.parse, body)
        if getattr(parsed, "bozo", False):
            if not looks_like_feed(parsed):
                raise FetchError(f"{url}: not a feed ({parsed.bozo_exception})")
            logger.warning("feed_parse_warning url=%s error=%s", url, parsed.bozo_exception)
        return parsed

    async def fetch_new_items(
        self,
        source: FollowedSource,
        since: int,
        until: int,
    ) -> list[ContentItem]:
        parsed = await self._parse(source.id)
        return filter_window(entries_to_items(parsed.entries), since, until)

    async def metadata(self, source: FollowedSource) -> SourceMetadata:
        parsed = await self._parse(source.id)
        feed = parsed.feed
        image = feed.get("image") or {}
        picture = image.get("href") or image.get("url") or ""
        website = feed.get("link") or ""
        return SourceMetadata(
            display_name=clean_display_name(feed.get("title") or "") or source.display_name,
            about=clean_about(feed.get("subtitle") or feed.get("description") or ""),
            picture=picture if picture.startswith("http") else "",
            website=website if isinstance(website, str) else "",
        )

    async def exists(self, source_id: str) -> bool:
        try:
            body = await self._download(self.feed_url(source_id))
        except FetchError as e:
            if e.status in (HTTPStatus.NOT_FOUND, HTTPStatus.GONE):
                return False
            raise
        return looks_like_feed(await asyncio.to_thread(feedparser.parse, body))

    async def resolve_display_name(self, source_id: str) -> str:
        parsed = await self._parse(source_id)
        return clean_display_name(parsed.feed.get("title") or "") or source_id
