"""Nostr event builders for every event kind the bridge publishes.

Standalone functions returning ``nostr_sdk.EventBuilder`` instances, plus
[sign_event()][dostr.nips.event_builders.sign_event], which stamps a builder
with the *delivery* time and signs it. Item events are never stamped with
the upstream item's own timestamp; that value travels in an
``item_timestamp`` tag instead.

Kinds produced:

* Kind 0 profile metadata (NIP-01) for the bot and for every followed source.
* Kind 1 text notes for forwarded items, health notifications, the bot's
  hello message, and command replies (NIP-10 ``e``/``p`` reply tags).

See Also:
    [PollingWorker][dostr.services.worker.PollingWorker]: Signs item and
        profile events with the source's keys.
    [HealthMonitor][dostr.services.health.HealthMonitor]: Signs notification
        notes with the bot's keys.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from nostr_sdk import EventBuilder, Kind, Tag, Timestamp
from nostr_sdk import Metadata as NostrMetadata

from dostr.models.constants import EventKind


if TYPE_CHECKING:
    from collections.abc import Sequence

    from nostr_sdk import Event, Keys

    from dostr.models.item import ContentItem


ITEM_TIMESTAMP_TAG = "item_timestamp"


def build_profile_event(
    *,
    name: str | None = None,
    about: str | None = None,
    picture: str | None = None,
    nip05: str | None = None,
    website: str | None = None,
) -> EventBuilder:
    """Build a Kind 0 profile metadata event per NIP-01."""
    profile_data: dict[str, str] = {}
    if name:
        profile_data["name"] = name
    if about:
        profile_data["about"] = about
    if picture:
        profile_data["picture"] = picture
    if nip05:
        profile_data["nip05"] = nip05
    if website:
        profile_data["website"] = website
    return EventBuilder.metadata(NostrMetadata.from_json(json.dumps(profile_data)))


def build_text_note(content: str, tags: Sequence[Sequence[str]] = ()) -> EventBuilder:
    """Build a Kind 1 text note with optional raw tags."""
    builder = EventBuilder(Kind(int(EventKind.TEXT_NOTE)), content)
    if tags:
        builder = builder.tags([Tag.parse(list(tag)) for tag in tags])
    return builder


def format_item_content(item: ContentItem) -> str:
    """Render a content item as note text.

    Items with a link read ``"{body}\\n\\n{link}"``; items without one are
    forwarded verbatim.
    """
    if item.link:
        return f"{item.body}\n\n{item.link}" if item.body else item.link
    return item.body


def build_item_event(item: ContentItem) -> EventBuilder:
    """Build the Kind 1 note that forwards one content item."""
    return build_text_note(
        format_item_content(item),
        [[ITEM_TIMESTAMP_TAG, str(item.timestamp)]],
    )


def reply_tags(event_id: str, author_pubkey: str) -> list[list[str]]:
    """NIP-10 tags that make a note a reply to *event_id* by *author_pubkey*."""
    return [["e", event_id], ["p", author_pubkey]]


def build_reply(
    event_id: str,
    author_pubkey: str,
    content: str,
    mentions: Sequence[str] = (),
) -> EventBuilder:
    """Build a Kind 1 reply, followed by one ``p`` tag per mentioned pubkey.

    Mentions are appended after the reply tags, so the first mention is tag
    index 2 (``#[2]`` in the note text).
    """
    tags = reply_tags(event_id, author_pubkey)
    tags.extend(["p", pubkey] for pubkey in mentions)
    return build_text_note(content, tags)


def sign_event(builder: EventBuilder, keys: Keys, created_at: int) -> Event:
    """Sign *builder* with *keys*, stamped with *created_at* (Unix seconds)."""
    return builder.custom_created_at(Timestamp.from_secs(created_at)).sign_with_keys(keys)
