"""Nostr Implementation Possibilities -- event construction for the bridge.

The NIPs layer sits in the middle of the diamond DAG, depending only on
[dostr.models][dostr.models]. It knows how NIP-01 profile and text-note
events and NIP-10 reply tags are shaped; signing is delegated to
``nostr_sdk``.

Attributes:
    build_profile_event: Kind 0 metadata from name/about/picture/nip05.
    build_text_note: Kind 1 note with raw tags.
    build_item_event: Kind 1 note forwarding one content item with an
        ``item_timestamp`` tag.
    build_reply: Kind 1 reply with ``e``/``p`` tags and trailing mentions.
    sign_event: Stamp a builder with the delivery time and sign it.
"""

from .event_builders import (
    ITEM_TIMESTAMP_TAG,
    build_item_event,
    build_profile_event,
    build_reply,
    build_text_note,
    format_item_content,
    reply_tags,
    sign_event,
)


__all__ = [
    "ITEM_TIMESTAMP_TAG",
    "build_item_event",
    "build_profile_event",
    "build_reply",
    "build_text_note",
    "format_item_content",
    "reply_tags",
    "sign_event",
]
