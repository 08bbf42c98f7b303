"""
Followed source model with adapter-variant detection.

A [FollowedSource][dostr.models.source.FollowedSource] pairs the natural key
of an external origin (channel id, feed URL, or feed handle) with its
display name and the signing keys that author its events. The adapter
variant is derived from the id once, at construction, so every consumer
dispatches on the same decision.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from nostr_sdk import Keys

from ._validation import validate_instance, validate_single_line
from .constants import SourceKind


_URL_PREFIXES = ("http://", "https://")
_NIP05_INVALID_RE = re.compile(r"[^a-z0-9._-]+")


def detect_source_kind(source_id: str) -> SourceKind:
    """Classify a source id into its adapter variant.

    Purely numeric ids are chat channel snowflakes; everything else (feed
    URLs and bare handles) is polled as a syndication feed.

    Examples:
        ```python
        detect_source_kind("1093877126541266984")      # SourceKind.CHANNEL
        detect_source_kind("https://example.com/rss")  # SourceKind.FEED
        detect_source_kind("jack")                     # SourceKind.FEED
        ```
    """
    if source_id.isdigit():
        return SourceKind.CHANNEL
    return SourceKind.FEED


def is_url(source_id: str) -> bool:
    """Whether *source_id* is an absolute HTTP(S) URL."""
    return source_id.lower().startswith(_URL_PREFIXES)


def normalize_source_id(raw: str) -> str:
    """Normalize an operator-supplied source id.

    Surrounding whitespace and ``@`` signs are removed. Handles are
    case-insensitive and lower-cased; URLs are kept verbatim because their
    path component may be case-sensitive.
    """
    value = raw.strip()
    if is_url(value):
        return value
    return value.replace("@", "").lower()


@dataclass(frozen=True, slots=True)
class FollowedSource:
    """Immutable followed source bound to its signing identity.

    Attributes:
        id: Natural key (channel id, feed URL, or handle). Unique in the
            registry.
        display_name: Human-readable name used in the source's profile.
        keys: ``nostr_sdk.Keys`` that sign every event of this source.
        kind: Adapter variant derived from ``id`` (computed).

    Raises:
        ValueError: If ``id`` or ``display_name`` is empty or spans lines.
        TypeError: If ``keys`` is not a ``nostr_sdk.Keys``.

    Warning:
        ``keys`` holds the private key. It is excluded from ``repr`` and
        comparisons and must never be logged.
    """

    id: str
    display_name: str
    keys: Keys = field(repr=False, compare=False)
    kind: SourceKind = field(init=False)

    def __post_init__(self) -> None:
        validate_single_line(self.id, "id")
        validate_single_line(self.display_name, "display_name")
        validate_instance(self.keys, Keys, "keys")
        object.__setattr__(self, "kind", detect_source_kind(self.id))

    @property
    def public_key(self) -> str:
        """Hex-encoded public key of the source's signing identity."""
        return self.keys.public_key().to_hex()

    @property
    def nip05_name(self) -> str:
        """Local part of the source's NIP-05 identifier (``<name>@domain``)."""
        return identity_name(self.id)


def identity_name(value: str) -> str:
    """Reduce an id or display name to a NIP-05 local part.

    NIP-05 only allows ``a-z0-9-_.``; the URL scheme is dropped and every
    other run of characters becomes a single ``_``.

    Examples:
        ```python
        identity_name("Jack")                     # "jack"
        identity_name("https://example.com/rss")  # "example.com_rss"
        ```
    """
    value = value.strip().lower()
    for prefix in _URL_PREFIXES:
        if value.startswith(prefix):
            value = value[len(prefix) :]
            break
    return _NIP05_INVALID_RE.sub("_", value).strip("_")
