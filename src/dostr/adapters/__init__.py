"""Source adapters -- the upstream side of the bridge.

Each adapter implements [SourceAdapter][dostr.adapters.base.SourceAdapter]
for one [SourceKind][dostr.models.constants.SourceKind]. Adapters perform
HTTP I/O (optionally through the SOCKS5 proxy) and report every failure as a
[FetchError][dostr.core.exceptions.FetchError].

Attributes:
    ChannelAdapter: Chat channels polled through the REST message history.
    FeedAdapter: RSS/Atom feeds, by URL or by handle through the feed proxy.
    SourceMetadata: Profile data (name, about, picture, website) of a source.
"""

from .base import AdapterMap, SourceAdapter, SourceMetadata, filter_window
from .channel import ChannelAdapter
from .feed import FeedAdapter


__all__ = [
    "AdapterMap",
    "ChannelAdapter",
    "FeedAdapter",
    "SourceAdapter",
    "SourceMetadata",
    "filter_window",
]
