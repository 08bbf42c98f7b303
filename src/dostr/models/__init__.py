"""Pure frozen dataclasses with zero I/O for the bridge's domain objects.

The models layer is the foundation of the diamond DAG. It depends on no other
dostr package; only the standard library, ``rfc3986`` for URL validation, and
``nostr_sdk.Keys`` as the type of a source's signing identity. Every model uses
``@dataclass(frozen=True, slots=True)`` and validates in ``__post_init__`` so
invalid instances never escape the constructor.

Attributes:
    FollowedSource: A followed external origin bound to its signing keys,
        tagged with its [SourceKind][dostr.models.constants.SourceKind].
    ContentItem: One unit of content returned by a source adapter.
    PollWindow: Half-open ``[since, until)`` interval owned by one worker.
    OutcomeRecord: Per-cycle fetch outcome consumed by the health monitor.
    Relay: Validated ``ws``/``wss`` relay address with network detection.

See Also:
    [dostr.models.constants][]: Shared enumerations.
    [dostr.core][]: Registry, logging and service lifecycle built on these models.
"""

from .constants import EventKind, FetchStatus, NetworkType, ServiceName, SourceKind, TransportKind
from .item import ContentItem, PollWindow
from .outcome import OutcomeRecord
from .relay import Relay, parse_relay_list
from .source import (
    FollowedSource,
    detect_source_kind,
    identity_name,
    is_url,
    normalize_source_id,
)


__all__ = [
    "ContentItem",
    "EventKind",
    "FetchStatus",
    "FollowedSource",
    "NetworkType",
    "OutcomeRecord",
    "PollWindow",
    "Relay",
    "ServiceName",
    "SourceKind",
    "TransportKind",
    "detect_source_kind",
    "identity_name",
    "is_url",
    "normalize_source_id",
    "parse_relay_list",
]
