"""Shared constants for the models layer.

Defines enumerations that are used across multiple model modules and by
every layer above. Placing them here avoids circular dependencies between
the models, utils, and services layers.

See Also:
    [dostr.models.source][]: Uses [SourceKind][dostr.models.constants.SourceKind]
        to tag every followed source with its adapter variant.
    [dostr.models.outcome][]: Uses [FetchStatus][dostr.models.constants.FetchStatus]
        for per-cycle poll outcomes.
    [dostr.utils.transport][]: Uses [TransportKind][dostr.models.constants.TransportKind]
        to select the direct or proxied connection strategy.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class NetworkType(StrEnum):
    """Network type of a relay host.

    Overlay hosts (``.onion``, ``.i2p``, ``.loki``) are only reachable over
    [TransportKind.PROXIED][dostr.models.constants.TransportKind].

    Attributes:
        CLEARNET: Public internet host.
        TOR: Tor hidden service identified by a ``.onion`` hostname.
        I2P: I2P eepsite identified by a ``.i2p`` hostname.
        LOKI: Lokinet service identified by a ``.loki`` hostname.
        LOCAL: Loopback or private address, accepted for self-hosted relays.
    """

    CLEARNET = "clearnet"
    TOR = "tor"
    I2P = "i2p"
    LOKI = "loki"
    LOCAL = "local"


class TransportKind(StrEnum):
    """Network path used to reach every relay and upstream source.

    Selected once per process by the ``--clearnet`` / ``--tor`` CLI flag.

    Attributes:
        DIRECT: Plain TCP/TLS connection from this host.
        PROXIED: Connection tunnelled through a local SOCKS5 proxy (Tor).
    """

    DIRECT = "direct"
    PROXIED = "proxied"


class FetchStatus(StrEnum):
    """Outcome of one adapter fetch, as reported to the health monitor.

    Only the fetch decides the status: relay delivery failures during the
    same cycle never turn a ``SUCCESS`` into a ``FAILED``.
    """

    SUCCESS = "success"
    FAILED = "failed"


class SourceKind(StrEnum):
    """Adapter variant that knows how to poll a followed source.

    Attributes:
        CHANNEL: Chat channel polled through a paged message-history query.
            Identified by a purely numeric channel id.
        FEED: Syndication feed polled by fetching and parsing the document.
            Identified by a feed URL or a handle resolved through the feed proxy.
    """

    CHANNEL = "channel"
    FEED = "feed"


class EventKind(IntEnum):
    """Nostr event kinds produced by the bridge.

    Attributes:
        PROFILE: Kind 0 profile metadata (NIP-01).
        TEXT_NOTE: Kind 1 short text note (NIP-01).
    """

    PROFILE = 0
    TEXT_NOTE = 1


class ServiceName(StrEnum):
    """Canonical component names used in logging and metrics labels."""

    BRIDGE = "bridge"
    WORKER = "worker"
    HEALTH = "health"
    COMMANDS = "commands"
    IDENTITY = "identity"
