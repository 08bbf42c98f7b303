"""
Validated relay address with network type detection.

Parses and normalizes WebSocket relay URLs (``ws://`` or ``wss://``) given in
the ``ADD_RELAY`` setting and classifies the host (clearnet, Tor, I2P,
Lokinet, local). Unlike a crawler, the bridge is told which relays to use by
its operator, so the scheme is kept as configured and local addresses are
accepted for self-hosted relays.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from ipaddress import ip_address
from typing import ClassVar

from rfc3986 import uri_reference
from rfc3986.exceptions import UnpermittedComponentError, ValidationError
from rfc3986.validators import Validator

from .constants import NetworkType


@dataclass(frozen=True, slots=True)
class Relay:
    """Immutable relay endpoint the bridge publishes to.

    Attributes:
        url: Normalized URL including scheme, without trailing slash.
        network: Detected [NetworkType][dostr.models.constants.NetworkType].
        scheme: ``ws`` or ``wss``.
        host: Hostname or IP address (brackets stripped for IPv6).
        port: Explicit port number, or ``None`` for the scheme default.

    Raises:
        ValueError: If the URL is malformed, uses a scheme other than
            ``ws``/``wss``, carries a query or fragment, or contains null bytes.

    Examples:
        ```python
        relay = Relay("wss://relay.damus.io/")
        relay.url        # 'wss://relay.damus.io'
        relay.network    # NetworkType.CLEARNET
        Relay("ws://abc.onion").is_overlay  # True
        ```
    """

    raw_url: str = field(repr=False)

    url: str = field(init=False)
    network: NetworkType = field(init=False)
    scheme: str = field(init=False)
    host: str = field(init=False)
    port: int | None = field(init=False)

    _NETWORK_TLDS: ClassVar[dict[str, NetworkType]] = {
        ".onion": NetworkType.TOR,
        ".i2p": NetworkType.I2P,
        ".loki": NetworkType.LOKI,
    }

    def __post_init__(self) -> None:
        if "\x00" in self.raw_url:
            raise ValueError("Relay URL contains null bytes")

        uri = uri_reference(self.raw_url.strip()).normalize()
        validator = (
            Validator()
            .require_presence_of("scheme", "host")
            .allow_schemes("ws", "wss")
            .check_validity_of("scheme", "host", "port", "path")
        )
        try:
            validator.validate(uri)
        except UnpermittedComponentError:
            raise ValueError("Invalid scheme: must be ws or wss") from None
        except ValidationError as e:
            raise ValueError(f"Invalid URL: {e}") from None

        if uri.query:
            raise ValueError(f"Relay URL must not contain a query string: ?{uri.query}")
        if uri.fragment:
            raise ValueError(f"Relay URL must not contain a fragment: #{uri.fragment}")

        host = uri.host.strip("[]")
        port = int(uri.port) if uri.port else None
        path = (uri.path or "").rstrip("/")
        formatted_host = f"[{host}]" if ":" in host else host
        authority = f"{formatted_host}:{port}" if port else formatted_host

        object.__setattr__(self, "url", f"{uri.scheme}://{authority}{path}")
        object.__setattr__(self, "network", self._detect_network(host))
        object.__setattr__(self, "scheme", uri.scheme)
        object.__setattr__(self, "host", host)
        object.__setattr__(self, "port", port)

    def __str__(self) -> str:
        return self.url

    @property
    def is_overlay(self) -> bool:
        """Whether the host lives on an overlay network and needs the proxy."""
        return self.network in (NetworkType.TOR, NetworkType.I2P, NetworkType.LOKI)

    @staticmethod
    def _detect_network(host: str) -> NetworkType:
        host_bare = host.lower()
        for tld, network in Relay._NETWORK_TLDS.items():
            if host_bare.endswith(tld):
                return network
        if host_bare in ("localhost", "localhost.localdomain"):
            return NetworkType.LOCAL
        try:
            ip = ip_address(host_bare)
        except ValueError:
            return NetworkType.CLEARNET
        if ip.is_loopback or ip.is_private or ip.is_link_local:
            return NetworkType.LOCAL
        return NetworkType.CLEARNET


def parse_relay_list(raw: str) -> list[Relay]:
    """Parse a comma-separated relay list, dropping blanks and duplicates.

    Raises:
        ValueError: If any entry is not a valid relay URL, or the list is empty.
    """
    relays: list[Relay] = []
    seen: set[str] = set()
    for part in raw.split(","):
        if not part.strip():
            continue
        relay = Relay(part)
        if relay.url not in seen:
            seen.add(relay.url)
            relays.append(relay)
    if not relays:
        raise ValueError("relay list is empty")
    return relays
