"""Nostr key management, HTTP helpers, and relay WebSocket transport.

The utils layer sits in the middle of the diamond DAG, depending only on
[dostr.models][dostr.models] and the import-free
[dostr.core.exceptions][dostr.core.exceptions] module. It provides the
low-level network and cryptographic utilities used by
[dostr.adapters][dostr.adapters] and [dostr.services][dostr.services].

Attributes:
    keys: Secret key parsing (hex or nsec1), key generation, and hex export
        for the source registry.
    http: Connector factory for direct or SOCKS5-proxied sessions and bounded
        response readers.
    transport: One WebSocket per relay over a direct or proxied network path,
        with locked best-effort sends, sequential broadcast, subscriptions,
        and reconnection of closed connections.

Examples:
    ```python
    from dostr.utils.transport import RelayTransport
    from dostr.utils.keys import generate_keys
    ```
"""
