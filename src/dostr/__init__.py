r"""dostr -- bridge from chat channels and syndication feeds to Nostr relays.

Every followed source (a chat channel, a feed URL, or a feed handle) gets its
own Nostr identity. A polling worker per source fetches new content on a
fixed interval, signs it with that identity, and broadcasts it to every
configured relay, directly or through Tor.

Architecture follows a **diamond DAG** dependency structure where imports
flow strictly downward:

```text
              services         Bridge, workers, health, commands, identity
             /   |   \
          core  nips  utils    Registry, logging, metrics / event builders / transport
             \   |   /         (adapters sit beside nips)
              models           Pure frozen dataclasses (zero I/O)
```

Note:
    For lightweight usage, import directly from subpackages::

        from dostr.models import FollowedSource
        from dostr.core import SourceRegistry

    Top-level imports (``from dostr import Bridge``) use lazy loading
    and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("dostr")

__all__ = [
    "BaseService",
    "Bridge",
    "BridgeConfig",
    "ChannelAdapter",
    "CommandHandler",
    "ContentItem",
    "FeedAdapter",
    "FollowedSource",
    "HealthMonitor",
    "IdentityServer",
    "Logger",
    "OutcomeRecord",
    "PollWindow",
    "PollingWorker",
    "Relay",
    "RelayTransport",
    "SourceAdapter",
    "SourceRegistry",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BaseService": ("dostr.core", "BaseService"),
    "Logger": ("dostr.core", "Logger"),
    "SourceRegistry": ("dostr.core", "SourceRegistry"),
    "ContentItem": ("dostr.models", "ContentItem"),
    "FollowedSource": ("dostr.models", "FollowedSource"),
    "OutcomeRecord": ("dostr.models", "OutcomeRecord"),
    "PollWindow": ("dostr.models", "PollWindow"),
    "Relay": ("dostr.models", "Relay"),
    "ChannelAdapter": ("dostr.adapters", "ChannelAdapter"),
    "FeedAdapter": ("dostr.adapters", "FeedAdapter"),
    "SourceAdapter": ("dostr.adapters", "SourceAdapter"),
    "RelayTransport": ("dostr.utils.transport", "RelayTransport"),
    "Bridge": ("dostr.services", "Bridge"),
    "BridgeConfig": ("dostr.services", "BridgeConfig"),
    "CommandHandler": ("dostr.services", "CommandHandler"),
    "HealthMonitor": ("dostr.services", "HealthMonitor"),
    "IdentityServer": ("dostr.services", "IdentityServer"),
    "PollingWorker": ("dostr.services", "PollingWorker"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'dostr' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
