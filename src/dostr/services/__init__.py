"""Long-running components of the bridge.

Services are the top layer of the diamond DAG, depending on
[dostr.core][dostr.core], [dostr.nips][dostr.nips],
[dostr.adapters][dostr.adapters], [dostr.utils][dostr.utils], and
[dostr.models][dostr.models].

```text
                 +--> PollingWorker (one per source) --+
Bridge ----------+                                      +--> OutcomeRecord queue --> HealthMonitor
 (reconnect      +--> command listener (one per relay) --> CommandHandler --!add--> PollingWorker
  sweep)         +--> IdentityServer (NIP-05)
```

Attributes:
    Bridge: Orchestrator extending
        [BaseService][dostr.core.base_service.BaseService]; its ``run()``
        cycle is the relay reconnection sweep.
    PollingWorker: Per-source poll, sign, deliver and report loop.
    HealthMonitor: Debounced status notifications from poll outcomes.
    CommandHandler: ``!add``/``!list``/``!random``/``!relays``/``!uptime``/``!help``.
    IdentityServer: ``/.well-known/nostr.json`` lookups from the registry.
"""

from .bridge import Bridge, BridgeConfig, ProfileConfig
from .commands import CommandHandler
from .health import HealthMonitor
from .identity import IdentityServer
from .worker import PollingWorker


__all__ = [
    "Bridge",
    "BridgeConfig",
    "CommandHandler",
    "HealthMonitor",
    "IdentityServer",
    "PollingWorker",
    "ProfileConfig",
]
