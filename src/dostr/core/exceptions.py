"""dostr exception hierarchy.

Provides typed exceptions for every error category of the bridge so that
callers can tell recoverable conditions (a failed fetch, an unreachable
relay) from fatal ones (bad configuration, a corrupt registry) and let
``CancelledError`` propagate untouched.

Exception hierarchy:

```text
DostrError (base -- never raised directly)
├── ConfigurationError        -- missing/invalid settings, bad YAML
├── RegistryError             -- source registry failures
│   ├── SourceExistsError     -- duplicate insert (typed, non-fatal)
│   ├── SourceNotFoundError   -- lookup of an absent id (programming error)
│   └── RegistryCorruptError  -- duplicate id in the durable file
├── CapacityError             -- registry at its configured maximum
├── FetchError                -- adapter network/parse failure
└── ConnectivityError         -- relay unreachable or connection closed
```

See Also:
    [SourceRegistry][dostr.core.registry.SourceRegistry]: Raises the
        [RegistryError][dostr.core.exceptions.RegistryError] family.
    [SourceAdapter][dostr.adapters.base.SourceAdapter]: Raises
        [FetchError][dostr.core.exceptions.FetchError].
    [RelayTransport][dostr.utils.transport.RelayTransport]: Raises
        [ConnectivityError][dostr.core.exceptions.ConnectivityError] from
        ``connect`` only; sends never raise.
"""

from __future__ import annotations


class DostrError(Exception):
    """Base exception for all dostr errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(DostrError):
    """Invalid or missing configuration (environment, YAML, CLI flags).

    Fatal at startup: the CLI prints the message and exits with status 1.
    """


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class RegistryError(DostrError):
    """Base for all source registry errors."""


class SourceExistsError(RegistryError):
    """A source with the same id is already registered.

    Returned to the "add" caller as a typed failure; never fatal.
    """

    def __init__(self, source_id: str) -> None:
        super().__init__(f"source already registered: {source_id}")
        self.source_id = source_id


class SourceNotFoundError(RegistryError):
    """Lookup of an id that is not in the registry.

    Callers are expected to check ``contains`` first, so this signals a
    programming error.
    """

    def __init__(self, source_id: str) -> None:
        super().__init__(f"source not registered: {source_id}")
        self.source_id = source_id


class RegistryCorruptError(RegistryError):
    """The durable registry file holds the same id on two lines.

    Fatal at load: the store must never have been written that way.
    """


# ---------------------------------------------------------------------------
# Capacity
# ---------------------------------------------------------------------------


class CapacityError(DostrError):
    """The registry already holds the configured maximum number of sources."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"maximum number of followed sources reached ({limit})")
        self.limit = limit


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------


class FetchError(DostrError):
    """An adapter could not fetch or parse upstream content.

    Recovered locally by the polling worker: the window is not advanced
    and the cycle is reported as failed.
    """

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------


class ConnectivityError(DostrError):
    """A relay is unreachable or its connection is closed."""
