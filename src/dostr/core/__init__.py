"""Core layer providing the foundation for all dostr services.

Sits in the middle of the diamond DAG -- depends on ``dostr.models`` and
``dostr.utils.keys`` and is depended upon by ``dostr.services``.

Attributes:
    SourceRegistry: Durable, append-only mapping from followed-source id to
        signing identity. See [SourceRegistry][dostr.core.registry.SourceRegistry].
    BaseService: Abstract generic base class with lifecycle management
        ([run()][dostr.core.base_service.BaseService.run] /
        [run_forever()][dostr.core.base_service.BaseService.run_forever] /
        shutdown) and Prometheus metrics integration.
    Logger: Structured logger supporting key=value and JSON output modes.
        See [Logger][dostr.core.logger.Logger].
    MetricsServer: Prometheus ``/metrics`` HTTP endpoint.
        See [MetricsServer][dostr.core.metrics.MetricsServer].
    YAML: Safe YAML loading with ``yaml.safe_load()``.
        See [load_yaml()][dostr.core.yaml.load_yaml].

See Also:
    [dostr.core.exceptions][]: Typed exception hierarchy.
    [dostr.services][dostr.services]: Service implementations that depend on
        this layer.
"""

from .exceptions import (
    CapacityError,
    ConfigurationError,
    ConnectivityError,
    DostrError,
    FetchError,
    RegistryCorruptError,
    RegistryError,
    SourceExistsError,
    SourceNotFoundError,
)
from .base_service import BaseService, BaseServiceConfig, ConfigT
from .logger import Logger, StructuredFormatter, format_kv_pairs
from .metrics import (
    CYCLE_DURATION_SECONDS,
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    SERVICE_INFO,
    MetricsConfig,
    MetricsRecorder,
    MetricsServer,
)
from .registry import SourceRegistry
from .yaml import load_yaml


__all__ = [
    "CYCLE_DURATION_SECONDS",
    "SERVICE_COUNTER",
    "SERVICE_GAUGE",
    "SERVICE_INFO",
    "BaseService",
    "BaseServiceConfig",
    "CapacityError",
    "ConfigT",
    "ConfigurationError",
    "ConnectivityError",
    "DostrError",
    "FetchError",
    "Logger",
    "MetricsConfig",
    "MetricsRecorder",
    "MetricsServer",
    "RegistryCorruptError",
    "RegistryError",
    "SourceExistsError",
    "SourceNotFoundError",
    "SourceRegistry",
    "StructuredFormatter",
    "format_kv_pairs",
    "load_yaml",
]
