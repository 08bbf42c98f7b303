"""
Prometheus metrics collection and HTTP exposition.

Module-level metric objects are shared by every component of the bridge.
[BaseService.run_forever()][dostr.core.base_service.BaseService.run_forever]
records reconnection sweep counts and durations; workers, the health monitor
and the command handler add their own totals through ``inc_counter`` /
``set_gauge`` on [MetricsRecorder][dostr.core.metrics.MetricsRecorder].

Architecture:
    SERVICE_INFO:               Static metadata set once at startup.
    SERVICE_GAUGE:              Point-in-time values (sources, relays_connected).
    SERVICE_COUNTER:            Cumulative totals (fetch_success, items_delivered, ...).
    CYCLE_DURATION_SECONDS:     Histogram of reconnection sweep durations.
"""

from __future__ import annotations

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class MetricsConfig(BaseModel):
    """Configuration for the Prometheus metrics endpoint.

    The endpoint is only started when ``enabled`` is True.
    """

    enabled: bool = Field(default=False, description="Enable metrics collection")
    port: int = Field(default=8000, ge=1024, le=65535, description="Metrics HTTP port")
    host: str = Field(default="127.0.0.1", description="Metrics HTTP bind address")
    path: str = Field(default="/metrics", description="Metrics endpoint path")


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

SERVICE_INFO = Info(
    "dostr_service",
    "Bridge information and metadata",
)

CYCLE_DURATION_SECONDS = Histogram(
    "dostr_cycle_duration_seconds",
    "Duration of a reconnection sweep in seconds",
    ["service"],
    buckets=(0.1, 0.5, 1, 5, 10, 30, 60, 120),
)

# Labels in use:
#   gauge:   sources, relays_connected, consecutive_failures, last_cycle_timestamp
#   counter: cycles_success, cycles_failed, errors_{type}, fetch_success,
#            fetch_failed, items_delivered, notifications_sent, sources_added

SERVICE_GAUGE = Gauge(
    "dostr_service_gauge",
    "Service gauge values (point-in-time state)",
    ["service", "name"],
)

SERVICE_COUNTER = Counter(
    "dostr_service_counter",
    "Service counter values (cumulative totals)",
    ["service", "name"],
)


class MetricsRecorder:
    """Label-bound view of the shared metrics for one component.

    A no-op when metrics are disabled, so components can record
    unconditionally.
    """

    def __init__(self, service: str, config: MetricsConfig | None = None) -> None:
        self._service = service
        self._enabled = config.enabled if config is not None else False

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_gauge(self, name: str, value: float) -> None:
        if not self._enabled:
            return
        SERVICE_GAUGE.labels(service=self._service, name=name).set(value)

    def inc_counter(self, name: str, value: float = 1) -> None:
        if not self._enabled:
            return
        SERVICE_COUNTER.labels(service=self._service, name=name).inc(value)

    def observe_cycle(self, duration: float) -> None:
        if not self._enabled:
            return
        CYCLE_DURATION_SECONDS.labels(service=self._service).observe(duration)


# ---------------------------------------------------------------------------
# HTTP Server
# ---------------------------------------------------------------------------


class MetricsServer:
    """Async HTTP server exposing a Prometheus-compatible endpoint.

    Example:
        server = MetricsServer(MetricsConfig(enabled=True, port=8001))
        await server.start()
        # ... bridge runs ...
        await server.stop()
    """

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start listening for scrape requests; no-op when metrics are disabled.

        Raises:
            OSError: If the port is already in use or binding fails.
        """
        if not self._config.enabled:
            return

        app = web.Application()
        app.router.add_get(self._config.path, self._handle_metrics)

        self._runner = web.AppRunner(app, access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()

    async def stop(self) -> None:
        """Stop the HTTP server. Safe to call if it was never started."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    @staticmethod
    async def _handle_metrics(_request: web.Request) -> web.Response:
        return web.Response(
            body=generate_latest(),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )
