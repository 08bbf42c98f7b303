"""
Abstract base class for long-running dostr services.

``BaseService[ConfigT]`` provides the standard lifecycle: structured logging
via [Logger][dostr.core.logger.Logger], graceful shutdown via
``asyncio.Event``, interval-based cycling with
[run_forever()][dostr.core.base_service.BaseService.run_forever],
a consecutive failure limit, and Prometheus metrics through
[MetricsRecorder][dostr.core.metrics.MetricsRecorder].

Collaborators (registry, transport, adapters) are passed to the subclass
constructor explicitly; services never reach for shared module state.

See Also:
    [Bridge][dostr.services.bridge.Bridge]: The orchestrator built on this class.
    [BaseServiceConfig][dostr.core.base_service.BaseServiceConfig]: Base
        configuration model for all services.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from types import TracebackType
from typing import ClassVar, Generic, Self, TypeVar, cast

from pydantic import BaseModel, Field

from dostr.models.constants import ServiceName

from .logger import Logger
from .metrics import SERVICE_INFO, MetricsConfig, MetricsRecorder


# ---------------------------------------------------------------------------
# Base Configuration
# ---------------------------------------------------------------------------


class BaseServiceConfig(BaseModel):
    """Base configuration shared by all services that run in a loop.

    The fields defined here control the
    [run_forever()][dostr.core.base_service.BaseService.run_forever] cycle
    interval, failure tolerance, and metrics exposition.
    """

    interval: float = Field(
        default=60.0,
        ge=1.0,
        description="Seconds between run cycles",
    )
    max_consecutive_failures: int = Field(
        default=5,
        ge=0,
        description="Stop after this many consecutive errors (0 = unlimited)",
    )
    metrics: MetricsConfig = Field(
        default_factory=MetricsConfig,
        description="Prometheus metrics configuration",
    )


ConfigT = TypeVar("ConfigT", bound=BaseServiceConfig)


class BaseService(ABC, Generic[ConfigT]):
    """Abstract base class for all dostr services.

    Subclasses set ``SERVICE_NAME`` and ``CONFIG_CLASS`` and implement
    [run()][dostr.core.base_service.BaseService.run].

    Attributes:
        SERVICE_NAME: Identifier used in logging and metrics labels.
        CONFIG_CLASS: Pydantic model built when no config is passed.
        _config: Typed service configuration.
        _logger: [Logger][dostr.core.logger.Logger] named after the service.
        _metrics: [MetricsRecorder][dostr.core.metrics.MetricsRecorder]
            bound to the service label.
        _shutdown_event: Clear while running; set once shutdown is requested.

    Note:
        The lifecycle is ``async with service:`` then
        [run_forever()][dostr.core.base_service.BaseService.run_forever].
        The context manager clears/sets the shutdown event on entry/exit.
    """

    SERVICE_NAME: ClassVar[ServiceName]
    CONFIG_CLASS: ClassVar[type[BaseModel]]

    def __init__(self, config: ConfigT | None = None) -> None:
        self._config: ConfigT = (
            config if config is not None else cast("ConfigT", self.CONFIG_CLASS())
        )
        self._logger = Logger(self.SERVICE_NAME)
        self._metrics = MetricsRecorder(self.SERVICE_NAME, self._config.metrics)
        self._shutdown_event = asyncio.Event()

    @property
    def config(self) -> ConfigT:
        """The typed service configuration (read-only)."""
        return self._config

    @abstractmethod
    async def run(self) -> None:
        """Execute one cycle of the service's main logic.

        Called repeatedly by
        [run_forever()][dostr.core.base_service.BaseService.run_forever].
        Implementations perform a bounded unit of work and return.
        """
        ...

    def request_shutdown(self) -> None:
        """Request a graceful shutdown. Safe to call from signal handlers."""
        self._shutdown_event.set()

    @property
    def is_running(self) -> bool:
        """Whether the service is still active (shutdown not yet requested)."""
        return not self._shutdown_event.is_set()

    async def wait(self, timeout: float) -> bool:  # noqa: ASYNC109
        """Wait for either a shutdown signal or a timeout to elapse.

        Returns ``True`` if shutdown was requested during the wait, or
        ``False`` if the timeout expired normally. Use this instead of
        ``asyncio.sleep()`` to enable interruptible waits.
        """
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=timeout)
            return True
        except TimeoutError:
            return False

    async def run_forever(self) -> None:
        """Call [run()][dostr.core.base_service.BaseService.run] every ``config.interval`` seconds.

        Exits when shutdown is requested or when
        ``config.max_consecutive_failures`` consecutive cycles raised (``0``
        disables the limit). The failure counter resets after each successful
        cycle. ``CancelledError``, ``KeyboardInterrupt`` and ``SystemExit``
        always propagate without being counted as failures.

        Metrics: ``cycles_success``, ``cycles_failed``, ``errors_{type}``
        counters; ``consecutive_failures`` and ``last_cycle_timestamp``
        gauges; the cycle duration histogram.
        """
        interval = self._config.interval
        max_consecutive_failures = self._config.max_consecutive_failures

        if self._metrics.enabled:
            SERVICE_INFO.info({"service": self.SERVICE_NAME})

        self._logger.info(
            "run_forever_started",
            interval=interval,
            max_consecutive_failures=max_consecutive_failures,
        )

        consecutive_failures = 0

        while self.is_running:
            cycle_start = time.monotonic()

            try:
                await self.run()

                self._metrics.inc_counter("cycles_success")
                self._metrics.observe_cycle(time.monotonic() - cycle_start)
                self._metrics.set_gauge("last_cycle_timestamp", time.time())
                self._metrics.set_gauge("consecutive_failures", 0)
                consecutive_failures = 0
                self._logger.debug("cycle_completed", next_cycle_s=interval)

            except (asyncio.CancelledError, KeyboardInterrupt, SystemExit):
                raise

            except Exception as e:  # Intentionally broad: top-level error boundary for run_forever
                consecutive_failures += 1

                self._metrics.inc_counter("cycles_failed")
                self._metrics.set_gauge("consecutive_failures", consecutive_failures)
                self._metrics.inc_counter(f"errors_{type(e).__name__}")

                self._logger.error(
                    "run_cycle_error",
                    error=str(e),
                    consecutive_failures=consecutive_failures,
                )

                if (
                    max_consecutive_failures > 0
                    and consecutive_failures >= max_consecutive_failures
                ):
                    self._logger.critical(
                        "max_consecutive_failures_reached",
                        failures=consecutive_failures,
                        limit=max_consecutive_failures,
                    )
                    break

            if await self.wait(interval):
                break

        self._logger.info("run_forever_stopped")

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Self:
        self._shutdown_event.clear()
        self._logger.info("service_started")
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        self._shutdown_event.set()
        self._logger.info("service_stopped")

    # -------------------------------------------------------------------------
    # Custom Metrics
    # -------------------------------------------------------------------------

    def set_gauge(self, name: str, value: float) -> None:
        """Set a named gauge metric for this service (no-op when disabled)."""
        self._metrics.set_gauge(name, value)
