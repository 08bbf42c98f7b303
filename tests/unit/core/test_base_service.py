"""
Unit tests for core.base_service module.

Tests:
- BaseServiceConfig defaults and validation
- run_forever() cycling, shutdown and consecutive failure limit
- wait() interruptible sleep
- Context manager support
"""

import asyncio
from typing import ClassVar

import pytest

from dostr.core.base_service import BaseService, BaseServiceConfig
from dostr.models.constants import ServiceName


class ConcreteServiceConfig(BaseServiceConfig):
    """Test configuration inheriting from BaseServiceConfig."""


class ConcreteService(BaseService[ConcreteServiceConfig]):
    """Test implementation."""

    SERVICE_NAME: ClassVar[ServiceName] = ServiceName.BRIDGE
    CONFIG_CLASS: ClassVar[type[ConcreteServiceConfig]] = ConcreteServiceConfig

    def __init__(self, config: ConcreteServiceConfig | None = None, stop_after: int = 0):
        super().__init__(config)
        self.run_count = 0
        self.should_fail = False
        self.stop_after = stop_after

    async def run(self):
        self.run_count += 1
        if self.stop_after and self.run_count >= self.stop_after:
            self.request_shutdown()
        if self.should_fail:
            raise RuntimeError("Simulated failure")


class TestBaseServiceConfig:
    def test_defaults(self):
        config = BaseServiceConfig()
        assert config.interval == 60.0
        assert config.max_consecutive_failures == 5
        assert config.metrics.enabled is False

    def test_interval_minimum(self):
        with pytest.raises(ValueError):
            BaseServiceConfig(interval=0.5)

    def test_max_consecutive_failures_zero_allowed(self):
        assert BaseServiceConfig(max_consecutive_failures=0).max_consecutive_failures == 0


class TestLifecycle:
    async def test_context_manager(self):
        service = ConcreteService()
        async with service:
            assert service.is_running
        assert not service.is_running

    async def test_wait_returns_true_on_shutdown(self):
        service = ConcreteService()
        service.request_shutdown()
        assert await service.wait(10) is True

    async def test_wait_times_out(self):
        service = ConcreteService()
        assert await service.wait(0.01) is False

    async def test_run_forever_stops_on_shutdown(self):
        service = ConcreteService(ConcreteServiceConfig(interval=1.0), stop_after=1)
        async with service:
            await asyncio.wait_for(service.run_forever(), timeout=5)
        assert service.run_count == 1

    async def test_run_forever_stops_after_max_failures(self):
        config = ConcreteServiceConfig(interval=1.0, max_consecutive_failures=1)
        service = ConcreteService(config)
        service.should_fail = True
        async with service:
            await asyncio.wait_for(service.run_forever(), timeout=5)
        assert service.run_count == 1
