"""
Pytest configuration and shared fixtures for dostr tests.

Provides:
- Deterministic bot keys and followed-source factories
- A controllable wall clock injected into workers and the health monitor
- Mocked relay transport and source adapters
- A complete environment for BridgeConfig.from_env
"""

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from nostr_sdk import Keys

from dostr.adapters.base import SourceAdapter, SourceMetadata
from dostr.core.registry import SourceRegistry
from dostr.models import FollowedSource, OutcomeRecord, SourceKind


# Valid secp256k1 test key (DO NOT USE IN PRODUCTION)
VALID_HEX_KEY = (
    "67dea2ed018072d675f5415ecfaed7d2597555e202d85b3d65ea4e58d2d92ffa"  # pragma: allowlist secret
)

START_TIME = 1_700_000_000.0


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Clock
# ============================================================================


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# Keys and Sources
# ============================================================================


@pytest.fixture
def bot_keys() -> Keys:
    return Keys.parse(VALID_HEX_KEY)


@pytest.fixture
def make_source() -> Callable[..., FollowedSource]:
    """Factory for followed sources with fresh keys."""

    def _make(source_id: str = "1093877126541266984", display_name: str | None = None):
        return FollowedSource(source_id, display_name or source_id, Keys.generate())

    return _make


@pytest.fixture
def channel_source(make_source) -> FollowedSource:
    return make_source("1093877126541266984", "general")


@pytest.fixture
def feed_source(make_source) -> FollowedSource:
    return make_source("https://example.com/rss", "Example Feed")


@pytest.fixture
def registry(tmp_path: Path) -> SourceRegistry:
    return SourceRegistry.load(tmp_path / "channels")


# ============================================================================
# Mock Fixtures
# ============================================================================


@pytest.fixture
def mock_transport() -> MagicMock:
    """Relay transport double recording every broadcast event."""
    transport = MagicMock()
    transport.broadcast = AsyncMock(return_value=1)
    transport.reconnect = AsyncMock(return_value=[])
    transport.connect_all = AsyncMock(return_value=[])
    transport.close = AsyncMock()
    transport.connected = []
    transport.relays = []
    return transport


def make_mock_adapter(kind: SourceKind = SourceKind.CHANNEL) -> MagicMock:
    adapter = MagicMock(spec=SourceAdapter)
    adapter.kind = kind
    adapter.fetch_new_items = AsyncMock(return_value=[])
    adapter.metadata = AsyncMock(return_value=SourceMetadata(display_name="general"))
    adapter.exists = AsyncMock(return_value=True)
    adapter.resolve_display_name = AsyncMock(side_effect=lambda source_id: source_id)
    return adapter


@pytest.fixture
def mock_adapter() -> MagicMock:
    return make_mock_adapter(SourceKind.CHANNEL)


@pytest.fixture
def mock_adapters() -> dict[SourceKind, MagicMock]:
    return {
        SourceKind.CHANNEL: make_mock_adapter(SourceKind.CHANNEL),
        SourceKind.FEED: make_mock_adapter(SourceKind.FEED),
    }


@pytest.fixture
def outcomes() -> asyncio.Queue[OutcomeRecord]:
    return asyncio.Queue()


# ============================================================================
# Environment
# ============================================================================


@pytest.fixture
def bridge_env(bot_keys: Keys) -> dict[str, str]:
    """Complete set of required environment variables."""
    return {
        "BOTNAME": "dostr",
        "ABOUT": "Bridge bot",
        "PICTURE_URL": "https://example.com/bot.png",
        "HELLO_MESSAGE": "Hello from dostr!",
        "SECRET": VALID_HEX_KEY,
        "BOTPUB": bot_keys.public_key().to_hex(),
        "APIK": "api-token",
        "WEB_PORT": "8080",
        "NITTER_INSTANCE": "nitter.example.com",
        "DOMAIN": "dostr.example.com",
        "REFRESH_INTERVAL_SECS": "60",
        "ADD_RELAY": "wss://relay.one.example,wss://relay.two.example",
        "MAX_FOLLOWS": "5",
    }
