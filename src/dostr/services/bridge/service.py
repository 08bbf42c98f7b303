"""Bridge orchestrator: wires workers, health, commands and identity together.

The [Bridge][dostr.services.bridge.Bridge] owns every long-lived task of the
process:

* one [PollingWorker][dostr.services.worker.PollingWorker] per followed
  source, started at boot for each registry row and at runtime by ``!add``;
* the [HealthMonitor][dostr.services.health.HealthMonitor] consuming the
  shared outcome queue;
* one command listener per relay connection, feeding notes that tag the bot
  to the [CommandHandler][dostr.services.commands.CommandHandler];
* the [IdentityServer][dostr.services.identity.IdentityServer] answering
  NIP-05 lookups.

Each ``run()`` cycle is the relay reconnection sweep: closed connections are
re-opened, re-subscribed, and get a fresh listener. Workers are never
restarted by the sweep; their sends fail silently until the relay is back.

See Also:
    [BridgeConfig][dostr.services.bridge.BridgeConfig]: Configuration model.
    [RelayTransport][dostr.utils.transport.RelayTransport]: Connection owner.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import TYPE_CHECKING, Any, ClassVar

from nostr_sdk import Event, Filter, Kind, Timestamp

from dostr.adapters import ChannelAdapter, FeedAdapter
from dostr.core.base_service import BaseService
from dostr.core.exceptions import ConnectivityError
from dostr.core.metrics import MetricsRecorder
from dostr.core.registry import SourceRegistry
from dostr.models.constants import EventKind, ServiceName, SourceKind, TransportKind
from dostr.models.outcome import OutcomeRecord
from dostr.models.source import identity_name
from dostr.nips.event_builders import build_profile_event, build_text_note, sign_event
from dostr.services.commands import CommandHandler
from dostr.services.health import HealthMonitor
from dostr.services.identity import IdentityServer
from dostr.services.worker import PollingWorker
from dostr.utils.transport import RelayTransport

from .configs import BridgeConfig


if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine
    from types import TracebackType

    from dostr.adapters.base import AdapterMap
    from dostr.models.source import FollowedSource
    from dostr.utils.transport import RelayConnection


COMMAND_SUBSCRIPTION_ID = "dostr-commands"


class Bridge(BaseService[BridgeConfig]):
    """Chat/feed to Nostr bridge.

    Lifecycle:
        1. ``__aenter__``: connect relays, subscribe for commands, publish
           the bot profile and hello note, start the health monitor, one
           worker per registered source, and the identity server.
        2. ``run()``: reconnect closed relays and refresh gauges.
        3. ``__aexit__``: cancel every task, stop the identity server and
           close the relay connections.

    Args:
        config: Bridge configuration.
        registry: Loaded source registry.
        transport: Relay transport (not yet connected).
        adapters: Adapter per [SourceKind][dostr.models.constants.SourceKind].
        clock: Wall-clock source returning Unix seconds.
    """

    SERVICE_NAME: ClassVar[ServiceName] = ServiceName.BRIDGE
    CONFIG_CLASS: ClassVar[type[BridgeConfig]] = BridgeConfig

    def __init__(
        self,
        config: BridgeConfig,
        *,
        registry: SourceRegistry,
        transport: RelayTransport,
        adapters: AdapterMap,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(config)
        self._registry = registry
        self._transport = transport
        self._adapters = adapters
        self._clock = clock
        self._keys = config.keys
        self._pubkey_hex = self._keys.public_key().to_hex()
        self._started_at = int(clock())

        self._outcomes: asyncio.Queue[OutcomeRecord] = asyncio.Queue()
        self._workers: dict[str, asyncio.Task[None]] = {}
        self._background: set[asyncio.Task[None]] = set()

        self._health = HealthMonitor(
            self._keys,
            transport,
            self._outcomes,
            discard_period=config.discard_period,
            clock=clock,
            metrics=MetricsRecorder(ServiceName.HEALTH, config.metrics),
        )
        self._commands = CommandHandler(
            self._keys,
            registry,
            adapters,
            transport,
            max_follows=config.max_follows,
            spawn_worker=self.start_worker,
            clock=clock,
            metrics=MetricsRecorder(ServiceName.COMMANDS, config.metrics),
        )
        self._identity = IdentityServer(
            registry,
            bot_name=config.profile.name,
            bot_pubkey=self._pubkey_hex,
            host=config.web_host,
            port=config.web_port,
        )
        self._worker_metrics = MetricsRecorder(ServiceName.WORKER, config.metrics)

    @classmethod
    def create(cls, config: BridgeConfig, transport_kind: TransportKind) -> Bridge:
        """Build a bridge and its collaborators from *config*.

        Upstream fetches take the same network path as relay traffic.

        Raises:
            RegistryCorruptError: If the registry file holds duplicate ids.
            OSError: If the registry file cannot be created or read.
        """
        transport = RelayTransport(
            config.relay_list,
            transport_kind,
            proxy_url=config.proxy_url,
            connect_timeout=config.connect_timeout,
        )
        proxy_url = transport.proxy_url
        adapters = {
            SourceKind.CHANNEL: ChannelAdapter(
                config.api_token.get_secret_value(),
                api_url=config.channel_api_url,
                proxy_url=proxy_url,
                timeout=config.fetch_timeout,
                history_limit=config.history_limit,
            ),
            SourceKind.FEED: FeedAdapter(
                config.feed_proxy,
                proxy_url=proxy_url,
                timeout=config.fetch_timeout,
            ),
        }
        registry = SourceRegistry.load(config.registry_path)
        return cls(config, registry=registry, transport=transport, adapters=adapters)

    @property
    def registry(self) -> SourceRegistry:
        return self._registry

    @property
    def commands(self) -> CommandHandler:
        return self._commands

    @property
    def workers(self) -> dict[str, asyncio.Task[None]]:
        return dict(self._workers)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Bridge:
        await super().__aenter__()
        try:
            await self._start()
        except BaseException:
            await self.__aexit__(None, None, None)
            raise
        return self

    async def _start(self) -> None:
        connections = await self._transport.connect_all()
        self._logger.info(
            "relays_connected",
            connected=len(connections),
            configured=len(self._transport.relays),
            transport=self._transport.transport_kind,
        )
        for conn in connections:
            await self._attach(conn)

        await self.announce()

        self._spawn(self._health.run(), "health")
        for source in self._registry.sources():
            self.start_worker(source)

        await self._identity.start()
        self._update_gauges()

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        tasks = [*self._workers.values(), *self._background]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._workers.clear()
        self._background.clear()

        await self._identity.stop()
        await self._transport.close()
        self._logger.info("relays_closed")
        await super().__aexit__(_exc_type, _exc_val, _exc_tb)

    async def run(self) -> None:
        """Reconnect closed relays and re-attach command listeners.

        Raises:
            ConnectivityError: If no relay is connected after the sweep.
        """
        reconnected = await self._transport.reconnect()
        for conn in reconnected:
            await self._attach(conn)
        if reconnected:
            self._logger.info("relays_reconnected", count=len(reconnected))

        self._update_gauges()
        if not self._transport.connected:
            raise ConnectivityError("no relay connected")

    # -------------------------------------------------------------------------
    # Workers
    # -------------------------------------------------------------------------

    def start_worker(self, source: FollowedSource) -> asyncio.Task[None]:
        """Start the polling worker of *source*, unless it is already running."""
        existing = self._workers.get(source.id)
        if existing is not None and not existing.done():
            return existing

        worker = PollingWorker(
            source,
            self._adapters[source.kind],
            self._transport,
            self._outcomes,
            refresh_interval=self._config.refresh_interval,
            fetch_timeout=self._config.fetch_timeout,
            nip05_domain=self._config.domain,
            clock=self._clock,
            metrics=self._worker_metrics,
            shutdown=self._shutdown_event,
        )
        task = asyncio.create_task(worker.run(), name=f"worker:{source.id}")
        task.add_done_callback(self._on_task_done)
        self._workers[source.id] = task
        self.set_gauge("sources", self._registry.count())
        return task

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> asyncio.Task[None]:
        task = asyncio.create_task(coro, name=name)
        task.add_done_callback(self._on_task_done)
        task.add_done_callback(self._background.discard)
        self._background.add(task)
        return task

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._logger.error("task_crashed", task=task.get_name(), error=str(error))

    # -------------------------------------------------------------------------
    # Bot identity
    # -------------------------------------------------------------------------

    async def announce(self) -> None:
        """Publish the bot's profile and its hello note."""
        profile = self._config.profile
        builder = build_profile_event(
            name=profile.name,
            about=profile.about,
            picture=profile.picture,
            nip05=f"{identity_name(profile.name)}@{self._config.domain}",
        )
        now = int(self._clock())
        await self._transport.broadcast(sign_event(builder, self._keys, now))
        delivered = await self._transport.broadcast(
            sign_event(build_text_note(profile.hello_message), self._keys, now)
        )
        self._logger.info("bot_announced", pubkey=self._pubkey_hex, relays=delivered)

    # -------------------------------------------------------------------------
    # Command listeners
    # -------------------------------------------------------------------------

    def command_filter(self) -> dict[str, Any]:
        """Subscription filter for text notes tagging the bot since startup."""
        filter_ = (
            Filter()
            .kind(Kind(int(EventKind.TEXT_NOTE)))
            .pubkey(self._keys.public_key())
            .since(Timestamp.from_secs(self._started_at))
        )
        return json.loads(filter_.as_json())

    async def _attach(self, conn: RelayConnection) -> None:
        try:
            await conn.subscribe(COMMAND_SUBSCRIPTION_ID, self.command_filter())
        except ConnectivityError as e:
            self._logger.warning("subscribe_failed", relay=conn.peer_address, error=str(e))
            return
        self._spawn(self._listen(conn), f"listener:{conn.peer_address}")

    async def _listen(self, conn: RelayConnection) -> None:
        async for frame in conn.messages():
            if frame[0] != "EVENT" or len(frame) < 3:  # noqa: PLR2004
                continue
            try:
                event = Event.from_json(json.dumps(frame[2]))
            except Exception as e:  # nostr_sdk raises its own NostrError type
                self._logger.debug("invalid_event", relay=conn.peer_address, error=str(e))
                continue
            if not event.verify():
                self._logger.debug("unverified_event", relay=conn.peer_address)
                continue
            try:
                await self._commands.process(event)
            except (OSError, ValueError) as e:
                self._logger.error("command_failed", relay=conn.peer_address, error=str(e))
        self._logger.info("listener_stopped", relay=conn.peer_address)

    def _update_gauges(self) -> None:
        self.set_gauge("sources", self._registry.count())
        self.set_gauge("relays_connected", len(self._transport.connected))
