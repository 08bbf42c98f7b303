"""
Per-source polling worker.

One [PollingWorker][dostr.services.worker.PollingWorker] runs for every
followed source for the lifetime of the process. It owns the source's
[PollWindow][dostr.models.item.PollWindow] and cycles through a fixed set of
states:

```text
Announcing (once) -> Idle -> Fetching -> Delivering -> ReportingStatus -> Idle ...
                             Fetching (failed) ---------> ReportingStatus
```

* **Announcing**: publish the source's kind 0 profile from the adapter's
  metadata. Failure is logged and the worker continues.
* **Idle**: interruptible sleep for ``refresh_interval`` seconds.
* **Fetching**: ask the adapter for ``[since, now)``. Only a successful fetch
  advances the window; zero items is still a success.
* **Delivering**: reverse the batch to chronological order, sign each item
  with the source's keys at the current wall-clock time and broadcast it.
  Relay failures are absorbed by the transport.
* **ReportingStatus**: put one
  [OutcomeRecord][dostr.models.outcome.OutcomeRecord] on the health queue.

See Also:
    [HealthMonitor][dostr.services.health.HealthMonitor]: Consumes the
        outcome queue.
    [SourceAdapter][dostr.adapters.base.SourceAdapter]: The fetch contract.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, TypeVar

from dostr.adapters.base import SourceMetadata
from dostr.core.exceptions import FetchError
from dostr.core.logger import Logger
from dostr.core.metrics import MetricsRecorder
from dostr.models.constants import FetchStatus, ServiceName
from dostr.models.item import PollWindow
from dostr.models.outcome import OutcomeRecord
from dostr.nips.event_builders import build_item_event, build_profile_event, sign_event


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from dostr.adapters.base import SourceAdapter
    from dostr.models.item import ContentItem
    from dostr.models.source import FollowedSource
    from dostr.utils.transport import RelayTransport


_T = TypeVar("_T")


class PollingWorker:
    """Long-lived task that mirrors one followed source to the relays.

    Args:
        source: The source to poll; its keys sign every event.
        adapter: Adapter matching ``source.kind``.
        transport: Shared relay transport.
        outcomes: Queue consumed by the health monitor.
        refresh_interval: Seconds to sleep between polls.
        fetch_timeout: Deadline for one adapter call; ``None`` disables it.
            An expired deadline is handled like a failed fetch.
        nip05_domain: Domain used for the profile's ``nip05`` field, or
            ``None`` to omit it.
        clock: Wall-clock source returning Unix seconds.
        metrics: Recorder for ``fetch_*`` and ``items_delivered`` counters.
        shutdown: Event that interrupts the idle sleep when set.

    Note:
        The first window starts at the moment the worker is created, so
        content published before the source was followed is never
        forwarded.
    """

    def __init__(  # noqa: PLR0913
        self,
        source: FollowedSource,
        adapter: SourceAdapter,
        transport: RelayTransport,
        outcomes: asyncio.Queue[OutcomeRecord],
        *,
        refresh_interval: float,
        fetch_timeout: float | None = None,
        nip05_domain: str | None = None,
        clock: Callable[[], float] = time.time,
        metrics: MetricsRecorder | None = None,
        shutdown: asyncio.Event | None = None,
    ) -> None:
        if refresh_interval <= 0:
            raise ValueError(f"refresh_interval must be positive, got {refresh_interval}")
        self._source = source
        self._adapter = adapter
        self._transport = transport
        self._outcomes = outcomes
        self._refresh_interval = refresh_interval
        self._fetch_timeout = fetch_timeout
        self._nip05_domain = nip05_domain
        self._clock = clock
        self._metrics = metrics or MetricsRecorder(ServiceName.WORKER)
        self._shutdown = shutdown or asyncio.Event()
        self._logger = Logger(ServiceName.WORKER)
        self._since = int(clock())

    @property
    def source(self) -> FollowedSource:
        return self._source

    @property
    def since(self) -> int:
        """Inclusive lower bound of the next poll window."""
        return self._since

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def run(self) -> None:
        """Announce the source, then poll until shutdown or cancellation."""
        self._logger.info(
            "worker_started",
            source=self._source.id,
            kind=self._source.kind,
            since=self._since,
        )
        await self.announce()

        while not await self._idle():
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:  # Intentionally broad: worker error boundary
                self._logger.exception("poll_cycle_error", source=self._source.id, error=str(e))
                await self._report(FetchStatus.FAILED)

        self._logger.info("worker_stopped", source=self._source.id)

    async def _idle(self) -> bool:
        """Sleep for the refresh interval; ``True`` if shutdown was requested."""
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=self._refresh_interval)
            return True
        except TimeoutError:
            return False

    # -------------------------------------------------------------------------
    # States
    # -------------------------------------------------------------------------

    async def announce(self) -> None:
        """Publish the source's profile event; failures are logged only."""
        try:
            meta = await self._with_deadline(self._adapter.metadata(self._source))
        except (FetchError, TimeoutError) as e:
            self._logger.warning("metadata_failed", source=self._source.id, error=str(e))
            meta = SourceMetadata(display_name=self._source.display_name)

        nip05 = f"{self._source.nip05_name}@{self._nip05_domain}" if self._nip05_domain else None
        builder = build_profile_event(
            name=meta.display_name,
            about=meta.about,
            picture=meta.picture,
            nip05=nip05,
            website=meta.website,
        )
        event = sign_event(builder, self._source.keys, int(self._clock()))
        delivered = await self._transport.broadcast(event)
        self._logger.info("profile_announced", source=self._source.id, relays=delivered)

    async def poll_once(self) -> OutcomeRecord:
        """Run one Fetching -> Delivering -> ReportingStatus pass.

        Returns:
            The outcome record that was put on the queue.
        """
        window = PollWindow(self._since, max(int(self._clock()), self._since))
        try:
            items = await self._with_deadline(
                self._adapter.fetch_new_items(self._source, window.since, window.until)
            )
        except (FetchError, TimeoutError) as e:
            self._metrics.inc_counter("fetch_failed")
            self._logger.warning(
                "fetch_failed",
                source=self._source.id,
                since=window.since,
                until=window.until,
                error=str(e) or type(e).__name__,
            )
            return await self._report(FetchStatus.FAILED)

        self._since = window.until
        self._metrics.inc_counter("fetch_success")
        self._logger.debug(
            "fetch_completed",
            source=self._source.id,
            items=len(items),
            next_since=self._since,
        )
        await self.deliver(items)
        return await self._report(FetchStatus.SUCCESS)

    async def deliver(self, items: Sequence[ContentItem]) -> int:
        """Sign and broadcast *items* oldest first.

        *items* arrive newest-first from the adapter. Each event is stamped
        with the current wall-clock time, not the item's own timestamp.

        Returns:
            Number of items written to at least one relay.
        """
        delivered = 0
        for item in reversed(items):
            event = sign_event(build_item_event(item), self._source.keys, int(self._clock()))
            if await self._transport.broadcast(event):
                delivered += 1

        if items:
            self._metrics.inc_counter("items_delivered", delivered)
            self._logger.info(
                "items_delivered",
                source=self._source.id,
                items=len(items),
                delivered=delivered,
            )
        return delivered

    async def _report(self, status: FetchStatus) -> OutcomeRecord:
        record = OutcomeRecord(self._source.id, status, self._clock())
        await self._outcomes.put(record)
        return record

    async def _with_deadline(self, coro: Awaitable[_T]) -> _T:
        if self._fetch_timeout is None:
            return await coro
        return await asyncio.wait_for(coro, timeout=self._fetch_timeout)
