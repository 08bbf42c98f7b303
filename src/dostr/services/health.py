"""
Debounced health notifications for the whole bridge.

The [HealthMonitor][dostr.services.health.HealthMonitor] is the single
consumer of the [OutcomeRecord][dostr.models.outcome.OutcomeRecord] queue fed
by every polling worker. It remembers one *last accepted* outcome, starting
from a synthetic success observed ``discard_period`` seconds before startup,
and turns the stream of per-cycle outcomes into at most one notification per
meaningful change:

* a status different from the last accepted one always notifies;
* the same status within ``discard_period`` is dropped silently;
* the same status after ``discard_period`` becomes the new baseline, and a
  persisting failure additionally sends a "still failing" reminder.

Notifications are kind 1 notes signed with the bot's keys and broadcast to
every relay.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Final

from dostr.core.logger import Logger
from dostr.core.metrics import MetricsRecorder
from dostr.models.constants import FetchStatus, ServiceName
from dostr.models.outcome import OutcomeRecord
from dostr.nips.event_builders import build_text_note, sign_event


if TYPE_CHECKING:
    from collections.abc import Callable

    from nostr_sdk import Keys

    from dostr.utils.transport import RelayTransport


DEFAULT_DISCARD_PERIOD: Final[float] = 3600.0

_BASELINE_SOURCE: Final[str] = "startup"


def failed_message(source_id: str) -> str:
    return f"I can't fetch new content from {source_id} right now :(."


def recovered_message(source_id: str) -> str:
    return f"Connection to {source_id} reestablished! :)"


def still_failing_message(source_id: str) -> str:
    return f"I'm still unable to fetch new content from {source_id} :("


class HealthMonitor:
    """Single task turning poll outcomes into debounced status notes.

    Only the monitor's own task touches ``last_accepted``, so no locking is
    needed.

    Args:
        keys: Bot keys signing the notifications.
        transport: Shared relay transport.
        outcomes: Queue fed by every polling worker.
        discard_period: Quiet period, in seconds, for repeated statuses.
        clock: Wall-clock source returning Unix seconds.
        metrics: Recorder for the ``notifications_sent`` counter.
    """

    def __init__(
        self,
        keys: Keys,
        transport: RelayTransport,
        outcomes: asyncio.Queue[OutcomeRecord],
        *,
        discard_period: float = DEFAULT_DISCARD_PERIOD,
        clock: Callable[[], float] = time.time,
        metrics: MetricsRecorder | None = None,
    ) -> None:
        if discard_period <= 0:
            raise ValueError(f"discard_period must be positive, got {discard_period}")
        self._keys = keys
        self._transport = transport
        self._outcomes = outcomes
        self._discard_period = discard_period
        self._clock = clock
        self._metrics = metrics or MetricsRecorder(ServiceName.HEALTH)
        self._logger = Logger(ServiceName.HEALTH)
        self._last_accepted = OutcomeRecord(
            _BASELINE_SOURCE, FetchStatus.SUCCESS, clock() - discard_period
        )

    @property
    def last_accepted(self) -> OutcomeRecord:
        return self._last_accepted

    def process(self, record: OutcomeRecord) -> str | None:
        """Apply the debounce rules to *record*.

        Returns:
            The notification text to publish, or ``None`` when the record
            is absorbed without notification.
        """
        last = self._last_accepted

        if record.status != last.status:
            self._last_accepted = record
            if record.ok:
                return recovered_message(record.source_id)
            return failed_message(record.source_id)

        if record.observed_at - last.observed_at < self._discard_period:
            return None

        self._last_accepted = record
        if record.ok:
            return None
        return still_failing_message(record.source_id)

    async def notify(self, text: str) -> int:
        """Sign *text* with the bot's keys and broadcast it.

        Returns:
            Number of relays the note was written to.
        """
        event = sign_event(build_text_note(text), self._keys, int(self._clock()))
        delivered = await self._transport.broadcast(event)
        self._metrics.inc_counter("notifications_sent")
        self._logger.info("notification_sent", text=text, relays=delivered)
        return delivered

    async def run(self) -> None:
        """Consume the outcome queue in FIFO order until cancelled."""
        self._logger.info("health_monitor_started", discard_period=self._discard_period)
        while True:
            record = await self._outcomes.get()
            try:
                text = self.process(record)
                if text is not None:
                    await self.notify(text)
            finally:
                self._outcomes.task_done()
