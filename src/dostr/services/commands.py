"""
Operator command interface.

Text notes that tag the bot's public key are read as commands. The first
word starting with ``!`` selects the command; the words after it are its
arguments. Every command is answered with a kind 1 reply (NIP-10 ``e`` and
``p`` tags) signed with the bot's keys; followed sources are mentioned with
extra ``p`` tags and referenced as ``#[n]`` in the text.

```text
!add <id>   follow a chat channel id, feed URL, or feed handle
!list       list every followed source
!random     suggest one followed source
!relays     show the relays currently connected
!uptime     show how long the bridge has been running
!help       show this list
```

``!add`` is the only path that mutates the registry. It checks capacity
before contacting the upstream, so a full registry never triggers network
traffic or a key generation.
"""

from __future__ import annotations

import random
import time
from typing import TYPE_CHECKING, ClassVar, Final

from dostr.core.exceptions import CapacityError, FetchError, SourceExistsError
from dostr.core.logger import Logger
from dostr.core.metrics import MetricsRecorder
from dostr.models.constants import EventKind, ServiceName
from dostr.models.source import detect_source_kind, normalize_source_id
from dostr.nips.event_builders import build_reply, sign_event
from dostr.utils.keys import generate_keys, secret_hex


if TYPE_CHECKING:
    from collections.abc import Callable

    from nostr_sdk import Event, EventBuilder, Keys

    from dostr.adapters.base import AdapterMap
    from dostr.core.registry import SourceRegistry
    from dostr.models.source import FollowedSource
    from dostr.utils.transport import RelayTransport


COMMAND_PREFIX: Final[str] = "!"
MENTION_OFFSET: Final[int] = 2  # tags 0 and 1 are the reply's "e" and "p"


def format_uptime(seconds: float) -> str:
    """Format a duration as ``Nd Nh Nm Ns``.

    Examples:
        ```python
        format_uptime(93784)  # "1d 2h 3m 4s"
        ```
    """
    total = max(int(seconds), 0)
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{days}d {hours}h {minutes}m {secs}s"


def parse_command(content: str) -> tuple[str, list[str]] | None:
    """Split note text into ``(command, args)``.

    Leading words that are not commands (mentions such as ``#[0]`` or
    ``nostr:npub1...``) are skipped. Returns ``None`` if no word starts with
    ``!``.
    """
    words = content.split()
    for index, word in enumerate(words):
        if word.startswith(COMMAND_PREFIX) and len(word) > 1:
            return word.lower(), words[index + 1 :]
    return None


class CommandHandler:
    """Answer operator commands addressed to the bot.

    Args:
        keys: Bot keys; commands must tag their public key.
        registry: Registry of followed sources.
        adapters: Adapter per source kind, used by ``!add``.
        transport: Shared relay transport for replies.
        max_follows: Maximum number of followed sources.
        spawn_worker: Called with every newly added source.
        clock: Wall-clock source returning Unix seconds.
        metrics: Recorder for the ``sources_added`` counter.
        rng: Random generator used by ``!random``.
    """

    _MAX_PROCESSED_IDS: ClassVar[int] = 10_000

    DESCRIPTIONS: ClassVar[dict[str, str]] = {
        "!add": "Add new source to be followed by the bot (channel id, feed URL or handle).",
        "!random": "Returns random source the bot is following.",
        "!list": "Returns list of all sources the bot follows.",
        "!relays": "Show connected relays.",
        "!uptime": "Prints for how long the bot has been running.",
        "!help": "Show available commands.",
    }

    def __init__(  # noqa: PLR0913
        self,
        keys: Keys,
        registry: SourceRegistry,
        adapters: AdapterMap,
        transport: RelayTransport,
        *,
        max_follows: int,
        spawn_worker: Callable[[FollowedSource], object],
        clock: Callable[[], float] = time.time,
        metrics: MetricsRecorder | None = None,
        rng: random.Random | None = None,
    ) -> None:
        if max_follows <= 0:
            raise ValueError(f"max_follows must be positive, got {max_follows}")
        self._keys = keys
        self._pubkey_hex = keys.public_key().to_hex()
        self._registry = registry
        self._adapters = adapters
        self._transport = transport
        self._max_follows = max_follows
        self._spawn_worker = spawn_worker
        self._clock = clock
        self._started_at = clock()
        self._metrics = metrics or MetricsRecorder(ServiceName.COMMANDS)
        self._rng = rng or random.Random()  # noqa: S311
        self._logger = Logger(ServiceName.COMMANDS)
        self._processed_ids: set[str] = set()

    @property
    def started_at(self) -> float:
        return self._started_at

    # -------------------------------------------------------------------------
    # Event handling
    # -------------------------------------------------------------------------

    async def process(self, event: Event) -> bool:
        """Answer *event* if it is a new command addressed to the bot.

        Returns:
            ``True`` if a reply was published.
        """
        reply = await self.handle(event)
        if reply is None:
            return False
        signed = sign_event(reply, self._keys, int(self._clock()))
        delivered = await self._transport.broadcast(signed)
        self._logger.debug("reply_sent", event_id=event.id().to_hex(), relays=delivered)
        return True

    async def handle(self, event: Event) -> EventBuilder | None:
        """Build the reply to *event*, or ``None`` if it is not for the bot.

        Events already seen (the same note arriving from several relays),
        events from the bot itself, non-text events, and events that do
        not tag the bot are ignored.
        """
        event_id = event.id().to_hex()
        if event_id in self._processed_ids:
            return None
        self._manage_dedup_set(event_id)

        author = event.author().to_hex()
        if author == self._pubkey_hex or event.kind().as_u16() != EventKind.TEXT_NOTE:
            return None

        p_tags: list[str] = []
        for tag in event.tags().to_vec():
            values = tag.as_vec()
            if len(values) >= 2 and values[0] == "p":  # noqa: PLR2004
                p_tags.append(values[1])
        if self._pubkey_hex not in p_tags:
            return None

        parsed = parse_command(event.content())
        if parsed is None:
            return None
        command, args = parsed
        self._logger.info("command_received", command=command, author=author)

        text, mentions = await self.dispatch(command, args)
        return build_reply(event_id, author, text, mentions)

    def _manage_dedup_set(self, event_id: str) -> None:
        if len(self._processed_ids) >= self._MAX_PROCESSED_IDS:
            self._processed_ids.clear()
        self._processed_ids.add(event_id)

    async def dispatch(self, command: str, args: list[str]) -> tuple[str, list[str]]:
        """Run *command* and return the reply text and mentioned pubkeys."""
        match command:
            case "!add":
                return await self.cmd_add(args)
            case "!list":
                return self.cmd_list()
            case "!random":
                return self.cmd_random()
            case "!relays":
                return self.cmd_relays(), []
            case "!uptime":
                return self.cmd_uptime(), []
            case "!help":
                return self.cmd_help(), []
            case _:
                return f"Unknown command {command}. {self.cmd_help()}", []

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def cmd_add(self, args: list[str]) -> tuple[str, list[str]]:
        if not args:
            return "Error: Missing source id.", []

        source_id = normalize_source_id(args[0])
        if not source_id:
            return "Error: Missing source id.", []

        if self._registry.contains(source_id):
            return self._forwarded_by(self._registry.get(source_id))

        try:
            self.check_capacity()
        except CapacityError:
            return self._capacity_message(), []

        adapter = self._adapters[detect_source_kind(source_id)]
        try:
            found = await adapter.exists(source_id)
            display_name = await adapter.resolve_display_name(source_id) if found else None
        except FetchError as e:
            self._logger.warning("source_lookup_failed", source=source_id, error=str(e))
            return f"Hi, I couldn't reach {source_id} right now, please try again later.", []
        if not found:
            return f"Hi, I wasn't able to find {source_id} :(.", []

        try:
            source = await self.add_source(source_id, display_name)
        except SourceExistsError:
            # A concurrent !add for the same id won the race
            return self._forwarded_by(self._registry.get(source_id))
        except CapacityError:
            return self._capacity_message(), []
        return self._forwarded_by(source)

    def cmd_list(self) -> tuple[str, list[str]]:
        sources = self._registry.sources()
        lines = [
            f"#[{index}]" for index in range(MENTION_OFFSET, MENTION_OFFSET + len(sources))
        ]
        text = f"Hi, I'm following {len(sources)} sources:\n" + "\n".join(lines)
        return text, [source.public_key for source in sources]

    def cmd_random(self) -> tuple[str, list[str]]:
        sources = self._registry.sources()
        if not sources:
            return "Hi, there are no sources. Try to add some using '!add <source>' command.", []
        source = self._rng.choice(sources)
        return f"Hi, random source to follow: #[{MENTION_OFFSET}]", [source.public_key]

    def cmd_relays(self) -> str:
        relays = "\n".join(conn.peer_address for conn in self._transport.connected)
        return f"Right now I'm connected to these relays:\n{relays}"

    def cmd_uptime(self) -> str:
        return f"Running for {format_uptime(self._clock() - self._started_at)}."

    def cmd_help(self) -> str:
        lines = [f"{name}: {text}" for name, text in self.DESCRIPTIONS.items()]
        return "Available commands:\n" + "\n".join(lines)

    # -------------------------------------------------------------------------
    # Registry mutation
    # -------------------------------------------------------------------------

    def check_capacity(self) -> None:
        """Reject a new source when the registry is full.

        Raises:
            CapacityError: If one more source would exceed ``max_follows``.
        """
        if self._registry.count() + 1 > self._max_follows:
            raise CapacityError(self._max_follows)

    async def add_source(self, source_id: str, display_name: str | None = None) -> FollowedSource:
        """Follow *source_id* with a fresh keypair and start its worker.

        Raises:
            CapacityError: If the registry is full; nothing is written.
            SourceExistsError: If *source_id* is already registered.
            OSError: If the registry record could not be persisted.
        """
        self.check_capacity()
        keys = generate_keys()
        source = await self._registry.insert(
            source_id, secret_hex(keys), display_name, max_count=self._max_follows
        )
        self._spawn_worker(source)
        self._metrics.inc_counter("sources_added")
        self._logger.info("source_added", source=source.id, kind=source.kind)
        return source

    def _capacity_message(self) -> str:
        return (
            "Hi, sorry, couldn't add new source. "
            f"I'm already running at my max capacity ({self._max_follows} sources)."
        )

    @staticmethod
    def _forwarded_by(source: FollowedSource) -> tuple[str, list[str]]:
        return (
            f"Hi, messages will be forwarded to nostr by #[{MENTION_OFFSET}].",
            [source.public_key],
        )
