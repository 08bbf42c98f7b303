"""
Durable source registry backed by an append-only text file.

Each line of the registry file maps one followed source to its signing
identity:

```text
id:secret_hex[:display_name]
```

A missing display name defaults to the id. ``id`` and ``display_name`` are
percent-encoded on write so that ``:`` inside feed URLs cannot be mistaken
for a field separator; numeric channel ids and plain handles are unaffected,
so such lines are byte-for-byte the classic ``id:secret`` format.

Invariants:

* An [insert()][dostr.core.registry.SourceRegistry.insert] is appended,
  flushed and ``fsync``-ed before the in-memory mapping changes, so a crash
  after it returns never loses the entry and a crash during it never leaves
  an entry that only exists in memory.
* Ids are unique. A duplicate insert is rejected with
  [SourceExistsError][dostr.core.exceptions.SourceExistsError]; a duplicate
  id in the file itself is a
  [RegistryCorruptError][dostr.core.exceptions.RegistryCorruptError].
* Malformed lines are skipped with a warning and never abort the load.

See Also:
    [FollowedSource][dostr.models.source.FollowedSource]: The in-memory value
        each line decodes to.
    [CommandHandler][dostr.services.commands.CommandHandler]: The only
        writer, through the ``!add`` command.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import quote, unquote

from dostr.models.source import FollowedSource
from dostr.utils.keys import parse_keys, secret_hex

from .exceptions import (
    CapacityError,
    RegistryCorruptError,
    SourceExistsError,
    SourceNotFoundError,
)
from .logger import Logger


if TYPE_CHECKING:
    from collections.abc import Iterator

    from nostr_sdk import Keys


DEFAULT_REGISTRY_PATH = "data/channels"

_MIN_FIELDS = 2
_MAX_FIELDS = 3


def encode_line(source_id: str, secret: str, display_name: str | None = None) -> str:
    """Encode one registry record (without the trailing newline)."""
    fields = [quote(source_id, safe=""), secret]
    if display_name is not None and display_name != source_id:
        fields.append(quote(display_name, safe=""))
    return ":".join(fields)


def decode_line(line: str) -> tuple[str, str, str]:
    """Decode one registry record into ``(id, secret, display_name)``.

    Raises:
        ValueError: If the line has the wrong number of fields or an empty
            id or secret.
    """
    fields = line.split(":")
    if not _MIN_FIELDS <= len(fields) <= _MAX_FIELDS:
        raise ValueError(f"expected 2 or 3 fields, got {len(fields)}")
    source_id = unquote(fields[0])
    secret = fields[1]
    if not source_id or not secret:
        raise ValueError("empty id or secret")
    display_name = unquote(fields[2]) if len(fields) == _MAX_FIELDS and fields[2] else source_id
    return source_id, secret, display_name


class SourceRegistry:
    """Durable mapping from source id to [FollowedSource][dostr.models.source.FollowedSource].

    Use [load()][dostr.core.registry.SourceRegistry.load] to open a registry.
    Reads are lock-free; inserts are serialized by an ``asyncio.Lock`` so the
    file has a single writer.

    Examples:
        ```python
        registry = SourceRegistry.load("data/channels")
        if not registry.contains("1093877126541266984"):
            await registry.insert("1093877126541266984", secret_hex(keys), "general")
        keys = registry.get_keypair("1093877126541266984")
        ```
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._sources: dict[str, FollowedSource] = {}
        self._write_lock = asyncio.Lock()
        self._logger = Logger("registry")

    @property
    def path(self) -> Path:
        return self._path

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    @classmethod
    def load(cls, path: str | Path = DEFAULT_REGISTRY_PATH) -> SourceRegistry:
        """Read the registry file, creating an empty one if it does not exist.

        Raises:
            RegistryCorruptError: If the same id appears on two lines.
            OSError: If the file cannot be created or read.
        """
        registry = cls(path)
        registry._read()
        return registry

    def _read(self) -> None:
        if not self._path.exists():
            self._logger.warning("registry_created", path=str(self._path))
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.touch()

        with self._path.open(encoding="utf-8") as f:
            for lineno, raw in enumerate(f, start=1):
                line = raw.rstrip("\r\n")
                if not line.strip():
                    continue
                try:
                    source_id, secret, display_name = decode_line(line)
                    source = FollowedSource(source_id, display_name, parse_keys(secret))
                except ValueError as e:
                    self._logger.warning(
                        "malformed_line_skipped", path=str(self._path), line=lineno, error=str(e)
                    )
                    continue
                if source_id in self._sources:
                    raise RegistryCorruptError(
                        f"{self._path}:{lineno}: id {source_id!r} appears more than once"
                    )
                self._sources[source_id] = source

        self._logger.info("registry_loaded", path=str(self._path), sources=len(self._sources))

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def contains(self, source_id: str) -> bool:
        return source_id in self._sources

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._sources

    def count(self) -> int:
        return len(self._sources)

    def __len__(self) -> int:
        return len(self._sources)

    def __iter__(self) -> Iterator[FollowedSource]:
        return iter(list(self._sources.values()))

    def get(self, source_id: str) -> FollowedSource:
        """Return the followed source registered under *source_id*.

        Raises:
            SourceNotFoundError: If *source_id* is not registered.
        """
        try:
            return self._sources[source_id]
        except KeyError:
            raise SourceNotFoundError(source_id) from None

    def get_keypair(self, source_id: str) -> Keys:
        """Return the signing identity of *source_id*.

        Callers check [contains()][dostr.core.registry.SourceRegistry.contains]
        first; an absent id is a programming error.

        Raises:
            SourceNotFoundError: If *source_id* is not registered.
        """
        return self.get(source_id).keys

    def sources(self) -> list[FollowedSource]:
        """All followed sources, sorted by id."""
        return sorted(self._sources.values(), key=lambda s: s.id)

    def public_keys(self) -> dict[str, str]:
        """Map every source id to its hex public key."""
        return {source.id: source.public_key for source in self._sources.values()}

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    async def insert(
        self,
        source_id: str,
        secret: str,
        display_name: str | None = None,
        *,
        max_count: int | None = None,
    ) -> FollowedSource:
        """Durably add a new source and return it.

        *max_count* is checked under the write lock, so concurrent inserts
        can never grow the registry past it.

        Raises:
            SourceExistsError: If *source_id* is already registered.
            CapacityError: If the registry already holds *max_count* sources.
            ValueError: If *secret* is not a valid key, or *source_id* /
                *display_name* is empty or spans lines.
            OSError: If the record could not be written; the in-memory
                mapping is left unchanged.
        """
        async with self._write_lock:
            if source_id in self._sources:
                raise SourceExistsError(source_id)
            if max_count is not None and len(self._sources) >= max_count:
                raise CapacityError(max_count)

            keys = parse_keys(secret)
            source = FollowedSource(source_id, display_name or source_id, keys)
            line = encode_line(source.id, secret_hex(keys), source.display_name)

            await asyncio.to_thread(self._append, line)
            self._sources[source_id] = source

        self._logger.info("source_inserted", source=source_id, pubkey=source.public_key)
        return source

    def _append(self, line: str) -> None:
        with self._path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")
            f.flush()
            os.fsync(f.fileno())
