"""
NIP-05 identity lookup server.

Serves ``GET /.well-known/nostr.json?name=<name>`` so that every followed
source (and the bot itself) can be verified as ``<name>@<domain>``. Names are
derived from the live registry on each request, so a source added with
``!add`` is resolvable immediately.

Response shape:

```json
{"names": {"jack": "<hex pubkey>"}}
```

An unknown name maps to the ``"Not found"`` placeholder instead of being
omitted; a request without ``name`` returns every known name.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from aiohttp import web

from dostr.core.logger import Logger
from dostr.models.constants import ServiceName
from dostr.models.source import identity_name


if TYPE_CHECKING:
    from dostr.core.registry import SourceRegistry


WELL_KNOWN_PATH: Final[str] = "/.well-known/nostr.json"
NOT_FOUND: Final[str] = "Not found"


class IdentityServer:
    """aiohttp server answering NIP-05 lookups from the registry.

    Args:
        registry: Registry whose sources are published.
        bot_name: Name of the bot's own identity.
        bot_pubkey: Hex public key of the bot.
        host: Bind address.
        port: Listening port.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        *,
        bot_name: str,
        bot_pubkey: str,
        host: str = "0.0.0.0",  # noqa: S104
        port: int = 8080,
    ) -> None:
        self._registry = registry
        self._bot_name = identity_name(bot_name)
        self._bot_pubkey = bot_pubkey
        self._host = host
        self._port = port
        self._runner: web.AppRunner | None = None
        self._logger = Logger(ServiceName.IDENTITY)

    def names(self) -> dict[str, str]:
        """Map every published name to its hex public key."""
        names = {source.nip05_name: source.public_key for source in self._registry}
        names[self._bot_name] = self._bot_pubkey
        return names

    def lookup(self, name: str | None) -> dict[str, dict[str, str]]:
        """Build the ``nostr.json`` document for *name* (all names if ``None``)."""
        names = self.names()
        if name is None:
            return {"names": names}
        key = name.strip().lower()
        return {"names": {key: names.get(key, NOT_FOUND)}}

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get(WELL_KNOWN_PATH, self._handle_lookup)
        return app

    async def start(self) -> None:
        """Start listening.

        Raises:
            OSError: If the port is already in use or binding fails.
        """
        self._runner = web.AppRunner(self.make_app(), access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()
        self._logger.info("identity_server_started", host=self._host, port=self._port)

    async def stop(self) -> None:
        """Stop the HTTP server. Safe to call if it was never started."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._logger.info("identity_server_stopped")

    async def _handle_lookup(self, request: web.Request) -> web.Response:
        body = self.lookup(request.query.get("name"))
        return web.json_response(body, headers={"Access-Control-Allow-Origin": "*"})
