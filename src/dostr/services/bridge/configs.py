"""Bridge configuration models.

Required settings are read from environment variables; optional tuning may
come from a YAML file and is merged underneath them by
[BridgeConfig.from_env()][dostr.services.bridge.configs.BridgeConfig.from_env].

| Variable                | Field                   |
|-------------------------|-------------------------|
| ``BOTNAME``             | ``profile.name``        |
| ``ABOUT``               | ``profile.about``       |
| ``PICTURE_URL``         | ``profile.picture``     |
| ``HELLO_MESSAGE``       | ``profile.hello_message`` |
| ``SECRET``              | ``secret``              |
| ``BOTPUB``              | ``public_key``          |
| ``APIK``                | ``api_token``           |
| ``WEB_PORT``            | ``web_port``            |
| ``NITTER_INSTANCE``     | ``feed_proxy``          |
| ``DOMAIN``              | ``domain``              |
| ``REFRESH_INTERVAL_SECS`` | ``refresh_interval``  |
| ``ADD_RELAY``           | ``relays`` (comma-separated) |
| ``MAX_FOLLOWS``         | ``max_follows``         |

See Also:
    [Bridge][dostr.services.bridge.Bridge]: The service class that consumes
        this configuration.
    [BaseServiceConfig][dostr.core.base_service.BaseServiceConfig]:
        Base class providing ``interval``, ``max_consecutive_failures``,
        and ``metrics`` fields.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any, Final

from nostr_sdk import Keys
from pydantic import (
    BaseModel,
    Field,
    PrivateAttr,
    SecretStr,
    ValidationError,
    field_validator,
    model_validator,
)

from dostr.adapters.channel import DEFAULT_API_URL
from dostr.core.base_service import BaseServiceConfig
from dostr.core.exceptions import ConfigurationError
from dostr.core.registry import DEFAULT_REGISTRY_PATH
from dostr.models import Relay
from dostr.utils.keys import parse_keys, parse_public_key
from dostr.utils.transport import DEFAULT_CONNECT_TIMEOUT, DEFAULT_PROXY_URL


ENV_FIELDS: Final[dict[str, str]] = {
    "BOTNAME": "profile.name",
    "ABOUT": "profile.about",
    "PICTURE_URL": "profile.picture",
    "HELLO_MESSAGE": "profile.hello_message",
    "SECRET": "secret",
    "BOTPUB": "public_key",
    "APIK": "api_token",
    "WEB_PORT": "web_port",
    "NITTER_INSTANCE": "feed_proxy",
    "DOMAIN": "domain",
    "REFRESH_INTERVAL_SECS": "refresh_interval",
    "ADD_RELAY": "relays",
    "MAX_FOLLOWS": "max_follows",
}


class ProfileConfig(BaseModel):
    """The bot's own profile and introduction note.

    Attributes:
        name: Display name of the bot (kind 0 ``name``).
        about: Short description (kind 0 ``about``).
        picture: Avatar URL (kind 0 ``picture``).
        hello_message: Text note published once at startup.
    """

    name: str = Field(min_length=1)
    about: str = Field(min_length=1)
    picture: str = Field(min_length=1)
    hello_message: str = Field(min_length=1)


class BridgeConfig(BaseServiceConfig):
    """Configuration for the [Bridge][dostr.services.bridge.Bridge] service.

    ``interval`` is the period of the relay reconnection sweep;
    ``refresh_interval`` is the polling period of every source.

    Attributes:
        profile: Bot profile and hello message.
        secret: Bot secret key (hex or ``nsec``).
        public_key: Bot public key; must match ``secret``.
        api_token: Chat-channel API token.
        web_port: Port of the NIP-05 identity server.
        web_host: Bind address of the identity server.
        feed_proxy: Host or URL resolving feed handles to RSS documents.
        domain: Public domain used in NIP-05 identifiers.
        refresh_interval: Seconds between polls of one source.
        relays: Relay URLs every event is sent to.
        max_follows: Maximum number of followed sources.
        registry_path: Path of the durable registry file.
        discard_period: Health notification quiet period, in seconds.
        proxy_url: SOCKS5 proxy used by ``--tor``.
        connect_timeout: Relay handshake timeout, in seconds.
        fetch_timeout: Deadline for one adapter call, in seconds.
        channel_api_url: Base URL of the chat-channel REST API.
        history_limit: Messages requested per channel poll.

    Warning:
        ``secret`` and ``api_token`` are ``SecretStr`` and are masked in
        ``repr``. The parsed keys are kept in a private attribute and never
        serialized.
    """

    max_consecutive_failures: int = Field(
        default=0,
        ge=0,
        description="Stop after this many failed reconnection sweeps (0 = unlimited)",
    )

    profile: ProfileConfig
    secret: SecretStr
    public_key: str = Field(min_length=1)
    api_token: SecretStr
    web_port: int = Field(ge=1, le=65535)
    web_host: str = Field(default="0.0.0.0", min_length=1)  # noqa: S104
    feed_proxy: str = Field(min_length=1)
    domain: str = Field(min_length=1)
    refresh_interval: float = Field(gt=0)
    relays: list[str] = Field(min_length=1)
    max_follows: int = Field(gt=0)

    registry_path: str = Field(default=DEFAULT_REGISTRY_PATH, min_length=1)
    discard_period: float = Field(default=3600.0, gt=0)
    proxy_url: str = Field(default=DEFAULT_PROXY_URL, min_length=1)
    connect_timeout: float = Field(default=DEFAULT_CONNECT_TIMEOUT, gt=0, le=300.0)
    fetch_timeout: float = Field(default=30.0, ge=1.0, le=300.0)
    channel_api_url: str = Field(default=DEFAULT_API_URL, min_length=1)
    history_limit: int = Field(default=50, ge=1, le=100)

    _keys: Keys | None = PrivateAttr(default=None)

    @field_validator("relays", mode="before")
    @classmethod
    def split_relay_list(cls, v: Any) -> Any:
        """Accept the comma-separated form used by ``ADD_RELAY``."""
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v

    @field_validator("relays")
    @classmethod
    def validate_relay_urls(cls, v: list[str]) -> list[str]:
        """Validate every relay URL and drop duplicates, keeping order."""
        urls: list[str] = []
        for raw in v:
            try:
                url = Relay(raw).url
            except (ValueError, TypeError) as e:
                raise ValueError(f"Invalid relay URL '{raw}': {e}") from e
            if url not in urls:
                urls.append(url)
        return urls

    @model_validator(mode="after")
    def _check_keys(self) -> BridgeConfig:
        keys = parse_keys(self.secret.get_secret_value())
        if parse_public_key(self.public_key).to_hex() != keys.public_key().to_hex():
            raise ValueError("public_key does not match the public key of secret")
        self._keys = keys
        return self

    @property
    def keys(self) -> Keys:
        """The bot's signing keys, parsed from ``secret``."""
        if self._keys is None:
            self._keys = parse_keys(self.secret.get_secret_value())
        return self._keys

    @property
    def relay_list(self) -> list[Relay]:
        return [Relay(url) for url in self.relays]

    # -------------------------------------------------------------------------
    # Environment loading
    # -------------------------------------------------------------------------

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> BridgeConfig:
        """Build the configuration from environment variables.

        Optional settings are taken from *overrides* (typically the parsed
        YAML file); the environment always wins for the variables it names.

        Raises:
            ConfigurationError: Naming every missing or invalid variable.
        """
        env = os.environ if environ is None else environ
        data: dict[str, Any] = dict(overrides or {})
        raw_profile = data.get("profile") or {}
        if not isinstance(raw_profile, Mapping):
            raise ConfigurationError("invalid configuration: profile must be a mapping")
        profile: dict[str, Any] = dict(raw_profile)

        missing: list[str] = []
        for var, field_path in ENV_FIELDS.items():
            value = env.get(var, "").strip()
            if not value:
                missing.append(var)
                continue
            if field_path.startswith("profile."):
                profile[field_path.removeprefix("profile.")] = value
            else:
                data[field_path] = value
        data["profile"] = profile

        if missing:
            raise ConfigurationError(
                "missing required environment variables: " + ", ".join(missing)
            )

        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(_describe_errors(e)) from e


def _describe_errors(error: ValidationError) -> str:
    """Render validation errors using environment variable names where possible."""
    field_env = {field_path: var for var, field_path in ENV_FIELDS.items()}
    problems: list[str] = []
    for item in error.errors():
        loc = ".".join(str(part) for part in item["loc"] if not isinstance(part, int))
        name = field_env.get(loc, loc or "configuration")
        problems.append(f"{name}: {item['msg']}")
    return "invalid configuration: " + "; ".join(problems)
