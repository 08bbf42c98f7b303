"""
Unit tests for services.bridge.configs module.

Tests:
- BridgeConfig.from_env() with a complete environment
- Missing variables reported together, by name
- Invalid values reported by variable name
- Optional overrides merged underneath the environment
- Secrets masked in repr
"""

import pytest

from dostr.core.exceptions import ConfigurationError
from dostr.services.bridge import BridgeConfig


class TestFromEnv:
    def test_complete_environment(self, bridge_env, bot_keys):
        config = BridgeConfig.from_env(bridge_env)

        assert config.profile.name == "dostr"
        assert config.profile.hello_message == "Hello from dostr!"
        assert config.web_port == 8080
        assert config.refresh_interval == 60
        assert config.max_follows == 5
        assert config.relays == ["wss://relay.one.example", "wss://relay.two.example"]
        assert [relay.url for relay in config.relay_list] == config.relays
        assert config.keys.public_key().to_hex() == bot_keys.public_key().to_hex()
        assert config.api_token.get_secret_value() == "api-token"

    def test_defaults(self, bridge_env):
        config = BridgeConfig.from_env(bridge_env)
        assert config.discard_period == 3600
        assert config.max_consecutive_failures == 0
        assert config.web_host == "0.0.0.0"

    def test_missing_variables_listed(self, bridge_env):
        del bridge_env["SECRET"]
        bridge_env["DOMAIN"] = "  "

        with pytest.raises(ConfigurationError) as exc_info:
            BridgeConfig.from_env(bridge_env)

        assert str(exc_info.value) == "missing required environment variables: SECRET, DOMAIN"

    def test_duplicate_relays_dropped(self, bridge_env):
        bridge_env["ADD_RELAY"] = "wss://relay.one.example, wss://relay.one.example/"
        assert BridgeConfig.from_env(bridge_env).relays == ["wss://relay.one.example"]


class TestInvalidValues:
    def test_invalid_relay(self, bridge_env):
        bridge_env["ADD_RELAY"] = "https://not-a-relay.example"
        with pytest.raises(ConfigurationError, match="ADD_RELAY"):
            BridgeConfig.from_env(bridge_env)

    @pytest.mark.parametrize("port", ["0", "70000", "http"])
    def test_bad_port(self, bridge_env, port):
        bridge_env["WEB_PORT"] = port
        with pytest.raises(ConfigurationError, match="WEB_PORT"):
            BridgeConfig.from_env(bridge_env)

    def test_non_positive_capacity(self, bridge_env):
        bridge_env["MAX_FOLLOWS"] = "0"
        with pytest.raises(ConfigurationError, match="MAX_FOLLOWS"):
            BridgeConfig.from_env(bridge_env)

    def test_public_key_mismatch(self, bridge_env, make_source):
        bridge_env["BOTPUB"] = make_source().public_key
        with pytest.raises(ConfigurationError, match="does not match"):
            BridgeConfig.from_env(bridge_env)

    def test_invalid_secret(self, bridge_env):
        bridge_env["SECRET"] = "not-a-key"
        with pytest.raises(ConfigurationError, match="invalid secret key"):
            BridgeConfig.from_env(bridge_env)


class TestOverrides:
    def test_optional_settings(self, bridge_env):
        config = BridgeConfig.from_env(
            bridge_env,
            overrides={"discard_period": 60, "interval": 30, "registry_path": "/tmp/ch"},
        )
        assert config.discard_period == 60
        assert config.interval == 30
        assert config.registry_path == "/tmp/ch"

    def test_environment_wins(self, bridge_env):
        config = BridgeConfig.from_env(
            bridge_env,
            overrides={"max_follows": 99, "profile": {"name": "yaml-name"}},
        )
        assert config.max_follows == 5
        assert config.profile.name == "dostr"

    @pytest.mark.parametrize("profile", ["oops", ["name"], 3])
    def test_profile_must_be_mapping(self, bridge_env, profile):
        with pytest.raises(ConfigurationError, match="profile must be a mapping"):
            BridgeConfig.from_env(bridge_env, overrides={"profile": profile})


class TestSecrets:
    def test_repr_masks_secrets(self, bridge_env):
        text = repr(BridgeConfig.from_env(bridge_env))
        assert bridge_env["SECRET"] not in text
        assert "api-token" not in text
