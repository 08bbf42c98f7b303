"""
Unit tests for the dostr CLI entry point.

Tests:
- parse_args(): the network flag is required and exclusive
- load_config(): environment plus optional YAML overrides, unreadable or malformed files
- main(): exit status 1 on configuration and registry errors
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from dostr.__main__ import load_config, main, parse_args
from dostr.core.exceptions import ConfigurationError
from dostr.models import TransportKind
from dostr.services.bridge.configs import ENV_FIELDS


@pytest.fixture
def env(monkeypatch, bridge_env):
    for name, value in bridge_env.items():
        monkeypatch.setenv(name, value)
    return bridge_env


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_FIELDS:
        monkeypatch.delenv(name, raising=False)


class TestParseArgs:
    def test_clearnet(self):
        args = parse_args(["--clearnet"])
        assert args.transport == TransportKind.DIRECT
        assert args.log_level == "INFO"

    def test_tor(self):
        assert parse_args(["--tor"]).transport == TransportKind.PROXIED

    @pytest.mark.parametrize("argv", [[], ["--clearnet", "--tor"], ["--bogus"]])
    def test_usage_error(self, argv):
        with pytest.raises(SystemExit) as exc_info:
            parse_args(argv)
        assert exc_info.value.code == 2


class TestLoadConfig:
    def test_yaml_overrides(self, env, tmp_path):
        path = tmp_path / "dostr.yaml"
        path.write_text("discard_period: 120\nregistry_path: /data/channels\n")

        config = load_config(path)

        assert config.discard_period == 120
        assert config.registry_path == "/data/channels"

    def test_missing_file_is_fine(self, env, tmp_path):
        assert load_config(tmp_path / "absent.yaml").max_follows == 5

    def test_missing_env(self, clean_env, tmp_path):
        with pytest.raises(ConfigurationError, match="BOTNAME"):
            load_config(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, env, tmp_path):
        path = tmp_path / "dostr.yaml"
        path.write_text("discard_period: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(path)

    def test_profile_not_a_mapping(self, env, tmp_path):
        path = tmp_path / "dostr.yaml"
        path.write_text("profile: oops\n")
        with pytest.raises(ConfigurationError, match="profile must be a mapping"):
            load_config(path)

    def test_unreadable_path(self, env, tmp_path):
        with pytest.raises(ConfigurationError, match="cannot read"):
            load_config(tmp_path)


class TestMain:
    async def test_missing_env_exits_1(self, clean_env, tmp_path):
        assert await main(["--clearnet", "--config", str(tmp_path / "absent.yaml")]) == 1

    async def test_registry_error_exits_1(self, env, tmp_path):
        with patch("dostr.__main__.Bridge.create", side_effect=OSError("denied")):
            assert await main(["--tor", "--config", str(tmp_path / "absent.yaml")]) == 1

    async def test_malformed_config_exits_1(self, env, tmp_path):
        path = tmp_path / "dostr.yaml"
        path.write_text("profile: oops\n")
        assert await main(["--clearnet", "--config", str(path)]) == 1

    async def test_runs_bridge(self, env, tmp_path):
        bridge = MagicMock()
        bridge.registry.count.return_value = 0
        with (
            patch("dostr.__main__.Bridge.create", return_value=bridge) as create,
            patch("dostr.__main__.run_bridge", AsyncMock(return_value=0)) as run_bridge,
        ):
            code = await main(["--tor", "--config", str(tmp_path / "absent.yaml")])

        assert code == 0
        assert create.call_args.args[1] == TransportKind.PROXIED
        run_bridge.assert_awaited_once_with(bridge)
