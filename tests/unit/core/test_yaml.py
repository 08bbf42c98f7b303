"""Unit tests for core.yaml module."""

import pytest

from dostr.core.exceptions import ConfigurationError
from dostr.core.yaml import load_yaml


class TestLoadYaml:
    def test_mapping(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("discard_period: 600\nmetrics:\n  enabled: true\n")
        assert load_yaml(path) == {"discard_period": 600, "metrics": {"enabled": True}}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("")
        assert load_yaml(path) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_yaml(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("a: [1, 2\n")
        with pytest.raises(ConfigurationError):
            load_yaml(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_yaml(path)
