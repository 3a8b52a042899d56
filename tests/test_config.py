"""Tests for the layered config loader."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from nexus.config import NexusConfig, _ENV_MAP, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_MAP:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "nexus.yaml"
    path.write_text(yaml.safe_dump({
        "model": {"code": "file/model", "bogus": 1},
        "stream": {"stall_timeout": 5},
        "profiles": {
            "fast": {"model": {"code": "profile/model"}, "stream": {"max_tool_rounds": 2}},
        },
    }))
    return path


class TestDefaults:
    def test_defaults(self):
        cfg = load_config()
        assert cfg.llm.api_base == "https://openrouter.ai/api/v1"
        assert cfg.stream.stall_timeout == 20.0
        assert cfg.stream.auto_resume_on_foreground is False
        assert cfg.tools.enabled == []

    def test_missing_file_is_ignored(self, tmp_path: Path):
        cfg = load_config(tmp_path / "absent.yaml")
        assert cfg.model.code == "openrouter/auto"


class TestLayering:
    def test_file(self, config_file: Path):
        cfg = load_config(config_file)
        assert cfg.model.code == "file/model"
        assert cfg.stream.stall_timeout == 5
        assert "fast" in cfg.profiles

    def test_profile(self, config_file: Path):
        cfg = load_config(config_file, profile="fast")
        assert cfg.model.code == "profile/model"
        assert cfg.stream.max_tool_rounds == 2
        assert cfg.stream.stall_timeout == 5

    def test_unknown_profile(self, config_file: Path):
        cfg = load_config(config_file, profile="nope")
        assert cfg.model.code == "file/model"

    def test_env_beats_file(self, config_file: Path, monkeypatch):
        monkeypatch.setenv("NEXUS_MODEL", "env/model")
        monkeypatch.setenv("NEXUS_STREAM_AUTO_RESUME", "yes")
        monkeypatch.setenv("NEXUS_TOOLS_ENABLED", "search_web, get_webpage_info")
        monkeypatch.setenv("NEXUS_STREAM_MAX_TOOL_ROUNDS", "3")

        cfg = load_config(config_file, profile="fast")

        assert cfg.model.code == "env/model"
        assert cfg.stream.auto_resume_on_foreground is True
        assert cfg.tools.enabled == ["search_web", "get_webpage_info"]
        assert cfg.stream.max_tool_rounds == 3

    def test_cli_beats_env(self, monkeypatch):
        monkeypatch.setenv("NEXUS_MODEL", "env/model")
        cfg = load_config(cli_overrides={"model.code": "cli/model"})
        assert cfg.model.code == "cli/model"


class TestNexusConfig:
    def test_set_override(self):
        cfg = NexusConfig()
        cfg.set_override("stream.stall_timeout", 1.5)
        assert cfg.stream.stall_timeout == 1.5
        assert cfg.get_override("stream.stall_timeout") == 1.5
        assert cfg.get_override("model.code") is None

    def test_api_key_from_env(self, monkeypatch):
        cfg = NexusConfig()
        cfg.llm.api_key_env = "NEXUS_TEST_KEY"
        monkeypatch.delenv("NEXUS_TEST_KEY", raising=False)
        assert cfg.api_key() is None
        monkeypatch.setenv("NEXUS_TEST_KEY", "sk-test")
        assert cfg.api_key() == "sk-test"

    def test_to_dict_hides_overrides(self):
        cfg = NexusConfig()
        cfg.set_override("model.code", "x")
        d = cfg.to_dict()
        assert "_overrides" not in d
        assert d["model"]["code"] == "x"
