"""Tests for conduit.config."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
import yaml

from conduit.config import ConduitConfig, load_config, log_level, validate_config

KNOWN = ["claude", "claude-agent", "codex"]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    import os

    for key in list(os.environ):
        if key.startswith("CONDUIT_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "conduit.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "agents": {
                    "default": "codex",
                    "claude": {"model": "sonnet", "extra_args": ["--max-turns", "5"]},
                    "codex": {"timeout_seconds": 600},
                },
                "session": {"history_db": str(tmp_path / "h.db")},
                "logging": {"level": "INFO"},
                "profiles": {
                    "fast": {"agents": {"claude": {"model": "haiku"}}},
                },
                "unknown_section": {"ignored": True},
            }
        )
    )
    return path


class TestDefaults:
    def test_defaults(self):
        cfg = load_config(search=False)
        assert cfg.agents.default == "claude"
        assert cfg.agents.claude.binary == "claude"
        assert cfg.agents.codex.binary == "codex"
        assert cfg.agents.claude.timeout_seconds == 1800
        assert cfg.source is None

    def test_sdk_agent_shares_claude_settings(self):
        cfg = ConduitConfig()
        assert cfg.agent("claude-agent") is cfg.agents.claude
        assert cfg.agent("codex") is cfg.agents.codex

    def test_to_dict_hides_internal_fields(self):
        d = ConduitConfig().to_dict()
        assert "_overrides" not in d
        assert "source" not in d
        assert d["agents"]["claude"]["binary"] == "claude"


class TestLayering:
    def test_file_values(self, config_file: Path):
        cfg = load_config(config_file)
        assert cfg.agents.default == "codex"
        assert cfg.agents.claude.model == "sonnet"
        assert cfg.agents.claude.binary == "claude"
        assert cfg.agents.claude.extra_args == ["--max-turns", "5"]
        assert cfg.agents.codex.timeout_seconds == 600
        assert cfg.logging.level == "INFO"
        assert cfg.source == str(config_file)

    def test_profile_overlay(self, config_file: Path):
        cfg = load_config(config_file, profile="fast")
        assert cfg.agents.claude.model == "haiku"
        assert cfg.agents.claude.extra_args == ["--max-turns", "5"]

    def test_unknown_profile(self, config_file: Path):
        with pytest.raises(ValueError, match="Unknown profile"):
            load_config(config_file, profile="slow")

    def test_env_beats_file(self, config_file: Path, monkeypatch):
        monkeypatch.setenv("CONDUIT_AGENT", "claude")
        monkeypatch.setenv("CONDUIT_CLAUDE_TIMEOUT", "30")
        monkeypatch.setenv("CONDUIT_CODEX_EXTRA_ARGS", "--oss, --full-auto")
        cfg = load_config(config_file)
        assert cfg.agents.default == "claude"
        assert cfg.agents.claude.timeout_seconds == 30
        assert cfg.agents.codex.extra_args == ["--oss", "--full-auto"]

    def test_cli_overrides_beat_env(self, config_file: Path, monkeypatch):
        monkeypatch.setenv("CONDUIT_CLAUDE_MODEL", "opus")
        cfg = load_config(config_file, cli_overrides={"agents.claude.model": "haiku"})
        assert cfg.agents.claude.model == "haiku"

    def test_session_override(self):
        cfg = load_config(search=False)
        cfg.set_override("agents.default", "codex")
        assert cfg.agents.default == "codex"
        assert cfg.get_override("agents.default") == "codex"
        assert cfg.get_override("agents.cwd") is None

    def test_missing_explicit_file_uses_defaults(self, tmp_path: Path):
        cfg = load_config(tmp_path / "absent.yaml")
        assert cfg.source is None
        assert cfg.agents.default == "claude"

    def test_non_mapping_file(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config(path)

    def test_search_paths(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "conduit.yaml").write_text("agents:\n  default: codex\n")
        cfg = load_config()
        assert cfg.agents.default == "codex"
        assert cfg.source is not None


class TestValidate:
    def test_defaults_valid(self):
        assert validate_config(ConduitConfig(), KNOWN) == []

    def test_problems_reported(self, tmp_path: Path):
        cfg = ConduitConfig()
        cfg.agents.default = "gemini"
        cfg.agents.codex.binary = ""
        cfg.agents.claude.timeout_seconds = 0
        cfg.agents.cwd = str(tmp_path / "missing")
        cfg.logging.level = "LOUD"
        problems = validate_config(cfg, KNOWN)
        assert len(problems) == 5
        assert any(p.startswith("agents.default") for p in problems)
        assert any(p.startswith("agents.codex.binary") for p in problems)
        assert any(p.startswith("agents.claude.timeout_seconds") for p in problems)
        assert any(p.startswith("agents.cwd") for p in problems)
        assert any(p.startswith("logging.level") for p in problems)

    def test_log_level(self):
        cfg = ConduitConfig()
        assert log_level(cfg) == logging.WARNING
        cfg.logging.level = "debug"
        assert log_level(cfg) == logging.DEBUG
