"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < profile < env vars < CLI flags < per-session overrides
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any

import yaml

CONFIG_SEARCH_PATHS = (
    "./conduit.yaml",
    "./conduit.yml",
    "~/.config/conduit/config.yaml",
    "~/.conduit/config.yaml",
)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class AgentConfig:
    binary: str = ""
    model: str = ""
    extra_args: list[str] = field(default_factory=list)
    timeout_seconds: int = 1800
    env: dict[str, str] = field(default_factory=dict)


@dataclass
class AgentsConfig:
    default: str = "claude"
    cwd: str = ""
    claude: AgentConfig = field(default_factory=lambda: AgentConfig(binary="claude"))
    codex: AgentConfig = field(default_factory=lambda: AgentConfig(binary="codex"))


@dataclass
class SessionConfig:
    history_db: str = "~/.conduit/history.db"


@dataclass
class LoggingConfig:
    level: str = "WARNING"


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class ConduitConfig:
    agents: AgentsConfig = field(default_factory=AgentsConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)
    source: str | None = None

    # ----- per-session overrides (applied last) ----
    _overrides: dict[str, Any] = field(default_factory=dict, repr=False)

    def set_override(self, dotpath: str, value: Any) -> None:
        """Set a per-session override using dot notation (e.g. 'agents.default')."""
        self._overrides[dotpath] = value
        _apply_dotpath(self, dotpath, value)

    def get_override(self, dotpath: str) -> Any | None:
        return self._overrides.get(dotpath)

    def agent(self, agent_id: str) -> AgentConfig:
        """Per-backend settings; the SDK agent shares the CLI's entry."""
        if agent_id == "codex":
            return self.agents.codex
        return self.agents.claude

    def to_dict(self) -> dict:
        d = asdict(self)
        d.pop("_overrides", None)
        d.pop("source", None)
        return d


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_dotpath(obj: Any, dotpath: str, value: Any) -> None:
    """Walk obj via dotpath and set the final attribute."""
    parts = dotpath.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    setattr(obj, parts[-1], value)


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge overlay into base, returning a new dict."""
    merged = dict(base)
    for k, v in overlay.items():
        if k in merged and isinstance(merged[k], dict) and isinstance(v, dict):
            merged[k] = _deep_merge(merged[k], v)
        else:
            merged[k] = v
    return merged


def _coerce(value: str, target_type: type) -> Any:
    """Coerce a string env value to the target type."""
    if target_type is bool:
        return value.lower() in ("1", "true", "yes", "on")
    if target_type is int:
        return int(value)
    if target_type is list:
        return [s.strip() for s in value.split(",") if s.strip()]
    return value


def _build_section(cls: type, raw: dict) -> Any:
    """Build a dataclass section from a raw dict, ignoring unknown keys."""
    valid_fields = {f.name for f in fields(cls)}
    filtered = {k: v for k, v in (raw or {}).items() if k in valid_fields}
    return cls(**filtered)


def _build_agents(raw: dict) -> AgentsConfig:
    raw = dict(raw or {})
    defaults = AgentsConfig()
    claude = _deep_merge(asdict(defaults.claude), raw.pop("claude", None) or {})
    codex = _deep_merge(asdict(defaults.codex), raw.pop("codex", None) or {})
    section = _build_section(AgentsConfig, raw)
    section.claude = _build_section(AgentConfig, claude)
    section.codex = _build_section(AgentConfig, codex)
    return section


def find_config_file() -> Path | None:
    """First existing file among the standard search paths."""
    for candidate in CONFIG_SEARCH_PATHS:
        p = Path(candidate).expanduser()
        if p.is_file():
            return p
    return None


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "CONDUIT_AGENT":              ("agents.default", str),
    "CONDUIT_CWD":                ("agents.cwd", str),
    "CONDUIT_CLAUDE_BINARY":      ("agents.claude.binary", str),
    "CONDUIT_CLAUDE_MODEL":       ("agents.claude.model", str),
    "CONDUIT_CLAUDE_EXTRA_ARGS":  ("agents.claude.extra_args", list),
    "CONDUIT_CLAUDE_TIMEOUT":     ("agents.claude.timeout_seconds", int),
    "CONDUIT_CODEX_BINARY":       ("agents.codex.binary", str),
    "CONDUIT_CODEX_MODEL":        ("agents.codex.model", str),
    "CONDUIT_CODEX_EXTRA_ARGS":   ("agents.codex.extra_args", list),
    "CONDUIT_CODEX_TIMEOUT":      ("agents.codex.timeout_seconds", int),
    "CONDUIT_SESSION_HISTORY_DB": ("session.history_db", str),
    "CONDUIT_LOG_LEVEL":          ("logging.level", str),
}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
    search: bool = True,
) -> ConduitConfig:
    """
    Build a ConduitConfig by layering sources in precedence order:

        defaults  <  config file  <  profile  <  env vars  <  CLI flags

    Parameters
    ----------
    config_path : path to YAML config file (optional)
    profile : name of a profile to apply from the config file
    cli_overrides : dict of dotpath -> value CLI flag overrides
    search : when no path is given, look in the standard locations

    Raises ``ValueError`` if the file is not a YAML mapping or the profile
    does not exist.
    """
    raw: dict[str, Any] = {}
    source: Path | None = None

    # --- 1. Config file ---
    if config_path is not None:
        source = Path(config_path).expanduser()
        if not source.is_file():
            source = None
    elif search:
        source = find_config_file()

    if source is not None:
        with source.open("r", encoding="utf-8") as f:
            file_data = yaml.safe_load(f) or {}
        if not isinstance(file_data, dict):
            raise ValueError(f"Config file {source} must contain a mapping")
        raw = _deep_merge(raw, file_data)

    # --- 2. Profile overlay ---
    if profile:
        profile_data = (raw.get("profiles") or {}).get(profile)
        if profile_data is None:
            raise ValueError(f"Unknown profile: {profile!r}")
        raw = _deep_merge(raw, profile_data)

    # --- Build sections from raw ---
    cfg = ConduitConfig(
        agents=_build_agents(raw.get("agents", {})),
        session=_build_section(SessionConfig, raw.get("session", {})),
        logging=_build_section(LoggingConfig, raw.get("logging", {})),
        profiles=raw.get("profiles", {}) or {},
        source=str(source) if source is not None else None,
    )

    # --- 3. Env var overrides ---
    for env_var, (dotpath, target_type) in _ENV_MAP.items():
        val = os.environ.get(env_var)
        if val is not None:
            _apply_dotpath(cfg, dotpath, _coerce(val, target_type))

    # --- 4. CLI flag overrides ---
    if cli_overrides:
        for dotpath, value in cli_overrides.items():
            _apply_dotpath(cfg, dotpath, value)

    return cfg


def validate_config(cfg: ConduitConfig, known_agents: list[str] | None = None) -> list[str]:
    """Return a list of human-readable problems (empty when valid)."""
    problems: list[str] = []
    if known_agents is not None and cfg.agents.default not in known_agents:
        problems.append(
            f"agents.default: unknown agent {cfg.agents.default!r} "
            f"(available: {', '.join(known_agents)})"
        )
    for name in ("claude", "codex"):
        agent_cfg: AgentConfig = getattr(cfg.agents, name)
        if not agent_cfg.binary:
            problems.append(f"agents.{name}.binary: must not be empty")
        if agent_cfg.timeout_seconds <= 0:
            problems.append(f"agents.{name}.timeout_seconds: must be positive")
        if not isinstance(agent_cfg.extra_args, list):
            problems.append(f"agents.{name}.extra_args: must be a list")
    if cfg.agents.cwd and not Path(cfg.agents.cwd).expanduser().is_dir():
        problems.append(f"agents.cwd: {cfg.agents.cwd} is not a directory")
    if cfg.logging.level.upper() not in _LOG_LEVELS:
        problems.append(f"logging.level: must be one of {', '.join(_LOG_LEVELS)}")
    return problems


def log_level(cfg: ConduitConfig) -> int:
    return getattr(logging, cfg.logging.level.upper(), logging.WARNING)
