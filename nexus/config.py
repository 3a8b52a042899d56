"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < profile < env vars < CLI flags < per-session overrides
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any

import yaml


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class LLMConfig:
    api_base: str = "https://openrouter.ai/api/v1"
    api_key_env: str = "OPENROUTER_API_KEY"
    referer: str = ""
    title: str = "Nexus"


@dataclass
class ModelConfig:
    code: str = "openrouter/auto"
    supports_tools: bool = True
    supports_reasoning: bool = False
    reasoning_effort: str = "medium"
    reasoning_enabled: bool = True
    output_modalities: list[str] = field(default_factory=list)
    plugins: list[dict] = field(default_factory=list)
    include_usage: bool = True


@dataclass
class StreamConfig:
    stall_timeout: float = 20.0
    watchdog_interval: float = 2.0
    request_timeout: float = 120.0
    resource_timeout: float = 600.0
    finish_grace: float = 1.0
    auto_resume_on_foreground: bool = False
    continue_prompt: str = "Continue."
    max_tool_rounds: int = 8


@dataclass
class ToolsConfig:
    enabled: list[str] = field(default_factory=list)
    timeout_seconds: float = 60.0
    exa_api_key_env: str = "EXA_API_KEY"
    search_results: int = 5
    files_dir: str = "~/.nexus/files"


@dataclass
class SessionConfig:
    history_db: str = "~/.nexus/history.db"
    user_location: str = ""


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class NexusConfig:
    llm: LLMConfig = field(default_factory=LLMConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)

    # ----- per-session overrides (applied last) ----
    _overrides: dict[str, Any] = field(default_factory=dict, repr=False)

    def set_override(self, dotpath: str, value: Any) -> None:
        """Set a per-session override using dot notation (e.g. 'model.code')."""
        self._overrides[dotpath] = value
        _apply_dotpath(self, dotpath, value)

    def get_override(self, dotpath: str) -> Any | None:
        return self._overrides.get(dotpath)

    def api_key(self) -> str | None:
        """Read the API key from the environment at call time."""
        return os.environ.get(self.llm.api_key_env) or None

    def to_dict(self) -> dict:
        d = asdict(self)
        d.pop("_overrides", None)
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
    if target_type is float:
        return float(value)
    if target_type is list:
        return [s.strip() for s in value.split(",") if s.strip()]
    return value


def _build_section(cls: type, raw: dict) -> Any:
    """Build a dataclass section from a raw dict, ignoring unknown keys."""
    valid_fields = {f.name for f in fields(cls)}
    filtered = {k: v for k, v in raw.items() if k in valid_fields}
    return cls(**filtered)


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "NEXUS_LLM_API_BASE":             ("llm.api_base", str),
    "NEXUS_LLM_API_KEY_ENV":          ("llm.api_key_env", str),
    "NEXUS_LLM_REFERER":              ("llm.referer", str),
    "NEXUS_LLM_TITLE":                ("llm.title", str),
    "NEXUS_MODEL":                    ("model.code", str),
    "NEXUS_MODEL_TOOLS":              ("model.supports_tools", bool),
    "NEXUS_MODEL_REASONING":          ("model.supports_reasoning", bool),
    "NEXUS_MODEL_REASONING_EFFORT":   ("model.reasoning_effort", str),
    "NEXUS_MODEL_MODALITIES":         ("model.output_modalities", list),
    "NEXUS_STREAM_STALL_TIMEOUT":     ("stream.stall_timeout", float),
    "NEXUS_STREAM_REQUEST_TIMEOUT":   ("stream.request_timeout", float),
    "NEXUS_STREAM_RESOURCE_TIMEOUT":  ("stream.resource_timeout", float),
    "NEXUS_STREAM_AUTO_RESUME":       ("stream.auto_resume_on_foreground", bool),
    "NEXUS_STREAM_MAX_TOOL_ROUNDS":   ("stream.max_tool_rounds", int),
    "NEXUS_TOOLS_ENABLED":            ("tools.enabled", list),
    "NEXUS_TOOLS_TIMEOUT":            ("tools.timeout_seconds", float),
    "NEXUS_TOOLS_FILES_DIR":          ("tools.files_dir", str),
    "NEXUS_SESSION_HISTORY_DB":       ("session.history_db", str),
    "NEXUS_SESSION_USER_LOCATION":    ("session.user_location", str),
}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> NexusConfig:
    """
    Build a NexusConfig by layering sources in precedence order:

        defaults  <  config file  <  profile  <  env vars  <  CLI flags

    Parameters
    ----------
    config_path : path to YAML config file (optional)
    profile : name of a profile to apply from the config file
    cli_overrides : dict of dotpath -> value CLI flag overrides
    """
    raw: dict[str, Any] = {}

    # --- 1. Config file ---
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.is_file():
            with p.open("r", encoding="utf-8") as f:
                file_data = yaml.safe_load(f) or {}
            raw = _deep_merge(raw, file_data)

    # --- 2. Profile overlay ---
    if profile and "profiles" in raw:
        profile_data = raw.get("profiles", {}).get(profile, {})
        if profile_data:
            raw = _deep_merge(raw, profile_data)

    # --- Build sections from raw ---
    cfg = NexusConfig(
        llm=_build_section(LLMConfig, raw.get("llm", {})),
        model=_build_section(ModelConfig, raw.get("model", {})),
        stream=_build_section(StreamConfig, raw.get("stream", {})),
        tools=_build_section(ToolsConfig, raw.get("tools", {})),
        session=_build_section(SessionConfig, raw.get("session", {})),
        profiles=raw.get("profiles", {}),
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
