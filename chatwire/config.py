"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < profile < env vars < CLI flags

The loaded ``ChatwireConfig`` is built once at startup and passed explicitly
to whatever needs it; nothing in the library reads it from a global.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from chatwire.llm.truncation import DEFAULT_CHAR_LIMIT, DEFAULT_TOKEN_LIMIT, TruncationConfig


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class ProviderConfig:
    name: str = "openai-compatible"
    model: str = ""
    api_base: str = ""
    api_key_env: str = ""
    api_key: str = ""
    timeout_seconds: float = 120.0
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    strict_tool_arguments: bool = False

    def resolve_api_key(self) -> str:
        """Explicit key first, then the configured environment variable."""
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env, "")
        return ""


@dataclass
class TruncationSection:
    char_limit: int = DEFAULT_CHAR_LIMIT
    token_limit: int = DEFAULT_TOKEN_LIMIT

    def to_policy(self) -> TruncationConfig:
        return TruncationConfig(char_limit=self.char_limit, token_limit=self.token_limit)


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    format: str = "%(message)s"


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class ChatwireConfig:
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    truncation: TruncationSection = field(default_factory=TruncationSection)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        d = asdict(self)
        if d["provider"].get("api_key"):
            d["provider"]["api_key"] = "***"
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
    return value


def _build_section(cls: type, raw: dict) -> Any:
    """Build a dataclass section from a raw dict, ignoring unknown keys."""
    valid_fields = {f.name for f in fields(cls)}
    filtered = {k: v for k, v in (raw or {}).items() if k in valid_fields}
    return cls(**filtered)


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "CHATWIRE_PROVIDER":                ("provider.name", str),
    "CHATWIRE_MODEL":                   ("provider.model", str),
    "CHATWIRE_API_BASE":                ("provider.api_base", str),
    "CHATWIRE_API_KEY_ENV":             ("provider.api_key_env", str),
    "CHATWIRE_TIMEOUT":                 ("provider.timeout_seconds", float),
    "CHATWIRE_TEMPERATURE":             ("provider.temperature", float),
    "CHATWIRE_MAX_TOKENS":              ("provider.max_tokens", int),
    "CHATWIRE_STRICT_TOOL_ARGS":        ("provider.strict_tool_arguments", bool),
    "CHATWIRE_TOOL_RESULT_CHAR_LIMIT":  ("truncation.char_limit", int),
    "CHATWIRE_TOOL_RESULT_TOKEN_LIMIT": ("truncation.token_limit", int),
    "CHATWIRE_LOG_LEVEL":               ("logging.level", str),
}


def find_config_path() -> Path | None:
    """Find a config file in the standard locations."""
    candidates = [
        Path.cwd() / "chatwire.yaml",
        Path.cwd() / "chatwire.yml",
        Path.home() / ".config" / "chatwire" / "config.yaml",
    ]
    for p in candidates:
        if p.is_file():
            return p
    return None


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
    environ: dict[str, str] | None = None,
) -> ChatwireConfig:
    """
    Build a ChatwireConfig by layering sources in precedence order:

        defaults  <  config file  <  profile  <  env vars  <  CLI flags

    Parameters
    ----------
    config_path : path to YAML config file (optional)
    profile : name of a profile to apply from the config file
    cli_overrides : dict of dotpath -> value CLI flag overrides
    environ : environment mapping (defaults to ``os.environ``)
    """
    env = os.environ if environ is None else environ
    raw: dict[str, Any] = {}

    # --- 1. Config file ---
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.is_file():
            with p.open("r", encoding="utf-8") as f:
                file_data = yaml.safe_load(f) or {}
            if not isinstance(file_data, dict):
                raise ValueError(f"Config file {p} must contain a mapping")
            raw = _deep_merge(raw, file_data)

    # --- 2. Profile overlay ---
    if profile:
        profile_data = raw.get("profiles", {}).get(profile)
        if profile_data is None:
            raise KeyError(f"Unknown config profile {profile!r}")
        raw = _deep_merge(raw, profile_data)

    # --- Build sections from raw ---
    cfg = ChatwireConfig(
        provider=_build_section(ProviderConfig, raw.get("provider", {})),
        truncation=_build_section(TruncationSection, raw.get("truncation", {})),
        logging=_build_section(LoggingConfig, raw.get("logging", {})),
        profiles=raw.get("profiles", {}),
    )

    # --- 3. Env var overrides ---
    for env_var, (dotpath, target_type) in _ENV_MAP.items():
        val = env.get(env_var)
        if val is not None:
            _apply_dotpath(cfg, dotpath, _coerce(val, target_type))

    # --- 4. CLI flag overrides ---
    if cli_overrides:
        for dotpath, value in cli_overrides.items():
            if value is not None:
                _apply_dotpath(cfg, dotpath, value)

    return cfg
