"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < env vars < CLI flags < per-session overrides
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from parley.functions.base import CallingMode, ValidationStrategy

DEFAULT_API_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_DIRECTION_MESSAGE = (
    "You are ChatGPT, an AI model developed by OpenAI. "
    "Answer as concisely as possible."
)


# ---------------------------------------------------------------------------
# Runtime model configuration
# ---------------------------------------------------------------------------

@dataclass
class ModelConfiguration:
    """Per-client request parameters, carried into every outbound request."""

    model: str = "gpt-3.5-turbo"
    temperature: float = 0.5
    top_p: float = 1.0
    presence_penalty: float = 0.0
    frequency_penalty: float = 0.0
    reply_count: int = 1
    max_tokens: int | None = None
    function_validation: ValidationStrategy = ValidationStrategy.LOOSE
    function_calling_mode: CallingMode = CallingMode.AUTO
    max_function_rounds: int | None = None
    dialect: str = "current"

    def __post_init__(self) -> None:
        if self.reply_count < 1:
            raise ValueError("reply_count must be at least 1")


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class LLMConfig:
    api_url: str = DEFAULT_API_URL
    api_key_env: str = "OPENAI_API_KEY"
    model: str = "gpt-3.5-turbo"
    dialect: str = "current"
    temperature: float = 0.5
    top_p: float = 1.0
    presence_penalty: float = 0.0
    frequency_penalty: float = 0.0
    reply_count: int = 1
    max_tokens: int | None = None
    timeout_seconds: int = 120
    max_retries: int = 2


@dataclass
class FunctionsConfig:
    validation: str = "loose"
    calling_mode: str = "auto"
    max_rounds: int | None = None


@dataclass
class HistoryConfig:
    history_db: str = "~/.parley/history.db"
    direction_message: str = DEFAULT_DIRECTION_MESSAGE


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class ParleyConfig:
    llm: LLMConfig = field(default_factory=LLMConfig)
    functions: FunctionsConfig = field(default_factory=FunctionsConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)

    # ----- per-session overrides (applied last) ----
    _overrides: dict[str, Any] = field(default_factory=dict, repr=False)

    def set_override(self, dotpath: str, value: Any) -> None:
        """Set a per-session override using dot notation (e.g. 'llm.model')."""
        self._overrides[dotpath] = value
        _apply_dotpath(self, dotpath, value)

    def get_override(self, dotpath: str) -> Any | None:
        return self._overrides.get(dotpath)

    def to_dict(self) -> dict:
        d = asdict(self)
        d.pop("_overrides", None)
        return d

    def model_configuration(self) -> ModelConfiguration:
        """Build the runtime ``ModelConfiguration`` from the loaded sections."""
        return ModelConfiguration(
            model=self.llm.model,
            temperature=self.llm.temperature,
            top_p=self.llm.top_p,
            presence_penalty=self.llm.presence_penalty,
            frequency_penalty=self.llm.frequency_penalty,
            reply_count=self.llm.reply_count,
            max_tokens=self.llm.max_tokens,
            function_validation=ValidationStrategy(self.functions.validation.lower()),
            function_calling_mode=CallingMode(self.functions.calling_mode.lower()),
            max_function_rounds=self.functions.max_rounds,
            dialect=self.llm.dialect,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_dotpath(obj: Any, dotpath: str, value: Any) -> None:
    """Walk obj via dotpath and set the final attribute."""
    parts = dotpath.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    if not hasattr(obj, parts[-1]):
        raise AttributeError(f"Unknown config key: {dotpath}")
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
    filtered = {k: v for k, v in raw.items() if k in valid_fields}
    return cls(**filtered)


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "PARLEY_LLM_API_URL":          ("llm.api_url", str),
    "PARLEY_LLM_API_KEY_ENV":      ("llm.api_key_env", str),
    "PARLEY_LLM_MODEL":            ("llm.model", str),
    "PARLEY_LLM_DIALECT":          ("llm.dialect", str),
    "PARLEY_LLM_TEMPERATURE":      ("llm.temperature", float),
    "PARLEY_LLM_TOP_P":            ("llm.top_p", float),
    "PARLEY_LLM_REPLY_COUNT":      ("llm.reply_count", int),
    "PARLEY_LLM_MAX_TOKENS":       ("llm.max_tokens", int),
    "PARLEY_LLM_TIMEOUT":          ("llm.timeout_seconds", int),
    "PARLEY_LLM_MAX_RETRIES":      ("llm.max_retries", int),
    "PARLEY_FUNCTIONS_VALIDATION": ("functions.validation", str),
    "PARLEY_FUNCTIONS_MODE":       ("functions.calling_mode", str),
    "PARLEY_FUNCTIONS_MAX_ROUNDS": ("functions.max_rounds", int),
    "PARLEY_HISTORY_DB":           ("history.history_db", str),
    "PARLEY_HISTORY_DIRECTION":    ("history.direction_message", str),
}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> ParleyConfig:
    """
    Build a ParleyConfig by layering sources in precedence order:

        defaults  <  config file  <  env vars  <  CLI flags  <  per-session overrides

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
    cfg = ParleyConfig(
        llm=_build_section(LLMConfig, raw.get("llm", {})),
        functions=_build_section(FunctionsConfig, raw.get("functions", {})),
        history=_build_section(HistoryConfig, raw.get("history", {})),
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
