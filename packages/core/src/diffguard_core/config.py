from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Mapping, Optional

import yaml


class ConfigError(ValueError):
    """Raised when a configuration value cannot be interpreted."""


@dataclass(frozen=True)
class Settings:
    """Every recognised option, collected once and passed to each component."""

    anthropic_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    github_token: Optional[str] = None
    anthropic_base_url: Optional[str] = None
    openai_base_url: Optional[str] = None
    timeout_ms: int = 300000
    model: Optional[str] = None  # None = provider default
    max_tokens: int = 4096
    prompt: Optional[str] = None  # None = built-in system prompt
    language: Optional[str] = None
    target_label: Optional[str] = None
    max_patch_length: Optional[int] = None  # None = unlimited
    ignore: tuple[str, ...] = ()
    ignore_patterns: tuple[str, ...] = ()
    include_patterns: tuple[str, ...] = ()
    review_concurrency: int = 1
    store: str = "noop"
    store_path: str = ".diffguard.db"
    gist_id: Optional[str] = None
    reviewer_login: Optional[str] = None  # None = any author counts for prior-review lookup


_INT_KEYS = {"timeout_ms", "max_tokens", "max_patch_length", "review_concurrency"}

# env var -> setting. Later entries win: IGNORE beats ignore.
_ENV_KEYS: dict[str, str] = {
    "ANTHROPIC_API_KEY": "anthropic_api_key",
    "OPENAI_API_KEY": "openai_api_key",
    "GITHUB_TOKEN": "github_token",
    "OPENAI_BASE_URL": "openai_base_url",
    "ANTHROPIC_BASE_URL": "anthropic_base_url",
    "API_TIMEOUT_MS": "timeout_ms",
    "MODEL": "model",
    "MAX_TOKENS": "max_tokens",
    "PROMPT": "prompt",
    "LANGUAGE": "language",
    "TARGET_LABEL": "target_label",
    "MAX_PATCH_LENGTH": "max_patch_length",
    "ignore": "ignore",
    "IGNORE": "ignore",
    "IGNORE_PATTERNS": "ignore_patterns",
    "INCLUDE_PATTERNS": "include_patterns",
    "REVIEW_CONCURRENCY": "review_concurrency",
    "DIFFGUARD_STORE": "store",
    "DIFFGUARD_REVIEWER_LOGIN": "reviewer_login",
}


def split_list(value, separator: str) -> tuple[str, ...]:
    """Split a separated string (or pass through a YAML list), dropping blank entries."""
    if value is None:
        return ()
    items = value.split(separator) if isinstance(value, str) else [str(v) for v in value]
    return tuple(item.strip() for item in items if item.strip())


def _coerce(key: str, value):
    if key in _INT_KEYS:
        if value is None or value == "":
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{key} must be an integer, got {value!r}")
    if key == "ignore":
        return split_list(value, "\n")
    if key in ("ignore_patterns", "include_patterns"):
        return split_list(value, ",")
    return value


def load_config(
    config_path: str = ".diffguard.yml",
    cli_overrides: Optional[dict] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Build Settings by merging (in order of precedence):
      1. Built-in defaults
      2. .diffguard.yml in the current directory
      3. Environment variables
      4. CLI argument overrides
    """
    known = {f.name for f in fields(Settings)}
    values: dict = {}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ConfigError(f"{config_path} must contain a mapping at the top level.")
        unknown = set(file_config) - known
        if unknown:
            raise ConfigError(f"Unknown option(s) in {config_path}: {', '.join(sorted(unknown))}")
        values.update(file_config)

    env = os.environ if environ is None else environ
    for env_key, setting in _ENV_KEYS.items():
        raw = env.get(env_key)
        if raw:
            values[setting] = raw

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                values[key] = value

    settings = Settings(**{key: _coerce(key, value) for key, value in values.items()})
    if settings.review_concurrency is None or settings.review_concurrency < 1:
        settings = replace(settings, review_concurrency=1)
    if settings.timeout_ms is None:
        settings = replace(settings, timeout_ms=Settings.timeout_ms)
    if settings.max_tokens is None:
        settings = replace(settings, max_tokens=Settings.max_tokens)
    return settings
