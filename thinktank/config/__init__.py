"""Configuration management for ThinkTank.

Settings are layered, lowest priority first:
1. ``defaults.yaml`` shipped with the package
2. The user file (``~/.thinktank/config.yaml`` or an explicit path)
3. ``THINKTANK_*`` environment variables, read by pydantic-settings

``${VAR}`` references in either YAML file are expanded before validation.
"""

import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from thinktank.errors import InvalidConfigError

from .settings import AutoRunConfig, FactorWeights, ReasoningConfig, ScoringConfig, Settings

CONFIG_DIR = Path.home() / ".thinktank"
CONFIG_FILE = CONFIG_DIR / "config.yaml"
DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"

ENV_REFERENCE = re.compile(r"\$\{([^}]+)\}")

# YAML sections passed to Settings unchanged
SECTIONS = ("scoring", "reasoning", "autorun")

_settings: Optional[Settings] = None


def _expand_env_vars(value: Any) -> Any:
    """Replace ``${VAR}`` references inside strings, recursing into containers.

    A string that expands to nothing becomes None so unset keys stay unset.
    """
    if isinstance(value, dict):
        return {key: _expand_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env_vars(item) for item in value]
    if not isinstance(value, str):
        return value

    expanded = ENV_REFERENCE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    return expanded or None


def _deep_merge(base: dict, override: dict) -> dict:
    """Return ``base`` updated with ``override``; nested dicts merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = _deep_merge(current, value)
        merged[key] = value
    return merged


def _read_yaml(path: Path) -> dict:
    if not path.is_file():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _settings_kwargs(config: dict) -> dict[str, Any]:
    """Map the YAML layout (``api_keys.anthropic`` ...) onto Settings fields."""
    kwargs: dict[str, Any] = {}

    api_keys = config.get("api_keys") or {}
    for provider in ("anthropic", "openai"):
        if api_keys.get(provider):
            kwargs[f"{provider}_api_key"] = api_keys[provider]

    kwargs.update({section: config[section] for section in SECTIONS if config.get(section)})
    return kwargs


def load_settings(config_path: Optional[Path] = None, force_reload: bool = False) -> Settings:
    """Load and cache the application settings.

    Args:
        config_path: User config file to use instead of ``~/.thinktank/config.yaml``
        force_reload: Re-read the files even if settings are cached

    Returns:
        Settings instance

    Raises:
        InvalidConfigError: If a configured value fails validation
    """
    global _settings

    if _settings is not None and not force_reload:
        return _settings

    layered = _deep_merge(_read_yaml(DEFAULTS_FILE), _read_yaml(config_path or CONFIG_FILE))
    kwargs = _settings_kwargs(_expand_env_vars(layered))

    try:
        # Environment values win over both YAML layers
        from_env = Settings().model_dump(exclude_unset=True)
        _settings = Settings(**_deep_merge(kwargs, from_env))
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or "settings"
        raise InvalidConfigError(field, error.get("input"), error["msg"]) from e

    return _settings


def get_settings() -> Settings:
    """Get the current settings instance, loading if necessary."""
    return _settings if _settings is not None else load_settings()


def reset_settings() -> None:
    """Forget the cached settings (used by tests)."""
    global _settings
    _settings = None


__all__ = [
    "AutoRunConfig",
    "CONFIG_DIR",
    "CONFIG_FILE",
    "FactorWeights",
    "ReasoningConfig",
    "ScoringConfig",
    "Settings",
    "get_settings",
    "load_settings",
    "reset_settings",
]
