"""Configuration loading for the chat gateway.

Values are layered: packaged ``defaults.yaml``, then the user's config file,
with ``${VAR}`` references in either expanded from the environment. Anything
the files leave unset falls through to ``CHATGATEWAY_*`` environment variables
and finally to the field defaults on :class:`Settings`.
"""

import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml

from .settings import Settings

CONFIG_DIR = Path.home() / ".chatgateway"
CONFIG_FILE = CONFIG_DIR / "config.yaml"
DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"

_ENV_REF = re.compile(r"\$\{([^}]+)\}")

# YAML ``api_keys`` entry -> Settings field
_API_KEY_FIELDS = {
    "openai": "openai_api_key",
    "anthropic": "anthropic_api_key",
    "local": "local_model_api_key",
    "brave_search": "brave_search_api_key",
}
_SECTIONS = ("local", "router", "rag", "tools", "stream", "rate_limit", "storage", "server")

_settings: Optional[Settings] = None


def _expand_env_vars(value: Any) -> Any:
    """Substitute ``${VAR}`` references throughout a parsed YAML tree.

    A string that expands to nothing becomes None so the field default wins.
    """
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    if not isinstance(value, str):
        return value
    expanded = _ENV_REF.sub(lambda m: os.environ.get(m.group(1), ""), value)
    return expanded or None


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge ``override`` into a copy of ``base``, recursing into mappings."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = _deep_merge(current, value)
        merged[key] = value
    return merged


def _load_yaml_file(path: Path) -> dict:
    if not path.is_file():
        return {}
    with path.open(encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _drop_none(value: Any) -> Any:
    if not isinstance(value, dict):
        return value
    return {k: _drop_none(v) for k, v in value.items() if v is not None}


def _transform_config_to_settings(config: dict) -> dict:
    """Map the YAML layout onto ``Settings`` keyword arguments."""
    api_keys = config.get("api_keys") or {}
    values: dict[str, Any] = {
        field_name: api_keys[yaml_key]
        for yaml_key, field_name in _API_KEY_FIELDS.items()
        if api_keys.get(yaml_key)
    }
    values.update(
        {section: _drop_none(config[section]) for section in _SECTIONS if config.get(section)}
    )
    return values


def load_settings(config_path: Optional[Path] = None, force_reload: bool = False) -> Settings:
    """Build settings from the config files and cache them.

    Args:
        config_path: User config file; defaults to ``~/.chatgateway/config.yaml``.
        force_reload: Rebuild even when settings are already cached.
    """
    global _settings

    if _settings is None or force_reload:
        layered = _deep_merge(
            _load_yaml_file(DEFAULTS_FILE),
            _load_yaml_file(config_path or CONFIG_FILE),
        )
        _settings = Settings(**_transform_config_to_settings(_expand_env_vars(layered)))
    return _settings


def get_settings() -> Settings:
    return _settings if _settings is not None else load_settings()


def reset_settings() -> None:
    """Forget cached settings so the next access reloads them."""
    global _settings
    _settings = None


__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE",
    "Settings",
    "get_settings",
    "load_settings",
    "reset_settings",
]
