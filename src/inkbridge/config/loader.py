"""
Configuration loader for InkBridge.

A configuration is built from three layers, later ones winning:

1. the defaults declared on :class:`~inkbridge.config.schema.Config`
2. the YAML file (``$INKBRIDGE_HOME/config.yaml`` unless a path is given)
3. ``INKBRIDGE_<SECTION>_<KEY>`` environment variables

Secrets are usually kept out of the file by writing ``${VAR}``; such
strings are replaced by the environment variable ``VAR`` before validation.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from inkbridge.config.merger import merge_layers
from inkbridge.config.schema import Config
from inkbridge.storage.paths import HOME_ENV_VAR, get_global_config_path

ENV_PREFIX = "INKBRIDGE_"
ENV_REFERENCE = re.compile(r"^\$\{([A-Za-z_][A-Za-z0-9_]*)\}$")
_INT = re.compile(r"^-?\d+$")
_FLOAT = re.compile(r"^-?\d+(\.\d+)?$")
_TRUTHY = frozenset({"true", "yes", "1", "on"})


class ConfigurationError(Exception):
    """Raised when a config file cannot be read or does not validate."""


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Read one YAML layer.

    A missing or empty file is an empty layer. Anything other than a
    mapping at the top level is rejected.

    Raises:
        ConfigurationError: On unreadable files, YAML syntax errors, or a
            non-mapping document.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e

    try:
        layer = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if layer is None:
        return {}
    if not isinstance(layer, dict):
        raise ConfigurationError(f"Top level of {path} must be a mapping")
    return layer


def save_yaml_file(path: Path, config: dict[str, Any]) -> None:
    """Write ``config`` as YAML, creating the parent directory if needed."""
    text = yaml.safe_dump(config, sort_keys=False, allow_unicode=True)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot write {path}: {e}") from e


def _parse_env_value(raw: str, current: Any) -> Any:
    """Coerce ``raw`` to the type of the value it replaces."""
    text = raw.strip()
    # bool first: it is also an int
    if isinstance(current, bool):
        return text.lower() in _TRUTHY
    if isinstance(current, list):
        return [item.strip() for item in raw.split(",") if item.strip()]
    if isinstance(current, int) and _INT.match(text):
        return int(text)
    if isinstance(current, float) and _FLOAT.match(text):
        return float(text)
    return raw


def _match_path(config: dict[str, Any], parts: list[str]) -> list[str] | None:
    """
    Map underscore-separated name parts onto existing nested keys.

    Keys may themselves contain underscores, so the longest existing key is
    tried first at every level: ``PLATFORMS_TEAMS_CLIENT_ID`` resolves to
    ``platforms.teams.client_id``.
    """
    for size in range(len(parts), 0, -1):
        key = "_".join(parts[:size])
        if key not in config:
            continue
        rest = parts[size:]
        if not rest:
            return [key]
        if isinstance(config[key], dict):
            tail = _match_path(config[key], rest)
            if tail is not None:
                return [key] + tail
    return None


def apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """
    Overlay ``INKBRIDGE_*`` variables onto ``config`` in place.

    ``INKBRIDGE_BRIDGE_RESPONSE_MODE=poll`` sets ``bridge.response_mode``.
    Only keys already present in ``config`` can be set, so variables that
    name nothing (and ``INKBRIDGE_HOME``) are ignored.
    """
    for name, raw in os.environ.items():
        if not name.startswith(ENV_PREFIX) or name == HOME_ENV_VAR:
            continue

        path = _match_path(config, name[len(ENV_PREFIX) :].lower().split("_"))
        if path is None:
            continue

        *sections, leaf = path
        target = config
        for section in sections:
            target = target[section]
        target[leaf] = _parse_env_value(raw, target[leaf])

    return config


def resolve_env_references(value: Any) -> Any:
    """
    Replace ``${VAR}`` strings with environment values, recursively.

    Unset variables resolve to an empty string.
    """
    if isinstance(value, dict):
        return {k: resolve_env_references(v) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_env_references(v) for v in value]
    if isinstance(value, str):
        match = ENV_REFERENCE.match(value.strip())
        if match:
            return os.environ.get(match.group(1), "")
    return value


def load_config(config_path: Path | None = None, skip_env: bool = False) -> Config:
    """
    Build a validated :class:`Config` from defaults, file and environment.

    Args:
        config_path: Config file to read instead of the global one. Unlike
            the global file it must exist.
        skip_env: Ignore ``INKBRIDGE_*`` overrides.

    Raises:
        ConfigurationError: If the file is unreadable or the result does
            not validate.
    """
    path = config_path or get_global_config_path()
    if config_path is not None and not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    raw = merge_layers(Config().model_dump(), load_yaml_file(path))
    if not skip_env:
        raw = apply_env_overrides(raw)

    try:
        return Config.model_validate(resolve_env_references(raw))
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e


_cached_config: Config | None = None


def get_config(reload: bool = False) -> Config:
    """Process-wide configuration, loaded on first use."""
    global _cached_config
    if reload or _cached_config is None:
        _cached_config = load_config()
    return _cached_config


def clear_config_cache() -> None:
    global _cached_config
    _cached_config = None
