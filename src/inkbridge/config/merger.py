"""
Layer merging for InkBridge configuration.

Configuration is assembled from layers (built-in defaults, the global
``config.yaml``, environment overrides). Later layers win key by key;
sections merge recursively so a file can set ``bridge.response_mode``
without restating the rest of the ``bridge`` section.
"""

from typing import Any

Layer = dict[str, Any]


def deep_merge(base: Layer, override: Layer) -> Layer:
    """
    Merge ``override`` on top of ``base`` without mutating either.

    Sections (dicts) merge recursively. Any other value, lists included,
    replaces the base value. A null in YAML means "unset here" and keeps
    the base value.

    Examples:
        >>> deep_merge({"bridge": {"poll_interval": 1.5}}, {"bridge": {"response_mode": "poll"}})
        {'bridge': {'poll_interval': 1.5, 'response_mode': 'poll'}}
    """
    merged = dict(base)

    for key, value in override.items():
        if value is None:
            continue
        current = merged.get(key)
        merged[key] = (
            deep_merge(current, value)
            if isinstance(current, dict) and isinstance(value, dict)
            else value
        )

    return merged


def merge_layers(*layers: Layer | None) -> Layer:
    """Merge layers in order, skipping empty ones."""
    merged: Layer = {}
    for layer in layers:
        if layer:
            merged = deep_merge(merged, layer)
    return merged


def _split(key_path: str) -> list[str]:
    return [part for part in key_path.split(".") if part]


def get_nested_value(config: Layer, key_path: str) -> Any:
    """
    Look up a dotted path such as ``platforms.teams.client_id``.

    Returns None when any segment is missing or a non-section value is
    reached before the path ends.
    """
    node: Any = config
    for part in _split(key_path):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def set_nested_value(config: Layer, key_path: str, value: Any) -> Layer:
    """Assign ``value`` at a dotted path, creating (or replacing non-dict) sections on the way."""
    *sections, leaf = _split(key_path)
    node = config
    for part in sections:
        child = node.get(part)
        if not isinstance(child, dict):
            child = node[part] = {}
        node = child
    node[leaf] = value
    return config
