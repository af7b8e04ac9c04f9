"""Storage locations for InkBridge."""

from inkbridge.storage.paths import get_global_config_path, get_inkbridge_home

__all__ = [
    "get_global_config_path",
    "get_inkbridge_home",
]
