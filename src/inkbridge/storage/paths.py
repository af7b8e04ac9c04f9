"""Filesystem locations used by InkBridge."""

import os
from pathlib import Path

HOME_ENV_VAR = "INKBRIDGE_HOME"
CONFIG_FILENAME = "config.yaml"


def get_inkbridge_home() -> Path:
    """
    Directory holding InkBridge's global files.

    ``$INKBRIDGE_HOME`` relocates it (tests and containers use this);
    otherwise it is ``~/.inkbridge``. The directory is not created here.
    """
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser().resolve()
    return Path.home() / ".inkbridge"


def get_global_config_path() -> Path:
    """Path of the global ``config.yaml``."""
    return get_inkbridge_home() / CONFIG_FILENAME
