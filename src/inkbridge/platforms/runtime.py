"""Bridge bootstrap: build adapters from configuration and start routing."""

import logging
from typing import Optional

from inkbridge.config.loader import ConfigurationError
from inkbridge.config.schema import Config
from inkbridge.platforms.backend import AgentBackend
from inkbridge.platforms.models import PlatformType
from inkbridge.platforms.opencode import OpenCodeBackend
from inkbridge.platforms.protocol import BridgeAdapter
from inkbridge.platforms.state import (
    BridgeState,
    get_bridge_state,
    has_bridge_state,
    init_bridge_state,
    reset_bridge_state,
)

logger = logging.getLogger(__name__)


def create_backend(config: Config) -> OpenCodeBackend:
    """Build the backend client from the ``backend`` section."""
    return OpenCodeBackend(
        base_url=config.backend.base_url,
        directory=config.backend.directory,
        timeout=config.backend.request_timeout,
    )


def create_adapters(
    config: Config, platform_filter: Optional[str] = None
) -> dict[str, BridgeAdapter]:
    """Create platform adapters based on configuration.

    Args:
        config: InkBridge configuration
        platform_filter: Only build this platform (None = all enabled)

    Returns:
        Enabled adapters keyed by platform name

    Raises:
        ConfigurationError: If the requested platform is unknown or not enabled
    """
    if platform_filter and platform_filter not in {p.value for p in PlatformType}:
        raise ConfigurationError(f"Unknown platform '{platform_filter}'")

    adapters: dict[str, BridgeAdapter] = {}

    def wanted(name: str) -> bool:
        return platform_filter is None or platform_filter == name

    telegram = config.platforms.telegram
    if telegram.enable and wanted(PlatformType.TELEGRAM.value):
        if telegram.bot_token:
            from inkbridge.platforms.adapters.telegram import TelegramAdapter

            adapters[PlatformType.TELEGRAM.value] = TelegramAdapter(
                bot_token=telegram.bot_token,
                allowed_users=telegram.allowed_users,
                polling_interval=telegram.polling_interval,
            )
        else:
            logger.warning("Telegram enabled but bot_token not configured")

    teams = config.platforms.teams
    if teams.enable and wanted(PlatformType.TEAMS.value):
        from inkbridge.platforms.adapters.teams import TeamsAdapter

        adapters[PlatformType.TEAMS.value] = TeamsAdapter.from_config(teams)

    if platform_filter and platform_filter not in adapters:
        raise ConfigurationError(
            f"Platform '{platform_filter}' not configured or not enabled"
        )

    return adapters


async def bootstrap(
    config: Config,
    backend: Optional[AgentBackend] = None,
    adapters: Optional[dict[str, BridgeAdapter]] = None,
    platform_filter: Optional[str] = None,
) -> BridgeState:
    """Start the bridge. Safe to call again in the same process.

    Each adapter is registered (stopping any instance it replaces) and
    started with its own message handler. The event listener is started
    only if it is not already running.

    Args:
        config: InkBridge configuration
        backend: Backend to use when the state does not exist yet
        adapters: Prebuilt adapters, built from ``config`` if None
        platform_filter: Only start this platform

    Returns:
        The process-wide bridge state
    """
    if adapters is None:
        adapters = create_adapters(config, platform_filter)

    if has_bridge_state():
        state = get_bridge_state()
    else:
        state = init_bridge_state(backend or create_backend(config), config.bridge)

    if not adapters:
        logger.warning("No platform adapters enabled")

    for key, adapter in adapters.items():
        replaced = state.mux.register(key, adapter)
        if replaced is not None:
            await replaced.stop()
        await adapter.start(state.create_handler(key))
        logger.info(f"Started {key} adapter")

    if state.settings.response_mode != "stream":
        logger.info("Poll response mode, backend event listener not started")
    elif state.listener.start():
        logger.info("Started backend event listener")

    return state


async def shutdown() -> None:
    """Stop everything started by bootstrap and reset the bridge state."""
    if not has_bridge_state():
        return

    state = get_bridge_state()
    try:
        await state.close()
    finally:
        reset_bridge_state()
    logger.info("Bridge stopped")
