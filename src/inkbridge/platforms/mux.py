"""Adapter mux: routes outbound actions to the adapter that owns a conversation."""

import logging
from typing import Optional, Union

from inkbridge.platforms.exceptions import UnknownAdapterError
from inkbridge.platforms.models import OutboundAction
from inkbridge.platforms.protocol import BridgeAdapter

logger = logging.getLogger(__name__)


class AdapterMux:
    """Holds the active platform adapters, keyed by logical name.

    The mux does not retry anything: exceptions raised by an adapter call
    propagate to the caller unchanged.
    """

    def __init__(self) -> None:
        """Initialize an empty mux."""
        self._adapters: dict[str, BridgeAdapter] = {}

    def register(self, key: str, adapter: BridgeAdapter) -> Optional[BridgeAdapter]:
        """Register an adapter, replacing any adapter already under ``key``.

        Args:
            key: Logical adapter name (e.g. "telegram")
            adapter: The adapter instance that becomes authoritative

        Returns:
            The replaced adapter, if any, so the caller can stop it
        """
        previous = self._adapters.get(key)
        self._adapters[key] = adapter
        if previous is not None and previous is not adapter:
            logger.info(f"Replaced adapter for {key}")
            return previous

        logger.info(f"Registered adapter for {key}")
        return None

    def unregister(self, key: str) -> Optional[BridgeAdapter]:
        """Remove and return the adapter registered under ``key``."""
        adapter = self._adapters.pop(key, None)
        if adapter is not None:
            logger.info(f"Unregistered adapter for {key}")
        return adapter

    def get(self, key: str) -> BridgeAdapter:
        """Get the adapter registered under ``key``.

        Raises:
            UnknownAdapterError: If no adapter is registered for ``key``
        """
        adapter = self._adapters.get(key)
        if adapter is None:
            raise UnknownAdapterError(key)
        return adapter

    def __contains__(self, key: str) -> bool:
        return key in self._adapters

    @property
    def keys(self) -> list[str]:
        """Names of all registered adapters."""
        return list(self._adapters.keys())

    async def dispatch(self, key: str, action: OutboundAction) -> Union[str, bool, None]:
        """Forward an outbound action to the adapter registered under ``key``.

        Returns:
            send: platform message ID or None
            edit: True if the edit was accepted
            react: reaction ID or None
            unreact: None
        """
        adapter = self.get(key)

        if action.kind == "send":
            return await adapter.send_message(action.conversation_id, action.text)

        if action.kind == "edit":
            if not action.message_id:
                raise ValueError("edit action requires message_id")
            return await adapter.edit_message(action.conversation_id, action.message_id, action.text)

        if action.kind == "react":
            if not action.message_id or not action.emoji:
                raise ValueError("react action requires message_id and emoji")
            return await adapter.add_reaction(action.conversation_id, action.message_id, action.emoji)

        if not action.message_id or not action.reaction_id:
            raise ValueError("unreact action requires message_id and reaction_id")
        await adapter.remove_reaction(action.conversation_id, action.message_id, action.reaction_id)
        return None

    async def send_message(self, key: str, conversation_id: str, text: str) -> Optional[str]:
        """Send ``text`` to a conversation through the adapter under ``key``."""
        return await self.dispatch(
            key, OutboundAction(kind="send", conversation_id=conversation_id, text=text)
        )

    async def edit_message(
        self, key: str, conversation_id: str, message_id: str, text: str
    ) -> bool:
        """Edit a platform message through the adapter under ``key``."""
        return bool(
            await self.dispatch(
                key,
                OutboundAction(
                    kind="edit",
                    conversation_id=conversation_id,
                    message_id=message_id,
                    text=text,
                ),
            )
        )

    async def add_reaction(
        self, key: str, conversation_id: str, message_id: str, emoji: str
    ) -> Optional[str]:
        """Add a reaction through the adapter under ``key``."""
        return await self.dispatch(
            key,
            OutboundAction(
                kind="react",
                conversation_id=conversation_id,
                message_id=message_id,
                emoji=emoji,
            ),
        )

    async def remove_reaction(
        self, key: str, conversation_id: str, message_id: str, reaction_id: str
    ) -> None:
        """Remove a reaction through the adapter under ``key``."""
        await self.dispatch(
            key,
            OutboundAction(
                kind="unreact",
                conversation_id=conversation_id,
                message_id=message_id,
                reaction_id=reaction_id,
            ),
        )

    async def stop_all(self) -> None:
        """Stop every registered adapter, logging failures."""
        for key, adapter in self._adapters.items():
            try:
                await adapter.stop()
                logger.info(f"Stopped adapter for {key}")
            except Exception as e:
                logger.error(f"Failed to stop adapter for {key}: {e}")

    async def health_check(self) -> dict[str, bool]:
        """Check health of all adapters.

        Returns:
            Dict mapping adapter keys to health status
        """
        health = {}
        for key, adapter in self._adapters.items():
            try:
                health[key] = await adapter.health_check()
            except Exception as e:
                logger.error(f"Health check failed for {key}: {e}")
                health[key] = False
        return health
