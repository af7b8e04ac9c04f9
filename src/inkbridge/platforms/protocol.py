"""Platform adapter protocol definition."""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Optional

from inkbridge.platforms.models import IncomingMessage, PlatformCapabilities

# Callback invoked by adapters for every new human message
MessageHandler = Callable[[IncomingMessage], Awaitable[None]]

logger = logging.getLogger(__name__)


class BridgeAdapter(ABC):
    """Abstract base class for platform adapters.

    Each platform implements this flat capability set so the adapter mux can
    route send/edit/react calls without knowing the platform.
    """

    def __init__(self) -> None:
        """Initialize the platform adapter."""
        self._running = False
        self._handler: Optional[MessageHandler] = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def capabilities(self) -> PlatformCapabilities:
        """The optional capabilities supported by this platform."""
        return PlatformCapabilities()

    @property
    def is_running(self) -> bool:
        """Check if the adapter is currently delivering messages."""
        return self._running

    @abstractmethod
    async def start(self, handler: MessageHandler) -> None:
        """Begin delivering inbound messages to ``handler``.

        Must return once delivery is set up; long-running polling or socket
        loops run in background tasks owned by the adapter.
        """
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop delivering messages. Must be idempotent."""
        ...

    @abstractmethod
    async def send_message(self, conversation_id: str, text: str) -> Optional[str]:
        """Send a message to a conversation.

        Returns:
            Platform message ID, or None if delivery failed (already logged)
        """
        ...

    @abstractmethod
    async def edit_message(self, conversation_id: str, message_id: str, text: str) -> bool:
        """Replace the text of a previously sent message.

        Returns:
            True if the platform accepted the edit
        """
        ...

    async def add_reaction(
        self, conversation_id: str, message_id: str, emoji: str
    ) -> Optional[str]:
        """Attach a reaction to a message (if supported).

        Returns:
            Reaction ID to pass to remove_reaction, or None
        """
        return None

    async def remove_reaction(
        self, conversation_id: str, message_id: str, reaction_id: str
    ) -> None:
        """Remove a reaction added by add_reaction (if supported)."""
        pass

    async def health_check(self) -> bool:
        """Check if the platform connection is healthy."""
        return self._running

    def _deliver(self, message: IncomingMessage) -> Optional[asyncio.Task]:
        """Hand a message to the handler without blocking the receive loop.

        Tasks are created in arrival order, and the handler queues the
        message before its first suspension, so per-conversation order is
        kept while different conversations proceed concurrently.
        """
        if self._handler is None:
            logger.warning(f"No handler set, dropping message {message.message_id}")
            return None

        task = asyncio.create_task(self._handler(message))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Message handler failed: {task.exception()}")
