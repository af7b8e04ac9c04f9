"""Process-wide bridge state with an explicit init/get/reset lifecycle."""

import logging
from typing import Optional

from inkbridge.config.schema import BridgeConfig
from inkbridge.platforms.backend import AgentBackend
from inkbridge.platforms.dedup import DedupCache
from inkbridge.platforms.handler import IncomingHandler
from inkbridge.platforms.listener import GlobalEventListener
from inkbridge.platforms.mux import AdapterMux
from inkbridge.platforms.queue import ConversationQueue
from inkbridge.platforms.session_router import SessionRouter
from inkbridge.platforms.stream_buffer import StreamBuffer

logger = logging.getLogger(__name__)


class BridgeState:
    """Owns the routing components shared by every adapter in the process."""

    def __init__(self, backend: AgentBackend, settings: Optional[BridgeConfig] = None):
        """Build all routing components.

        Args:
            backend: Agent backend shared by router, handlers and listener
            settings: Bridge tuning, defaults if None
        """
        self.backend = backend
        self.settings = settings or BridgeConfig()

        self.mux = AdapterMux()
        self.dedup = DedupCache(self.settings.dedup_capacity)
        self.router = SessionRouter(backend)
        self.queue = ConversationQueue()
        self.buffer = StreamBuffer(
            self.mux,
            min_interval=self.settings.min_flush_interval,
            reasoning_prefix=self.settings.reasoning_prefix,
        )
        self.listener = GlobalEventListener(
            backend,
            self.router,
            self.buffer,
            self.mux,
            base_delay=self.settings.reconnect_base_delay,
            max_delay=self.settings.reconnect_max_delay,
        )

    def create_handler(self, adapter_key: str) -> IncomingHandler:
        """Build the message callback for the adapter registered as ``adapter_key``."""
        return IncomingHandler(
            adapter_key,
            mux=self.mux,
            router=self.router,
            queue=self.queue,
            dedup=self.dedup,
            backend=self.backend,
            listener=self.listener,
            response_mode=self.settings.response_mode,
            response_timeout=self.settings.response_timeout,
            poll_interval=self.settings.poll_interval,
            processing_reaction=self.settings.processing_reaction,
        )

    async def close(self) -> None:
        """Stop adapters, listener and queue, then release the backend."""
        await self.mux.stop_all()
        await self.listener.stop()
        await self.queue.close()
        await self.backend.close()


_bridge_state: Optional[BridgeState] = None


def init_bridge_state(
    backend: AgentBackend, settings: Optional[BridgeConfig] = None
) -> BridgeState:
    """Create the bridge state, or return the one that already exists.

    Calling this again in the same process never builds a second set of
    components; the arguments of later calls are ignored.
    """
    global _bridge_state
    if _bridge_state is not None:
        logger.debug("Bridge state already initialized, reusing it")
        return _bridge_state

    _bridge_state = BridgeState(backend, settings)
    return _bridge_state


def get_bridge_state() -> BridgeState:
    """Get the bridge state.

    Raises:
        RuntimeError: If init_bridge_state has not been called
    """
    if _bridge_state is None:
        raise RuntimeError("Bridge state not initialized")
    return _bridge_state


def has_bridge_state() -> bool:
    return _bridge_state is not None


def reset_bridge_state() -> None:
    """Reset the global bridge state."""
    global _bridge_state
    _bridge_state = None
