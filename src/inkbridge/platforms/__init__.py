"""Bridging engine between chat platforms and the agent backend.

Architecture:
    Platform Adapters → Incoming Handler → Conversation Queue → Session Router
    → Agent Backend → Global Event Listener → Stream Buffer → Adapter Mux

Key Components:
    - BridgeAdapter: Abstract protocol for platform implementations
    - AdapterMux: Routes outbound actions to the owning adapter
    - ConversationQueue: Per-conversation FIFO of processing tasks
    - SessionRouter: Maps conversations to backend sessions
    - StreamBuffer: Aggregates and throttles streamed output
    - DedupCache: Drops redelivered messages
    - TokenManager: Bearer-token lifecycle for OAuth adapters
    - GlobalEventListener: Backend event stream with reconnect
"""

from inkbridge.platforms.backend import AgentBackend
from inkbridge.platforms.dedup import DedupCache
from inkbridge.platforms.listener import GlobalEventListener, ListenerState
from inkbridge.platforms.models import (
    Attachment,
    ConversationKey,
    IncomingMessage,
    PlatformCapabilities,
    PlatformType,
)
from inkbridge.platforms.mux import AdapterMux
from inkbridge.platforms.protocol import BridgeAdapter, MessageHandler
from inkbridge.platforms.queue import ConversationQueue
from inkbridge.platforms.session_router import SessionRouter
from inkbridge.platforms.stream_buffer import StreamBuffer
from inkbridge.platforms.token_manager import TokenManager, TokenState

__all__ = [
    "AdapterMux",
    "AgentBackend",
    "Attachment",
    "BridgeAdapter",
    "ConversationKey",
    "ConversationQueue",
    "DedupCache",
    "GlobalEventListener",
    "IncomingMessage",
    "ListenerState",
    "MessageHandler",
    "PlatformCapabilities",
    "PlatformType",
    "SessionRouter",
    "StreamBuffer",
    "TokenManager",
    "TokenState",
]
