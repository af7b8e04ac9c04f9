"""Session router: maps external conversations to backend sessions."""

import logging
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from inkbridge.platforms.backend import AgentBackend
from inkbridge.platforms.exceptions import SessionInitFailedError
from inkbridge.platforms.models import ConversationKey

logger = logging.getLogger(__name__)


class SessionBinding(BaseModel):
    """Binding between one conversation and one backend session."""

    conversation: ConversationKey
    session_id: str
    sender_id: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)
    last_used: datetime = Field(default_factory=datetime.utcnow)

    def __str__(self) -> str:
        """String representation."""
        return f"{self.conversation} -> {self.session_id}"


class SessionRouter:
    """Maps (adapter, conversation) pairs to backend session IDs.

    Features:
    - Lazy session creation on first contact
    - Reverse lookup from session ID to conversation
    - Invalidation by conversation or by session
    - Volatile: bindings live in memory only and are rebuilt after restart

    The router never retries session creation; callers decide what to do
    with a SessionInitFailedError.
    """

    def __init__(self, backend: AgentBackend):
        """Initialize the session router.

        Args:
            backend: Agent backend used to create sessions
        """
        self._backend = backend
        self._bindings: dict[ConversationKey, SessionBinding] = {}
        self._by_session: dict[str, ConversationKey] = {}

    async def resolve(self, conversation: ConversationKey, sender_id: str = "") -> str:
        """Get the session ID for a conversation, creating one if needed.

        Args:
            conversation: Conversation identity
            sender_id: Platform ID of the message author, recorded on every call

        Returns:
            Backend session ID

        Raises:
            SessionInitFailedError: If the backend could not create a session
        """
        binding = self._bindings.get(conversation)
        if binding is not None:
            binding.last_used = datetime.utcnow()
            if sender_id:
                binding.sender_id = sender_id
            return binding.session_id

        title = self._make_title(conversation)
        try:
            session_id = await self._backend.create_session(title)
        except Exception as e:
            raise SessionInitFailedError(
                f"Failed to create session for {conversation}: {e}",
                conversation.adapter_key,
            ) from e

        if not session_id:
            raise SessionInitFailedError(
                f"Backend returned no session ID for {conversation}",
                conversation.adapter_key,
            )

        binding = SessionBinding(
            conversation=conversation,
            session_id=session_id,
            sender_id=sender_id,
        )
        self._bindings[conversation] = binding
        self._by_session[session_id] = conversation
        logger.info(f"Created new session binding: {binding}")
        return session_id

    def invalidate(self, conversation: ConversationKey) -> Optional[str]:
        """Drop the binding for a conversation.

        Returns:
            The session ID that was bound, or None
        """
        binding = self._bindings.pop(conversation, None)
        if binding is None:
            return None

        self._by_session.pop(binding.session_id, None)
        logger.info(f"Invalidated session binding: {binding}")
        return binding.session_id

    def invalidate_by_session(self, session_id: str) -> Optional[ConversationKey]:
        """Drop whichever binding points at ``session_id``.

        Returns:
            The conversation that was bound, or None
        """
        conversation = self._by_session.get(session_id)
        if conversation is None:
            return None

        self.invalidate(conversation)
        return conversation

    def conversation_for(self, session_id: str) -> Optional[ConversationKey]:
        """Reverse lookup: the conversation bound to ``session_id``."""
        return self._by_session.get(session_id)

    def get_binding(self, conversation: ConversationKey) -> Optional[SessionBinding]:
        """Get the full binding for a conversation."""
        return self._bindings.get(conversation)

    def list_bindings(self, adapter_key: Optional[str] = None) -> list[SessionBinding]:
        """List bindings, most recently used first.

        Args:
            adapter_key: Optional adapter filter
        """
        bindings = list(self._bindings.values())

        if adapter_key:
            bindings = [b for b in bindings if b.conversation.adapter_key == adapter_key]

        return sorted(bindings, key=lambda b: b.last_used, reverse=True)

    def clear(self) -> None:
        """Drop every binding."""
        self._bindings.clear()
        self._by_session.clear()

    def __len__(self) -> int:
        return len(self._bindings)

    def _make_title(self, conversation: ConversationKey) -> str:
        """Build a session title for a conversation.

        Format: [<adapter>] <conversation_id> <timestamp>-<suffix>

        The suffix keeps titles distinct when a session is recreated within
        the same second.
        """
        timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
        suffix = uuid.uuid4().hex[:6]
        return f"[{conversation.adapter_key}] {conversation.conversation_id} {timestamp}-{suffix}"
