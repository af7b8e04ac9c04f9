"""Aggregation and throttling of streamed backend output."""

import logging
import time
from collections.abc import Callable
from typing import Optional

from pydantic import BaseModel

from inkbridge.platforms.models import ContentKind, ConversationKey, Fragment
from inkbridge.platforms.mux import AdapterMux

logger = logging.getLogger(__name__)

DEFAULT_MIN_INTERVAL = 0.8
DEFAULT_REASONING_PREFIX = "💭 "


class StreamState(BaseModel):
    """Outbound state of one streamed backend message."""

    conversation: ConversationKey
    session_id: str
    message_id: str
    kind: ContentKind = ContentKind.TEXT
    content: str = ""
    flushed_content: str = ""
    last_flush_at: Optional[float] = None
    platform_message_id: Optional[str] = None
    completed: bool = False
    flushing: bool = False


class StreamBuffer:
    """Turns backend fragments into a bounded number of send/edit calls.

    Rules:
    1. Deltas append; a snapshot replaces the content only if it is at least
       as long as what has been accumulated, so a late full packet never
       overwrites newer deltas.
    2. The first non-empty content is sent immediately.
    3. Later updates are edits, at most one per ``min_interval`` seconds.
    4. Reasoning output goes to its own platform message, prefixed with a
       marker.
    """

    def __init__(
        self,
        mux: AdapterMux,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        reasoning_prefix: str = DEFAULT_REASONING_PREFIX,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the stream buffer.

        Args:
            mux: Adapter mux used for outbound calls
            min_interval: Minimum seconds between two flushes of one message
            reasoning_prefix: Marker prepended to reasoning content
            clock: Monotonic time source
        """
        self._mux = mux
        self._min_interval = min_interval
        self._reasoning_prefix = reasoning_prefix
        self._clock = clock
        self._streams: dict[tuple[str, ContentKind], StreamState] = {}

    async def push(self, conversation: ConversationKey, fragment: Fragment) -> bool:
        """Apply a fragment and flush if due.

        Args:
            conversation: Conversation that owns the fragment's session
            fragment: Incremental output for one backend message

        Returns:
            True if a send or edit was performed and accepted
        """
        key = (fragment.message_id, fragment.kind)
        state = self._streams.get(key)
        if state is None:
            state = StreamState(
                conversation=conversation,
                session_id=fragment.session_id,
                message_id=fragment.message_id,
                kind=fragment.kind,
            )
            self._streams[key] = state

        self._apply(state, fragment)

        if not self._flush_due(state):
            return False
        return await self._flush(state)

    def _apply(self, state: StreamState, fragment: Fragment) -> None:
        """Merge a fragment into the accumulated content."""
        if fragment.delta is not None:
            state.content += fragment.delta
        elif fragment.snapshot is not None:
            if len(fragment.snapshot) >= len(state.content):
                state.content = fragment.snapshot
            else:
                logger.debug(
                    f"Rejected stale snapshot for {state.message_id}: "
                    f"{len(fragment.snapshot)} < {len(state.content)} chars"
                )

    def _flush_due(self, state: StreamState) -> bool:
        """Decide whether the state should be flushed now."""
        if state.flushing or not state.content.strip():
            return False
        if state.content == state.flushed_content:
            return False
        if state.platform_message_id is None or state.last_flush_at is None:
            return True
        return self._clock() - state.last_flush_at >= self._min_interval

    def render(self, state: StreamState) -> str:
        """Text shown on the platform for a stream state."""
        if state.kind == ContentKind.REASONING:
            return f"{self._reasoning_prefix}{state.content}"
        return state.content

    async def _flush(self, state: StreamState) -> bool:
        """Send or edit the platform message for a stream state."""
        conversation = state.conversation
        content = state.content
        text = self.render(state)

        state.flushing = True
        try:
            if state.platform_message_id is None:
                platform_message_id = await self._mux.send_message(
                    conversation.adapter_key, conversation.conversation_id, text
                )
                if platform_message_id is None:
                    logger.warning(f"Send failed for stream {state.message_id} in {conversation}")
                    return False
                state.platform_message_id = platform_message_id
            else:
                accepted = await self._mux.edit_message(
                    conversation.adapter_key,
                    conversation.conversation_id,
                    state.platform_message_id,
                    text,
                )
                if not accepted:
                    logger.warning(f"Edit failed for stream {state.message_id} in {conversation}")
                    return False

            state.flushed_content = content
            return True
        finally:
            state.last_flush_at = self._clock()
            state.flushing = False

    async def complete(self, message_id: str, settle: bool = True) -> int:
        """Finish every stream of a backend message.

        Args:
            message_id: Backend message ID
            settle: Flush unshown content once before discarding (normal
                completion); False discards silently (deletion, error)

        Returns:
            Number of stream states discarded
        """
        keys = [key for key in self._streams if key[0] == message_id]
        for key in keys:
            state = self._streams.pop(key)
            state.completed = True
            if settle and state.content.strip() and state.content != state.flushed_content:
                await self._flush(state)
        return len(keys)

    def _session_message_ids(self, session_id: str) -> list[str]:
        return list(
            dict.fromkeys(s.message_id for s in self._streams.values() if s.session_id == session_id)
        )

    async def settle_session(self, session_id: str) -> list[str]:
        """Complete every stream of a session with a settling flush.

        Returns:
            IDs of the backend messages whose streams were completed
        """
        message_ids = self._session_message_ids(session_id)
        for message_id in message_ids:
            await self.complete(message_id, settle=True)
        return message_ids

    def discard_session(self, session_id: str) -> list[str]:
        """Drop every stream of a session without flushing; returns their message IDs."""
        message_ids = self._session_message_ids(session_id)
        for key in [key for key in self._streams if key[0] in message_ids]:
            self._streams.pop(key).completed = True
        return message_ids

    def get(self, message_id: str, kind: ContentKind = ContentKind.TEXT) -> Optional[StreamState]:
        """Get the live stream state of a message, if any."""
        return self._streams.get((message_id, kind))

    def clear(self) -> None:
        """Drop all stream state."""
        for state in self._streams.values():
            state.completed = True
        self._streams.clear()

    def __len__(self) -> int:
        return len(self._streams)
