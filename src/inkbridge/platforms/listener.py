"""Global listener for the backend event stream."""

import asyncio
import logging
from enum import Enum
from typing import Optional

from inkbridge.platforms.backend import AgentBackend
from inkbridge.platforms.dedup import DedupCache
from inkbridge.platforms.models import BackendEvent, ConversationKey
from inkbridge.platforms.mux import AdapterMux
from inkbridge.platforms.session_router import SessionRouter
from inkbridge.platforms.stream_buffer import StreamBuffer

logger = logging.getLogger(__name__)

DEFAULT_BASE_DELAY = 5.0
DEFAULT_MAX_DELAY = 60.0
ROLE_CACHE_SIZE = 2000


class ListenerState(str, Enum):
    """Connection state of the event listener."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    STOPPED = "stopped"


class _PendingReaction:
    """A "processing" reaction to clear once its session goes idle."""

    __slots__ = ("conversation", "message_id", "reaction_id")

    def __init__(self, conversation: ConversationKey, message_id: str, reaction_id: str):
        self.conversation = conversation
        self.message_id = message_id
        self.reaction_id = reaction_id


class GlobalEventListener:
    """One long-lived subscription to the backend event stream.

    Events are demultiplexed by session ID to the conversation that owns the
    session. Text and reasoning fragments go to the stream buffer; tool and
    status events are logged. When the stream ends or fails the listener
    waits ``min(base_delay * (attempt + 1), max_delay)`` seconds and
    reconnects; the attempt counter resets once a new stream delivers its
    first event.
    """

    def __init__(
        self,
        backend: AgentBackend,
        router: SessionRouter,
        buffer: StreamBuffer,
        mux: AdapterMux,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
    ):
        """Initialize the listener.

        Args:
            backend: Backend providing the event stream
            router: Session router for session -> conversation lookups
            buffer: Stream buffer receiving content fragments
            mux: Adapter mux for diagnostics and reaction cleanup
            base_delay: Reconnect delay unit in seconds
            max_delay: Reconnect delay ceiling in seconds
        """
        self._backend = backend
        self._router = router
        self._buffer = buffer
        self._mux = mux
        self._base_delay = base_delay
        self._max_delay = max_delay

        self._state = ListenerState.DISCONNECTED
        self._attempt = 0
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

        self._roles: dict[str, str] = {}
        self._finished = DedupCache(ROLE_CACHE_SIZE)
        self._reactions: dict[str, list[_PendingReaction]] = {}

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def attempt(self) -> int:
        """Consecutive failed connection attempts."""
        return self._attempt

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def next_delay(self) -> float:
        """Delay before the next reconnect attempt."""
        return min(self._base_delay * (self._attempt + 1), self._max_delay)

    def start(self) -> bool:
        """Start the listener loop.

        Returns:
            False if the listener is already running or was stopped
        """
        if self.is_running:
            logger.debug("Event listener already running")
            return False
        if self._state == ListenerState.STOPPED:
            logger.warning("Event listener was stopped and cannot be restarted")
            return False

        self._task = asyncio.create_task(self._run(), name="inkbridge-event-listener")
        return True

    async def stop(self) -> None:
        """Stop listening and clear session and stream state."""
        self._state = ListenerState.STOPPED
        self._stop_event.set()

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self._buffer.clear()
        self._router.clear()
        self._reactions.clear()
        self._roles.clear()
        logger.info("Event listener stopped")

    async def _run(self) -> None:
        """Connect, stream, and reconnect with backoff until stopped."""
        while self._state != ListenerState.STOPPED:
            self._state = ListenerState.CONNECTING
            logger.info(f"Connecting to backend event stream (attempt {self._attempt + 1})")

            try:
                async for event in self._backend.subscribe_events():
                    if self._state == ListenerState.CONNECTING:
                        self._state = ListenerState.STREAMING
                        self._attempt = 0
                        logger.info("Backend event stream connected")
                    await self._dispatch(event)
                logger.warning("Backend event stream ended")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Backend event stream failed: {e}")

            if self._state == ListenerState.STOPPED:
                break

            self._state = ListenerState.DISCONNECTED
            delay = self.next_delay()
            self._attempt += 1
            logger.info(f"Reconnecting to backend event stream in {delay:g}s")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    async def _dispatch(self, event: BackendEvent) -> None:
        """Handle one event; a failing event never ends the stream."""
        try:
            await self.handle_event(event)
        except Exception as e:
            logger.error(f"Failed to handle backend event {event.type}: {e}", exc_info=True)

    async def handle_event(self, event: BackendEvent) -> None:
        """Route a single backend event."""
        if event.type == "message.updated":
            await self._on_message_updated(event)
        elif event.type == "message.part.updated":
            await self._on_part_updated(event)
        elif event.type == "session.idle" or (
            event.type == "session.status" and event.status == "idle"
        ):
            await self._on_session_idle(event)
        elif event.type == "session.deleted":
            await self._on_session_gone(event)
        elif event.type == "session.error":
            await self._on_session_gone(event, notify=True)
        else:
            logger.debug(f"Ignoring backend event {event.type}")

    def register_reaction(
        self,
        session_id: str,
        conversation: ConversationKey,
        message_id: str,
        reaction_id: str,
    ) -> None:
        """Remember a reaction to remove when ``session_id`` goes idle."""
        self._reactions.setdefault(session_id, []).append(
            _PendingReaction(conversation, message_id, reaction_id)
        )

    def pending_reactions(self, session_id: str) -> int:
        return len(self._reactions.get(session_id, ()))

    async def _clear_reactions(self, session_id: str) -> None:
        for reaction in self._reactions.pop(session_id, []):
            try:
                await self._mux.remove_reaction(
                    reaction.conversation.adapter_key,
                    reaction.conversation.conversation_id,
                    reaction.message_id,
                    reaction.reaction_id,
                )
            except Exception as e:
                logger.warning(f"Failed to remove reaction in {reaction.conversation}: {e}")

    def _remember_role(self, message_id: str, role: str) -> None:
        self._roles[message_id] = role
        if len(self._roles) > ROLE_CACHE_SIZE:
            del self._roles[next(iter(self._roles))]

    async def _notify(self, conversation: ConversationKey, text: str) -> None:
        try:
            await self._mux.send_message(
                conversation.adapter_key, conversation.conversation_id, text
            )
        except Exception as e:
            logger.error(f"Failed to notify {conversation}: {e}")

    async def _on_message_updated(self, event: BackendEvent) -> None:
        message_id = event.message_id
        if not message_id:
            return
        if event.role:
            self._remember_role(message_id, event.role)
        if event.role != "assistant" or message_id in self._finished:
            return

        if event.error:
            self._finished.seen(message_id)
            await self._buffer.complete(message_id, settle=False)
            conversation = self._router.conversation_for(event.session_id or "")
            logger.warning(f"Assistant message {message_id} failed: {event.error}")
            if conversation is not None:
                await self._notify(conversation, f"⚠️ Error: {event.error}")
            return

        if event.completed:
            self._finished.seen(message_id)
            await self._buffer.complete(message_id, settle=True)

    async def _on_part_updated(self, event: BackendEvent) -> None:
        fragment = event.fragment
        if fragment is None:
            if event.tool:
                logger.info(f"Tool {event.tool} {event.status or 'updated'} in session {event.session_id}")
            return

        if self._roles.get(fragment.message_id) == "user":
            return
        if fragment.message_id in self._finished:
            logger.debug(f"Dropping late fragment for finished message {fragment.message_id}")
            return

        conversation = self._router.conversation_for(fragment.session_id)
        if conversation is None:
            logger.debug(f"No conversation bound to session {fragment.session_id}")
            return

        await self._buffer.push(conversation, fragment)

    async def _on_session_idle(self, event: BackendEvent) -> None:
        if not event.session_id:
            return
        for message_id in await self._buffer.settle_session(event.session_id):
            self._finished.seen(message_id)
        await self._clear_reactions(event.session_id)

    async def _on_session_gone(self, event: BackendEvent, notify: bool = False) -> None:
        session_id = event.session_id
        if not session_id:
            if notify and event.error:
                logger.warning(f"Backend error without session: {event.error}")
            return

        conversation = self._router.invalidate_by_session(session_id)
        discarded = self._buffer.discard_session(session_id)
        for message_id in discarded:
            self._finished.seen(message_id)
        await self._clear_reactions(session_id)
        logger.info(
            f"Session {session_id} ended by {event.type}; "
            f"dropped {len(discarded)} stream(s), conversation {conversation}"
        )

        if notify and conversation is not None:
            await self._notify(conversation, f"⚠️ Error: {event.error or 'Unknown error'}")
