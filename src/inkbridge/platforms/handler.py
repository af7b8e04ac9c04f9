"""Inbound message handling: dedup, ping, per-conversation processing."""

import asyncio
import logging
import math
from typing import Literal, Optional

from inkbridge.platforms.backend import AgentBackend
from inkbridge.platforms.dedup import DedupCache
from inkbridge.platforms.exceptions import (
    BackendError,
    BackendNotFoundError,
    ResponseTimeoutError,
    SessionExpiredError,
)
from inkbridge.platforms.listener import GlobalEventListener
from inkbridge.platforms.models import ConversationKey, IncomingMessage
from inkbridge.platforms.mux import AdapterMux
from inkbridge.platforms.queue import ConversationQueue
from inkbridge.platforms.session_router import SessionRouter

logger = logging.getLogger(__name__)

PING_REPLY = "Pong! ⚡️"
EMPTY_RESPONSE = "(Empty Response)"
POLL_MESSAGE_LIMIT = 5


def format_error(error: Exception) -> str:
    """Short user-facing text for a processing failure."""
    if isinstance(error, ResponseTimeoutError):
        return f"❌ {error}"
    return f"⚠️ Error: {str(error) or 'Unknown error'}"


class IncomingHandler:
    """Message callback handed to one adapter's ``start``.

    Flow per message:
    1. Drop redeliveries of an already seen message ID
    2. Answer ``ping`` directly, outside the queue
    3. Queue the rest on the conversation's FIFO: mark as processing,
       resolve the session, submit the prompt, then either leave the answer
       to the event listener (stream mode) or poll for it (poll mode)

    Every failure ends in exactly one short error message to the
    conversation; details only go to the log.
    """

    def __init__(
        self,
        adapter_key: str,
        mux: AdapterMux,
        router: SessionRouter,
        queue: ConversationQueue,
        dedup: DedupCache,
        backend: AgentBackend,
        listener: Optional[GlobalEventListener] = None,
        response_mode: Literal["stream", "poll"] = "stream",
        response_timeout: float = 90.0,
        poll_interval: float = 1.5,
        processing_reaction: Optional[str] = None,
    ):
        self._key = adapter_key
        self._mux = mux
        self._router = router
        self._queue = queue
        self._dedup = dedup
        self._backend = backend
        self._listener = listener
        self._response_mode = response_mode
        self._response_timeout = response_timeout
        self._poll_interval = poll_interval
        self._processing_reaction = processing_reaction

    @property
    def adapter_key(self) -> str:
        return self._key

    async def __call__(self, message: IncomingMessage) -> None:
        await self.handle(message)

    async def handle(self, message: IncomingMessage) -> bool:
        """Process one inbound message.

        Returns:
            True if the message was answered or handed to the listener,
            False if it was dropped or failed
        """
        logger.info(f"[{self._key}] Received {message}")

        if message.message_id and self._dedup.seen(f"{self._key}:{message.message_id}"):
            logger.info(f"[{self._key}] Dropping duplicate message {message.message_id}")
            return False

        if message.text.strip().lower() == "ping":
            await self._mux.send_message(self._key, message.conversation_id, PING_REPLY)
            return True

        conversation = ConversationKey(
            adapter_key=self._key, conversation_id=message.conversation_id
        )
        return await self._queue.enqueue(
            conversation, lambda: self._process(conversation, message)
        )

    async def _process(self, conversation: ConversationKey, message: IncomingMessage) -> bool:
        logger.debug(f"Processing message {message.message_id} in {conversation}")
        reaction_id: Optional[str] = None
        handed_off = False

        try:
            reaction_id = await self._add_reaction(conversation, message)
            session_id = await self._router.resolve(conversation, message.sender_id)

            known: set[str] = set()
            try:
                if self._response_mode == "poll":
                    history = await self._backend.get_messages(session_id, POLL_MESSAGE_LIMIT)
                    known = {m.id for m in history}
                await self._backend.prompt_session(
                    session_id, message.text, message.attachments or None
                )
            except BackendNotFoundError as e:
                self._router.invalidate(conversation)
                raise SessionExpiredError(session_id=session_id) from e

            if self._response_mode == "stream":
                if reaction_id and self._listener is not None:
                    self._listener.register_reaction(
                        session_id, conversation, message.message_id, reaction_id
                    )
                    handed_off = True
                return True

            reply = await self._poll_response(session_id, known)
            logger.info(f"Reply ready for {conversation} ({len(reply)} chars)")
            await self._mux.send_message(
                self._key, conversation.conversation_id, reply or EMPTY_RESPONSE
            )
            return True

        except Exception as e:
            logger.error(
                f"Failed to process message {message.message_id} in {conversation}: {e}",
                exc_info=True,
            )
            await self._send_error(conversation, e)
            return False

        finally:
            if reaction_id and not handed_off:
                await self._remove_reaction(conversation, message.message_id, reaction_id)

    async def _poll_response(self, session_id: str, known: set[str]) -> str:
        """Wait for a new completed assistant message.

        Raises:
            BackendError: If the backend reports an error on the message
            ResponseTimeoutError: If no answer completes in time
        """
        if self._poll_interval > 0:
            attempts = max(1, math.ceil(self._response_timeout / self._poll_interval))
        else:
            attempts = 1

        for _ in range(attempts):
            await asyncio.sleep(self._poll_interval)
            messages = await self._backend.get_messages(session_id, POLL_MESSAGE_LIMIT)
            if not messages:
                continue

            latest = messages[-1]
            if latest.id in known:
                continue
            if latest.error:
                raise BackendError(f"AI Error: {latest.error}")
            if latest.role == "assistant" and latest.completed:
                return latest.text

        raise ResponseTimeoutError(self._response_timeout)

    async def _add_reaction(
        self, conversation: ConversationKey, message: IncomingMessage
    ) -> Optional[str]:
        if not self._processing_reaction or not message.message_id:
            return None
        if not self._mux.get(self._key).capabilities.supports_reactions:
            return None
        try:
            return await self._mux.add_reaction(
                self._key,
                conversation.conversation_id,
                message.message_id,
                self._processing_reaction,
            )
        except Exception as e:
            logger.warning(f"Failed to add reaction in {conversation}: {e}")
            return None

    async def _remove_reaction(
        self, conversation: ConversationKey, message_id: str, reaction_id: str
    ) -> None:
        try:
            await self._mux.remove_reaction(
                self._key, conversation.conversation_id, message_id, reaction_id
            )
        except Exception as e:
            logger.warning(f"Failed to remove reaction in {conversation}: {e}")

    async def _send_error(self, conversation: ConversationKey, error: Exception) -> None:
        try:
            await self._mux.send_message(
                self._key, conversation.conversation_id, format_error(error)
            )
        except Exception as e:
            logger.error(f"Failed to report error to {conversation}: {e}")
