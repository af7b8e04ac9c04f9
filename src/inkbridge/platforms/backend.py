"""Agent backend protocol definition."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Optional

from inkbridge.platforms.models import Attachment, BackendEvent, BackendMessage


class AgentBackend(ABC):
    """Abstract interface to the conversational agent backend.

    The bridge only submits prompts and observes output; session state and
    model execution belong to the backend.
    """

    @abstractmethod
    async def create_session(self, title: str) -> str:
        """Create a backend session and return its ID."""
        ...

    @abstractmethod
    async def prompt_session(
        self,
        session_id: str,
        text: str,
        attachments: Optional[list[Attachment]] = None,
    ) -> None:
        """Submit a prompt without waiting for the answer.

        Raises:
            BackendNotFoundError: If the session no longer exists
        """
        ...

    @abstractmethod
    async def get_messages(self, session_id: str, limit: int = 5) -> list[BackendMessage]:
        """Fetch the most recent messages of a session, oldest first."""
        ...

    @abstractmethod
    def subscribe_events(self) -> AsyncIterator[BackendEvent]:
        """Open the backend event stream.

        Yields:
            BackendEvent objects in stream order until the stream ends
        """
        ...

    async def close(self) -> None:
        """Release any network resources."""
        pass
