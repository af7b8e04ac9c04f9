"""Data models for the messaging bridge."""

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class PlatformType(str, Enum):
    """Platforms with a built-in adapter."""

    TELEGRAM = "telegram"
    TEAMS = "teams"


class ContentKind(str, Enum):
    """Kind of streamed backend output."""

    TEXT = "text"
    REASONING = "reasoning"


class ConversationKey(BaseModel):
    """Identity of one external conversation within one adapter."""

    model_config = ConfigDict(frozen=True)

    adapter_key: str
    conversation_id: str

    def __str__(self) -> str:
        """String representation for logging."""
        return f"{self.adapter_key}:{self.conversation_id}"


class PlatformCapabilities(BaseModel):
    """Describes what optional features an adapter supports."""

    supports_reactions: bool = False
    supports_message_editing: bool = True
    supports_attachments: bool = False
    max_message_length: Optional[int] = None


class Attachment(BaseModel):
    """A file received alongside an inbound message."""

    filename: Optional[str] = None
    mime: str = "application/octet-stream"
    data: bytes = b""


class IncomingMessage(BaseModel):
    """A human message delivered by an adapter."""

    conversation_id: str
    text: str
    message_id: str
    sender_id: str = ""
    attachments: list[Attachment] = Field(default_factory=list)

    def __str__(self) -> str:
        """String representation for logging."""
        return f"{self.conversation_id}/{self.message_id} from {self.sender_id}: {self.text[:50]}"


class OutboundAction(BaseModel):
    """An outbound call routed through the adapter mux."""

    kind: Literal["send", "edit", "react", "unreact"]
    conversation_id: str
    text: str = ""
    message_id: Optional[str] = None
    emoji: Optional[str] = None
    reaction_id: Optional[str] = None


class Fragment(BaseModel):
    """One incremental piece of streamed output for a backend message.

    Exactly one of ``delta`` (text to append) or ``snapshot`` (the full
    content so far) is set.
    """

    session_id: str
    message_id: str
    kind: ContentKind = ContentKind.TEXT
    delta: Optional[str] = None
    snapshot: Optional[str] = None


class BackendEvent(BaseModel):
    """Normalized event from the backend event stream."""

    type: str
    session_id: Optional[str] = None
    message_id: Optional[str] = None
    role: Optional[str] = None
    completed: bool = False
    fragment: Optional[Fragment] = None
    tool: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None
    properties: dict[str, Any] = Field(default_factory=dict)


class BackendMessage(BaseModel):
    """A message as returned by the backend's message listing."""

    id: str
    role: str
    completed: bool = False
    error: Optional[str] = None
    text: str = ""


class CredentialState(BaseModel):
    """Bearer credential owned by a single adapter instance."""

    access_token: Optional[str] = None
    expires_at: float = 0.0  # epoch seconds, 0 = unknown
    refresh_token: Optional[str] = None
    client_secret: Optional[str] = None
