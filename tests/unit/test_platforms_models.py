"""Unit tests for platform models and the adapter protocol."""

import asyncio

import pytest
from pydantic import ValidationError

from inkbridge.platforms.exceptions import (
    ContentTooLargeError,
    ResponseTimeoutError,
    SessionExpiredError,
    UnknownAdapterError,
)
from inkbridge.platforms.models import (
    ConversationKey,
    CredentialState,
    IncomingMessage,
    PlatformCapabilities,
)


class TestConversationKey:
    """Tests for ConversationKey."""

    def test_string_representation(self):
        """Test __str__ method."""
        assert str(ConversationKey(adapter_key="teams", conversation_id="19:abc")) == "teams:19:abc"

    def test_hashable_and_equal(self):
        """Test use as a dict key."""
        a = ConversationKey(adapter_key="telegram", conversation_id="1")
        b = ConversationKey(adapter_key="telegram", conversation_id="1")

        assert a == b
        assert {a: "x"}[b] == "x"

    def test_frozen(self):
        """Test that keys cannot be mutated."""
        key = ConversationKey(adapter_key="telegram", conversation_id="1")

        with pytest.raises(ValidationError):
            key.conversation_id = "2"


class TestModels:
    """Tests for message and credential models."""

    def test_incoming_message_defaults(self):
        """Test optional fields."""
        message = IncomingMessage(conversation_id="c", text="hi", message_id="m")

        assert message.sender_id == ""
        assert message.attachments == []

    def test_capability_defaults(self):
        """Test that adapters support editing and nothing else by default."""
        caps = PlatformCapabilities()

        assert caps.supports_message_editing is True
        assert caps.supports_reactions is False
        assert caps.supports_attachments is False

    def test_credential_copy_is_atomic(self):
        """Test that model_copy leaves the original untouched."""
        original = CredentialState(access_token="a", refresh_token="r", expires_at=1.0)
        updated = original.model_copy(update={"access_token": "b", "expires_at": 2.0})

        assert original.access_token == "a"
        assert updated.refresh_token == "r"
        assert updated.expires_at == 2.0


class TestExceptions:
    """Tests for exception messages."""

    def test_messages(self):
        """Test the user-facing texts."""
        assert str(SessionExpiredError()) == "Session expired. Please retry."
        assert str(ResponseTimeoutError(90.0)) == "AI Response Timeout (90s)"
        assert str(ContentTooLargeError(20, 10)) == "Content too large (20 > 10 bytes)"
        assert UnknownAdapterError("slack").adapter_key == "slack"


class TestAdapterDelivery:
    """Tests for BridgeAdapter._deliver."""

    @pytest.mark.asyncio
    async def test_deliver_runs_handler_in_task(self, fake_adapter):
        """Test that delivery does not block and keeps arrival order."""
        received = []

        async def handler(message):
            received.append(message.message_id)

        await fake_adapter.start(handler)
        for message_id in ("1", "2", "3"):
            fake_adapter._deliver(IncomingMessage(conversation_id="c", text="x", message_id=message_id))
        await asyncio.gather(*fake_adapter._tasks)

        assert received == ["1", "2", "3"]
        assert fake_adapter._tasks == set()

    @pytest.mark.asyncio
    async def test_deliver_without_handler(self, fake_adapter):
        """Test that messages are dropped before start."""
        assert fake_adapter._deliver(IncomingMessage(conversation_id="c", text="x", message_id="1")) is None

    @pytest.mark.asyncio
    async def test_handler_failure_is_contained(self, fake_adapter):
        """Test that a failing handler does not break later deliveries."""
        calls = []

        async def handler(message):
            calls.append(message.message_id)
            if message.message_id == "1":
                raise RuntimeError("boom")

        await fake_adapter.start(handler)
        first = fake_adapter._deliver(IncomingMessage(conversation_id="c", text="x", message_id="1"))
        second = fake_adapter._deliver(IncomingMessage(conversation_id="c", text="x", message_id="2"))
        await asyncio.gather(first, second, return_exceptions=True)

        assert calls == ["1", "2"]
