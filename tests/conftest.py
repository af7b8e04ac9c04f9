"""
Pytest configuration and fixtures for inkbridge tests.
"""

import os
import tempfile
from collections.abc import AsyncIterator, Generator
from pathlib import Path
from typing import Optional

import pytest
from typer.testing import CliRunner

from inkbridge.config.loader import clear_config_cache
from inkbridge.platforms.backend import AgentBackend
from inkbridge.platforms.models import (
    Attachment,
    BackendEvent,
    BackendMessage,
    PlatformCapabilities,
)
from inkbridge.platforms.protocol import BridgeAdapter, MessageHandler
from inkbridge.platforms.state import reset_bridge_state


class FakeAdapter(BridgeAdapter):
    """In-memory adapter recording every outbound call."""

    def __init__(self, capabilities: Optional[PlatformCapabilities] = None):
        super().__init__()
        self._capabilities = capabilities or PlatformCapabilities()
        self.sent: list[tuple[str, str]] = []
        self.edits: list[tuple[str, str, str]] = []
        self.reactions: list[tuple[str, str, str]] = []
        self.removed_reactions: list[tuple[str, str, str]] = []
        self.send_ok = True
        self.edit_ok = True
        self.stop_calls = 0
        self._next_id = 0

    @property
    def capabilities(self) -> PlatformCapabilities:
        return self._capabilities

    async def start(self, handler: MessageHandler) -> None:
        self._handler = handler
        self._running = True

    async def stop(self) -> None:
        self._running = False
        self.stop_calls += 1

    async def send_message(self, conversation_id: str, text: str) -> Optional[str]:
        if not self.send_ok:
            return None
        self._next_id += 1
        self.sent.append((conversation_id, text))
        return f"pm{self._next_id}"

    async def edit_message(self, conversation_id: str, message_id: str, text: str) -> bool:
        if not self.edit_ok:
            return False
        self.edits.append((conversation_id, message_id, text))
        return True

    async def add_reaction(self, conversation_id: str, message_id: str, emoji: str) -> Optional[str]:
        self.reactions.append((conversation_id, message_id, emoji))
        return f"r-{message_id}"

    async def remove_reaction(self, conversation_id: str, message_id: str, reaction_id: str) -> None:
        self.removed_reactions.append((conversation_id, message_id, reaction_id))

    @property
    def texts(self) -> list[str]:
        """Texts of all sent messages."""
        return [text for _, text in self.sent]


class FakeBackend(AgentBackend):
    """Scriptable agent backend.

    ``message_script`` is a list of message listings returned by successive
    get_messages calls; the last listing repeats once the script runs out.
    """

    def __init__(self) -> None:
        self.created: list[str] = []
        self.prompts: list[tuple[str, str, Optional[list[Attachment]]]] = []
        self.create_error: Optional[Exception] = None
        self.prompt_error: Optional[Exception] = None
        self.message_script: list[list[BackendMessage]] = []
        self.events: list[BackendEvent] = []
        self.subscriptions = 0
        self.closed = False

    async def create_session(self, title: str) -> str:
        if self.create_error is not None:
            raise self.create_error
        self.created.append(title)
        return f"ses_{len(self.created)}"

    async def prompt_session(
        self,
        session_id: str,
        text: str,
        attachments: Optional[list[Attachment]] = None,
    ) -> None:
        if self.prompt_error is not None:
            raise self.prompt_error
        self.prompts.append((session_id, text, attachments))

    async def get_messages(self, session_id: str, limit: int = 5) -> list[BackendMessage]:
        if not self.message_script:
            return []
        if len(self.message_script) > 1:
            return self.message_script.pop(0)
        return self.message_script[0]

    async def subscribe_events(self) -> AsyncIterator[BackendEvent]:
        self.subscriptions += 1
        for event in self.events:
            yield event

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def isolated_env(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Point INKBRIDGE_HOME at a temporary directory and drop INKBRIDGE_* overrides."""
    for key in list(os.environ):
        if key.startswith("INKBRIDGE_"):
            monkeypatch.delenv(key, raising=False)

    home = temp_dir / ".inkbridge"
    home.mkdir()
    monkeypatch.setenv("INKBRIDGE_HOME", str(home))
    clear_config_cache()
    reset_bridge_state()

    yield home

    clear_config_cache()
    reset_bridge_state()


@pytest.fixture
def fake_adapter() -> FakeAdapter:
    """Adapter supporting reactions and editing."""
    return FakeAdapter(PlatformCapabilities(supports_reactions=True))


@pytest.fixture
def adapter_factory() -> type[FakeAdapter]:
    """Provide the FakeAdapter class for tests needing several adapters."""
    return FakeAdapter


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def sample_config() -> dict:
    """Provide a sample configuration dictionary."""
    return {
        "backend": {
            "base_url": "http://127.0.0.1:4096",
        },
        "bridge": {
            "response_mode": "stream",
            "min_flush_interval": 0.5,
        },
        "platforms": {
            "telegram": {
                "enable": True,
                "bot_token": "123:abc",
                "allowed_users": ["42"],
            },
            "teams": {
                "enable": False,
            },
        },
    }
