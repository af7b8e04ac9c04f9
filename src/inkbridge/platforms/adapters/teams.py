"""Microsoft Teams adapter polling chats through Microsoft Graph."""

import asyncio
import html
import logging
import re
from typing import Any, Optional

import httpx

from inkbridge.config.schema import TeamsConfig
from inkbridge.platforms.dedup import DedupCache
from inkbridge.platforms.exceptions import BridgeError, ContentTooLargeError, CredentialError
from inkbridge.platforms.models import (
    Attachment,
    CredentialState,
    IncomingMessage,
    PlatformCapabilities,
)
from inkbridge.platforms.protocol import BridgeAdapter, MessageHandler
from inkbridge.platforms.resources import download_resource
from inkbridge.platforms.token_manager import BearerAuth, TokenManager

logger = logging.getLogger(__name__)

GRAPH_BASE = "https://graph.microsoft.com/v1.0"
CHAT_LIST_SIZE = 50
MESSAGES_PER_POLL = 5
SENT_ID_CAPACITY = 2000

_HOSTED_IMAGE = re.compile(r'<img[^>]+src="([^"]+/hostedContents/[^"]+)"', re.IGNORECASE)


def markdown_to_html(text: str) -> str:
    """Convert the simple markdown produced by the agent to Teams HTML."""
    body = html.escape(text, quote=False)
    body = re.sub(r"```(\w*)\n(.*?)```", r"<pre>\2</pre>", body, flags=re.DOTALL)
    body = re.sub(r"`([^`]+)`", r"<code>\1</code>", body)
    body = re.sub(r"\*\*(.+?)\*\*", r"<strong>\1</strong>", body)
    body = re.sub(r"\*(.+?)\*", r"<em>\1</em>", body)
    body = re.sub(r"\[([^\]]+)\]\(([^)]+)\)", r'<a href="\2">\1</a>', body)
    return body.replace("\n", "<br/>")


def extract_text(message: dict[str, Any]) -> str:
    """Plain text of a Graph chat message, without markup or @mentions."""
    body = message.get("body") or {}
    content = body.get("content") or ""

    # mentions first, their tags would be gone after stripping
    content = re.sub(r"<at[^>]*>[^<]*</at>", "", content, flags=re.IGNORECASE)

    if body.get("contentType") == "html":
        content = re.sub(r"<br\s*/?>", "\n", content, flags=re.IGNORECASE)
        content = re.sub(r"</p>", "\n", content, flags=re.IGNORECASE)
        content = re.sub(r"<[^>]+>", "", content)
        content = html.unescape(content).replace("\xa0", " ")

    return content.strip()


class TeamsAdapter(BridgeAdapter):
    """Microsoft Teams adapter using Graph API polling with a delegated token.

    Every poll lists the user's chats and reads the newest messages of each.
    Messages older than the last one seen in a chat, messages posted by this
    adapter and messages without a human author are skipped.

    Configuration:
        - client_id: Azure AD application ID
        - access_token / refresh_token: delegated credentials
        - poll_interval_ms: Milliseconds between polls (default: 3000)
        - target_user_id: User whose 1:1 chat is opened on start
        - max_attachment_bytes: Largest inline image downloaded
    """

    def __init__(
        self,
        token_manager: TokenManager,
        poll_interval: float = 3.0,
        target_user_id: Optional[str] = None,
        max_attachment_bytes: int = 10 * 1024 * 1024,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize Teams adapter.

        Args:
            token_manager: Token manager owned by this adapter
            poll_interval: Seconds between polls
            target_user_id: AAD user ID to open a 1:1 chat with on start
            max_attachment_bytes: Largest inline image downloaded
            client: Preconfigured Graph client, mainly for tests
        """
        super().__init__()

        self._tokens = token_manager
        self._poll_interval = poll_interval
        self._target_user_id = target_user_id
        self._max_attachment_bytes = max_attachment_bytes
        self._client = client or httpx.AsyncClient(
            base_url=GRAPH_BASE, timeout=30.0, auth=BearerAuth(token_manager)
        )

        self._last_seen: dict[str, str] = {}
        self._sent_ids = DedupCache(SENT_ID_CAPACITY)
        self._sending: dict[str, int] = {}
        self._poll_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

        self._capabilities = PlatformCapabilities(
            supports_reactions=False,
            supports_message_editing=True,
            supports_attachments=True,
        )

    @classmethod
    def from_config(cls, config: TeamsConfig) -> "TeamsAdapter":
        """Build an adapter and its token manager from the ``platforms.teams`` section."""
        manager = TokenManager(
            client_id=config.client_id,
            credential=CredentialState(
                access_token=config.access_token or None,
                refresh_token=config.refresh_token or None,
                client_secret=config.client_secret or None,
            ),
            tenant_id=config.tenant_id,
        )
        return cls(
            manager,
            poll_interval=config.poll_interval_ms / 1000,
            target_user_id=config.target_user_id,
            max_attachment_bytes=config.max_attachment_bytes,
        )

    @property
    def capabilities(self) -> PlatformCapabilities:
        """The capabilities supported by this platform."""
        return self._capabilities

    @property
    def token_manager(self) -> TokenManager:
        return self._tokens

    async def start(self, handler: MessageHandler) -> None:
        """Record a baseline per chat and start polling."""
        if self._running:
            logger.warning("Teams adapter already running")
            return

        logger.info("Starting Teams adapter (polling mode)")
        self._handler = handler
        self._stop_event.clear()

        if self._target_user_id:
            chat_id = await self.open_direct_chat(self._target_user_id)
            if chat_id:
                logger.info(f"Direct chat with {self._target_user_id}: {chat_id}")

        for chat in await self.list_chats():
            messages = await self.get_messages(chat["id"], 1)
            if messages:
                self._last_seen[chat["id"]] = messages[0].get("createdDateTime", "")

        self._running = True
        self._poll_task = asyncio.create_task(self._poll_loop(), name="teams-poll")
        logger.info(f"Teams polling started ({len(self._last_seen)} chats)")

    async def stop(self) -> None:
        """Stop polling."""
        if not self._running:
            return

        self._running = False
        self._stop_event.set()
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        logger.info("Teams polling stopped")

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Teams polling error: {e}")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._poll_interval)
            except asyncio.TimeoutError:
                pass

    async def poll_once(self) -> int:
        """Check every chat once for new human messages.

        Returns:
            Number of messages delivered to the handler
        """
        delivered = 0
        for chat in await self.list_chats():
            chat_id = chat["id"]
            if self._sending.get(chat_id):
                # an own message may be visible before its ID is known
                continue

            messages = await self.get_messages(chat_id, MESSAGES_PER_POLL)
            last_seen = self._last_seen.get(chat_id)

            for msg in reversed(messages):
                if msg.get("id") in self._sent_ids:
                    continue
                if last_seen and msg.get("createdDateTime", "") <= last_seen:
                    continue
                sender = ((msg.get("from") or {}).get("user") or {}).get("id")
                if not sender:
                    continue

                text = extract_text(msg)
                attachments = await self._download_images(msg)
                if not text and not attachments:
                    continue

                logger.info(f"New Teams message in {chat_id}: {text[:50]}")
                self._deliver(
                    IncomingMessage(
                        conversation_id=chat_id,
                        text=text,
                        message_id=msg["id"],
                        sender_id=sender,
                        attachments=attachments,
                    )
                )
                delivered += 1

            if messages:
                self._last_seen[chat_id] = messages[0].get("createdDateTime", "")

        return delivered

    async def _download_images(self, message: dict[str, Any]) -> list[Attachment]:
        """Fetch inline images hosted by Graph."""
        content = (message.get("body") or {}).get("content") or ""
        attachments = []
        for index, url in enumerate(_HOSTED_IMAGE.findall(content)):
            try:
                attachment = await download_resource(
                    self._client,
                    html.unescape(url),
                    self._max_attachment_bytes,
                    filename=f"image_{index + 1}",
                )
            except ContentTooLargeError as e:
                logger.warning(f"Skipping Teams image: {e}")
                continue
            except (BridgeError, httpx.HTTPError) as e:
                logger.error(f"Failed to download Teams image: {e}")
                continue
            attachments.append(attachment)
        return attachments

    async def list_chats(self) -> list[dict[str, Any]]:
        """List chats the user is part of."""
        try:
            response = await self._client.get("/me/chats", params={"$top": CHAT_LIST_SIZE})
            response.raise_for_status()
            chats = response.json().get("value") or []
        except (httpx.HTTPError, CredentialError, ValueError) as e:
            logger.error(f"Failed to list Teams chats: {e}")
            return []
        return chats

    async def get_messages(self, chat_id: str, top: int = 10) -> list[dict[str, Any]]:
        """Get the newest messages of a chat, newest first."""
        try:
            response = await self._client.get(
                f"/me/chats/{chat_id}/messages",
                params={"$top": top, "$orderby": "createdDateTime desc"},
            )
            response.raise_for_status()
            messages = response.json().get("value") or []
        except (httpx.HTTPError, CredentialError, ValueError) as e:
            logger.error(f"Failed to get messages for Teams chat {chat_id}: {e}")
            return []
        return messages

    async def send_message(self, conversation_id: str, text: str) -> Optional[str]:
        """Post a message to a chat."""
        self._sending[conversation_id] = self._sending.get(conversation_id, 0) + 1
        try:
            response = await self._client.post(
                f"/me/chats/{conversation_id}/messages",
                json={"body": {"contentType": "html", "content": markdown_to_html(text)}},
            )
            response.raise_for_status()
            message_id = response.json().get("id")
        except (httpx.HTTPError, CredentialError, ValueError) as e:
            logger.error(f"Failed to send Teams message: {e}")
            return None
        finally:
            self._sending[conversation_id] -= 1
            if not self._sending[conversation_id]:
                del self._sending[conversation_id]

        if message_id:
            self._sent_ids.seen(message_id)
        return message_id or None

    async def edit_message(self, conversation_id: str, message_id: str, text: str) -> bool:
        """Replace the body of a message posted by this adapter."""
        try:
            response = await self._client.patch(
                f"/me/chats/{conversation_id}/messages/{message_id}",
                json={"body": {"contentType": "html", "content": markdown_to_html(text)}},
            )
            response.raise_for_status()
        except (httpx.HTTPError, CredentialError) as e:
            logger.error(f"Failed to edit Teams message: {e}")
            return False
        return True

    async def open_direct_chat(self, user_id: str) -> Optional[str]:
        """Create (or get) the 1:1 chat between the signed-in user and ``user_id``."""
        members = [
            {
                "@odata.type": "#microsoft.graph.aadUserConversationMember",
                "roles": ["owner"],
                "user@odata.bind": f"{GRAPH_BASE}/users/{user_id}",
            },
            {
                "@odata.type": "#microsoft.graph.aadUserConversationMember",
                "roles": ["owner"],
                "user@odata.bind": f"{GRAPH_BASE}/me",
            },
        ]
        try:
            response = await self._client.post(
                "/chats", json={"chatType": "oneOnOne", "members": members}
            )
            response.raise_for_status()
            chat_id = response.json().get("id")
        except (httpx.HTTPError, CredentialError, ValueError) as e:
            logger.error(f"Failed to open Teams chat with {user_id}: {e}")
            return None
        return chat_id

    async def health_check(self) -> bool:
        """Check that Graph accepts the current token."""
        if not self._running:
            return False
        try:
            response = await self._client.get("/me")
        except (httpx.HTTPError, CredentialError) as e:
            logger.error(f"Teams health check failed: {e}")
            return False
        return response.status_code == 200
