"""Telegram bot platform adapter using long polling."""

import logging
from typing import Optional

from inkbridge.platforms.models import (
    Attachment,
    IncomingMessage,
    PlatformCapabilities,
)
from inkbridge.platforms.protocol import BridgeAdapter, MessageHandler

logger = logging.getLogger(__name__)

try:
    from telegram import Bot, Update
    from telegram.error import BadRequest, TelegramError
    from telegram.ext import Application, ContextTypes, filters
    from telegram.ext import MessageHandler as TelegramMessageHandler

    TELEGRAM_AVAILABLE = True
except ImportError:
    TELEGRAM_AVAILABLE = False

MAX_MESSAGE_LENGTH = 4096
DEFAULT_MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024


def fit_message(text: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    """Trim text to Telegram's message length limit."""
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


class TelegramAdapter(BridgeAdapter):
    """Bridges Telegram chats, one conversation per chat id.

    Updates arrive by long polling. Photos and documents are downloaded and
    forwarded as attachments with their caption as the prompt text. Senders
    outside ``allowed_users`` (when set) get a refusal and are not routed.
    """

    def __init__(
        self,
        bot_token: str,
        allowed_users: Optional[list[str]] = None,
        polling_interval: float = 2.0,
        max_attachment_bytes: int = DEFAULT_MAX_ATTACHMENT_BYTES,
    ):
        if not TELEGRAM_AVAILABLE:
            raise ImportError("TelegramAdapter needs the python-telegram-bot package")

        super().__init__()

        self._bot_token = bot_token
        self._allowed_users = set(allowed_users) if allowed_users else None
        self._polling_interval = polling_interval
        self._max_attachment_bytes = max_attachment_bytes

        self._application: Optional[Application] = None
        self._bot: Optional[Bot] = None

        self._capabilities = PlatformCapabilities(
            supports_reactions=True,
            supports_message_editing=True,
            supports_attachments=True,
            max_message_length=MAX_MESSAGE_LENGTH,
        )

    @property
    def capabilities(self) -> PlatformCapabilities:
        return self._capabilities

    async def start(self, handler: MessageHandler) -> None:
        if self._running:
            logger.warning("Telegram adapter already started, ignoring start()")
            return

        self._handler = handler

        self._application = Application.builder().token(self._bot_token).build()
        self._bot = self._application.bot

        self._application.add_handler(
            TelegramMessageHandler(
                (filters.TEXT | filters.PHOTO | filters.Document.ALL) & ~filters.COMMAND,
                self._handle_message,
            )
        )

        await self._application.initialize()
        await self._application.start()
        await self._application.updater.start_polling(
            poll_interval=self._polling_interval,
            allowed_updates=[Update.MESSAGE],
        )

        self._running = True
        logger.info(f"Telegram long polling started (every {self._polling_interval}s)")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False

        application, self._application = self._application, None
        if application is not None:
            await application.updater.stop()
            await application.stop()
            await application.shutdown()
        logger.info("Telegram polling stopped")

    async def _handle_message(self, update: "Update", context: "ContextTypes.DEFAULT_TYPE") -> None:
        """Turn a Telegram update into an IncomingMessage and deliver it."""
        message = update.message
        if message is None or message.from_user is None:
            return

        user_id = str(message.from_user.id)
        if self._allowed_users and user_id not in self._allowed_users:
            logger.warning(f"Ignoring Telegram message from user {user_id} (not in allowed_users)")
            await message.reply_text("This bot is not available to you.")
            return

        attachments = await self._download_attachments(message)
        text = message.text or message.caption or ""
        if not text and not attachments:
            return

        self._deliver(
            IncomingMessage(
                conversation_id=str(message.chat_id),
                text=text,
                message_id=str(message.message_id),
                sender_id=user_id,
                attachments=attachments,
            )
        )

    async def _download_attachments(self, message) -> list[Attachment]:
        """Download the photo or document carried by a message, if any."""
        if message.photo:
            media = message.photo[-1]
            filename = f"photo_{message.message_id}.jpg"
            mime = "image/jpeg"
        elif message.document:
            media = message.document
            filename = media.file_name
            mime = media.mime_type or "application/octet-stream"
        else:
            return []

        if media.file_size and media.file_size > self._max_attachment_bytes:
            logger.warning(
                f"Skipping attachment {filename}: {media.file_size} bytes exceeds "
                f"{self._max_attachment_bytes}"
            )
            return []

        try:
            telegram_file = await media.get_file()
            data = await telegram_file.download_as_bytearray()
        except TelegramError as e:
            logger.error(f"Failed to download Telegram attachment: {e}")
            return []

        return [Attachment(filename=filename, mime=mime, data=bytes(data))]

    async def send_message(self, conversation_id: str, text: str) -> Optional[str]:
        """Send a plain-text message to a chat."""
        if not self._bot:
            raise RuntimeError("Bot not initialized")

        try:
            sent = await self._bot.send_message(chat_id=conversation_id, text=fit_message(text))
        except TelegramError as e:
            logger.error(f"Failed to send Telegram message: {e}")
            return None
        return str(sent.message_id)

    async def edit_message(self, conversation_id: str, message_id: str, text: str) -> bool:
        """Replace the text of a message sent by the bot."""
        if not self._bot:
            raise RuntimeError("Bot not initialized")

        try:
            await self._bot.edit_message_text(
                chat_id=conversation_id,
                message_id=int(message_id),
                text=fit_message(text),
            )
        except BadRequest as e:
            if "message is not modified" in str(e).lower():
                return True
            logger.error(f"Failed to edit Telegram message: {e}")
            return False
        except TelegramError as e:
            logger.error(f"Failed to edit Telegram message: {e}")
            return False
        return True

    async def add_reaction(
        self, conversation_id: str, message_id: str, emoji: str
    ) -> Optional[str]:
        """Set a reaction; Telegram identifies it by the emoji itself."""
        if not self._bot:
            return None

        try:
            await self._bot.set_message_reaction(
                chat_id=conversation_id, message_id=int(message_id), reaction=emoji
            )
        except TelegramError as e:
            logger.debug(f"Failed to set Telegram reaction: {e}")
            return None
        return emoji

    async def remove_reaction(
        self, conversation_id: str, message_id: str, reaction_id: str
    ) -> None:
        """Clear the bot's reaction from a message."""
        if not self._bot:
            return

        try:
            await self._bot.set_message_reaction(
                chat_id=conversation_id, message_id=int(message_id), reaction=[]
            )
        except TelegramError as e:
            logger.debug(f"Failed to clear Telegram reaction: {e}")

    async def health_check(self) -> bool:
        if not self._running or not self._bot:
            return False

        try:
            await self._bot.get_me()
            return True
        except TelegramError as e:
            logger.error(f"Telegram health check failed: {e}")
            return False
