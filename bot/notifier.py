"""
Notification sink delivering bridge messages to Telegram.
Messages are queued and delivered by a background sender, so rate limits
never hold up the caller. Delivery errors are logged and dropped.
"""
import asyncio
import contextlib
import logging
from typing import Optional, Set, Tuple

from aiogram import Bot
from aiogram.exceptions import TelegramForbiddenError, TelegramRetryAfter

logger = logging.getLogger(__name__)


def parse_chat_destination(chat_config: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    """
    Parse chat destination from config string.

    Args:
        chat_config: Either "chat_id" or "chat_id:thread_id"

    Returns:
        Tuple of (chat_id, message_thread_id)
    """
    if not chat_config:
        return None, None

    try:
        if ':' in chat_config:
            chat_id_str, thread_id_str = chat_config.split(':', 1)
            return int(chat_id_str), int(thread_id_str)
        else:
            return int(chat_config), None
    except ValueError:
        logger.error(f"Invalid chat destination format: {chat_config}")
        return None, None


class Notifier:
    """
    Sends rendered notifications to Telegram chats.
    Delivery is best effort: failures are logged and dropped.
    """

    def __init__(self, bot: Bot, rate_limit_delay: float = 0.05):
        """Initialize notifier with bot instance."""
        self.bot = bot
        self._rate_limit_delay = rate_limit_delay
        self._blocked_chats: Set[int] = set()
        self._queue: "asyncio.Queue[Tuple[int, str, Optional[int]]]" = asyncio.Queue()
        self._sender: Optional[asyncio.Task] = None

    @property
    def queued_count(self) -> int:
        return self._queue.qsize()

    async def notify(self, channel: Optional[str], text: str) -> None:
        """Queue text for channel ("chat_id" or "chat_id:thread_id") and return immediately."""
        chat_id, thread_id = parse_chat_destination(channel)
        if chat_id is None:
            logger.warning(f"No notification chat configured, dropping message: {text[:80]!r}")
            return

        if chat_id in self._blocked_chats:
            return

        self._queue.put_nowait((chat_id, text, thread_id))
        if self._sender is None or self._sender.done():
            self._sender = asyncio.create_task(self._deliver_queued())

    async def flush(self):
        """Wait until every queued message was delivered or dropped."""
        await self._queue.join()

    async def close(self, timeout: float = 10.0):
        """Deliver what is still queued, up to timeout seconds, then stop the sender."""
        if self._sender is None:
            return

        try:
            await asyncio.wait_for(self.flush(), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Dropping {self._queue.qsize()} undelivered notification(s)")

        self._sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sender
        self._sender = None

    async def _deliver_queued(self):
        while True:
            chat_id, text, thread_id = await self._queue.get()
            try:
                if chat_id not in self._blocked_chats:
                    await self._send_message(chat_id, text, thread_id)
            except Exception as e:
                logger.error(f"Error sending notification to chat {chat_id}: {e}")
            finally:
                self._queue.task_done()

    async def _send_message(self, chat_id: int, text: str, message_thread_id: Optional[int] = None):
        """
        Send message with rate limiting and error handling.

        Args:
            chat_id: Telegram chat ID (user, group, or supergroup)
            text: Message text to send
            message_thread_id: Optional topic/thread ID for supergroups
        """
        # Rate limiting
        await asyncio.sleep(self._rate_limit_delay)

        try:
            await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                message_thread_id=message_thread_id,
                parse_mode=None,
                disable_web_page_preview=True
            )

        except TelegramRetryAfter as e:
            logger.warning(f"Rate limit hit for chat {chat_id}, waiting {e.retry_after}s")
            await asyncio.sleep(e.retry_after)
            # Retry once
            await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                message_thread_id=message_thread_id,
                parse_mode=None,
                disable_web_page_preview=True
            )

        except TelegramForbiddenError:
            # Bot removed from group
            logger.warning(f"Bot blocked or removed from chat {chat_id}")
            self._blocked_chats.add(chat_id)
