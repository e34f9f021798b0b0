"""
Alert delivery through Telegram.

The notifier de-duplicates by tag: the alert engine uses its alert ids as
tags, so the same alert is pushed at most once per notifier lifetime.
"""

import logging

from telegram import Bot
from telegram.error import TelegramError

logger = logging.getLogger(__name__)


class NullNotifier:
    """Used when no delivery channel is configured. Never has permission."""

    has_permission = False

    async def request_permission(self):
        return False

    async def send(self, title, body=None, tag=None):
        return False


class TelegramNotifier:
    def __init__(self, token=None, chat_id=None, bot=None):
        self.chat_id = chat_id
        self.bot = bot
        if self.bot is None and token:
            self.bot = Bot(token)
        self._owns_bot = bot is None and self.bot is not None
        self._permission = False
        self._sent_tags = set()

    @property
    def has_permission(self):
        return self._permission

    async def request_permission(self) -> bool:
        """Delivery is possible once a bot and a target chat are configured."""
        self._permission = self.bot is not None and bool(self.chat_id)
        if not self._permission:
            logger.info("Telegram notifications disabled: bot token or chat id missing")
        return self._permission

    async def send(self, title, body=None, tag=None) -> bool:
        if not self._permission:
            return False
        if tag and tag in self._sent_tags:
            return False

        text = f"*{title}*"
        if body:
            text += f"\n{body}"

        try:
            if self._owns_bot:
                # Own bot may be driven from different event loops, so open a session per send
                async with self.bot:
                    await self.bot.send_message(chat_id=self.chat_id, text=text, parse_mode='Markdown')
            else:
                await self.bot.send_message(chat_id=self.chat_id, text=text, parse_mode='Markdown')
        except TelegramError as e:
            logger.error(f"Notification trigger failed: {e}")
            return False

        if tag:
            self._sent_tags.add(tag)
        return True
