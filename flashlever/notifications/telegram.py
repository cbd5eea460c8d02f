"""Telegram notifier for keeper alerts and cycle logs.

Keeper messages are plain text (position reports, exception strings). They
are HTML-escaped here and sent with ``parse_mode=HTML`` so the optional
subject can be rendered bold.
"""
from __future__ import annotations

import html
import logging
import ssl

import aiohttp
import certifi

from ..config import TelegramConfig

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"
MAX_MESSAGE_LENGTH = 4096
TRUNCATION_MARKER = "\n…"


def render_message(body: str, subject: str = "") -> str:
    """Escape ``body`` under an optional bold ``subject``, within Telegram's limit."""
    heading = f"<b>{html.escape(subject)}</b>\n\n" if subject else ""
    text = html.escape(body)
    budget = MAX_MESSAGE_LENGTH - len(heading)
    if len(text) > budget:
        text = text[: budget - len(TRUNCATION_MARKER)]
        # Never leave half an entity such as "&am" behind
        amp = text.rfind("&")
        if amp > text.rfind(";"):
            text = text[:amp]
        text += TRUNCATION_MARKER
    return heading + text


class TelegramNotifier:
    """Two bots on one chat: an unmuted one for alerts, a quiet one for logs."""

    def __init__(self, config: TelegramConfig) -> None:
        self.alert_bot_token = config.alert_bot_token
        self.log_bot_token = config.log_bot_token
        self.chat_id = config.chat_id

    async def _post(self, bot_token: str, text: str, silent: bool) -> bool:
        if not bot_token or not self.chat_id:
            logger.warning("Telegram credentials not configured")
            return False

        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_notification": silent,
            "disable_web_page_preview": True,
        }
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        async with aiohttp.ClientSession(connector=connector) as session:
            async with session.post(
                f"{TELEGRAM_API}/bot{bot_token}/sendMessage", json=payload
            ) as response:
                if response.status == 200:
                    return True
                logger.error(
                    "Telegram sendMessage failed: HTTP %s %s",
                    response.status,
                    await response.text(),
                )
                return False

    async def send_alert(self, message: str, subject: str = "") -> bool:
        """Unmuted alert; ``subject`` becomes a bold heading."""
        sent = await self._post(
            self.alert_bot_token, render_message(message, subject), silent=False
        )
        if sent:
            logger.info("Telegram alert sent: %s", subject or "(no subject)")
        return sent

    async def send_log(self, message: str, silent: bool = True) -> bool:
        return await self._post(self.log_bot_token, render_message(message), silent)
