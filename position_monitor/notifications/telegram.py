"""Telegram notification service."""
import logging
import ssl

import aiohttp
import certifi

from ..config import TelegramConfig
from ..models import AlertChannel

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Send notifications via Telegram bots."""

    def __init__(self, config: TelegramConfig) -> None:
        self.alert_bot_token = config.alert_bot_token
        self.log_bot_token = config.log_bot_token
        self.chat_id = config.chat_id

    @property
    def channel(self) -> AlertChannel:
        return AlertChannel.TELEGRAM

    async def _send_message(
        self,
        message: str,
        bot_token: str,
        silent: bool = False,
        chat_id: str | None = None,
    ) -> bool:
        """Send Telegram message using specified bot."""
        chat_id = chat_id or self.chat_id
        if not bot_token or not chat_id:
            logger.warning("Telegram credentials not configured")
            return False

        url = f"https://api.telegram.org/bot{bot_token}/sendMessage"
        payload = {
            "chat_id": chat_id,
            "text": message,
            "parse_mode": "HTML",
            "disable_notification": silent,
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.post(url, json=payload) as response:
                    if response.status == 200:
                        return True
                    logger.error("Failed to send Telegram message: %s", response.status)
                    return False
        except aiohttp.ClientError as e:
            logger.error("Telegram request failed: %s", e)
            return False

    async def send_alert(
        self, message: str, subject: str = "", recipient: str | None = None
    ) -> bool:
        """Send critical alert (unmuted bot), optionally to a user's own chat."""
        if await self._send_message(
            message, self.alert_bot_token, silent=False, chat_id=recipient
        ):
            logger.info("Telegram alert sent")
            return True
        return False

    async def send_log(self, message: str, silent: bool = True) -> bool:
        """Send log message (logs bot)."""
        if await self._send_message(message, self.log_bot_token, silent=silent):
            logger.info("Telegram log sent")
            return True
        return False
