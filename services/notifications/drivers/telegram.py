"""Telegram Bot API notification driver."""

from __future__ import annotations

import aiohttp

from shared.errors import NotificationDeliveryError
from shared.http_client import AsyncHTTPClient
from shared.utils import config as service_config

from .base import NotificationDriver

TELEGRAM_API_BASE = "https://api.telegram.org"


class TelegramNotificationDriver(NotificationDriver):
    """Send messages to a chat through a bot's ``sendMessage`` method."""

    name = "telegram"

    def __init__(
        self,
        bot_token: str | None = None,
        chat_id: str | None = None,
        timeout: float = 10,
        api_base: str = TELEGRAM_API_BASE,
    ) -> None:
        self.bot_token = bot_token or service_config.get("telegram_bot_token")
        self.chat_id = chat_id or service_config.get("telegram_chat_id")
        if not self.bot_token or not self.chat_id:
            raise ValueError(
                "Telegram credentials not configured. "
                "Set TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID environment variables."
            )
        self.timeout = timeout
        self.api_base = api_base.rstrip("/")

    @property
    def endpoint(self) -> str:
        return f"{self.api_base}/bot{self.bot_token}/sendMessage"

    async def send(self, message: str) -> None:
        try:
            async with AsyncHTTPClient(timeout=self.timeout) as client:
                payload = await client.post(self.endpoint, data={"chat_id": self.chat_id, "text": message})
        except aiohttp.ClientError as exc:
            raise NotificationDeliveryError(f"Telegram request failed: {exc}") from exc

        if not payload.get("ok", False):
            description = payload.get("description") or "unknown error"
            raise NotificationDeliveryError(f"Telegram rejected message: {description}")
