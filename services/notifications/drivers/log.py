"""Notification driver that only writes messages to the log."""

from __future__ import annotations

import logging

from .base import NotificationDriver

logger = logging.getLogger(__name__)


class LogNotificationDriver(NotificationDriver):
    name = "log"

    def __init__(self) -> None:
        self.sent: list[str] = []

    async def send(self, message: str) -> None:
        self.sent.append(message)
        logger.info("Notification: %s", message)
