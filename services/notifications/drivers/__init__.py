"""External notification driver registry."""

from .base import NotificationDriver
from .log import LogNotificationDriver
from .telegram import TelegramNotificationDriver

__all__ = [
    "NotificationDriver",
    "LogNotificationDriver",
    "TelegramNotificationDriver",
]
