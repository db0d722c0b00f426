"""Base classes for external notification channels."""

from __future__ import annotations

from abc import ABC, abstractmethod


class NotificationDriver(ABC):
    """Channel that delivers a plain-text message outside the application."""

    name: str = "base"

    @abstractmethod
    async def send(self, message: str) -> None:
        """Deliver ``message``; raise on failure."""
