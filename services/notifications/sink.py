"""Bounded in-memory log of user-facing notifications."""

from __future__ import annotations

from typing import Any

from shared.enums import NOTIFICATION_LIMIT, NotificationCategory, NotificationType
from shared.models import Notification
from shared.utils import generate_notification_id


class NotificationSink:
    """Newest-first notification log that evicts the oldest entries beyond ``limit``.

    Operations addressing an unknown id are no-ops.
    """

    def __init__(self, limit: int = NOTIFICATION_LIMIT) -> None:
        if limit < 1:
            raise ValueError("Notification limit must be at least 1")
        self.limit = limit
        self._items: list[Notification] = []

    @property
    def items(self) -> list[Notification]:
        return list(self._items)

    def add(
        self,
        type: NotificationType | str,
        title: str,
        message: str,
        category: NotificationCategory | str = NotificationCategory.SYSTEM,
        action_url: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Notification:
        notification = Notification(
            id=generate_notification_id(),
            type=NotificationType(type),
            title=title,
            message=message,
            category=NotificationCategory(category),
            action_url=action_url,
            metadata=metadata,
        )
        self._items = [notification, *self._items][: self.limit]
        return notification

    def mark_read(self, notification_id: str) -> None:
        self._replace(notification_id, read=True)

    def mark_all_read(self) -> None:
        self._items = [item.model_copy(update={"read": True}) for item in self._items]

    def archive(self, notification_id: str) -> None:
        self._replace(notification_id, archived=True)

    def delete(self, notification_id: str) -> None:
        self._items = [item for item in self._items if item.id != notification_id]

    def clear_all(self) -> None:
        self._items = []

    def unread_count(self) -> int:
        return sum(1 for item in self._items if not item.read and not item.archived)

    def _replace(self, notification_id: str, **changes: Any) -> None:
        self._items = [
            item.model_copy(update=changes) if item.id == notification_id else item
            for item in self._items
        ]
