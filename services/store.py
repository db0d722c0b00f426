"""Shared in-memory state for projects, files, templates, notifications and settings."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from services.notifications.sink import NotificationSink
from shared.enums import NOTIFICATION_LIMIT, NotificationCategory, NotificationType
from shared.models import (
    FileRecord,
    Notification,
    Project,
    QueueStats,
    Settings,
    StoreSnapshot,
    Template,
    utc_now,
)
from shared.utils import config as service_config, setup_logging

Subscriber = Callable[[StoreSnapshot], None]


class StateStore:
    """Single mutable state container with snapshot reads and change subscribers.

    Every mutation replaces the affected collection in one synchronous step and
    then notifies subscribers, so a read straight after a write sees the write.
    """

    def __init__(self, settings: Settings | None = None, notification_limit: int = NOTIFICATION_LIMIT) -> None:
        self.logger = setup_logging("state-store", service_config.get("log_level", "INFO"))
        self.notifications = NotificationSink(notification_limit)
        self._settings = settings or Settings()
        self._projects: list[Project] = []
        self._files: list[FileRecord] = []
        self._templates: list[Template] = []
        self._queue_stats = QueueStats()
        self._selected_files: list[int] = []
        self._subscribers: list[Subscriber] = []
        self._last_id = 0

    # Reads
    def get_snapshot(self) -> StoreSnapshot:
        return StoreSnapshot.model_construct(
            projects=list(self._projects),
            files=list(self._files),
            templates=list(self._templates),
            notifications=self.notifications.items,
            settings=self._settings,
            queue_stats=self._queue_stats,
            selected_files=list(self._selected_files),
        )

    @property
    def files(self) -> list[FileRecord]:
        return list(self._files)

    @property
    def projects(self) -> list[Project]:
        return list(self._projects)

    @property
    def settings(self) -> Settings:
        return self._settings

    def get_file(self, file_id: int) -> FileRecord | None:
        return next((item for item in self._files if item.id == file_id), None)

    def get_project(self, project_id: int) -> Project | None:
        return next((item for item in self._projects if item.id == project_id), None)

    # Subscriptions
    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` for every change; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _commit(self) -> None:
        if not self._subscribers:
            return
        snapshot = self.get_snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                self.logger.exception("Store subscriber %r failed", callback)

    def _allocate_id(self) -> int:
        self._last_id += 1
        return self._last_id

    def _reserve_id(self, value: int) -> None:
        self._last_id = max(self._last_id, value)

    # Projects
    def add_project(self, name: str, **fields: Any) -> Project:
        project = Project(id=fields.pop("id", None) or self._allocate_id(), name=name, **fields)
        self._reserve_id(project.id)
        self._projects = [*self._projects, project]
        self._add_notification(
            NotificationType.SUCCESS,
            "Project Created",
            f'Project "{project.name}" has been created successfully.',
            NotificationCategory.PROJECT,
        )
        self._commit()
        return project

    def update_project(self, project_id: int, **changes: Any) -> Project | None:
        current = self.get_project(project_id)
        if current is None:
            return None
        updated = Project.model_validate({**current.model_dump(), **changes, "updated_at": utc_now()})
        self._projects = [updated if item.id == project_id else item for item in self._projects]
        self._commit()
        return updated

    def delete_project(self, project_id: int) -> bool:
        """Delete a project and every file that belongs to it."""
        project = self.get_project(project_id)
        removed_ids = {item.id for item in self._files if item.project_id == project_id}
        self._projects = [item for item in self._projects if item.id != project_id]
        self._files = [item for item in self._files if item.project_id != project_id]
        self._selected_files = [file_id for file_id in self._selected_files if file_id not in removed_ids]
        if project is not None:
            self._add_notification(
                NotificationType.INFO,
                "Project Deleted",
                f'Project "{project.name}" and all its files have been deleted.',
                NotificationCategory.PROJECT,
            )
        self._commit()
        return project is not None

    # Files
    def add_files(self, files: Iterable[FileRecord | dict[str, Any]]) -> list[FileRecord]:
        """Append uploaded files in order and bump the owning project's file count."""
        new_files: list[FileRecord] = []
        for item in files:
            data = item.model_dump() if isinstance(item, FileRecord) else dict(item)
            if not data.get("id"):
                data["id"] = self._allocate_id()
            record = FileRecord.model_validate(data)
            self._reserve_id(record.id)
            new_files.append(record)

        if not new_files:
            return []

        self._files = [*self._files, *new_files]

        project_id = new_files[0].project_id
        project = self.get_project(project_id)
        if project is not None:
            self._projects = [
                item.model_copy(update={"files_count": item.files_count + len(new_files), "updated_at": utc_now()})
                if item.id == project_id
                else item
                for item in self._projects
            ]
            self._add_notification(
                NotificationType.SUCCESS,
                "Files Uploaded",
                f'{len(new_files)} files uploaded to "{project.name}".',
                NotificationCategory.PROCESSING,
            )
        self._commit()
        return new_files

    def update_file(self, file_id: int, **changes: Any) -> FileRecord | None:
        current = self.get_file(file_id)
        if current is None:
            return None
        updated = FileRecord.model_validate({**current.model_dump(), **changes})
        self._files = [updated if item.id == file_id else item for item in self._files]
        self._commit()
        return updated

    def update_files(self, updates: dict[int, dict[str, Any]]) -> int:
        """Apply per-file changes in one replace; returns the number of files touched."""
        touched = 0
        replaced: list[FileRecord] = []
        for item in self._files:
            changes = updates.get(item.id)
            if changes:
                replaced.append(FileRecord.model_validate({**item.model_dump(), **changes}))
                touched += 1
            else:
                replaced.append(item)
        self._files = replaced
        self._add_notification(
            NotificationType.SUCCESS,
            "Bulk Edit Completed",
            f"{touched} files have been updated successfully.",
            NotificationCategory.PROCESSING,
        )
        self._commit()
        return touched

    def delete_files(self, file_ids: Iterable[int]) -> int:
        ids = set(file_ids)
        before = len(self._files)
        self._files = [item for item in self._files if item.id not in ids]
        self._selected_files = [file_id for file_id in self._selected_files if file_id not in ids]
        removed = before - len(self._files)
        self._add_notification(
            NotificationType.INFO,
            "Files Deleted",
            f"{removed} files have been deleted.",
            NotificationCategory.PROCESSING,
        )
        self._commit()
        return removed

    def set_selected_files(self, file_ids: Iterable[int]) -> None:
        self._selected_files = list(file_ids)
        self._commit()

    # Templates
    def add_template(self, name: str, prompt: str, **fields: Any) -> Template:
        template = Template(id=self._allocate_id(), name=name, prompt=prompt, **fields)
        self._templates = [*self._templates, template]
        self._add_notification(
            NotificationType.SUCCESS,
            "Template Created",
            f'Template "{template.name}" has been created.',
            NotificationCategory.SYSTEM,
        )
        self._commit()
        return template

    def update_template(self, template_id: int, **changes: Any) -> Template | None:
        current = next((item for item in self._templates if item.id == template_id), None)
        if current is None:
            return None
        updated = Template.model_validate({**current.model_dump(), **changes, "updated_at": utc_now()})
        self._templates = [updated if item.id == template_id else item for item in self._templates]
        self._commit()
        return updated

    def delete_template(self, template_id: int) -> bool:
        template = next((item for item in self._templates if item.id == template_id), None)
        self._templates = [item for item in self._templates if item.id != template_id]
        if template is not None:
            self._add_notification(
                NotificationType.INFO,
                "Template Deleted",
                f'Template "{template.name}" has been deleted.',
                NotificationCategory.SYSTEM,
            )
        self._commit()
        return template is not None

    # Notifications
    def _add_notification(
        self,
        type: NotificationType | str,
        title: str,
        message: str,
        category: NotificationCategory | str,
        **extra: Any,
    ) -> Notification:
        return self.notifications.add(type, title, message, category, **extra)

    def add_notification(
        self,
        type: NotificationType | str,
        title: str,
        message: str,
        category: NotificationCategory | str = NotificationCategory.SYSTEM,
        action_url: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Notification:
        notification = self._add_notification(
            type, title, message, category, action_url=action_url, metadata=metadata
        )
        self._commit()
        return notification

    def mark_notification_read(self, notification_id: str) -> None:
        self.notifications.mark_read(notification_id)
        self._commit()

    def mark_all_notifications_read(self) -> None:
        self.notifications.mark_all_read()
        self._commit()

    def delete_notification(self, notification_id: str) -> None:
        self.notifications.delete(notification_id)
        self._commit()

    def clear_notifications(self) -> None:
        self.notifications.clear_all()
        self._commit()

    # Settings and stats
    def update_settings(self, **changes: Any) -> Settings:
        """Merge top-level changes; nested ``queue``/``notifications`` dicts are merged too."""
        data = self._settings.model_dump()
        for key, value in changes.items():
            if isinstance(value, dict) and isinstance(data.get(key), dict):
                data[key] = {**data[key], **value}
            elif hasattr(value, "model_dump"):
                data[key] = value.model_dump()
            else:
                data[key] = value
        self._settings = Settings.model_validate(data)
        self._add_notification(
            NotificationType.SUCCESS,
            "Settings Updated",
            "Your settings have been saved successfully.",
            NotificationCategory.SYSTEM,
        )
        self._commit()
        return self._settings

    def update_queue_stats(self, **changes: Any) -> QueueStats:
        self._queue_stats = QueueStats.model_validate({**self._queue_stats.model_dump(), **changes})
        self._commit()
        return self._queue_stats

    def set_error(self, message: str | None) -> None:
        if not message:
            return
        self.logger.error("Application error: %s", message)
        self._add_notification(NotificationType.ERROR, "Error Occurred", message, NotificationCategory.SYSTEM)
        self._commit()
