"""
Enums and constants used across the queue core.
"""

from enum import Enum


class FileStatus(str, Enum):
    """Processing status of an uploaded file."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class ProjectStatus(str, Enum):
    """Lifecycle status of a project."""

    ACTIVE = "active"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
    PAUSED = "paused"


class QueueStatus(str, Enum):
    """Run state of the queue manager."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


class NotificationType(str, Enum):
    """Severity of a user-facing notification."""

    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class NotificationCategory(str, Enum):
    """Area of the application a notification belongs to."""

    PROCESSING = "processing"
    SYSTEM = "system"
    PROJECT = "project"
    API = "api"
    STORAGE = "storage"


class SuggestionType(str, Enum):
    """Facets offered by search autocomplete."""

    FILENAME = "filename"
    TAG = "tag"
    KEYWORD = "keyword"
    CATEGORY = "category"
    DESCRIPTION = "description"


NOTIFICATION_LIMIT = 100
RECENT_SEARCH_LIMIT = 10
SUGGESTION_LIMIT = 10
