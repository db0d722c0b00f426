from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from shared.enums import (
    FileStatus,
    NotificationCategory,
    NotificationType,
    ProjectStatus,
    QueueStatus,
    SuggestionType,
)


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


# Domain entities
class FileRecord(BaseModel):
    """An uploaded image and the metadata generated for it."""

    id: int
    project_id: int
    filename: str
    new_name: str = ""
    adobe_title: str = ""
    size: str = ""
    uploaded: datetime = Field(default_factory=utc_now)
    status: FileStatus = FileStatus.QUEUED
    description: str = ""
    keywords: list[str] = Field(default_factory=list)
    prompt: str = ""
    adobe_keys: list[str] = Field(default_factory=list)
    adobe_category: str = ""
    tags: list[str] = Field(default_factory=list)
    attempts: int = Field(default=0, ge=0)
    processing_time: str = ""
    thumbnail: str = ""
    notes: str = ""
    error: str | None = None


class Project(BaseModel):
    id: int
    name: str
    description: str = ""
    category: str = ""
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    files_count: int = 0
    processed: int = 0
    errors: int = 0
    status: ProjectStatus = ProjectStatus.ACTIVE


class Template(BaseModel):
    """Reusable prompt template for metadata generation."""

    id: int
    name: str
    description: str = ""
    category: str = ""
    prompt: str
    variables: list[str] = Field(default_factory=list)
    is_default: bool = False
    usage_count: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Notification(BaseModel):
    id: str
    type: NotificationType
    title: str
    message: str
    timestamp: datetime = Field(default_factory=utc_now)
    read: bool = False
    archived: bool = False
    category: NotificationCategory = NotificationCategory.SYSTEM
    action_url: str | None = None
    metadata: dict[str, Any] | None = None


# Settings
class QueueSettings(BaseModel):
    """Queue tuning values, read once per poll cycle."""

    concurrent_processing: int = Field(default=3, ge=1)
    queue_check_interval: float = Field(default=30, gt=0, description="Polling cadence in seconds")
    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=60, ge=0, description="Delay before a failed file is re-queued")
    timeout: float = Field(default=120, ge=0, description="Processing call timeout, 0 disables")


class NotificationSettings(BaseModel):
    project_completion: bool = True
    errors: bool = True
    telegram: bool = False


class Settings(BaseModel):
    openai_model: str = "gpt-4-vision-preview"
    max_tokens: int = Field(default=1000, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_file_size: int = 10485760
    allowed_formats: list[str] = Field(default_factory=lambda: ["jpg", "jpeg", "png", "webp", "heic"])
    queue: QueueSettings = Field(default_factory=QueueSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)

    @classmethod
    def from_config(cls, service_config: Any) -> "Settings":
        """Build settings from a ServiceConfig, letting the YAML overlay win over env values."""

        def pick(path: str, key: str) -> Any:
            return service_config.get_queue_value(path, service_config.get(key))

        return cls(
            openai_model=pick("openai.model", "openai_model"),
            max_tokens=pick("openai.max_tokens", "max_tokens"),
            temperature=pick("openai.temperature", "temperature"),
            queue=QueueSettings(
                concurrent_processing=pick("queue.concurrent_processing", "concurrent_processing"),
                queue_check_interval=pick("queue.check_interval", "queue_check_interval"),
                max_retries=pick("queue.max_retries", "max_retries"),
                retry_delay=pick("queue.retry_delay", "retry_delay"),
                timeout=pick("queue.timeout", "processing_timeout"),
            ),
            notifications=NotificationSettings(
                project_completion=pick("notifications.project_completion", "notify_project_completion"),
                errors=pick("notifications.errors", "notify_errors"),
                telegram=pick("notifications.telegram", "telegram_notifications"),
            ),
        )


class QueueStats(BaseModel):
    total_in_queue: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    avg_processing_time: float = 0.0
    estimated_time_remaining: int = 0
    queue_status: QueueStatus = QueueStatus.IDLE

    @property
    def avg_processing_time_display(self) -> str:
        return f"{self.avg_processing_time:.1f}s" if self.avg_processing_time > 0 else "0s"

    @property
    def estimated_time_remaining_display(self) -> str:
        seconds = self.estimated_time_remaining
        if seconds <= 0:
            return "0s"
        return f"{seconds // 60}m {seconds % 60}s"


# Metadata generation
class MetadataRequest(BaseModel):
    file_id: int
    image_url: str
    prompt: str = ""
    max_tokens: int = 1000
    temperature: float = 0.7

    def to_payload(self) -> dict[str, Any]:
        """Wire payload accepted by the backend processing endpoint."""
        return {
            "fileId": self.file_id,
            "imageUrl": self.image_url,
            "prompt": self.prompt,
            "maxTokens": self.max_tokens,
            "temperature": self.temperature,
        }


class MetadataResult(BaseModel):
    description: str
    keywords: list[str] = Field(default_factory=list)
    title: str | None = None
    category: str | None = None


# Search
_DATETIME = TypeAdapter(datetime)
_FLAG = TypeAdapter(bool)


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return []


class DateRange(BaseModel):
    """Inclusive upload-date bounds; an unparseable bound is treated as unset."""

    start: datetime | None = None
    end: datetime | None = None

    @field_validator("start", "end", mode="before")
    @classmethod
    def parse_bound(cls, value: Any) -> datetime | None:
        if value is None or value == "":
            return None
        try:
            return _DATETIME.validate_python(value)
        except ValidationError:
            return None


class SizeRange(BaseModel):
    min: float = Field(default=0, description="Lower bound in MB")
    max: float = Field(default=100, description="Upper bound in MB")


class FilterOptions(BaseModel):
    """Structured search filters; empty values are ignored.

    Malformed values never raise: unknown statuses match nothing, while bad
    dates, size bounds and presence flags leave that filter switched off.
    """

    status: list[str] = Field(default_factory=list)
    date_range: DateRange = Field(default_factory=DateRange)
    adobe_categories: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    size_range: SizeRange | None = None
    has_description: bool | None = None
    has_keywords: bool | None = None
    has_adobe_keys: bool | None = None

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> list[str]:
        return [item.value if isinstance(item, Enum) else str(item) for item in _as_list(value)]

    @field_validator("adobe_categories", "tags", "keywords", mode="before")
    @classmethod
    def normalize_terms(cls, value: Any) -> list[str]:
        return [str(item) for item in _as_list(value) if item is not None]

    @field_validator("date_range", mode="before")
    @classmethod
    def normalize_date_range(cls, value: Any) -> Any:
        if isinstance(value, (DateRange, dict)):
            return value
        return DateRange()

    @field_validator("size_range", mode="before")
    @classmethod
    def normalize_size_range(cls, value: Any) -> SizeRange | None:
        if value is None or isinstance(value, SizeRange):
            return value
        try:
            return SizeRange.model_validate(value)
        except ValidationError:
            return None

    @field_validator("has_description", "has_keywords", "has_adobe_keys", mode="before")
    @classmethod
    def normalize_flag(cls, value: Any) -> bool | None:
        if value is None:
            return None
        try:
            return _FLAG.validate_python(value)
        except ValidationError:
            return None


class SearchSuggestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: SuggestionType
    value: str
    count: int


class StoreSnapshot(BaseModel):
    """Immutable view of the store handed to readers and subscribers."""

    model_config = ConfigDict(frozen=True)

    projects: list[Project] = Field(default_factory=list)
    files: list[FileRecord] = Field(default_factory=list)
    templates: list[Template] = Field(default_factory=list)
    notifications: list[Notification] = Field(default_factory=list)
    settings: Settings = Field(default_factory=Settings)
    queue_stats: QueueStats = Field(default_factory=QueueStats)
    selected_files: list[int] = Field(default_factory=list)
