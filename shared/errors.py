"""
Exceptions raised by the queue core.
"""


class ProcessingError(RuntimeError):
    """Metadata generation failed for a single file."""

    def __init__(self, message: str, *, file_id: int | None = None) -> None:
        super().__init__(message)
        self.file_id = file_id


class ProcessingTimeoutError(ProcessingError):
    """The processing call did not finish within the configured timeout."""

    def __init__(self, timeout: float, *, file_id: int | None = None) -> None:
        super().__init__(f"Processing timed out after {timeout:g}s", file_id=file_id)
        self.timeout = timeout


class NotificationDeliveryError(RuntimeError):
    """An external notification channel rejected or failed to deliver a message."""
