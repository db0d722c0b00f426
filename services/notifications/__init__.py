"""User-facing notification log and external delivery."""

from .service import ExternalNotifier
from .sink import NotificationSink

__all__ = ["ExternalNotifier", "NotificationSink"]
