"""Fire-and-forget delivery of queue messages to an external channel."""

from __future__ import annotations

from shared.utils import config as service_config, setup_logging

from .drivers import LogNotificationDriver, NotificationDriver, TelegramNotificationDriver


class ExternalNotifier:
    """Wrap a notification driver so delivery problems never reach the caller."""

    def __init__(self, driver: NotificationDriver | None = None) -> None:
        self.logger = setup_logging("external-notifier", service_config.get("log_level", "INFO"))
        self.driver = driver or self._load_driver(service_config.get("notification_driver", "log"))

    def _load_driver(self, driver_name: str) -> NotificationDriver:
        drivers: dict[str, type[NotificationDriver]] = {
            "log": LogNotificationDriver,
            "telegram": TelegramNotificationDriver,
        }

        driver_cls = drivers.get((driver_name or "").lower())
        if driver_cls is None:
            self.logger.warning("Unknown notification driver '%s', falling back to log", driver_name)
            driver_cls = LogNotificationDriver
        try:
            return driver_cls()
        except ValueError as exc:
            self.logger.warning("Notification driver '%s' unavailable (%s); using log driver", driver_name, exc)
            return LogNotificationDriver()

    async def send(self, message: str) -> bool:
        """Deliver ``message``; returns False instead of raising when delivery fails."""
        try:
            await self.driver.send(message)
        except Exception as exc:
            self.logger.error("Failed to send notification via %s: %s", self.driver.name, exc)
            return False
        return True
