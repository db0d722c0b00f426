"""
Configuration management for the queue core.
"""

import os
from typing import Any

import yaml

from dotenv import load_dotenv


class ServiceConfig:
    """Configuration management using environment variables and an optional YAML overlay."""

    def __init__(self) -> None:
        """Initialize configuration by loading environment variables."""
        # .env sits next to setup.py
        env_path = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.env"))
        load_dotenv(dotenv_path=env_path, override=False)
        self.config: dict[str, Any] = {}
        self.queue_config: dict[str, Any] = {}
        self.queue_config_path = os.getenv(
            "QUEUE_CONFIG_PATH",
            os.path.join(os.path.dirname(__file__), "../config/queue.yaml"),
        )
        self.load_from_env()
        self.load_queue_config()

    def load_from_env(self) -> None:
        """Load configuration from environment variables."""
        self.config = {
            "openai_api_key": os.getenv("OPENAI_API_KEY"),
            "openai_model": os.getenv("OPENAI_MODEL", "gpt-4-vision-preview"),
            "max_tokens": int(os.getenv("MAX_TOKENS", "1000")),
            "temperature": float(os.getenv("TEMPERATURE", "0.7")),
            "concurrent_processing": int(os.getenv("CONCURRENT_PROCESSING", "3")),
            "queue_check_interval": float(os.getenv("QUEUE_CHECK_INTERVAL", "30")),
            "max_retries": int(os.getenv("MAX_RETRIES", "3")),
            "retry_delay": float(os.getenv("RETRY_DELAY", "60")),
            "processing_timeout": float(os.getenv("PROCESSING_TIMEOUT", "120")),
            "metadata_provider": os.getenv("METADATA_PROVIDER", "stub"),
            "metadata_api_url": os.getenv("METADATA_API_URL", "http://localhost:3001/api/files/process"),
            "metadata_cache_ttl": int(os.getenv("METADATA_CACHE_TTL", "3600")),
            "notification_driver": os.getenv("NOTIFICATION_DRIVER", "log"),
            "telegram_bot_token": os.getenv("TELEGRAM_BOT_TOKEN"),
            "telegram_chat_id": os.getenv("TELEGRAM_CHAT_ID"),
            "notify_project_completion": os.getenv("NOTIFY_PROJECT_COMPLETION", "true").lower() == "true",
            "notify_errors": os.getenv("NOTIFY_ERRORS", "true").lower() == "true",
            "telegram_notifications": os.getenv("TELEGRAM_NOTIFICATIONS", "false").lower() == "true",
            "recent_searches_path": os.getenv("RECENT_SEARCHES_PATH", "./data/recent_searches.json"),
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
            "debug": os.getenv("DEBUG", "false").lower() == "true",
        }

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value
        """
        return self.config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value.

        Args:
            key: Configuration key
            value: Configuration value
        """
        self.config[key] = value

    def reload(self) -> None:
        """Reload configuration from environment variables."""
        self.load_from_env()
        self.load_queue_config()

    def load_queue_config(self) -> None:
        """Load the queue overlay from a YAML file."""
        path = os.path.abspath(self.queue_config_path)
        try:
            with open(path, "r", encoding="utf-8") as stream:
                data = yaml.safe_load(stream) or {}
        except FileNotFoundError:
            data = {}
        self.queue_config = data

    def get_queue_value(self, path: str, default: Any = None) -> Any:
        """Retrieve a queue overlay value via dotted path."""
        env_override_key = f"QUEUE_FLAG_{path.replace('.', '_').upper()}"
        env_value = os.getenv(env_override_key)
        if env_value is not None:
            return self._coerce_env_value(env_value, default)

        node: Any = self.queue_config
        for part in path.split("."):
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node if node is not None else default

    def set_queue_config(self, queue_config: dict[str, Any]) -> None:
        """Override the queue overlay (useful for tests)."""
        self.queue_config = queue_config

    @staticmethod
    def _coerce_env_value(raw: str, default: Any) -> Any:
        lowered = raw.lower()
        if lowered in {"true", "false"}:
            return lowered == "true"
        if lowered.replace(".", "", 1).isdigit():
            try:
                return float(lowered) if "." in lowered else int(lowered)
            except ValueError:
                return raw
        return raw or default


# Global configuration instance
config = ServiceConfig()
