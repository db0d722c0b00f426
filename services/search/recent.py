"""Recently used search terms, persisted as a JSON list."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from shared.enums import RECENT_SEARCH_LIMIT
from shared.utils import config as service_config, ensure_directory

logger = logging.getLogger(__name__)


class RecentSearches:
    """Most-recent-first, de-duplicated list of search terms capped at ``limit``."""

    def __init__(self, storage_path: str | Path | None = None, limit: int = RECENT_SEARCH_LIMIT) -> None:
        self.storage_path = Path(storage_path) if storage_path else None
        self.limit = limit
        self._items: list[str] = self._load()

    @classmethod
    def from_config(cls) -> "RecentSearches":
        return cls(service_config.get("recent_searches_path"))

    @property
    def items(self) -> list[str]:
        return list(self._items)

    def add(self, term: str) -> None:
        if not term or not term.strip():
            return
        self._items = [term, *(item for item in self._items if item != term)][: self.limit]
        self._save()

    def clear(self) -> None:
        self._items = []
        if self.storage_path and self.storage_path.exists():
            try:
                self.storage_path.unlink()
            except OSError as exc:
                logger.warning("Failed to remove recent searches file: %s", exc)

    def _load(self) -> list[str]:
        if not self.storage_path or not self.storage_path.exists():
            return []
        try:
            data = json.loads(self.storage_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable recent searches file %s: %s", self.storage_path, exc)
            return []
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, str)][: self.limit]

    def _save(self) -> None:
        if not self.storage_path:
            return
        ensure_directory(str(self.storage_path.parent))
        try:
            self.storage_path.write_text(json.dumps(self._items), encoding="utf-8")
        except OSError as exc:
            logger.warning("Failed to persist recent searches: %s", exc)
