"""Text and facet search over the store's file list."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

from services.store import StateStore
from shared.enums import SUGGESTION_LIMIT, SuggestionType
from shared.models import FileRecord, FilterOptions, SearchSuggestion
from shared.utils import parse_size_mb

from .recent import RecentSearches

SPECIAL_FILTER_PATTERN = re.compile(r"(\w+):(\w+)")
# Other key:value tokens are removed from the text but otherwise ignored.
RECOGNIZED_FILTERS = frozenset({"status", "category"})
MIN_DESCRIPTION_WORD_LENGTH = 4


def parse_search_term(term: str | None) -> tuple[str, dict[str, str]]:
    """Split ``key:value`` tokens out of a search term.

    Returns the free text with the tokens removed and its ends trimmed, plus every
    token found, later tokens overriding earlier ones with the same key. Text
    without tokens is returned unchanged.
    """
    if not term:
        return "", {}

    special_filters: dict[str, str] = {}
    for match in SPECIAL_FILTER_PATTERN.finditer(term):
        special_filters[match.group(1)] = match.group(2)

    if not special_filters:
        return term, special_filters
    return SPECIAL_FILTER_PATTERN.sub("", term).strip(), special_filters


def _searchable_fields(item: FileRecord) -> Iterable[str]:
    yield item.filename
    yield item.new_name
    yield item.adobe_title
    yield item.description
    yield from item.keywords
    yield from item.adobe_keys
    yield from item.tags
    yield item.adobe_category
    yield item.notes


def matches_text(item: FileRecord, clean_term: str) -> bool:
    if not clean_term:
        return True
    needle = clean_term.lower()
    return any(field and needle in field.lower() for field in _searchable_fields(item))


def matches_special_filters(item: FileRecord, special_filters: dict[str, str]) -> bool:
    status = special_filters.get("status")
    if status and item.status.value != status:
        return False
    category = special_filters.get("category")
    if category and item.adobe_category != category:
        return False
    return True


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def matches_filters(item: FileRecord, filters: FilterOptions) -> bool:
    """AND-combination of every structured filter; empty filters are ignored."""
    if filters.status and item.status.value not in filters.status:
        return False

    start, end = filters.date_range.start, filters.date_range.end
    if start or end:
        uploaded = _as_utc(item.uploaded)
        if start and uploaded < _as_utc(start):
            return False
        if end and uploaded > _as_utc(end):
            return False

    if filters.adobe_categories and item.adobe_category not in filters.adobe_categories:
        return False

    if filters.tags and not set(filters.tags).intersection(item.tags):
        return False

    if filters.keywords:
        wanted = set(filters.keywords)
        if not (wanted.intersection(item.keywords) or wanted.intersection(item.adobe_keys)):
            return False

    if filters.size_range is not None:
        size_mb = parse_size_mb(item.size)
        if size_mb is None:
            return False
        if size_mb < filters.size_range.min or size_mb > filters.size_range.max:
            return False

    if filters.has_description is not None:
        if filters.has_description != bool(item.description and item.description.strip()):
            return False

    if filters.has_keywords is not None and filters.has_keywords != bool(item.keywords):
        return False

    if filters.has_adobe_keys is not None and filters.has_adobe_keys != bool(item.adobe_keys):
        return False

    return True


def filter_files(
    files: Sequence[FileRecord],
    term: str | None = "",
    filters: FilterOptions | None = None,
) -> list[FileRecord]:
    """Return the files matching ``term`` and ``filters`` in their original order."""
    clean_term, special_filters = parse_search_term(term)
    filters = filters or FilterOptions()
    return [
        item
        for item in files
        if matches_text(item, clean_term)
        and matches_special_filters(item, special_filters)
        and matches_filters(item, filters)
    ]


def build_suggestions(
    files: Sequence[FileRecord],
    term: str | None = "",
    limit: int = SUGGESTION_LIMIT,
) -> list[SearchSuggestion]:
    """Count facet values containing ``term`` and return the most frequent ones.

    Ties keep first-seen order.
    """
    needle = (term or "").lower()
    counts: dict[tuple[SuggestionType, str], int] = {}

    def bump(kind: SuggestionType, value: str) -> None:
        key = (kind, value)
        counts[key] = counts.get(key, 0) + 1

    for item in files:
        if item.filename and needle in item.filename.lower():
            bump(SuggestionType.FILENAME, item.filename)

        for tag in item.tags:
            if tag and needle in tag.lower():
                bump(SuggestionType.TAG, tag)

        for keyword in item.keywords:
            if keyword and needle in keyword.lower():
                bump(SuggestionType.KEYWORD, keyword)

        if item.adobe_category and needle in item.adobe_category.lower():
            bump(SuggestionType.CATEGORY, item.adobe_category)

        if item.description and needle in item.description.lower():
            for word in item.description.split(" "):
                if len(word) >= MIN_DESCRIPTION_WORD_LENGTH and needle in word.lower():
                    bump(SuggestionType.DESCRIPTION, word)

    ranked = sorted(counts.items(), key=lambda entry: entry[1], reverse=True)
    return [
        SearchSuggestion(type=kind, value=value, count=count)
        for (kind, value), count in ranked[:limit]
    ]


class SearchEngine:
    """Search state for one view: current term, filters and recent searches.

    Derived lists are recomputed from the store on every access.
    """

    def __init__(self, store: StateStore, recent_searches: RecentSearches | None = None) -> None:
        self.store = store
        self.recent = recent_searches if recent_searches is not None else RecentSearches.from_config()
        self.search_term = ""
        self.filters = FilterOptions()

    def set_search_term(self, term: str) -> None:
        self.search_term = term
        if term.strip():
            self.recent.add(term)

    def set_filters(self, filters: FilterOptions | dict[str, Any] | None) -> None:
        if isinstance(filters, FilterOptions):
            self.filters = filters
        elif isinstance(filters, dict):
            self.filters = FilterOptions.model_validate(filters)
        else:
            self.filters = FilterOptions()

    def reset_filters(self) -> None:
        self.filters = FilterOptions()

    @property
    def filtered_files(self) -> list[FileRecord]:
        return filter_files(self.store.files, self.search_term, self.filters)

    @property
    def suggestions(self) -> list[SearchSuggestion]:
        return build_suggestions(self.store.files, self.search_term)

    @property
    def recent_searches(self) -> list[str]:
        return self.recent.items

    def add_recent_search(self, term: str) -> None:
        self.recent.add(term)

    def clear_recent_searches(self) -> None:
        self.recent.clear()
