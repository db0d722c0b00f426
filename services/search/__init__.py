"""File search, facet suggestions and recent searches."""

from .engine import SearchEngine, build_suggestions, filter_files, parse_search_term
from .recent import RecentSearches

__all__ = [
    "RecentSearches",
    "SearchEngine",
    "build_suggestions",
    "filter_files",
    "parse_search_term",
]
