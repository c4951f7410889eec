"""Interface for presenting results to the user.

Defines the contract for displaying information, errors, raw API objects
and tables, allowing different UI implementations (console, TUI).
"""

import abc
from typing import Any, List

from notiontui.domain.models.cache import CacheStats
from notiontui.domain.models.notion import SearchResult


class UserInterface(abc.ABC):
    """Abstract Base Class for user interaction."""

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        """Displays an informational message to the user."""
        pass

    @abc.abstractmethod
    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        """Displays a warning message to the user."""
        pass

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message to the user.

        Args:
            error_message: The error message string. Must never contain secrets.
            **kwargs: Additional arguments for formatting.
        """
        pass

    @abc.abstractmethod
    def display_json(self, data: Any, title: str = "") -> None:
        """Displays a raw JSON-compatible object (page, block list, query result)."""
        pass

    @abc.abstractmethod
    def display_search_results(self, results: List[SearchResult]) -> None:
        """Displays search results as a table."""
        pass

    @abc.abstractmethod
    def display_cache_stats(self, stats: CacheStats) -> None:
        """Displays cache statistics."""
        pass
