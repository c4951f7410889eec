"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py), delegates the work
to the PageService or the cache, and reports exactly one outcome per
command through the UserInterface. Error text shown to the user comes from
``describe_error`` so it names the operation and the underlying cause but
never credentials.
"""

import logging
from typing import Any, Dict, List, Optional

from notiontui.core.services.page_service import PageService
from notiontui.domain.errors import CacheError, ConfigurationError, NotionTuiError
from notiontui.domain.interfaces.cache import CacheService
from notiontui.domain.interfaces.user_interface import UserInterface
from notiontui.domain.models.notion import SEARCH_FILTERS, SearchInput
from notiontui.domain.models.resilience import ErrorKind
from notiontui.infrastructure.notion.client import NotionOperationError
from notiontui.infrastructure.resilience.api_retry import RetryExhaustedError
from notiontui.infrastructure.resilience.error_classifier import classify_error

logger = logging.getLogger(__name__)

KIND_HINTS = {
    ErrorKind.AUTH: "check that the integration token is valid and the page is shared with it",
    ErrorKind.NOT_FOUND: "the object does not exist or is not shared with the integration",
    ErrorKind.VALIDATION: "the request was rejected as invalid",
    ErrorKind.RATE_LIMIT: "Notion is rate limiting requests, try again shortly",
    ErrorKind.SERVER_ERROR: "Notion returned a server error",
    ErrorKind.NETWORK_TRANSIENT: "a network error occurred",
}


def _chain(err: BaseException) -> List[BaseException]:
    """``err`` followed by each exception it was raised from."""
    found: List[BaseException] = []
    current: Optional[BaseException] = err
    while current is not None and all(current is not seen for seen in found):
        found.append(current)
        current = current.__cause__
    return found


def describe_error(err: BaseException) -> str:
    """One-line, user-facing description of a failed operation."""
    chain = _chain(err)
    cause = chain[-1]
    verdict = classify_error(err)
    parts = []

    context = next((exc for exc in chain if isinstance(exc, NotionOperationError)), None)
    if context is not None:
        parts.append(str(context))
    if isinstance(err, RetryExhaustedError):
        parts.append(f"gave up after {err.attempts} attempts")

    hint = KIND_HINTS.get(verdict.kind)
    if hint:
        parts.append(hint)
    if cause is not err or not parts:
        parts.append(f"{type(cause).__name__}: {cause}")
    return ": ".join(parts)


class CommandHandler:
    """Handles incoming commands and delegates to appropriate services."""

    def __init__(
        self,
        page_service: Optional[PageService],
        cache_service: CacheService,
        ui: UserInterface,
    ):
        """Initializes the CommandHandler with required services."""
        self.page_service = page_service
        self.cache_service = cache_service
        self.ui = ui

    def _pages(self) -> PageService:
        if self.page_service is None:
            raise ConfigurationError("a Notion token is required for this command")
        return self.page_service

    def _report(self, action: str, err: Exception) -> None:
        message = describe_error(err)
        logger.error(f"{action} failed: {message}")
        logger.debug(f"{action} failure details", exc_info=err)
        self.ui.display_error(f"{action} failed: {message}")

    async def handle_page(self, page_id: str, refresh: bool = False) -> bool:
        """Handles the 'page' command: shows page metadata and its blocks."""
        logger.info(f"Handling 'page' command for {page_id} (refresh={refresh})")
        try:
            if refresh:
                content = await self._pages().refresh(page_id)
            else:
                content = await self._pages().load_page(page_id)
        except (NotionTuiError, ValueError) as e:
            self._report("Loading page", e)
            return False
        self.ui.display_json(content.page, title=f"Page {page_id}")
        self.ui.display_json(content.blocks, title=f"{len(content.blocks)} blocks")
        return True

    async def handle_blocks(self, block_id: str) -> bool:
        logger.info(f"Handling 'blocks' command for {block_id}")
        try:
            blocks = await self._pages().get_blocks(block_id)
        except (NotionTuiError, ValueError) as e:
            self._report("Loading blocks", e)
            return False
        self.ui.display_json(blocks, title=f"{len(blocks)} blocks of {block_id}")
        return True

    async def handle_query(
        self,
        database_id: str,
        filter: Optional[Dict[str, Any]] = None,
        page_size: Optional[int] = None,
    ) -> bool:
        logger.info(f"Handling 'query' command for database {database_id}")
        try:
            result = await self._pages().query_database(database_id, filter=filter, page_size=page_size)
        except (NotionTuiError, ValueError) as e:
            self._report("Querying database", e)
            return False
        self.ui.display_json(result, title=f"Database {database_id}")
        return True

    async def handle_search(self, query: str, filter: str = "", page_size: Optional[int] = None) -> bool:
        """Handles the 'search' command."""
        logger.info(f"Handling 'search' command (filter={filter or 'all'})")
        if filter and filter not in SEARCH_FILTERS:
            self.ui.display_error(f"Invalid filter '{filter}'. Choose 'page' or 'database'.")
            return False

        search_input = SearchInput(query=query, filter=filter)
        if page_size:
            search_input.page_size = page_size
        try:
            response = await self._pages().search(search_input)
        except (NotionTuiError, ValueError) as e:
            self._report("Search", e)
            return False
        self.ui.display_search_results(response.results)
        if response.has_more:
            self.ui.display_info(f"More results available (cursor: {response.next_cursor})")
        return True

    async def handle_cache_stats(self) -> bool:
        self.ui.display_cache_stats(self.cache_service.stats())
        return True

    async def handle_clear_cache(self) -> bool:
        """Handles the 'clear-cache' command."""
        logger.info("Handling 'clear-cache' command")
        try:
            await self.cache_service.clear()
        except CacheError as e:
            self._report("Clearing cache", e)
            return False
        self.ui.display_info("Cache cleared.")
        return True
