"""Rate-limited wrapper around the Notion SDK.

Hides the specifics of ``notion_client`` from the services: every remote
call waits for a token from the shared limiter, and failures are re-raised
with the operation name and target id while keeping the SDK error as the
cause for classification.
"""

import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from notion_client import AsyncClient

from notiontui.domain.errors import OperationContextError
from notiontui.domain.events.api_events import (
    ApiCallDeferred,
    ApiCallFailed,
    ApiCallInitiated,
    ApiCallSucceeded,
    log_event,
)
from notiontui.domain.models.common import BlockList, EventSink, NotionObject
from notiontui.domain.models.notion import (
    MIN_DATABASE_SEARCH_PAGE_SIZE,
    SEARCH_FILTER_DATABASE,
    SEARCH_FILTER_PAGE,
    SearchInput,
    SearchResponse,
    SearchResult,
)
from notiontui.infrastructure.resilience.rate_limiter import TokenBucketRateLimiter

logger = logging.getLogger(__name__)

UNTITLED_PAGE = "Untitled"
UNTITLED_DATABASE = "Untitled Database"


class NotionOperationError(OperationContextError):
    """A remote call failed; the SDK error is ``__cause__``."""

    def __init__(self, operation: str, target_id: str = ""):
        self.operation = operation
        self.target_id = target_id
        label = f"{operation} {target_id}".strip()
        super().__init__(label)


# --- Response normalization ---

def _plain_text(rich_text: Any) -> str:
    if not isinstance(rich_text, list) or not rich_text:
        return ""
    first = rich_text[0]
    return first.get("plain_text", "") if isinstance(first, dict) else ""


def extract_page_title(page: NotionObject) -> str:
    """Returns the text of the page's title property, or "Untitled"."""
    for prop in (page.get("properties") or {}).values():
        if isinstance(prop, dict) and prop.get("type") == "title":
            title = _plain_text(prop.get("title"))
            if title:
                return title
    return UNTITLED_PAGE


def extract_database_title(database: NotionObject) -> str:
    return _plain_text(database.get("title")) or UNTITLED_DATABASE


def parse_parent(obj: NotionObject) -> Tuple[str, str]:
    """Returns ``(parent_type, parent_id)``; workspace parents have no id."""
    parent = obj.get("parent") or {}
    parent_type = parent.get("type")
    if parent_type == "workspace":
        return "workspace", ""
    if parent_type in ("page_id", "database_id", "block_id"):
        return parent_type[: -len("_id")], str(parent.get(parent_type, ""))
    return "unknown", ""


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Ignoring unparseable timestamp: {value!r}")
        return None


def to_search_result(obj: NotionObject) -> Optional[SearchResult]:
    """Converts a raw search hit into a SearchResult; unknown objects yield None."""
    object_type = obj.get("object")
    if object_type == "page":
        title = extract_page_title(obj)
    elif object_type == "database":
        title = extract_database_title(obj)
    else:
        return None
    parent_type, parent_id = parse_parent(obj)
    return SearchResult(
        id=str(obj.get("id", "")),
        title=title,
        object_type=object_type,
        last_edited=parse_timestamp(obj.get("last_edited_time")),
        parent_type=parent_type,
        parent_id=parent_id,
    )


def to_search_response(raw: NotionObject) -> SearchResponse:
    results = [r for r in (to_search_result(obj) for obj in raw.get("results", [])) if r is not None]
    return SearchResponse(
        results=results,
        has_more=bool(raw.get("has_more", False)),
        next_cursor=raw.get("next_cursor") or "",
    )


def _without_none(**params: Any) -> Dict[str, Any]:
    # The API rejects explicit nulls for optional parameters
    return {k: v for k, v in params.items() if v is not None}


class RateLimitedNotionClient:
    """Notion operations gated by a shared TokenBucketRateLimiter."""

    def __init__(
        self,
        api: AsyncClient,
        limiter: TokenBucketRateLimiter,
        event_sink: Optional[EventSink] = None,
    ):
        """Initializes the client wrapper.

        Args:
            api: A configured ``notion_client.AsyncClient`` (or compatible object).
            limiter: Limiter shared by every caller of this API.
            event_sink: Receives ApiCall* events; defaults to DEBUG logging.
        """
        self._api = api
        self._limiter = limiter
        self._dispatch_event = event_sink or log_event

    @classmethod
    def from_token(
        cls,
        token: str,
        limiter: TokenBucketRateLimiter,
        event_sink: Optional[EventSink] = None,
        **client_options: Any,
    ) -> "RateLimitedNotionClient":
        """Builds the SDK client from an integration token."""
        if not token:
            raise ValueError("Notion token is required")
        api = AsyncClient(auth=token, **client_options)
        logger.info("Notion client initialized")
        return cls(api, limiter, event_sink=event_sink)

    @property
    def limiter(self) -> TokenBucketRateLimiter:
        return self._limiter

    async def _call(
        self,
        operation: str,
        target_id: str,
        func: Callable[..., Awaitable[Any]],
        **kwargs: Any,
    ) -> Any:
        """Acquires a token, performs one remote call and annotates failures."""
        wait_time = self._limiter.get_wait_time()
        if wait_time > 0:
            self._dispatch_event(ApiCallDeferred(operation=operation, target_id=target_id, wait_time_seconds=wait_time))
        await self._limiter.acquire()

        self._dispatch_event(ApiCallInitiated(operation=operation, target_id=target_id))
        start_time = time.perf_counter()
        try:
            result = await func(**kwargs)
        except Exception as e:
            self._dispatch_event(ApiCallFailed(
                operation=operation,
                target_id=target_id,
                error_type=type(e).__name__,
                error_message=str(e),
            ))
            logger.debug(f"Notion call '{operation}' failed for {target_id or '-'}: {type(e).__name__}: {e}")
            raise NotionOperationError(operation, target_id) from e

        latency_ms = (time.perf_counter() - start_time) * 1000
        self._dispatch_event(ApiCallSucceeded(operation=operation, target_id=target_id, latency_ms=latency_ms))
        return result

    # --- Pages ---

    async def get_page(self, page_id: str) -> NotionObject:
        return await self._call("get page", page_id, self._api.pages.retrieve, page_id=page_id)

    async def update_page(self, page_id: str, **fields: Any) -> NotionObject:
        return await self._call("update page", page_id, self._api.pages.update, page_id=page_id, **fields)

    # --- Databases ---

    async def query_database(
        self,
        database_id: str,
        filter: Optional[Dict[str, Any]] = None,
        sorts: Optional[List[Dict[str, Any]]] = None,
        start_cursor: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> NotionObject:
        params = _without_none(filter=filter, sorts=sorts, start_cursor=start_cursor, page_size=page_size)
        return await self._call(
            "query database", database_id, self._api.databases.query, database_id=database_id, **params
        )

    # --- Blocks ---

    async def get_blocks(
        self,
        block_id: str,
        start_cursor: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> NotionObject:
        """Lists one page of a block's children (``results``, ``has_more``, ``next_cursor``)."""
        params = _without_none(start_cursor=start_cursor, page_size=page_size)
        return await self._call(
            "get blocks for", block_id, self._api.blocks.children.list, block_id=block_id, **params
        )

    async def append_blocks(self, block_id: str, children: BlockList) -> NotionObject:
        return await self._call(
            "append blocks to", block_id, self._api.blocks.children.append, block_id=block_id, children=children
        )

    async def get_block(self, block_id: str) -> NotionObject:
        return await self._call("get block", block_id, self._api.blocks.retrieve, block_id=block_id)

    async def update_block(self, block_id: str, **fields: Any) -> NotionObject:
        return await self._call("update block", block_id, self._api.blocks.update, block_id=block_id, **fields)

    async def delete_block(self, block_id: str) -> NotionObject:
        """Archives a block (Notion's delete is a soft delete)."""
        return await self._call("delete block", block_id, self._api.blocks.delete, block_id=block_id)

    # --- Search ---

    async def _search_objects(self, search_input: SearchInput, object_type: str) -> SearchResponse:
        params = _without_none(
            query=search_input.query or None,
            filter={"property": "object", "value": object_type},
            page_size=search_input.page_size or None,
            start_cursor=search_input.start_cursor or None,
        )
        raw = await self._call("search workspace", "", self._api.search, **params)
        return to_search_response(raw)

    async def search(self, search_input: Optional[SearchInput] = None) -> SearchResponse:
        """Searches pages and/or databases shared with the integration.

        With a "page" or "database" filter only that object type is searched.
        Otherwise pages are searched first, then databases with half the page
        size (at least MIN_DATABASE_SEARCH_PAGE_SIZE); if the database search
        fails the page results are still returned.
        """
        search_input = search_input or SearchInput()
        if search_input.filter in (SEARCH_FILTER_PAGE, SEARCH_FILTER_DATABASE):
            return await self._search_objects(search_input, search_input.filter)

        pages = await self._search_objects(search_input, SEARCH_FILTER_PAGE)

        db_page_size = max(search_input.page_size // 2, MIN_DATABASE_SEARCH_PAGE_SIZE)
        db_input = SearchInput(
            query=search_input.query,
            filter=SEARCH_FILTER_DATABASE,
            page_size=db_page_size,
            start_cursor=search_input.start_cursor,
        )
        try:
            databases = await self._search_objects(db_input, SEARCH_FILTER_DATABASE)
        except NotionOperationError as e:
            logger.warning(f"Database search failed, returning page results only: {e.__cause__!r}")
            return pages

        return SearchResponse(
            results=pages.results + databases.results,
            has_more=pages.has_more or databases.has_more,
            next_cursor=pages.next_cursor,
        )

    async def aclose(self) -> None:
        """Closes the underlying HTTP client."""
        close = getattr(self._api, "aclose", None)
        if close is not None:
            await close()

    def __repr__(self) -> str:
        return f"RateLimitedNotionClient(limiter={self._limiter.rate}/s burst {self._limiter.burst})"
