"""
Core service for loading Notion content through the local cache.

Every read first asks the cache; on a miss, an expired entry or a corrupt
file the live fetch runs through the retry executor and the result is
stored back with the configured TTL before being returned.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from notiontui.domain.errors import CACHE_FALLBACK_ERRORS, CacheDeserializeError, CacheError
from notiontui.domain.interfaces.cache import CacheService
from notiontui.domain.models.common import (
    BLOCKS_PREFIX,
    PAGE_PREFIX,
    BlockList,
    CacheKey,
    NotionObject,
    make_cache_key,
)
from notiontui.domain.models.notion import PageContent, SearchInput, SearchResponse
from notiontui.infrastructure.notion.client import RateLimitedNotionClient
from notiontui.infrastructure.resilience.api_retry import RetryableOperation

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 3600.0
BLOCKS_PAGE_SIZE = 100


class PageService:
    """Cache-first access to pages and their child blocks."""

    def __init__(
        self,
        client: RateLimitedNotionClient,
        cache: CacheService,
        retry: Optional[RetryableOperation] = None,
        cache_ttl: float = DEFAULT_CACHE_TTL_SECONDS,
    ):
        """Initializes the PageService with its dependencies.

        Args:
            client: Rate-limited Notion client.
            cache: Cache used for pages and block lists.
            retry: Retry policy wrapped around each remote call.
            cache_ttl: TTL in seconds for stored entries.
        """
        self.client = client
        self.cache = cache
        self.retry = retry or RetryableOperation()
        self.cache_ttl = cache_ttl
        logger.info(f"PageService initialized (cache TTL {cache_ttl:.0f}s, {self.retry!r})")

    # --- Cache helpers ---

    async def _lookup(self, key: CacheKey) -> Optional[Any]:
        """Returns the cached value, or None when the caller should fetch live."""
        try:
            return await self.cache.get(key)
        except CacheDeserializeError as e:
            logger.warning(f"Discarding corrupt cache entry {key}: {e.reason}")
            await self._discard(key)
        except CACHE_FALLBACK_ERRORS as e:
            logger.debug(f"Cache lookup fell through for {key}: {e}")
        except CacheError as e:
            logger.warning(f"Cache read failed for {key}, fetching live: {e}")
        return None

    async def _discard(self, key: CacheKey) -> None:
        try:
            await self.cache.delete(key)
        except CacheError as e:
            logger.warning(f"Failed to delete corrupt cache entry {key}: {e}")

    async def _store(self, key: CacheKey, value: Any) -> None:
        try:
            await self.cache.set(key, value, self.cache_ttl)
        except CacheError as e:
            logger.warning(f"Failed to cache {key}: {e}")

    async def _cached(
        self,
        key: CacheKey,
        fetch: Callable[[], Awaitable[Any]],
        use_cache: bool,
    ) -> Any:
        if use_cache:
            cached = await self._lookup(key)
            if cached is not None:
                logger.debug(f"Serving {key} from cache")
                return cached

        value = await fetch()
        await self._store(key, value)
        return value

    # --- Live fetches ---

    async def _fetch_page(self, page_id: str) -> NotionObject:
        return await self.retry.execute(lambda: self.client.get_page(page_id), operation_name=f"get page {page_id}")

    async def _fetch_all_blocks(self, block_id: str) -> BlockList:
        """Follows pagination until the full child list is loaded."""
        blocks: BlockList = []
        cursor: Optional[str] = None
        while True:
            page = await self.retry.execute(
                lambda c=cursor: self.client.get_blocks(block_id, start_cursor=c, page_size=BLOCKS_PAGE_SIZE),
                operation_name=f"get blocks for {block_id}",
            )
            blocks.extend(page.get("results", []))
            cursor = page.get("next_cursor")
            if not page.get("has_more") or not cursor:
                break
        logger.debug(f"Loaded {len(blocks)} blocks for {block_id}")
        return blocks

    # --- Public API ---

    async def get_page(self, page_id: str, use_cache: bool = True) -> NotionObject:
        key = make_cache_key(PAGE_PREFIX, page_id)
        return await self._cached(key, lambda: self._fetch_page(page_id), use_cache)

    async def get_blocks(self, block_id: str, use_cache: bool = True) -> BlockList:
        key = make_cache_key(BLOCKS_PREFIX, block_id)
        return await self._cached(key, lambda: self._fetch_all_blocks(block_id), use_cache)

    async def load_page(self, page_id: str, use_cache: bool = True) -> PageContent:
        """Loads a page and its top-level blocks concurrently."""
        page, blocks = await asyncio.gather(
            self.get_page(page_id, use_cache=use_cache),
            self.get_blocks(page_id, use_cache=use_cache),
        )
        return PageContent(page=page, blocks=blocks)

    async def refresh(self, page_id: str) -> PageContent:
        """Bypasses the cache, re-fetches the page and stores the fresh copy."""
        logger.info(f"Refreshing page {page_id}")
        return await self.load_page(page_id, use_cache=False)

    async def query_database(
        self,
        database_id: str,
        filter: Optional[Dict[str, Any]] = None,
        sorts: Optional[List[Dict[str, Any]]] = None,
        start_cursor: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> NotionObject:
        return await self.retry.execute(
            lambda: self.client.query_database(
                database_id, filter=filter, sorts=sorts, start_cursor=start_cursor, page_size=page_size
            ),
            operation_name=f"query database {database_id}",
        )

    async def search(self, search_input: Optional[SearchInput] = None) -> SearchResponse:
        return await self.retry.execute(lambda: self.client.search(search_input), operation_name="search workspace")
