"""Defines common Value Objects used across different domain contexts.

These objects represent simple identifiers and values, ensuring consistency
and type safety between the client, the cache and the services.
"""

from typing import Any, Callable, Dict, List, NewType

# === Notion Identifiers ===

# Using NewType for semantic clarity, although they are strings at runtime.
PageID = NewType("PageID", str)            # Notion page id (dashed or undashed UUID)
BlockID = NewType("BlockID", str)          # Notion block id; pages are blocks too
DatabaseID = NewType("DatabaseID", str)    # Notion database id

# === Caching Context ===
CacheKey = NewType("CacheKey", str)        # Unique key for a cache entry
CachePrefix = NewType("CachePrefix", str)  # Prefix for categorizing cache keys (e.g., 'page')

PAGE_PREFIX = CachePrefix("page")
BLOCKS_PREFIX = CachePrefix("blocks")

# === Raw API payloads ===
# The SDK returns plain JSON objects; we keep them as dicts.
NotionObject = Dict[str, Any]
BlockList = List[NotionObject]

# Event observers receive any DomainEvent instance.
EventSink = Callable[[Any], None]


def make_cache_key(prefix: CachePrefix, object_id: str) -> CacheKey:
    """Builds a namespaced cache key such as ``page:<id>``."""
    return CacheKey(f"{prefix}:{object_id}")


def normalize_notion_id(raw_id: str) -> str:
    """Strips dashes and whitespace from a Notion id."""
    return raw_id.strip().replace("-", "")


def is_valid_notion_id(raw_id: str) -> bool:
    """Checks whether a string looks like a Notion UUID (32 hex chars, dashes optional)."""
    cleaned = normalize_notion_id(raw_id)
    if len(cleaned) != 32:
        return False
    return all(c in "0123456789abcdefABCDEF" for c in cleaned)
