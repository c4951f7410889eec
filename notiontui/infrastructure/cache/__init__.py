"""Caching Service Implementation.

Provides the file-backed PageCache implementing the CacheService interface:
one JSON envelope per key, per-entry TTL, and hit/miss/size statistics.
Bounded Context: Cache Management
"""

from notiontui.infrastructure.cache.page_cache import PageCache, make_cache_path

__all__ = ['PageCache', 'make_cache_path']
