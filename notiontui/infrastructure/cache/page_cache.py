"""File-based implementation of the CacheService interface.

One JSON envelope per key in a flat directory. Writes go through a temp
file and ``os.replace`` so readers only ever observe complete entries, and
writers for the same file are serialized by a per-file lock. Hit, miss and
size accounting is kept under a single lock.
"""

import asyncio
import hashlib
import logging
import os
import threading
import uuid
import weakref
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, Union

import aiofiles
import aiofiles.os

from notiontui.domain.errors import (
    CacheDeserializeError,
    CacheError,
    CacheExpiredError,
    CacheMissError,
    CacheSerializeError,
    InvalidCacheDirectoryError,
)
from notiontui.domain.interfaces.cache import CacheService
from notiontui.domain.models.cache import CacheEntry, CacheStats, utcnow
from notiontui.domain.models.common import CacheKey

logger = logging.getLogger(__name__)

CACHE_FILE_SUFFIX = ".json"
TEMP_FILE_SUFFIX = ".tmp"
# Longer hex names fall back to a digest to stay under filesystem name limits
MAX_HEX_NAME_LENGTH = 200
CACHE_DIR_MODE = 0o700


def make_cache_path(cache_dir: Union[str, Path], key: str) -> Path:
    """Maps a key to its cache file, always a direct child of ``cache_dir``.

    The key is hex-encoded, so separators, dots and other reserved
    characters can never escape the directory. Deterministic for equal inputs.
    """
    raw = key.encode("utf-8", errors="surrogatepass")
    safe_name = raw.hex()
    if len(safe_name) > MAX_HEX_NAME_LENGTH:
        safe_name = "h-" + hashlib.sha256(raw).hexdigest()
    return Path(cache_dir) / f"{safe_name}{CACHE_FILE_SUFFIX}"


class PageCache(CacheService):
    """Durable key/value cache with per-entry TTL and usage statistics."""

    def __init__(
        self,
        cache_dir: Union[str, Path],
        clock: Callable[[], datetime] = utcnow,
    ):
        """Opens (and creates if needed) the cache directory.

        Args:
            cache_dir: Root directory for cache files.
            clock: Source of timezone-aware "now" used for stamping and expiry.

        Raises:
            InvalidCacheDirectoryError: If the path is empty or cannot be created.
        """
        if cache_dir is None or not str(cache_dir).strip():
            raise InvalidCacheDirectoryError("cache directory cannot be empty")

        self.cache_dir = Path(cache_dir).expanduser()
        self._clock = clock
        self._setup_cache_dir()

        self._stats_lock = threading.Lock()
        self._hit_count = 0
        self._miss_count = 0
        self._size = self._count_entries()

        self._file_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        self._file_locks_guard = threading.Lock()

        logger.info(f"PageCache initialized at {self.cache_dir} with {self._size} entries")

    @classmethod
    def open(cls, cache_dir: Union[str, Path], **kwargs: Any) -> "PageCache":
        """Alias for the constructor, reads better at call sites."""
        return cls(cache_dir, **kwargs)

    def _setup_cache_dir(self) -> None:
        """Creates the cache directory if it doesn't exist."""
        try:
            self.cache_dir.mkdir(mode=CACHE_DIR_MODE, parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create cache directory {self.cache_dir}: {e}")
            raise InvalidCacheDirectoryError(f"create cache directory {self.cache_dir}: {e}") from e
        if not self.cache_dir.is_dir():
            raise InvalidCacheDirectoryError(f"cache path {self.cache_dir} is not a directory")

    def _count_entries(self) -> int:
        return sum(1 for p in self.cache_dir.glob(f"*{CACHE_FILE_SUFFIX}") if p.is_file())

    def _lock_for(self, file_name: str) -> asyncio.Lock:
        with self._file_locks_guard:
            lock = self._file_locks.get(file_name)
            if lock is None:
                lock = asyncio.Lock()
                self._file_locks[file_name] = lock
            return lock

    def path_for(self, key: str) -> Path:
        return make_cache_path(self.cache_dir, key)

    # --- Statistics ---

    def _record_hit(self) -> None:
        with self._stats_lock:
            self._hit_count += 1

    def _record_miss(self) -> None:
        with self._stats_lock:
            self._miss_count += 1

    def _adjust_size(self, delta: int) -> None:
        with self._stats_lock:
            self._size += delta

    def stats(self) -> CacheStats:
        with self._stats_lock:
            return CacheStats(hit_count=self._hit_count, miss_count=self._miss_count, size=self._size)

    # --- CacheService Interface Implementation ---

    async def get(self, key: CacheKey) -> Any:
        path = self.path_for(key)

        try:
            async with aiofiles.open(path, mode="r", encoding="utf-8") as f:
                raw = await f.read()
        except FileNotFoundError as e:
            self._record_miss()
            logger.debug(f"Cache miss for key: {key}")
            raise CacheMissError(key) from e
        except UnicodeDecodeError as e:
            logger.warning(f"Cache file {path} is not valid UTF-8: {e}")
            raise CacheDeserializeError(key, str(e)) from e
        except OSError as e:
            raise CacheError(f"read cache file {path}: {e}") from e

        try:
            entry = CacheEntry.from_json(raw)
        except (ValueError, TypeError) as e:
            logger.warning(f"Failed to parse cache file {path}: {e}")
            raise CacheDeserializeError(key, str(e)) from e
        if entry.key != key:
            raise CacheDeserializeError(key, f"entry belongs to key {entry.key!r}")

        if self.is_expired(entry, self._clock()):
            self._record_miss()
            logger.debug(f"Cache expired for key: {key}")
            raise CacheExpiredError(key)

        self._record_hit()
        logger.debug(f"Cache hit for key: {key}")
        return entry.data

    async def set(self, key: CacheKey, value: Any, ttl: float) -> None:
        try:
            entry = CacheEntry.create(key, value, ttl, now=self._clock())
            payload = entry.to_json()
        except (TypeError, ValueError) as e:
            raise CacheSerializeError(key, str(e)) from e

        path = self.path_for(key)
        async with self._lock_for(path.name):
            write = asyncio.ensure_future(self._write_entry(path, payload))
            try:
                await asyncio.shield(write)
            except asyncio.CancelledError:
                # The write settles under the file lock before the cancellation propagates
                await asyncio.wait({write})
                if not write.cancelled() and write.exception() is not None:
                    logger.warning(f"Cache write for key {key} failed after cancellation: {write.exception()}")
                raise
        logger.debug(f"Stored cache entry: key={key}, ttl={ttl}s, file={path.name}")

    async def _write_entry(self, path: Path, payload: str) -> None:
        """Writes one envelope through a temp file. Caller holds the file lock."""
        existed = await aiofiles.os.path.exists(path)
        temp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}{TEMP_FILE_SUFFIX}")
        committed = False
        try:
            async with aiofiles.open(temp_path, mode="w", encoding="utf-8") as f:
                await f.write(payload)
            # Atomic on POSIX and Windows
            await aiofiles.os.replace(temp_path, path)
            committed = True
        except OSError as e:
            logger.error(f"Failed to write cache file {path}: {e}")
            raise CacheError(f"write cache file {path}: {e}") from e
        finally:
            if not committed:
                await self._remove_temp_file(temp_path)

        if not existed:
            self._adjust_size(1)

    async def _remove_temp_file(self, temp_path: Path) -> None:
        try:
            await aiofiles.os.remove(temp_path)
        except FileNotFoundError:
            return
        except OSError as e:
            logger.warning(f"Failed to remove temp cache file {temp_path}: {e}")

    async def delete(self, key: CacheKey) -> None:
        path = self.path_for(key)
        async with self._lock_for(path.name):
            try:
                await aiofiles.os.remove(path)
            except FileNotFoundError:
                return
            except OSError as e:
                raise CacheError(f"delete cache file {path}: {e}") from e
            self._adjust_size(-1)
        logger.debug(f"Deleted cache entry: key={key}")

    async def clear(self) -> None:
        """Removes every entry and any leftover temp file.

        Each file is removed under its own lock, so a concurrent ``set``
        either lands before the removal or after it, and Size always
        matches the entries on disk.
        """
        if not self.cache_dir.exists():
            self._setup_cache_dir()
        names = await asyncio.to_thread(os.listdir, self.cache_dir)
        removed = 0
        for name in sorted(names):
            if name.endswith(CACHE_FILE_SUFFIX):
                entry_name = name
            elif name.endswith(TEMP_FILE_SUFFIX):
                entry_name = name.split(".", 1)[0] + CACHE_FILE_SUFFIX
            else:
                continue
            path = self.cache_dir / name
            async with self._lock_for(entry_name):
                if not await aiofiles.os.path.isfile(path):
                    continue
                try:
                    await aiofiles.os.remove(path)
                except FileNotFoundError:
                    continue
                except OSError as e:
                    raise CacheError(f"remove cache file {path}: {e}") from e
                if path.name == entry_name:
                    self._adjust_size(-1)
                    removed += 1

        logger.info(f"Cleared {removed} cache entries from {self.cache_dir}")

    def __repr__(self) -> str:
        return f"PageCache(cache_dir={str(self.cache_dir)!r})"
