"""Domain-level exceptions shared between the cache, services and UI."""


class NotionTuiError(Exception):
    """Base class for application errors."""


class ConfigurationError(NotionTuiError):
    """Raised when settings are missing or inconsistent."""


class OperationContextError(NotionTuiError):
    """Adds context (operation, target, attempts) to the exception in ``__cause__``.

    Its own message is descriptive only; error classification looks through
    it to the cause.
    """


# --- Cache errors ---

class CacheError(NotionTuiError):
    """Base class for local cache failures."""


class InvalidCacheDirectoryError(CacheError):
    """Raised when the cache directory is empty or cannot be created."""


class CacheMissError(CacheError):
    """No entry is stored under the requested key."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"cache miss for {key}")


class CacheExpiredError(CacheError):
    """An entry exists but its TTL has elapsed."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"cache entry expired for {key}")


class CacheDeserializeError(CacheError):
    """An entry exists but its content could not be decoded."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"unmarshal cache entry for {key}: {reason}")


class CacheSerializeError(CacheError):
    """The value handed to the cache cannot be encoded as JSON."""

    def __init__(self, key: str, reason: str):
        self.key = key
        super().__init__(f"marshal data for {key}: {reason}")


# Lookups that should fall back to a live fetch rather than fail
CACHE_FALLBACK_ERRORS = (CacheMissError, CacheExpiredError, CacheDeserializeError)
