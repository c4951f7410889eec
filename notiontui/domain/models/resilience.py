"""Value objects for retry configuration and error classification."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_BACKOFF_S = 1.0
DEFAULT_MAX_BACKOFF_S = 16.0
DEFAULT_BACKOFF_MULTIPLIER = 2.0

# Used when a 429 response carries no usable Retry-After header
DEFAULT_RATE_LIMIT_RETRY_AFTER_S = 5.0


class ErrorKind(str, Enum):
    """Classification outcome for a failed remote call."""

    AUTH = "auth"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    RATE_LIMIT = "rate_limit"
    SERVER_ERROR = "server_error"
    NETWORK_TRANSIENT = "network_transient"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ErrorClassification:
    """Retry verdict for an error.

    ``kind`` is None only when there was no error at all.
    ``retry_after`` carries a server-supplied (or fallback) wait in seconds.
    """

    kind: Optional[ErrorKind]
    retryable: bool
    retry_after: Optional[float] = None


NO_ERROR = ErrorClassification(kind=None, retryable=False)


@dataclass(frozen=True)
class RetryConfig:
    """Immutable retry/backoff configuration.

    Total attempts are ``max_retries + 1``. Durations are in seconds.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF_S
    max_backoff: float = DEFAULT_MAX_BACKOFF_S
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.initial_backoff <= 0:
            raise ValueError(f"initial_backoff must be > 0, got {self.initial_backoff}")
        if self.max_backoff < self.initial_backoff:
            raise ValueError(
                f"max_backoff ({self.max_backoff}) must be >= initial_backoff ({self.initial_backoff})"
            )
        if self.backoff_multiplier <= 1:
            raise ValueError(f"backoff_multiplier must be > 1, got {self.backoff_multiplier}")

    @classmethod
    def default(cls) -> "RetryConfig":
        return cls()

    @property
    def total_attempts(self) -> int:
        return self.max_retries + 1

    def evolve(self, **changes) -> "RetryConfig":
        """Returns a validated copy with the given fields replaced."""
        return replace(self, **changes)
