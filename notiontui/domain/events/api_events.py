"""Domain Events related to API calls and resilience.

Examples include events for when calls are deferred by the rate limiter,
retried after a transient failure, fail, or succeed.
"""

from dataclasses import dataclass, field
import logging
import time
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


# --- Specific API Events ---

@dataclass
class ApiCallInitiated(DomainEvent):
    """Event triggered when an API call is about to be made."""
    operation: str  # e.g., 'get page'
    target_id: str = ""
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallSucceeded(DomainEvent):
    """Event triggered when an API call succeeds."""
    operation: str
    target_id: str
    latency_ms: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallFailed(DomainEvent):
    """Event triggered when a single API call fails."""
    operation: str
    target_id: str
    error_type: str
    error_message: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallDeferred(DomainEvent):
    """Event triggered when an API call is deferred due to rate limiting."""
    operation: str
    target_id: str
    wait_time_seconds: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a retry is scheduled for a failed operation."""
    operation: str
    attempt_number: int
    delay_seconds: float
    error_kind: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetriesExhausted(DomainEvent):
    """Event triggered when an operation gives up after its last attempt."""
    operation: str
    attempts: int
    error_type: str
    timestamp: float = field(default_factory=time.time)


def log_event(event: DomainEvent) -> None:
    """Default event sink: records the event at DEBUG level."""
    logger.debug(f"EVENT: {event}")
