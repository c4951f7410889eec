"""API Resilience Implementations.

Contains the shared token-bucket rate limiter, the error classifier and the
retry executor with capped exponential backoff.
Bounded Context: API Resilience
"""

from notiontui.infrastructure.resilience.api_retry import (
    RetryableOperation,
    RetryCancelledError,
    RetryExhaustedError,
    retry_with_backoff,
)
from notiontui.infrastructure.resilience.error_classifier import (
    classify,
    classify_error,
    is_auth_error,
    is_network_error,
    is_not_found_error,
    is_rate_limit_error,
    is_retryable_error,
    is_server_error,
)
from notiontui.infrastructure.resilience.rate_limiter import RateLimiterWaitError, TokenBucketRateLimiter

__all__ = [
    'RetryableOperation',
    'RetryCancelledError',
    'RetryExhaustedError',
    'retry_with_backoff',
    'classify',
    'classify_error',
    'is_auth_error',
    'is_network_error',
    'is_not_found_error',
    'is_rate_limit_error',
    'is_retryable_error',
    'is_server_error',
    'RateLimiterWaitError',
    'TokenBucketRateLimiter',
]
