"""Classification of remote-call failures into retry decisions.

A single ordered pass decides what an error means for the retry loop:

1. no error            -> not retryable, no kind
2. cancellation        -> Cancelled, fatal to the call
3. HTTP status         -> Auth / NotFound / Validation / RateLimit / ServerError
4. transport failures  -> NetworkTransient
5. message vocabulary  -> same kinds, for errors that only carry text
6. anything else       -> Unknown, retried

The ``is_*`` predicates answer the same questions independently.
"""

import asyncio
import concurrent.futures
import logging
import re
import socket
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Iterator, List, Optional, Pattern, Sequence, Tuple

import httpx
from notion_client.errors import HTTPResponseError, RequestTimeoutError

from notiontui.domain.errors import OperationContextError
from notiontui.domain.models.resilience import (
    DEFAULT_RATE_LIMIT_RETRY_AFTER_S,
    NO_ERROR,
    ErrorClassification,
    ErrorKind,
)

logger = logging.getLogger(__name__)

CANCELLATION_TYPES = (asyncio.CancelledError, concurrent.futures.CancelledError)

NETWORK_ERROR_TYPES = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    RequestTimeoutError,
    ConnectionError,
    TimeoutError,
    socket.gaierror,
)

AUTH_STATUSES = frozenset({401, 403})
NOT_FOUND_STATUS = 404
VALIDATION_STATUS = 400
RATE_LIMIT_STATUS = 429
REQUEST_TIMEOUT_STATUS = 408


def _code(code: str) -> Pattern[str]:
    # Status codes only count as standalone tokens, not inside ids like "a-404-b"
    return re.compile(rf"(?<![\w-]){code}(?![\w-])")


def _phrase(phrase: str) -> Pattern[str]:
    return re.compile(re.escape(phrase), re.IGNORECASE)


AUTH_PATTERNS = (_code("401"), _phrase("unauthorized"), _code("403"), _phrase("forbidden"))
NOT_FOUND_PATTERNS = (_code("404"), _phrase("not found"))
RATE_LIMIT_PATTERNS = (_code("429"), _phrase("rate limit"))
SERVER_PATTERNS = (_code(r"5\d\d"),)
NETWORK_PATTERNS = tuple(
    _phrase(keyword)
    for keyword in (
        "connection refused",
        "no such host",
        "network is unreachable",
        "timeout",
        "timed out",
        "deadline exceeded",
        "connection reset",
        "broken pipe",
    )
)


# --- Exception chain helpers ---

def _iter_chain(err: BaseException) -> Iterator[BaseException]:
    """Yields ``err`` and every exception it was explicitly raised from."""
    seen = set()
    current: Optional[BaseException] = err
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__


def _status_of(exc: BaseException) -> Optional[int]:
    """Extracts an HTTP status from SDK, httpx or status-bearing exceptions."""
    if isinstance(exc, HTTPResponseError):
        return exc.status
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    for attr in ("status", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _first_status(chain: Sequence[BaseException]) -> Tuple[Optional[int], Optional[BaseException]]:
    for exc in chain:
        status = _status_of(exc)
        if status is not None:
            return status, exc
    return None, None


def _headers_of(exc: BaseException) -> Any:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.headers
    return getattr(exc, "headers", None)


def _header(headers: Any, name: str) -> Optional[str]:
    if not headers:
        return None
    try:
        value = headers.get(name)
        if value is None:
            lowered = name.lower()
            value = next((v for k, v in headers.items() if str(k).lower() == lowered), None)
    except AttributeError:
        return None
    return str(value) if value is not None else None


def _texts(chain: Sequence[BaseException]) -> List[str]:
    return [str(exc) for exc in chain if not isinstance(exc, OperationContextError)]


def _text_matches(chain: Sequence[BaseException], patterns: Sequence[Pattern[str]]) -> bool:
    return any(p.search(text) for text in _texts(chain) for p in patterns)


# --- Retry-After ---

def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """Parses a Retry-After header (delta-seconds or HTTP-date) into seconds.

    Returns None when the value is absent, malformed or not in the future.
    """
    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            logger.debug(f"Ignoring unparseable Retry-After header: {value!r}")
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - (now or datetime.now(timezone.utc))).total_seconds()
    return seconds if seconds > 0 else None


def _rate_limit_wait(exc: Optional[BaseException]) -> float:
    hint = parse_retry_after(_header(_headers_of(exc), "Retry-After")) if exc is not None else None
    return hint if hint is not None else DEFAULT_RATE_LIMIT_RETRY_AFTER_S


# --- Classification ---

def _classify_status(status: int, source: BaseException) -> ErrorClassification:
    if status in AUTH_STATUSES:
        return ErrorClassification(ErrorKind.AUTH, retryable=False)
    if status == NOT_FOUND_STATUS:
        return ErrorClassification(ErrorKind.NOT_FOUND, retryable=False)
    if status == VALIDATION_STATUS:
        return ErrorClassification(ErrorKind.VALIDATION, retryable=False)
    if status == RATE_LIMIT_STATUS:
        return ErrorClassification(ErrorKind.RATE_LIMIT, retryable=True, retry_after=_rate_limit_wait(source))
    if status == REQUEST_TIMEOUT_STATUS or 500 <= status < 600:
        return ErrorClassification(ErrorKind.SERVER_ERROR, retryable=True)
    return ErrorClassification(ErrorKind.UNKNOWN, retryable=True)


def _classify_text(chain: Sequence[BaseException]) -> Optional[ErrorClassification]:
    if _text_matches(chain, AUTH_PATTERNS):
        return ErrorClassification(ErrorKind.AUTH, retryable=False)
    if _text_matches(chain, NOT_FOUND_PATTERNS):
        return ErrorClassification(ErrorKind.NOT_FOUND, retryable=False)
    if _text_matches(chain, RATE_LIMIT_PATTERNS):
        return ErrorClassification(
            ErrorKind.RATE_LIMIT, retryable=True, retry_after=DEFAULT_RATE_LIMIT_RETRY_AFTER_S
        )
    if _text_matches(chain, SERVER_PATTERNS):
        return ErrorClassification(ErrorKind.SERVER_ERROR, retryable=True)
    if _text_matches(chain, NETWORK_PATTERNS):
        return ErrorClassification(ErrorKind.NETWORK_TRANSIENT, retryable=True)
    return None


def classify_error(err: Optional[BaseException]) -> ErrorClassification:
    """Maps an error (and whatever it wraps) to a kind and a retry verdict."""
    if err is None:
        return NO_ERROR

    chain = list(_iter_chain(err))

    if any(isinstance(exc, CANCELLATION_TYPES) for exc in chain):
        return ErrorClassification(ErrorKind.CANCELLED, retryable=False)

    status, source = _first_status(chain)
    if status is not None:
        return _classify_status(status, source)

    if any(isinstance(exc, NETWORK_ERROR_TYPES) for exc in chain):
        return ErrorClassification(ErrorKind.NETWORK_TRANSIENT, retryable=True)

    by_text = _classify_text(chain)
    if by_text is not None:
        return by_text

    return ErrorClassification(ErrorKind.UNKNOWN, retryable=True)


def classify(err: Optional[BaseException]) -> Tuple[bool, float]:
    """Returns ``(retryable, retry_after_seconds)``; 0.0 means no server hint."""
    verdict = classify_error(err)
    return verdict.retryable, verdict.retry_after or 0.0


# --- Standalone predicates ---

def _status_or_text(
    err: Optional[BaseException],
    status_matches: Callable[[int], bool],
    patterns: Sequence[Pattern[str]],
) -> bool:
    if err is None:
        return False
    chain = list(_iter_chain(err))
    status, _ = _first_status(chain)
    if status is not None:
        return status_matches(status)
    return _text_matches(chain, patterns)


def is_auth_error(err: Optional[BaseException]) -> bool:
    """401/403, or a message mentioning them."""
    return _status_or_text(err, lambda s: s in AUTH_STATUSES, AUTH_PATTERNS)


def is_not_found_error(err: Optional[BaseException]) -> bool:
    return _status_or_text(err, lambda s: s == NOT_FOUND_STATUS, NOT_FOUND_PATTERNS)


def is_rate_limit_error(err: Optional[BaseException]) -> bool:
    return _status_or_text(err, lambda s: s == RATE_LIMIT_STATUS, RATE_LIMIT_PATTERNS)


def is_server_error(err: Optional[BaseException]) -> bool:
    """Any 5xx status, or a message containing a 5xx code."""
    return _status_or_text(err, lambda s: 500 <= s < 600, SERVER_PATTERNS)


def is_network_error(err: Optional[BaseException]) -> bool:
    """Transport-level failures (timeouts, refused/reset connections, DNS)."""
    if err is None:
        return False
    chain = list(_iter_chain(err))
    if any(isinstance(exc, NETWORK_ERROR_TYPES) for exc in chain):
        return True
    return _text_matches(chain, NETWORK_PATTERNS)


def is_retryable_error(err: Optional[BaseException]) -> bool:
    return classify_error(err).retryable
