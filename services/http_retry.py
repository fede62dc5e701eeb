"""Caller-side retry with exponential backoff and Retry-After support.

Adapters never retry on their own; wrap publish() (or any adapter call)
in retry_with_backoff when transient failures should be absorbed.

Rules:
  - 429: respect Retry-After (cap 60s), then retry
  - 5xx: exponential backoff (base_delay * 2^attempt), then retry
  - 401/403: never retry (auth failure)
  - Other 4xx: never retry (client error)
  - NETWORK_ERROR (timeout, connect): retry with backoff
  - Local errors (VALIDATION_ERROR, NOT_CONFIGURED, ...): never retry
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from core.exceptions import CMSError, ErrorCode

log = structlog.get_logger()

T = TypeVar("T")

# Status codes that should never be retried (auth / client errors)
_NO_RETRY_STATUSES = frozenset({401, 403})

# Maximum time to wait between attempts (seconds)
_MAX_RETRY_AFTER = 60.0

# HTTP status codes considered retryable (server errors + rate limit)
_RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


def _is_retryable(exc: BaseException) -> bool:
    """Retryable: 429, 5xx, network errors. Not retryable: 401, 403, other 4xx, local errors."""
    if not isinstance(exc, CMSError):
        return False

    if exc.code == ErrorCode.NETWORK_ERROR:
        return True

    status = exc.status_code
    if status is None or status in _NO_RETRY_STATUSES:
        return False

    return status in _RETRYABLE_STATUSES


def _get_retry_delay(exc: BaseException, attempt: int, base_delay: float) -> float:
    """Retry-After for 429 when present, otherwise exponential backoff."""
    if isinstance(exc, CMSError) and exc.status_code == 429 and exc.retry_after is not None:
        return min(exc.retry_after, _MAX_RETRY_AFTER)

    backoff: float = base_delay * (2**attempt)
    return min(backoff, _MAX_RETRY_AFTER)


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 2,
    base_delay: float = 1.0,
    operation: str = "cms_request",
) -> T:
    """Execute an async function with retry on transient failures.

    Args:
        func: Zero-argument async callable to execute.
        max_retries: Maximum number of retry attempts (0 = no retry).
        base_delay: Base delay in seconds for exponential backoff.
        operation: Human-readable name for logging.

    Returns:
        The result of func() on success.

    Raises:
        The last exception if all attempts fail, or immediately on non-retryable errors.
    """
    for attempt in range(max_retries + 1):
        try:
            return await func()
        except Exception as exc:
            if not _is_retryable(exc) or attempt >= max_retries:
                raise

            delay = _get_retry_delay(exc, attempt, base_delay)
            log.warning(
                "cms_retry",
                operation=operation,
                attempt=attempt + 1,
                max_retries=max_retries,
                status=getattr(exc, "status_code", None),
                code=getattr(exc, "code", None),
                delay_s=round(delay, 2),
                error=str(exc)[:200],
            )
            await asyncio.sleep(delay)

    raise RuntimeError("retry_with_backoff: unexpected state")  # pragma: no cover
