# Hey future me - two kinds of store errors get special treatment in TheSet:
#
# 1. LOCK errors ("database is locked" / "busy") from SQLite. They are temporary,
#    so with_db_retry waits with exponential backoff and tries again. Used on
#    the background track-catalog refresh, which writes many rows at once while
#    request handlers are writing too.
#
# 2. PERMISSION errors (Postgres SQLSTATE 42501, "permission denied for table",
#    row-level security rejections). These are NOT retried here. Reconciliation
#    catches them and retries exactly once through the elevated credential.
"""Store error classification and retry helpers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

_PERMISSION_SQLSTATES = {"42501"}
_PERMISSION_MARKERS = (
    "permission denied",
    "insufficient privilege",
    "row-level security",
    "not authorized",
)


def is_lock_error(exception: BaseException) -> bool:
    """True for retryable SQLite lock errors."""
    if not isinstance(exception, OperationalError):
        return False
    error_msg = str(exception).lower()
    return "locked" in error_msg or "busy" in error_msg


def is_permission_error(exception: BaseException) -> bool:
    """True when the store refused the statement for lack of privileges."""
    if not isinstance(exception, DBAPIError):
        return False
    orig: Any = exception.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _PERMISSION_SQLSTATES:
        return True
    error_msg = str(exception).lower()
    return any(marker in error_msg for marker in _PERMISSION_MARKERS)


def with_db_retry(
    max_attempts: int = 3,
    initial_delay: float = 0.5,
    max_delay: float = 5.0,
    backoff_factor: float = 2.0,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Retry an async store operation on lock errors.

    Backoff is exponential: 0.5s, 1s, 2s (capped at max_delay). Anything that
    is not a lock error is raised immediately.

    Example:
        @with_db_retry(max_attempts=3)
        async def refresh_artist_tracks(self, artist_id: str, spotify_id: str) -> int:
            ...
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            delay = initial_delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except OperationalError as e:
                    if not is_lock_error(e) or attempt == max_attempts:
                        if is_lock_error(e):
                            logger.error(
                                "Database locked after %d attempts, giving up: %s",
                                max_attempts,
                                func.__qualname__,
                            )
                        raise
                    logger.warning(
                        "Database locked (attempt %d/%d), retrying in %.1fs: %s",
                        attempt,
                        max_attempts,
                        delay,
                        func.__qualname__,
                    )
                    await asyncio.sleep(delay)
                    delay = min(delay * backoff_factor, max_delay)
            raise RuntimeError("Unexpected state in retry decorator")

        return wrapper

    return decorator
