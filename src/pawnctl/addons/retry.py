# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Retry logic with backoff for addon loading."""

from __future__ import annotations

import asyncio
import errno
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pawnctl.addons.exceptions import AddonValidationError
from pawnctl.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

TRANSIENT_ERRNOS = frozenset(
    {
        errno.ENOENT,
        errno.EACCES,
        errno.EPERM,
        errno.EMFILE,
        errno.ENFILE,
        errno.ENOMEM,
        errno.EAGAIN,
        errno.EBUSY,
        errno.ETIMEDOUT,
        errno.ECONNRESET,
    }
)
TRANSIENT_MARKERS = ("ENOENT", "EACCES", "EPERM", "EMFILE", "ENFILE", "ENOMEM", "EBUSY", "ETIMEDOUT", "ECONNRESET")
TRANSIENT_TYPES: tuple[type[BaseException], ...] = (
    FileNotFoundError,
    PermissionError,
    TimeoutError,
    ConnectionResetError,
    MemoryError,
)
PERMANENT_TYPES: tuple[type[BaseException], ...] = (
    AddonValidationError,
    SyntaxError,
    ImportError,
)


def is_transient_error(error: BaseException) -> bool:
    """Classify an addon load failure.

    Syntax errors, import errors (the addon's own runtime dependencies are
    missing) and validation errors are permanent. File, permission,
    resource exhaustion, timeout and connection-reset failures are transient.
    """
    if isinstance(error, PERMANENT_TYPES):
        return False
    if isinstance(error, TRANSIENT_TYPES):
        return True
    if isinstance(error, OSError) and error.errno in TRANSIENT_ERRNOS:
        return True
    message = str(error)
    return any(marker in message for marker in TRANSIENT_MARKERS)


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    delay: float = 1.0,
    is_retryable: Callable[[BaseException], bool] = is_transient_error,
    on_retry: Callable[[int, BaseException], None] | None = None,
) -> T:
    """Run *func* until it succeeds, retrying transient failures.

    The wait after attempt ``n`` is ``n * delay`` seconds.

    Args:
        func: Async function to retry
        max_attempts: Total number of attempts, including the first
        delay: Base delay in seconds
        is_retryable: Predicate deciding whether an error is retried
        on_retry: Called with the attempt number and error before each wait

    Returns:
        Result from successful function call

    Raises:
        The last exception once attempts are exhausted, or the first
        non-retryable exception
    """
    attempt = 1
    while True:
        try:
            return await func()
        except Exception as e:
            if not is_retryable(e):
                logger.debug("addon_load_non_retryable", attempt=attempt, error=str(e))
                raise
            if attempt >= max_attempts:
                logger.error("addon_load_retry_exhausted", attempts=attempt, error=str(e))
                raise
            wait = attempt * delay
            logger.warning(
                "addon_load_retry_attempt",
                attempt=attempt,
                max_attempts=max_attempts,
                delay=wait,
                error=str(e),
            )
            if on_retry is not None:
                on_retry(attempt, e)
            await asyncio.sleep(wait)
            attempt += 1
