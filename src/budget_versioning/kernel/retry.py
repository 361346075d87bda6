"""
Retry policies for transient storage failures.

SQLite locks the whole database file for writes; a second writer can briefly
see "database is locked". The decorators here retry those failures with
exponential backoff and re-raise the last error once attempts run out.
"""

import sqlite3
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from budget_versioning.kernel.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
Decorator = Callable[[Callable[..., T]], Callable[..., T]]


def _log_retry(message: str) -> Callable[[RetryCallState], None]:
    def before_sleep(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        logger.warning(message, attempt=state.attempt_number, exception=str(error))

    return before_sleep


def retry_on_sqlite_lock(
    max_attempts: int = 3,
    min_wait_ms: int = 100,
    max_wait_ms: int = 1000,
) -> Decorator:
    """
    Retry sqlite3.OperationalError (lock contention) on event store calls.

    Args:
        max_attempts: Attempts including the first one
        min_wait_ms: Lower bound of the backoff
        max_wait_ms: Upper bound of the backoff
    """
    return retry(
        retry=retry_if_exception_type(sqlite3.OperationalError),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait_ms / 1000, max=max_wait_ms / 1000),
        before_sleep=_log_retry("SQLite lock detected, retrying"),
        reraise=True,
    )


def retry_projection_rebuild(max_attempts: int = 3) -> Decorator:
    """
    Retry the start-up replay of the event log.

    Reading the whole log can collide with another process appending to it,
    or hit a transient I/O error on the database file.
    """
    return retry(
        retry=retry_if_exception_type((sqlite3.OperationalError, OSError)),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=0.5, max=5.0),
        before_sleep=_log_retry("Read model rebuild failed, retrying"),
        reraise=True,
    )
