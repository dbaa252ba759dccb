from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError

from ..errors import IdGenerationExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ATTEMPTS = 3
BACKOFF_STEP_SECONDS = 0.01

POSTGRES_UNIQUE_VIOLATION = "23505"
SQLITE_UNIQUE_MARKER = "UNIQUE constraint failed"


def is_unique_violation(exc: BaseException) -> bool:
    """True when ``exc`` is an IntegrityError caused by a unique/primary-key clash."""
    if not isinstance(exc, IntegrityError):
        return False
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "pgcode", None) or getattr(candidate, "sqlstate", None)
        if code == POSTGRES_UNIQUE_VIOLATION:
            return True
    return SQLITE_UNIQUE_MARKER in str(orig)


async def execute_with_retry(
    operation: Callable[[int], Awaitable[T]],
    *,
    entity_name: str,
    max_attempts: int = MAX_ATTEMPTS,
) -> T:
    """Run an id-assigning write, retrying when a concurrent writer took the same id.

    ``operation`` receives the 1-based attempt number and must compute a fresh id on
    every call (and roll back its own session before re-raising). Only unique
    violations are retried; anything else propagates from the first attempt.
    Attempts are spaced ``BACKOFF_STEP_SECONDS * attempt`` apart.
    """
    last_exc: Optional[BaseException] = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation(attempt)
        except IntegrityError as exc:
            if not is_unique_violation(exc):
                raise
            last_exc = exc
            logger.warning(
                "Unique constraint violation on %s creation (attempt %s/%s); retrying with fresh id",
                entity_name,
                attempt,
                max_attempts,
            )
            if attempt < max_attempts:
                await asyncio.sleep(BACKOFF_STEP_SECONDS * attempt)

    logger.error(
        "Failed to create %s after %s attempts due to id collisions",
        entity_name,
        max_attempts,
        exc_info=last_exc,
    )
    raise IdGenerationExhaustedError(entity_name, max_attempts) from last_exc
