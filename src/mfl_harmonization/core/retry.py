from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from mfl_harmonization.core.exceptions import SourceRequestError, SourceTemporaryError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_exponential_backoff(
    operation: Callable[[], Awaitable[T]],
    retries: int = 3,
    base_delay_seconds: float = 0.1,
    on_retry: Callable[[int, float], None] | None = None,
    retry_on: tuple[type[Exception], ...] = (SourceTemporaryError,),
    operation_name: str = "sheet_fetch",
) -> T:
    """Await ``operation`` until it succeeds, sleeping ``base * 2**n`` between attempts.

    Only exceptions in ``retry_on`` are retried. A ``SourceRequestError`` that is
    not retryable propagates unchanged; anything else is wrapped in one.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            if not isinstance(exc, retry_on):
                if isinstance(exc, SourceRequestError):
                    raise
                raise SourceRequestError(str(exc)) from exc
            attempt += 1
            if attempt >= retries:
                logger.error(
                    "retry_attempts_exhausted",
                    extra={"operation": operation_name, "attempts": attempt, "error": str(exc)},
                )
                raise SourceRequestError(f"{operation_name} failed after {attempt} attempts: {exc}") from exc
            delay = base_delay_seconds * (2 ** (attempt - 1))
            logger.warning(
                "retry_scheduled",
                extra={"operation": operation_name, "attempt": attempt, "delay_seconds": delay, "error": str(exc)},
            )
            if on_retry:
                on_retry(attempt, delay)
            await asyncio.sleep(delay)
