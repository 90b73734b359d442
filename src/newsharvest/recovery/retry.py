"""
Bounded retries with linear backoff for navigation and delivery calls.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

import structlog
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_incrementing

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _log_before_sleep(name: str) -> Callable[[RetryCallState], None]:
    def _before_sleep(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        logger.warning(
            "Retrying operation",
            operation=name,
            attempt=state.attempt_number,
            delay=state.next_action.sleep if state.next_action else 0.0,
            error=str(error),
            error_type=type(error).__name__,
        )

    return _before_sleep


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    backoff_base: float = 2.0,
    *,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    name: str = "operation",
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """
    Await ``operation`` up to ``max_attempts`` times.

    After failed attempt ``n`` the controller waits ``backoff_base * n`` seconds.
    When every attempt fails the last exception is re-raised unchanged.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        max_attempts: Total attempts including the first one
        backoff_base: Linear backoff step in seconds
        retry_on: Exception types that trigger another attempt; others propagate immediately
        name: Operation name used in log records
        sleep: Sleep coroutine, replaceable in tests
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_incrementing(start=backoff_base, increment=backoff_base),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_before_sleep(name),
        sleep=sleep or asyncio.sleep,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await operation()
    raise AssertionError("unreachable")  # pragma: no cover
