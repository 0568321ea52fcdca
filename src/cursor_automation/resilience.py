"""
Retry and timeout discipline for window operations.

OS window calls are flaky: a window can vanish between a liveness check and
the action that follows. Every window-targeted operation goes through
``with_retry``, which re-verifies liveness (and optionally focus) before each
attempt and backs off a fixed delay between attempts.
"""

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union, TYPE_CHECKING

from cursor_automation.errors import (
    OperationTimeoutError,
    RetryExhaustedError,
    ValidationError,
    WindowFocusError,
    WindowResponseError,
)
from cursor_automation.logging import get_logger

if TYPE_CHECKING:
    from cursor_automation.actuator.window.base import BaseWindowManager
    from cursor_automation.actuator.window.types import WindowHandle
    from cursor_automation.config import RetryConfig

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    delay: float = 0.5  # Fixed backoff between attempts (seconds)
    timeout: Optional[float] = 30.0  # Per-attempt bound; None disables

    # Specific error handling
    retryable_exceptions: tuple = (Exception,)
    non_retryable_exceptions: tuple = (ValidationError,)

    def is_retryable(self, error: BaseException) -> bool:
        """Check if an error is retryable."""
        # Non-retryable takes precedence
        if isinstance(error, self.non_retryable_exceptions):
            return False

        return isinstance(error, self.retryable_exceptions)

    @classmethod
    def from_config(cls, config: "RetryConfig") -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            delay=config.delay_ms / 1000.0,
            timeout=config.operation_timeout_seconds,
        )


WINDOW_RETRY_POLICY = RetryPolicy(max_attempts=3, delay=0.5)


def _discard_result(task: "asyncio.Future[Any]") -> None:
    """Consume the outcome of an abandoned operation so it is not reported as unhandled."""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug("Abandoned operation finished with error", error=str(error))


async def with_timeout(
    operation: Awaitable[T],
    limit: float,
    name: str = "operation",
) -> T:
    """
    Race an operation against a timer.

    Soft cancellation only: when the timer wins the operation keeps running
    in the background and its eventual result is discarded.

    Raises:
        OperationTimeoutError: if ``limit`` seconds elapse first
    """
    task = asyncio.ensure_future(operation)
    try:
        return await asyncio.wait_for(asyncio.shield(task), timeout=limit)
    except asyncio.TimeoutError:
        task.add_done_callback(_discard_result)
        logger.warning("Operation timed out", operation=name, limit=limit)
        raise OperationTimeoutError(limit, name) from None


async def _invoke(operation: Callable[[], Union[Awaitable[T], T]]) -> T:
    result = operation()
    if inspect.isawaitable(result):
        return await result
    return result


async def with_retry(
    window_manager: "BaseWindowManager",
    operation: Callable[[], Union[Awaitable[T], T]],
    target: "WindowHandle",
    require_focus: bool = False,
    policy: Optional[RetryPolicy] = None,
) -> T:
    """
    Run ``operation`` against ``target`` with liveness checks and fixed backoff.

    Before each attempt the target must still respond (fresh lookup by pid);
    a dead window counts as a failed attempt and the operation is not called.
    With ``require_focus`` the window is re-focused before each attempt.

    Raises:
        ValidationError: immediately, never retried
        The last observed error once all attempts are exhausted, or
        RetryExhaustedError if none was captured.
    """
    policy = policy or WINDOW_RETRY_POLICY
    last_error: Optional[BaseException] = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            if not await window_manager.is_window_responding(target):
                raise WindowResponseError(f"process {target.process_id}")

            if require_focus and not await window_manager.focus_window(target):
                raise WindowFocusError(f"process {target.process_id} did not take focus")

            if policy.timeout is not None:
                return await with_timeout(_invoke(operation), policy.timeout)
            return await _invoke(operation)

        except Exception as e:
            last_error = e

            if not policy.is_retryable(e):
                logger.warning(
                    "Non-retryable error",
                    error=str(e),
                    attempt=attempt,
                )
                raise

            if attempt >= policy.max_attempts:
                break

            logger.warning(
                "Retry scheduled",
                attempt=attempt,
                max_attempts=policy.max_attempts,
                delay=policy.delay,
                process_id=target.process_id,
                error=str(e),
            )
            await asyncio.sleep(policy.delay)

    logger.error(
        "Operation failed after retries",
        attempts=policy.max_attempts,
        process_id=target.process_id,
        error=str(last_error) if last_error else None,
    )
    if last_error is not None:
        raise last_error
    raise RetryExhaustedError(policy.max_attempts)
