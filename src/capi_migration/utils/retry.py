"""Retry logic using tenacity.

Two flavours are provided:

- ``retry_with_backoff`` / ``retry_api_call``: decorators retrying transient
  API failures (5xx, network trouble, cloud throttling) with jittered
  exponential backoff.
- ``RetryPolicy`` / ``wait_until``: a bounded constant-interval poll that keeps
  going while the check reports "not done yet", stops immediately on a
  permanent failure, and gives up after a maximum elapsed time.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_fixed,
    wait_random_exponential,
)

from capi_migration.client.exceptions import (
    NetworkError,
    NotReadyError,
    ServerError,
    TransientCloudError,
)
from capi_migration.utils.logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])
T = TypeVar("T")


def retry_with_backoff(
    max_attempts: int = 5,
    min_wait: float = 1,
    max_wait: float = 30,
    retry_on_exceptions: tuple = (NetworkError, ServerError, TransientCloudError),
) -> Callable[[F], F]:
    """Retry decorator with exponential backoff and jitter for async callables.

    Args:
        max_attempts: Maximum number of attempts
        min_wait: Minimum wait time in seconds
        max_wait: Maximum wait time in seconds
        retry_on_exceptions: Tuple of exception types to retry on

    Returns:
        Decorated function with retry logic
    """

    def decorator(func: F) -> F:
        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            async for attempt_obj in AsyncRetrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait_random_exponential(multiplier=1, min=min_wait, max=max_wait),
                retry=retry_if_exception_type(retry_on_exceptions),
                reraise=True,
            ):
                with attempt_obj:
                    attempt = attempt_obj.retry_state.attempt_number
                    if attempt > 1:
                        logger.info(
                            "retry_attempt",
                            function=func.__name__,
                            attempt=attempt,
                            max_attempts=max_attempts,
                        )
                    return await func(*args, **kwargs)

        return async_wrapper  # type: ignore

    return decorator


@dataclass(frozen=True)
class RetryPolicy:
    """Constant-interval polling bounded by a maximum elapsed time.

    Attributes:
        interval: Seconds between checks
        max_elapsed: Seconds after which the wait gives up
    """

    interval: float = 10.0
    max_elapsed: float = 180.0


def _log_pending(description: str) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        logger.debug(
            "wait_pending",
            description=description,
            attempt=retry_state.attempt_number,
            reason=str(outcome.exception()) if outcome is not None else None,
        )

    return before_sleep


async def wait_until(
    check: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    description: str = "condition",
) -> T:
    """Poll ``check`` until it returns, fails permanently, or time runs out.

    ``check`` signals "not done yet" by raising a :class:`NotReadyError`
    subclass. Any other exception (notably ``PermanentStepError``) stops the
    wait immediately and propagates. When ``policy.max_elapsed`` is exceeded
    the last ``NotReadyError`` is re-raised, so callers still see a retryable
    condition.

    Args:
        check: Coroutine function performing one observation
        policy: Interval and deadline
        description: Human readable name for logs

    Returns:
        Whatever ``check`` returned on success
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_delay(policy.max_elapsed),
        wait=wait_fixed(policy.interval),
        retry=retry_if_exception_type(NotReadyError),
        before_sleep=_log_pending(description),
        reraise=True,
    ):
        with attempt:
            result = await check()

    return result


# Pre-configured decorators for common use cases
retry_api_call = retry_with_backoff(max_attempts=5, min_wait=1, max_wait=30)
retry_cloud_call = retry_with_backoff(max_attempts=3, min_wait=2, max_wait=20)
