"""
Bounded retry with exponential backoff.

Request-path DynamoDB calls are never retried. The one place that waits on
the backend is table provisioning: a freshly created table is unusable
until DynamoDB reports it ACTIVE, so the provisioner polls through
retry_async with a small, fixed number of attempts and gives up with
RetryExhaustedException once the bound is reached.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """
    How often and how patiently to retry.

    Attributes:
        max_attempts: Total number of calls, the first one included.
        initial_delay: Seconds to wait before the second call.
        exponential_base: Growth factor of the delay between calls.
        max_delay: Upper bound on a single delay, or None for no bound.
        retryable_exceptions: Exception types worth another call. Anything
            else propagates on the spot.
    """
    max_attempts: int = 3
    initial_delay: float = 1.0
    exponential_base: float = 2.0
    max_delay: Optional[float] = None
    retryable_exceptions: Tuple[Type[Exception], ...] = field(
        default_factory=lambda: (Exception,)
    )


class RetryExhaustedException(Exception):
    """
    Raised when every attempt failed with a retryable exception.

    Attributes:
        attempts: How many calls were made.
        last_exception: What the final call raised.
        operation_name: Name used for the operation in logs.
    """

    def __init__(
        self,
        message: str,
        attempts: int,
        last_exception: Exception,
        operation_name: Optional[str] = None
    ):
        self.attempts = attempts
        self.last_exception = last_exception
        self.operation_name = operation_name
        super().__init__(message)


def calculate_delay(
    attempt: int,
    initial_delay: float,
    exponential_base: float,
    max_delay: Optional[float] = None
) -> float:
    """
    Delay in seconds after the 0-indexed ``attempt`` failed.

    ``initial_delay * exponential_base ** attempt``, capped at ``max_delay``.
    The provisioner's defaults (1s, base 2, cap 8s) give 1, 2, 4, 8, 8, ...
    """
    delay = initial_delay * (exponential_base ** attempt)
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    config: Optional[RetryConfig] = None,
    operation_name: Optional[str] = None,
    **kwargs: Any
) -> T:
    """
    Await ``func(*args, **kwargs)`` until it succeeds or attempts run out.

    There is no sleep after the last attempt.

    Example:
        table = await retry_async(
            describe_active,
            config=RetryConfig(max_attempts=6, max_delay=8.0,
                               retryable_exceptions=(TableNotReady,)),
            operation_name="wait_for_table:sessions",
        )

    Returns:
        Whatever the first successful call returned.

    Raises:
        RetryExhaustedException: If every attempt raised a retryable
            exception, or max_attempts is below 1.
    """
    config = config or RetryConfig()
    op_name = operation_name or getattr(func, "__name__", repr(func))
    last_exception: Optional[Exception] = None

    for attempt in range(config.max_attempts):
        try:
            return await func(*args, **kwargs)
        except config.retryable_exceptions as e:
            last_exception = e
            if attempt + 1 >= config.max_attempts:
                break

            delay = calculate_delay(
                attempt, config.initial_delay, config.exponential_base, config.max_delay
            )
            logger.warning(
                "%s: attempt %d/%d failed (%s), next try in %.2fs",
                op_name,
                attempt + 1,
                config.max_attempts,
                e,
                delay,
                extra={
                    "operation": op_name,
                    "attempt": attempt + 1,
                    "max_attempts": config.max_attempts,
                    "delay_seconds": delay,
                    "error_type": type(e).__name__,
                },
            )
            await asyncio.sleep(delay)

    logger.error(
        "%s: giving up after %d attempts",
        op_name,
        config.max_attempts,
        extra={
            "operation": op_name,
            "attempts": config.max_attempts,
            "last_error": str(last_exception),
        },
    )
    raise RetryExhaustedException(
        f"Operation '{op_name}' failed after {config.max_attempts} attempts",
        attempts=config.max_attempts,
        last_exception=last_exception or Exception("No attempts were made"),
        operation_name=op_name,
    ) from last_exception
