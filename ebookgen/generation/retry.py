"""Retry combinator with per-attempt timeout and exponential delay."""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from ebookgen.errors import GenerationError, GeneratorConfigError, StoreError
from ebookgen.utils.logging import generation_logger as logger

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Attempt n (0-based) runs under timeout min(timeout * multiplier**n, max_timeout).
    After a failed attempt n, wait min(base_delay * 2**n, max_delay).
    """
    max_attempts: int = 4
    timeout: float = 15.0
    timeout_multiplier: float = 1.5
    max_timeout: float = 60.0
    base_delay: float = 1.0
    max_delay: float = 10.0

    def timeout_for(self, attempt: int) -> float:
        return min(self.timeout * self.timeout_multiplier ** attempt, self.max_timeout)

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * 2 ** attempt, self.max_delay)


class RetryExhausted(GenerationError):
    """All attempts failed. `last_error` holds the final failure."""

    def __init__(self, attempts: int, last_error: Exception):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")


NON_RETRYABLE: Tuple[Type[BaseException], ...] = (GeneratorConfigError, StoreError)


async def retry_with_backoff(
    func: Callable[[int], Awaitable[T]],
    policy: RetryPolicy,
    on_failure: Optional[Callable[[int, Exception], None]] = None,
    non_retryable: Tuple[Type[BaseException], ...] = NON_RETRYABLE,
    label: str = "operation",
) -> T:
    """
    Call `func(attempt)` until it succeeds or `policy.max_attempts` is reached.

    Timeouts and ordinary exceptions are retried. Exceptions listed in
    `non_retryable` propagate immediately.

    Raises:
        RetryExhausted: every attempt failed
    """
    last_error: Exception = GenerationError("no attempts made")

    for attempt in range(policy.max_attempts):
        timeout = policy.timeout_for(attempt)
        try:
            return await asyncio.wait_for(func(attempt), timeout=timeout)
        except non_retryable:
            raise
        except asyncio.TimeoutError:
            last_error = GenerationError(f"{label} timed out after {timeout:.1f}s")
        except Exception as e:
            last_error = e

        if on_failure:
            on_failure(attempt, last_error)

        if attempt < policy.max_attempts - 1:
            delay = policy.delay_for(attempt)
            logger.warning(
                f"Retrying {label}",
                attempt=attempt + 1,
                max_attempts=policy.max_attempts,
                delay=delay,
                error=str(last_error),
            )
            await asyncio.sleep(delay)

    raise RetryExhausted(policy.max_attempts, last_error)
