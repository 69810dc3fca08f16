"""
Bounded retry policy for calls to the generation collaborator.

Wraps tenacity's AsyncRetrying so the attempt count, backoff schedule and
sleep function are explicit, and a test can run the whole schedule with a
fake sleep.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Type

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    stop_any,
    wait_exponential,
)

from grant_discovery.common.error_handling import TransientGenerationError
from grant_discovery.common.logger import get_logger

logger = get_logger(__name__, stage="retry")

DEFAULT_RETRYABLE: Tuple[Type[BaseException], ...] = (
    TransientGenerationError,
    asyncio.TimeoutError,
)


class RetryPolicy:
    """
    Retry with exponential backoff on transient failures.

    Delay before attempt n+1 is base_delay * 2**(n-1), capped at max_delay.
    The last exception is re-raised once attempts are exhausted.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        retry_on: Tuple[Type[BaseException], ...] = DEFAULT_RETRYABLE,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.retry_on = retry_on
        self.sleep = sleep
        self.clock = clock

    def backoff_schedule(self) -> List[float]:
        """Delays slept between consecutive attempts."""
        return [
            min(self.max_delay, self.base_delay * (2 ** i))
            for i in range(self.max_attempts - 1)
        ]

    def _wait(self):
        return wait_exponential(
            multiplier=self.base_delay,
            min=self.base_delay,
            max=self.max_delay,
        )

    async def call(
        self,
        func: Callable[..., Awaitable[Any]],
        *args,
        deadline: Optional[float] = None,
        operation: str = "generation",
        **kwargs,
    ) -> Any:
        """
        Run `func(*args, **kwargs)` under this policy.

        Args:
            func: Coroutine function to call
            deadline: Optional monotonic instant; no backoff sleep may cross it
            operation: Name used in retry log lines
        """
        wait = self._wait()

        def _deadline_reached(retry_state: RetryCallState) -> bool:
            if deadline is None:
                return False
            return self.clock() + wait(retry_state) >= deadline

        def _log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0
            logger.warning(
                f"{operation} attempt {retry_state.attempt_number}/{self.max_attempts} "
                f"failed ({type(exc).__name__}: {exc}); retrying in {delay:.1f}s"
            )

        retrying = AsyncRetrying(
            stop=stop_any(stop_after_attempt(self.max_attempts), _deadline_reached),
            wait=wait,
            retry=retry_if_exception_type(self.retry_on),
            sleep=self.sleep,
            before_sleep=_log_retry,
            reraise=True,
        )
        return await retrying(func, *args, **kwargs)
