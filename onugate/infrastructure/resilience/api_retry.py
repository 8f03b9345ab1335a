"""Service for executing upstream calls with automatic retries.

Implements exponential backoff for throttling signalled by the upstream
(free-text rate-limit messages) and for transient transport failures.
Anything else (a plain rejection, a programming error) is returned or raised
immediately. Cache fallback is the caller's job once retries are exhausted.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from onugate.domain.errors import GatewayError, RateLimitExceeded, TransportError
from onugate.domain.events.api_events import (
    CallDeferred,
    RetryScheduled,
    UpstreamCallFailed,
    UpstreamCallInitiated,
    UpstreamCallSucceeded,
    dispatch_event,
)
from onugate.infrastructure.config.settings import DEFAULT_BASE_DELAY_SECONDS, DEFAULT_MAX_ATTEMPTS
from onugate.infrastructure.resilience.rate_limit_signals import (
    is_rate_limited,
    is_rate_limited_result,
    result_message,
)
from onugate.infrastructure.resilience.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Delay after failed attempt ``attempt`` (0-indexed): base * 2**attempt."""
    return base_delay * (2 ** attempt)


class ApiRetryService:
    """Handles upstream call execution with pacing, retries and backoff."""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
        rate_limiter: Optional[RateLimiter] = None,
        sleep_func: SleepFunc = asyncio.sleep,
    ):
        """Initializes the ApiRetryService.

        Args:
            max_attempts: Total attempts, including the first one.
            base_delay: Delay in seconds after the first failed attempt; doubles each time.
            rate_limiter: Optional outbound pacing applied before every attempt.
            sleep_func: Coroutine used for backoff sleeps (injectable for tests).
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.rate_limiter = rate_limiter
        self.sleep_func = sleep_func

        logger.info(
            f"ApiRetryService initialized: max_attempts={max_attempts}, base_delay={base_delay}s, "
            f"pacing={'on' if rate_limiter else 'off'}"
        )

    async def _wait_for_pacing(self, endpoint: str) -> None:
        if not self.rate_limiter:
            return
        wait_duration = await self.rate_limiter.get_wait_time()
        if wait_duration > 0:
            dispatch_event(CallDeferred(endpoint=endpoint, wait_time_seconds=wait_duration))
        await self.rate_limiter.wait_for_permission()

    async def execute_with_retry(
        self,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        endpoint_name: Optional[str] = None,
        **kwargs: Any
    ) -> Any:
        """Executes an async upstream call with retries.

        Args:
            func: The async function (upstream call) to execute.
            *args: Positional arguments for the function.
            endpoint_name: Name of the upstream endpoint, for logging/events.
            **kwargs: Keyword arguments for the function.

        Returns:
            The first result that is not a rate-limit signal.

        Raises:
            RateLimitExceeded: If every attempt was throttled.
            TransportError: If the last attempt failed at the transport level.
            Exception: Any other error, raised on the first occurrence.
        """
        endpoint = endpoint_name or getattr(func, "__name__", "upstream")
        last_error: Optional[GatewayError] = None

        for attempt in range(self.max_attempts):
            await self._wait_for_pacing(endpoint)
            dispatch_event(UpstreamCallInitiated(endpoint=endpoint, attempt_number=attempt + 1))
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except TransportError as e:
                last_error = e
                logger.warning(f"Transport error calling {endpoint} on attempt {attempt + 1}/{self.max_attempts}: {e}")
            except GatewayError:
                raise
            except Exception as e:
                if not is_rate_limited(str(e)):
                    logger.error(f"Non-retryable error calling {endpoint} on attempt {attempt + 1}: {e}")
                    dispatch_event(UpstreamCallFailed(endpoint=endpoint, error_type=type(e).__name__, error_message=str(e)))
                    raise
                last_error = RateLimitExceeded(str(e), attempts=attempt + 1)
                last_error.__cause__ = e
                logger.warning(f"Upstream throttled {endpoint} on attempt {attempt + 1}/{self.max_attempts}: {e}")
            else:
                if not is_rate_limited_result(result):
                    latency_ms = (time.perf_counter() - start_time) * 1000
                    dispatch_event(UpstreamCallSucceeded(endpoint=endpoint, latency_ms=latency_ms))
                    return result
                message = result_message(result)
                last_error = RateLimitExceeded(message, attempts=attempt + 1)
                logger.warning(f"Upstream throttled {endpoint} on attempt {attempt + 1}/{self.max_attempts}: {message}")

            if attempt < self.max_attempts - 1:
                delay = backoff_delay(attempt, self.base_delay)
                dispatch_event(RetryScheduled(endpoint=endpoint, attempt_number=attempt + 1, delay_seconds=delay))
                logger.warning(f"Retrying {endpoint} in {delay:.1f}s...")
                await self.sleep_func(delay)

        logger.error(f"Max attempts ({self.max_attempts}) reached for {endpoint}. Last error: {last_error}")
        dispatch_event(UpstreamCallFailed(
            endpoint=endpoint,
            error_type=type(last_error).__name__,
            error_message=str(last_error),
        ))
        if isinstance(last_error, RateLimitExceeded):
            last_error.attempts = self.max_attempts
        raise last_error


async def with_retry(
    operation: Callable[[], Awaitable[Any]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
    sleep_func: SleepFunc = asyncio.sleep,
) -> Any:
    """Runs ``operation`` under a one-off retry policy."""
    service = ApiRetryService(max_attempts=max_attempts, base_delay=base_delay, sleep_func=sleep_func)
    return await service.execute_with_retry(operation)
