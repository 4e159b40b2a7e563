#!/usr/bin/env python3
"""Resilience Patterns for line reassignment.

This module provides the bounded retry and failure-isolation helpers used
across the workflow and the automation host client:
    - Bounded-attempt retry that maps the final failure to ExhaustedRetryError
    - Retry with exponential backoff (idempotent reads only)
    - Circuit breaker
    - Timeout wrapper

Example:
    # Commit a candidate, regenerating on collision, at most 10 attempts
    value = await retry_with_budget(
        commit,
        max_attempts=10,
        retryable_exceptions=(RemoteRejectionError,),
        on_retry=lambda exc, attempt: regenerate(),
        exhausted_message="unable to find a free parked extension",
    )

    # Circuit breaker
    circuit = CircuitBreaker(failure_threshold=5, timeout=60)
    result = await circuit.call(fetch_rows)
"""
import asyncio
import logging
import random
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .exceptions import (
    CircuitOpenError,
    ExhaustedRetryError,
    NetworkError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ============================================
# Bounded-Attempt Retry
# ============================================

async def retry_with_budget(
    func: Callable[[int], Awaitable[T]],
    *,
    max_attempts: int,
    retryable_exceptions: tuple = (Exception,),
    on_retry: Optional[Callable[[Exception, int], None]] = None,
    exhausted_message: str = "retry budget exhausted",
) -> T:
    """Call func up to max_attempts times, failing with ExhaustedRetryError.

    func receives the 1-based attempt number. A retryable failure before the
    last attempt invokes on_retry(exc, attempt) and tries again with no delay.
    The failure of the final attempt is raised as ExhaustedRetryError with the
    last exception chained as its cause. Non-retryable exceptions propagate
    immediately, untouched.

    Args:
        func: Async callable taking the attempt number
        max_attempts: Total attempts allowed (must be >= 1)
        retryable_exceptions: Exception types that consume one attempt
        on_retry: Callback run between attempts (e.g. to pick a new candidate)
        exhausted_message: Message for the ExhaustedRetryError

    Returns:
        Result of the first successful call

    Raises:
        ExhaustedRetryError: When every attempt failed with a retryable error
        ValueError: If max_attempts < 1
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        try:
            return await func(attempt)
        except retryable_exceptions as e:
            if attempt >= max_attempts:
                logger.error(
                    f"All {max_attempts} attempts failed. Last error: {e}"
                )
                raise ExhaustedRetryError(
                    exhausted_message,
                    attempts=max_attempts,
                    cause=e,
                )

            logger.warning(f"Attempt {attempt}/{max_attempts} failed: {e}")
            if on_retry:
                on_retry(e, attempt)

    raise RuntimeError("Retry logic error")


# ============================================
# Retry with Exponential Backoff
# ============================================

DEFAULT_RETRYABLE_EXCEPTIONS = (
    NetworkError,
    asyncio.TimeoutError,
    ConnectionResetError,
)


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args,
    max_attempts: int = 3,
    backoff_factor: float = 2.0,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    retryable_exceptions: tuple = DEFAULT_RETRYABLE_EXCEPTIONS,
    **kwargs,
) -> T:
    """Retry an async function call with exponential backoff.

    Only safe for idempotent calls. Actions against the backends are never
    routed through here.

    Args:
        func: Async function to call
        *args: Arguments to pass to func
        max_attempts: Maximum attempts
        backoff_factor: Delay multiplier
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        retryable_exceptions: Exceptions to retry on
        **kwargs: Keyword arguments to pass to func

    Returns:
        Result from func
    """
    delay = initial_delay

    for attempt in range(1, max_attempts + 1):
        try:
            return await func(*args, **kwargs)

        except retryable_exceptions as e:
            if attempt >= max_attempts:
                raise

            actual_delay = min(delay * (0.5 + random.random()), max_delay)
            logger.warning(
                f"Retry {attempt}/{max_attempts}: {e}. Waiting {actual_delay:.1f}s"
            )
            await asyncio.sleep(actual_delay)
            delay = min(delay * backoff_factor, max_delay)

    raise RuntimeError("Retry logic error")


# ============================================
# Circuit Breaker
# ============================================

class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation, requests pass through
    OPEN = "open"          # Failing, requests rejected immediately
    HALF_OPEN = "half_open"  # Testing if service recovered


class CircuitBreaker:
    """Circuit breaker to prevent hammering an unavailable automation host.

    State Transitions:
        CLOSED -> OPEN: When failure_count >= failure_threshold
        OPEN -> HALF_OPEN: When timeout expires
        HALF_OPEN -> CLOSED: When success_threshold test requests succeed
        HALF_OPEN -> OPEN: When a test request fails
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: float = 60.0,
        success_threshold: int = 1,
        name: str = "default",
    ):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.success_threshold = success_threshold
        self.name = name

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: Optional[datetime] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        """Get current circuit state."""
        return self._state

    @property
    def is_open(self) -> bool:
        """Check if circuit is open (rejecting requests)."""
        return self._state == CircuitState.OPEN

    @property
    def failure_count(self) -> int:
        """Get current failure count."""
        return self._failure_count

    def _should_attempt(self) -> bool:
        if self._state == CircuitState.CLOSED:
            return True

        if self._state == CircuitState.OPEN:
            if self._last_failure_time:
                elapsed = (datetime.now(timezone.utc) - self._last_failure_time).total_seconds()
                if elapsed >= self.timeout:
                    return True
            return False

        return True

    async def call(
        self,
        func: Callable[..., Awaitable[T]],
        *args,
        failure_exceptions: tuple = (NetworkError,),
        **kwargs,
    ) -> T:
        """Execute function through the circuit breaker.

        Only failure_exceptions count against the circuit; any other error
        (a rejected action, a bad request) says nothing about host health and
        passes through without tripping it.

        Raises:
            CircuitOpenError: If circuit is open and timeout hasn't passed
        """
        async with self._lock:
            if not self._should_attempt():
                reset_at = None
                if self._last_failure_time:
                    reset_at = self._last_failure_time + timedelta(seconds=self.timeout)

                raise CircuitOpenError(
                    f"Circuit breaker '{self.name}' is open",
                    reset_at=reset_at,
                    failure_count=self._failure_count,
                )

            if self._state == CircuitState.OPEN:
                logger.info(f"Circuit '{self.name}' transitioning to HALF_OPEN")
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0

        try:
            result = await func(*args, **kwargs)
        except failure_exceptions as e:
            await self._on_failure(e)
            raise

        await self._on_success()
        return result

    async def _on_success(self):
        async with self._lock:
            self._failure_count = 0

            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.success_threshold:
                    logger.info(f"Circuit '{self.name}' closing")
                    self._state = CircuitState.CLOSED
                    self._success_count = 0

    async def _on_failure(self, exception: Exception):
        async with self._lock:
            self._failure_count += 1
            self._last_failure_time = datetime.now(timezone.utc)

            if self._state == CircuitState.HALF_OPEN:
                logger.warning(
                    f"Circuit '{self.name}' reopening after test failure: {exception}"
                )
                self._state = CircuitState.OPEN

            elif self._state == CircuitState.CLOSED:
                if self._failure_count >= self.failure_threshold:
                    logger.warning(
                        f"Circuit '{self.name}' opening after "
                        f"{self._failure_count} failures"
                    )
                    self._state = CircuitState.OPEN

    def reset(self):
        """Manually reset the circuit breaker to closed state."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time = None
        logger.info(f"Circuit '{self.name}' manually reset")

    def get_status(self) -> dict[str, Any]:
        """Get circuit breaker status for monitoring."""
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.failure_threshold,
            "timeout_seconds": self.timeout,
            "last_failure_at": (
                self._last_failure_time.isoformat()
                if self._last_failure_time
                else None
            ),
        }


# ============================================
# Timeouts
# ============================================

async def with_timeout(
    func: Callable[..., Awaitable[T]],
    timeout_seconds: float,
    *args,
    **kwargs,
) -> T:
    """Execute async function with timeout.

    Raises:
        asyncio.TimeoutError: If the call does not finish in time
    """
    return await asyncio.wait_for(
        func(*args, **kwargs),
        timeout=timeout_seconds,
    )


__all__ = [
    "retry_with_budget",
    "retry_async",
    "DEFAULT_RETRYABLE_EXCEPTIONS",
    "CircuitState",
    "CircuitBreaker",
    "with_timeout",
]
