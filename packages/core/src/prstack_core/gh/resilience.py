"""Circuit breaker, retry policy and failure classification for GitHub calls.

The breaker is the only process-wide state in prstack. One instance is built
by the CLI and handed to every :class:`~prstack_core.gh.client.ForgeClient`;
concurrent enrichment workers record outcomes against it, so every
transition happens under its lock.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import requests
from github import GithubException, RateLimitExceededException
from github.GithubException import BadAttributeException

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerState:
    state: CircuitState
    failures: int
    last_failure: float | None


class CircuitBreaker:
    """closed -> open after ``max_failures`` consecutive failures,
    open -> half-open once ``reset_timeout`` seconds have passed,
    half-open -> closed on the next success, half-open -> open on the next failure.
    """

    def __init__(
        self,
        max_failures: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_failures = max_failures
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._last_failure: float | None = None

    def allow(self) -> bool:
        with self._lock:
            if self._state is CircuitState.OPEN:
                if self._clock() - (self._last_failure or 0.0) >= self.reset_timeout:
                    self._state = CircuitState.HALF_OPEN
                    logger.info("Circuit breaker half-open, allowing a trial request.")
                    return True
                return False
            return True

    def record_success(self) -> None:
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                logger.info("Circuit breaker closed after successful trial request.")
            self._state = CircuitState.CLOSED
            self._failures = 0

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            self._last_failure = self._clock()
            if self._state is CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                logger.warning("Trial request failed, circuit breaker re-opened.")
            elif self._state is CircuitState.CLOSED and self._failures >= self.max_failures:
                self._state = CircuitState.OPEN
                logger.warning(
                    "Circuit breaker opened after %d consecutive failures; pausing GitHub calls for %ss.",
                    self._failures,
                    self.reset_timeout,
                )

    def snapshot(self) -> CircuitBreakerState:
        with self._lock:
            return CircuitBreakerState(self._state, self._failures, self._last_failure)

    @property
    def state(self) -> CircuitState:
        return self.snapshot().state


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def backoff(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based), capped at ``max_delay``."""
        return min(self.base_delay * (2**attempt), self.max_delay)

    @classmethod
    def from_config(cls, config: dict) -> RetryPolicy:
        return cls(
            max_retries=int(config.get("max_retries", cls.max_retries)),
            base_delay=float(config.get("base_delay", cls.base_delay)),
            max_delay=float(config.get("max_delay", cls.max_delay)),
        )


def error_status(exc: BaseException) -> int | None:
    status = getattr(exc, "status", None)
    return status if isinstance(status, int) else None


def is_retryable(exc: BaseException) -> bool:
    """Network errors, 5xx and rate limiting are retryable; everything else is not."""
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, RateLimitExceededException):
        return True
    if isinstance(exc, BadAttributeException):
        return False
    if isinstance(exc, GithubException):
        status = error_status(exc)
        if status is None:
            return False
        return status == 429 or status >= 500
    return False


def rate_limit_wait(exc: BaseException, policy: RetryPolicy, now: Callable[[], float] = time.time) -> float | None:
    """Seconds until the rate-limit window resets, capped at ``policy.max_delay``.

    Returns None when ``exc`` carries no usable reset header.
    """
    if not isinstance(exc, GithubException) or not exc.headers:
        return None
    headers = {str(k).lower(): v for k, v in exc.headers.items()}
    reset = headers.get("x-ratelimit-reset")
    if reset is None:
        retry_after = headers.get("retry-after")
        if retry_after is None:
            return None
        try:
            return min(max(float(retry_after), 0.0), policy.max_delay)
        except ValueError:
            return None
    try:
        wait = float(reset) - now()
    except ValueError:
        return None
    return min(max(wait, 0.0), policy.max_delay)
