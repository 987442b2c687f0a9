"""
Retry policy for GitHub rate limiting.

GitHub enforces one quota per client, so the retry bound is kept in a
RateLimitBudget shared by every request of a run rather than per call.
"""

import logging
import threading
import time
from collections.abc import Callable
from typing import Any, TypeVar

from tenacity import RetryCallState, Retrying, retry_if_exception, wait_incrementing
from tenacity.stop import stop_base
from tenacity.wait import wait_base

from resonite_mod_updater.core.exceptions import (
    GitHubRateLimitError,
    RateLimitExhaustedError,
    RunCancelledError,
    is_retriable_error,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_SECONDS = 60.0


class RateLimitBudget:
    """Thread-safe count of consecutive rate-limited responses."""

    def __init__(self, max_retries: int = DEFAULT_MAX_RETRIES):
        self.max_retries = max_retries
        self._lock = threading.Lock()
        self._consecutive_hits = 0
        self._total_hits = 0

    @property
    def consecutive_hits(self) -> int:
        with self._lock:
            return self._consecutive_hits

    @property
    def total_hits(self) -> int:
        with self._lock:
            return self._total_hits

    @property
    def exhausted(self) -> bool:
        """Return True once more than max_retries hits happened in a row."""
        with self._lock:
            return self._consecutive_hits > self.max_retries

    def record_hit(self) -> int:
        """Record a rate-limited response and return the consecutive count."""
        with self._lock:
            self._consecutive_hits += 1
            self._total_hits += 1
            return self._consecutive_hits

    def record_response(self) -> None:
        """Record a response that was not rate limited."""
        with self._lock:
            self._consecutive_hits = 0


class stop_when_budget_exhausted(stop_base):
    """Stop retrying once the shared budget is used up."""

    def __init__(self, budget: RateLimitBudget):
        self.budget = budget

    def __call__(self, retry_state: RetryCallState) -> bool:
        return self.budget.exhausted


class wait_retry_after(wait_base):
    """Honor the server's retry delay, otherwise defer to a fallback wait."""

    def __init__(self, fallback: wait_base):
        self.fallback = fallback

    def __call__(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(error, GitHubRateLimitError) and error.retry_after is not None:
            return max(0.0, float(error.retry_after))
        return self.fallback(retry_state)


class RetryPolicy:
    """
    Bounded retry with backoff for rate-limited GitHub calls.

    Retries on:
    - GitHubRateLimitError (403/429 from GitHub)

    Never retries authentication failures or any other error. After
    max_retries consecutive rate-limited responses the call raises
    RateLimitExhaustedError, which is fatal for the run.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        budget: RateLimitBudget | None = None,
        sleep: Callable[[float], None] = time.sleep,
        on_retry: Callable[[int, float], None] | None = None,
        cancel_event: threading.Event | None = None,
    ):
        """
        Initialize the retry policy.

        Args:
            max_retries: Retries allowed after the first rate-limited response
            retry_delay_seconds: Base of the escalating delay used when the
                server gives no retry hint
            budget: Shared budget; a new one is created if omitted
            sleep: Sleep function, replaceable in tests
            on_retry: Optional callback receiving (attempt, delay_seconds)
            cancel_event: When given, waits end early once it is set and
                the call raises RunCancelledError
        """
        self.budget = budget or RateLimitBudget(max_retries)
        self.retry_delay_seconds = retry_delay_seconds
        self._sleep = sleep
        self._on_retry = on_retry
        self._cancel_event = cancel_event

    @property
    def max_retries(self) -> int:
        return self.budget.max_retries

    def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Invoke fn, retrying while GitHub reports rate limiting.

        Raises:
            RateLimitExhaustedError: If the retry budget runs out
            RunCancelledError: If the cancel event is set during a wait
        """

        def attempt() -> T:
            try:
                result = fn(*args, **kwargs)
            except GitHubRateLimitError:
                self.budget.record_hit()
                raise
            except Exception:
                self.budget.record_response()
                raise
            self.budget.record_response()
            return result

        retrying = Retrying(
            stop=stop_when_budget_exhausted(self.budget),
            wait=wait_retry_after(
                wait_incrementing(
                    start=self.retry_delay_seconds,
                    increment=self.retry_delay_seconds,
                )
            ),
            retry=retry_if_exception(is_retriable_error),
            sleep=self._pause,
            before_sleep=self._before_sleep,
            reraise=True,
        )

        try:
            return retrying(attempt)
        except GitHubRateLimitError as e:
            raise RateLimitExhaustedError(
                url=e.url,
                attempts=self.budget.consecutive_hits,
            ) from e

    def _pause(self, seconds: float) -> None:
        """Wait before the next attempt, waking early on cancellation."""
        if self._cancel_event is None:
            self._sleep(seconds)
        elif self._cancel_event.wait(seconds):
            raise RunCancelledError("Run cancelled while waiting for the rate limit to reset")

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        """Report an upcoming retry."""
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        attempt = retry_state.attempt_number
        logger.warning(
            f"Attempt {attempt}: GitHub rate limit hit, retrying in {delay:.0f}s"
        )
        if self._on_retry:
            self._on_retry(attempt, delay)
