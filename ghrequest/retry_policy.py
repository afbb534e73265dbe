"""Rate-limit and retry policy.

``RetryPolicy.decide`` is a pure decision over one response. ``retrying``
wires those decisions into a tenacity controller so the engine never loops
by hand. Retry-After and X-RateLimit-Reset headers win over exponential
backoff when present.
"""

from __future__ import annotations

import email.utils
import time
from typing import Any, Callable

import httpx
import tenacity
from tenacity import RetryCallState

from ghrequest.errors import classify
from ghrequest.models import ErrorKind, RawPage, RetryConfig, RetryDecision


class RetryPolicy:
    """Decides whether a response or transport failure is retried.

    Args:
        config: Retry cap and backoff settings.
        clock: Returns the current epoch time. Used to turn reset timestamps
            and HTTP dates into delays.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or RetryConfig()
        self._clock = clock

    @property
    def max_retries(self) -> int:
        return self._config.max_retries

    def decide(self, page: RawPage, retries_done: int) -> RetryDecision:
        """Decide on one response given how many retries already happened."""
        error = classify(page)
        if error is None:
            return RetryDecision(should_retry=False, reason="success")
        if not error.retryable:
            return RetryDecision(should_retry=False, reason=f"{error.kind.value} is not retryable")
        if retries_done >= self._config.max_retries:
            return RetryDecision(
                should_retry=False,
                reason=f"retry cap of {self._config.max_retries} reached",
            )

        if error.kind is ErrorKind.RATE_LIMITED:
            delay = self.header_delay(page.headers)
            if delay is not None:
                wait = max(delay, self._config.min_backoff)
                if wait > self._config.max_rate_limit_wait:
                    return RetryDecision(
                        should_retry=False,
                        reason=(
                            f"rate limit resets in {wait:.0f}s, beyond the "
                            f"{self._config.max_rate_limit_wait:.0f}s wait limit"
                        ),
                    )
                return RetryDecision(
                    should_retry=True,
                    wait=wait,
                    reason=f"rate limited (status {page.status_code})",
                )

        return RetryDecision(
            should_retry=True,
            wait=self.backoff(retries_done),
            reason=f"{error.kind.value} (status {page.status_code})",
        )

    def decide_exception(self, exc: BaseException, retries_done: int) -> RetryDecision:
        """Transport failures back off exponentially. Anything else propagates."""
        if not isinstance(exc, httpx.TransportError):
            return RetryDecision(should_retry=False, reason=f"{type(exc).__name__} is not retryable")
        if retries_done >= self._config.max_retries:
            return RetryDecision(
                should_retry=False,
                reason=f"retry cap of {self._config.max_retries} reached",
            )
        return RetryDecision(
            should_retry=True,
            wait=self.backoff(retries_done),
            reason=f"network error: {type(exc).__name__}",
        )

    def decision_for(self, retry_state: RetryCallState) -> RetryDecision:
        """Decision for the outcome of the attempt tenacity just made."""
        outcome = retry_state.outcome
        retries_done = retry_state.attempt_number - 1
        if outcome is None:
            return RetryDecision(should_retry=False, reason="no outcome")
        if outcome.failed:
            return self.decide_exception(outcome.exception(), retries_done)
        return self.decide(outcome.result(), retries_done)

    def backoff(self, retries_done: int) -> float:
        """Exponential delay: base_delay doubled per retry, capped at max_backoff."""
        return min(self._config.base_delay * (2 ** retries_done), self._config.max_backoff)

    def header_delay(self, headers: httpx.Headers) -> float | None:
        """Delay in seconds from Retry-After or X-RateLimit-Reset, if either parses."""
        retry_after = headers.get("retry-after")
        if retry_after is not None:
            retry_after = retry_after.strip()
            try:
                return max(0.0, float(retry_after))
            except ValueError:
                try:
                    when = email.utils.parsedate_to_datetime(retry_after)
                    return max(0.0, when.timestamp() - self._clock())
                except (TypeError, ValueError):
                    pass

        reset = headers.get("x-ratelimit-reset")
        if reset is not None:
            try:
                return max(0.0, float(reset.strip()) - self._clock())
            except ValueError:
                return None
        return None

    def retrying(
        self,
        sleep: Callable[[float], None],
        before_sleep: Callable[[RetryCallState], None] | None = None,
    ) -> tenacity.Retrying:
        """Build a tenacity controller driven by this policy.

        The attempt stop is a backstop only: ``decide`` already refuses once
        the cap is reached, so the last page or exception is what surfaces.
        """
        return tenacity.Retrying(
            retry=_RetryOnDecision(self),
            wait=_WaitFromDecision(self),
            stop=tenacity.stop_after_attempt(self._config.max_retries + 1),
            sleep=sleep,
            before_sleep=before_sleep,
            retry_error_callback=_last_outcome,
        )


class _RetryOnDecision(tenacity.retry_base):
    def __init__(self, policy: RetryPolicy) -> None:
        self._policy = policy

    def __call__(self, retry_state: RetryCallState) -> bool:
        return self._policy.decision_for(retry_state).should_retry


class _WaitFromDecision(tenacity.wait.wait_base):
    def __init__(self, policy: RetryPolicy) -> None:
        self._policy = policy

    def __call__(self, retry_state: RetryCallState) -> float:
        return self._policy.decision_for(retry_state).wait


def _last_outcome(retry_state: RetryCallState) -> Any:
    # Re-raises the last exception, or returns the last page.
    return retry_state.outcome.result()
