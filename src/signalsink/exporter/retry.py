# src/signalsink/exporter/retry.py
"""RetryManager: backoff scheduling and give-up rules for failed deliveries.

Workers never sleep through a backoff. A failed item goes back into its
queue with a future ready time, and the worker moves on. This module only
answers "retry, and after how long?" or "drop, and why?".

Delays come from tenacity's exponential-jitter wait strategy:
    delay(n) = min(max_backoff, initial_backoff * multiplier**(n-1) + U(0, jitter))
for the n-th failed attempt (n >= 1).
"""

from __future__ import annotations

from dataclasses import dataclass

from tenacity import RetryCallState, wait_exponential_jitter

from signalsink.contracts.config import RetryPolicy
from signalsink.contracts.errors import DeliveryError, HTTPStatusError


@dataclass(frozen=True, slots=True)
class RetryDecision:
    """Outcome of classifying one failed attempt.

    delay is only meaningful when retry is True. reason is only set when
    retry is False.
    """

    retry: bool
    delay: float = 0.0
    reason: str | None = None

    @classmethod
    def retry_after(cls, delay: float) -> RetryDecision:
        return cls(retry=True, delay=delay)

    @classmethod
    def drop(cls, reason: str) -> RetryDecision:
        return cls(retry=False, reason=reason)


class RetryManager:
    """Applies a RetryPolicy to failed delivery attempts.

    Example:
        manager = RetryManager(RetryPolicy(initial_backoff=1.0, multiplier=2.0, max_backoff=10.0, max_attempts=4))
        decision = manager.decide(attempts=1, elapsed=0.2, error=error)
        if decision.retry:
            queue.requeue(item, delay=decision.delay)
    """

    def __init__(self, policy: RetryPolicy) -> None:
        self._policy = policy
        self._wait = wait_exponential_jitter(
            multiplier=policy.initial_backoff,
            max=policy.max_backoff,
            exp_base=policy.multiplier,
            jitter=policy.jitter,
        )

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def backoff_delay(self, attempts: int) -> float:
        """Delay to apply after the given number of failed attempts.

        Args:
            attempts: Failed attempts so far (>= 1)
        """
        if attempts < 1:
            raise ValueError(f"attempts must be >= 1, got {attempts}")
        # The wait strategy only reads attempt_number from the call state
        state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})  # type: ignore[arg-type]
        state.attempt_number = attempts
        return float(self._wait(state))

    def is_retryable(self, error: BaseException) -> bool:
        """Whether the error class allows another attempt at all."""
        if isinstance(error, HTTPStatusError):
            return self._policy.is_retryable_status(error.status_code)
        if isinstance(error, DeliveryError):
            return error.retryable
        return False

    def decide(self, *, attempts: int, elapsed: float, error: BaseException) -> RetryDecision:
        """Classify a failed attempt.

        Args:
            attempts: Attempts made so far, including the one that failed
            elapsed: Seconds since the item was first enqueued
            error: What the transport raised

        Returns:
            RetryDecision with the backoff delay, or the reason to drop
        """
        if isinstance(error, HTTPStatusError) and not self.is_retryable(error):
            return RetryDecision.drop(f"non-retryable status {error.status_code}")
        if not self.is_retryable(error):
            return RetryDecision.drop(f"non-retryable error {type(error).__name__}")

        max_attempts = self._policy.max_attempts
        if max_attempts is not None and attempts >= max_attempts:
            return RetryDecision.drop(f"retry budget exhausted after {attempts} attempts")

        delay = self.backoff_delay(attempts)
        if isinstance(error, HTTPStatusError) and error.retry_after is not None:
            delay = max(delay, error.retry_after)

        max_elapsed = self._policy.max_elapsed
        if max_elapsed is not None and elapsed + delay > max_elapsed:
            return RetryDecision.drop(f"max elapsed time {max_elapsed}s exceeded")

        return RetryDecision.retry_after(delay)
