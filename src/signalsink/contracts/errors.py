# src/signalsink/contracts/errors.py
"""Exporter exceptions and terminal-disposition records.

Only ConfigurationError, EncodingError and QueueOverflowError ever reach the
ingestion caller. Delivery failures (TransportError, HTTPStatusError) are
raised by the transport and consumed by the delivery pipeline, which turns
them into retries or DeliveryDropped records.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from signalsink.contracts.enums import DeliveryState, OverflowPolicy, Signal


class SignalSinkError(Exception):
    """Base class for all exporter errors."""


class ConfigurationError(SignalSinkError):
    """Raised at construction when the exporter cannot be configured.

    Attributes:
        empty_inputs: Names of the endpoint inputs that were empty, when the
            failure is an unresolvable endpoint set.
    """

    def __init__(self, message: str, *, empty_inputs: tuple[str, ...] = ()) -> None:
        self.empty_inputs = empty_inputs
        super().__init__(message)


class EncodingError(SignalSinkError):
    """Raised when a telemetry tree cannot be turned into a payload.

    Fatal for the affected batch; never retried.
    """

    def __init__(self, signal: Signal | str, message: str) -> None:
        self.signal = signal
        self.message = message
        super().__init__(f"Failed to encode {signal} batch: {message}")


class DeliveryError(SignalSinkError):
    """Base for failures of a single HTTP delivery attempt.

    Attributes:
        url: Target URL of the failed attempt
        retryable: Transport-level hint. HTTP statuses are classified by
            the delivery pipeline through RetryPolicy.is_retryable_status()
    """

    retryable: bool = True

    def __init__(self, url: str, message: str) -> None:
        self.url = url
        super().__init__(message)


class TransportError(DeliveryError):
    """Timeout or connection-level failure. Always retryable."""

    def __init__(self, url: str, message: str, *, timeout: bool = False) -> None:
        self.timeout = timeout
        super().__init__(url, message)


class HTTPStatusError(DeliveryError):
    """Response status outside [200, 300).

    Attributes:
        status_code: HTTP status returned by the endpoint
        body_excerpt: At most the first 4096 bytes of the response body,
            decoded leniently
        retry_after: Seconds requested by a Retry-After header, if any
    """

    def __init__(
        self,
        url: str,
        status_code: int,
        body_excerpt: str,
        *,
        retry_after: float | None = None,
    ) -> None:
        self.status_code = status_code
        self.body_excerpt = body_excerpt
        self.retry_after = retry_after
        super().__init__(url, f"HTTP status={status_code} body={body_excerpt!r}")


class QueueOverflowError(SignalSinkError):
    """Raised when a signal's delivery queue cannot admit a batch."""

    def __init__(self, signal: Signal, capacity: int, policy: OverflowPolicy) -> None:
        self.signal = signal
        self.capacity = capacity
        self.policy = policy
        super().__init__(f"{signal} delivery queue full (capacity={capacity}, overflow_policy={policy})")


class QueueClosedError(SignalSinkError):
    """Raised when a batch is offered to a queue that is shutting down."""

    def __init__(self, signal: Signal) -> None:
        self.signal = signal
        super().__init__(f"{signal} delivery queue is closed")


class DeliveryStateError(SignalSinkError):
    """Raised on an illegal DeliveryItem state transition."""

    def __init__(self, current: DeliveryState, target: DeliveryState) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Illegal delivery transition {current} -> {target}")


@dataclass(frozen=True, slots=True)
class DeliveryDropped:
    """Terminal record for a batch that will never be delivered.

    Reported through logs, counters and the optional on_drop callback.
    Never raised.
    """

    signal: Signal
    url: str
    attempts: int
    reason: str
    byte_count: int
    last_error: str | None = None
