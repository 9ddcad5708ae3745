# src/signalsink/contracts/config.py
"""Runtime configuration shared by the delivery workers.

These frozen dataclasses are built once from the validated pydantic
settings (signalsink.core.config) and handed to every worker by
reference. Nothing here is mutated after construction.

Field Origins:
    RuntimeExporterConfig.from_settings() is the only conversion point
    from ExporterSettings. Endpoint resolution happens there, so an
    unresolvable endpoint set fails at construction, never at first send.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING

from signalsink.contracts.enums import OverflowPolicy, Signal

if TYPE_CHECKING:
    from signalsink.core.config import ExporterSettings, QueueSettings, RetrySettings

# 408 Request Timeout and 429 Too Many Requests are the only 4xx codes worth
# retrying; every 5xx is retried.
DEFAULT_RETRYABLE_4XX: frozenset[int] = frozenset({408, 429})


@dataclass(frozen=True, slots=True)
class EndpointSet:
    """Resolved destination URLs. None means the signal has no destination."""

    traces: str | None = None
    metrics: str | None = None
    logs: str | None = None

    def for_signal(self, signal: Signal) -> str | None:
        if signal is Signal.TRACES:
            return self.traces
        if signal is Signal.METRICS:
            return self.metrics
        return self.logs

    def configured_signals(self) -> tuple[Signal, ...]:
        return tuple(s for s in Signal if self.for_signal(s) is not None)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Backoff and give-up rules for failed deliveries.

    max_attempts is the TOTAL number of tries, not the number of retries.
    At least one of max_attempts and max_elapsed must bound the policy.
    """

    initial_backoff: float = 5.0
    multiplier: float = 1.5
    max_backoff: float = 30.0
    jitter: float = 1.0
    max_attempts: int | None = None
    max_elapsed: float | None = 300.0
    retryable_status_codes: frozenset[int] | None = None

    def __post_init__(self) -> None:
        if self.max_attempts is None and self.max_elapsed is None:
            raise ValueError("RetryPolicy needs max_attempts or max_elapsed")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_backoff < 0 or self.max_backoff < 0 or self.jitter < 0:
            raise ValueError("backoff durations must be >= 0")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")

    @classmethod
    def no_retry(cls) -> RetryPolicy:
        """Single attempt, no backoff."""
        return cls(initial_backoff=0.0, max_backoff=0.0, jitter=0.0, max_attempts=1, max_elapsed=None)

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> RetryPolicy:
        if not settings.enabled:
            return cls.no_retry()
        codes = settings.retryable_status_codes
        return cls(
            initial_backoff=settings.initial_backoff_seconds,
            multiplier=settings.multiplier,
            max_backoff=settings.max_backoff_seconds,
            jitter=settings.jitter_seconds,
            max_attempts=settings.max_attempts,
            max_elapsed=settings.max_elapsed_seconds,
            retryable_status_codes=frozenset(codes) if codes is not None else None,
        )

    def is_retryable_status(self, status_code: int) -> bool:
        """Classify a non-2xx status code."""
        if self.retryable_status_codes is not None:
            return status_code in self.retryable_status_codes
        return status_code in DEFAULT_RETRYABLE_4XX or 500 <= status_code <= 599


@dataclass(frozen=True, slots=True)
class QueueConfig:
    capacity: int = 1000
    overflow_policy: OverflowPolicy = OverflowPolicy.DROP_NEWEST
    num_workers: int = 2
    enqueue_timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {self.capacity}")
        if self.num_workers < 1:
            raise ValueError(f"num_workers must be >= 1, got {self.num_workers}")

    @classmethod
    def from_settings(cls, settings: QueueSettings) -> QueueConfig:
        return cls(
            capacity=settings.capacity,
            overflow_policy=OverflowPolicy(settings.overflow_policy),
            num_workers=settings.num_workers,
            enqueue_timeout=settings.enqueue_timeout_seconds,
        )


@dataclass(frozen=True, slots=True)
class RuntimeExporterConfig:
    """Everything a MonitoringExporter needs, resolved and frozen."""

    endpoints: EndpointSet
    timeout: float
    headers: Mapping[str, str]
    retry: RetryPolicy
    queues: Mapping[Signal, QueueConfig]
    shutdown_grace: float = 5.0
    drain_on_shutdown: bool = True

    def queue_for(self, signal: Signal) -> QueueConfig:
        return self.queues[signal]

    @classmethod
    def from_settings(cls, settings: ExporterSettings) -> RuntimeExporterConfig:
        """Factory from ExporterSettings.

        Raises:
            ConfigurationError: If no endpoint resolves for any signal
        """
        from signalsink.exporter.endpoints import resolve_endpoints

        endpoints = resolve_endpoints(
            endpoint=settings.endpoint,
            traces_endpoint=settings.traces_endpoint,
            metrics_endpoint=settings.metrics_endpoint,
            logs_endpoint=settings.logs_endpoint,
        )
        queues = {
            Signal.TRACES: QueueConfig.from_settings(settings.queues.traces),
            Signal.METRICS: QueueConfig.from_settings(settings.queues.metrics),
            Signal.LOGS: QueueConfig.from_settings(settings.queues.logs),
        }
        return cls(
            endpoints=endpoints,
            timeout=settings.timeout_seconds,
            headers=MappingProxyType(dict(settings.headers)),
            retry=RetryPolicy.from_settings(settings.retry),
            queues=MappingProxyType(queues),
            shutdown_grace=settings.shutdown_grace_seconds,
            drain_on_shutdown=settings.drain_on_shutdown,
        )
