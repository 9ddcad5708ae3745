"""Builders for telemetry trees, runtime configs and test transports.

Tests construct trees directly instead of going through a wire decoder,
so each helper keeps the tree shape obvious at the call site.
"""

import threading
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from signalsink.contracts.config import EndpointSet, QueueConfig, RetryPolicy, RuntimeExporterConfig
from signalsink.contracts.enums import MetricKind, Signal
from signalsink.contracts.telemetry import (
    AnyValue,
    InstrumentationScope,
    LogData,
    LogRecord,
    Metric,
    MetricData,
    NumberDataPoint,
    Resource,
    ResourceGroup,
    ScopeGroup,
    Span,
    TraceData,
    make_attributes,
)

TRACES_URL = "http://collector.test/v1/traces"
METRICS_URL = "http://collector.test/v1/metrics"
LOGS_URL = "http://collector.test/v1/logs"


def make_runtime_config(
    *,
    endpoints: EndpointSet | None = None,
    retry: RetryPolicy | None = None,
    queue: QueueConfig | None = None,
    headers: Mapping[str, str] | None = None,
    shutdown_grace: float = 2.0,
    drain_on_shutdown: bool = True,
) -> RuntimeExporterConfig:
    """RuntimeExporterConfig with fast test defaults (no jitter, short backoff)."""
    queue = queue or QueueConfig(capacity=100, num_workers=1)
    return RuntimeExporterConfig(
        endpoints=endpoints or EndpointSet(traces=TRACES_URL, metrics=METRICS_URL, logs=LOGS_URL),
        timeout=1.0,
        headers=dict(headers or {}),
        retry=retry or RetryPolicy(initial_backoff=0.01, multiplier=2.0, max_backoff=0.05, jitter=0.0, max_attempts=3),
        queues={signal: queue for signal in Signal},
        shutdown_grace=shutdown_grace,
        drain_on_shutdown=drain_on_shutdown,
    )


def trace_tree(*scopes: Sequence[str], resource: Mapping[str, Any] | None = None) -> TraceData:
    """One resource group with one scope group per argument, each a list of span names."""
    scope_groups = tuple(
        ScopeGroup(InstrumentationScope(name=f"scope-{i}"), tuple(Span(name=name) for name in names)) for i, names in enumerate(scopes)
    )
    return TraceData(resource_groups=(ResourceGroup(Resource(make_attributes(resource)), scope_groups),))


def gauge(name: str, *points: tuple[int, int | float], kind: MetricKind = MetricKind.GAUGE) -> Metric:
    """Metric series from (time_unix_nano, value) pairs."""
    return Metric(
        name=name,
        kind=kind,
        data_points=tuple(NumberDataPoint(time_unix_nano=t, value=v) for t, v in points),
    )


def metric_tree(*metrics: Metric, resource: Mapping[str, Any] | None = None) -> MetricData:
    scope_group = ScopeGroup(InstrumentationScope(name="meter"), tuple(metrics))
    return MetricData(resource_groups=(ResourceGroup(Resource(make_attributes(resource)), (scope_group,)),))


def log_record(
    body: Any = "hello",
    *,
    time_unix_nano: int = 1_700_000_000_000_000_000,
    severity: str = "INFO",
    attributes: Mapping[str, Any] | None = None,
) -> LogRecord:
    return LogRecord(
        time_unix_nano=time_unix_nano,
        severity_text=severity,
        body=AnyValue.of(body),
        attributes=make_attributes(attributes),
    )


def log_tree(*records: LogRecord, resource: Mapping[str, Any] | None = None) -> LogData:
    scope_group = ScopeGroup(InstrumentationScope(name="logger"), tuple(records))
    return LogData(resource_groups=(ResourceGroup(Resource(make_attributes(resource)), (scope_group,)),))


class RecordingTransport:
    """TransportProtocol double that records calls and replays scripted outcomes.

    Each entry in outcomes is either None (success) or an exception to
    raise. Once outcomes run out every call succeeds.
    """

    def __init__(self, outcomes: Sequence[BaseException | None] = ()) -> None:
        self._outcomes = list(outcomes)
        self._lock = threading.Lock()
        self.calls: list[tuple[str, bytes, Mapping[str, str] | None]] = []
        self.close_count = 0
        self.delivered = threading.Event()

    def deliver(self, url: str, body: bytes, headers: Mapping[str, str] | None = None) -> None:
        with self._lock:
            self.calls.append((url, body, headers))
            outcome = self._outcomes.pop(0) if self._outcomes else None
        if outcome is not None:
            raise outcome
        self.delivered.set()

    def close(self) -> None:
        self.close_count += 1


class BlockingTransport:
    """Transport that blocks in deliver() until released."""

    def __init__(self) -> None:
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls: list[str] = []
        self.close_count = 0

    def deliver(self, url: str, body: bytes, headers: Mapping[str, str] | None = None) -> None:
        self.calls.append(url)
        self.started.set()
        self.release.wait(timeout=10.0)

    def close(self) -> None:
        self.close_count += 1
        self.release.set()


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.005) -> bool:
    """Poll predicate until it returns True or timeout seconds pass."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
