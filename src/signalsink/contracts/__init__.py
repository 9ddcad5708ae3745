# src/signalsink/contracts/__init__.py
"""Shared contracts: enums, errors, the telemetry data tree and runtime config.

Nothing in this package performs I/O. The exporter package builds on it.
"""

from signalsink.contracts.config import EndpointSet, QueueConfig, RetryPolicy, RuntimeExporterConfig
from signalsink.contracts.enums import DeliveryState, MetricKind, OverflowPolicy, Signal, ValueKind
from signalsink.contracts.errors import (
    ConfigurationError,
    DeliveryDropped,
    DeliveryError,
    DeliveryStateError,
    EncodingError,
    HTTPStatusError,
    QueueClosedError,
    QueueOverflowError,
    SignalSinkError,
    TransportError,
)
from signalsink.contracts.telemetry import (
    AnyValue,
    Attributes,
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

__all__ = [
    "AnyValue",
    "Attributes",
    "ConfigurationError",
    "DeliveryDropped",
    "DeliveryError",
    "DeliveryState",
    "DeliveryStateError",
    "EncodingError",
    "EndpointSet",
    "HTTPStatusError",
    "InstrumentationScope",
    "LogData",
    "LogRecord",
    "Metric",
    "MetricData",
    "MetricKind",
    "NumberDataPoint",
    "OverflowPolicy",
    "QueueClosedError",
    "QueueConfig",
    "QueueOverflowError",
    "Resource",
    "ResourceGroup",
    "RetryPolicy",
    "RuntimeExporterConfig",
    "ScopeGroup",
    "Signal",
    "SignalSinkError",
    "Span",
    "TraceData",
    "TransportError",
    "ValueKind",
    "make_attributes",
]
