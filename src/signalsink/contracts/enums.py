# src/signalsink/contracts/enums.py
"""Enumerations shared across the exporter."""

from enum import StrEnum


class Signal(StrEnum):
    """Telemetry signal kinds.

    The value doubles as the URL path segment appended to a global base
    endpoint (``<base>/v1/<value>``).
    """

    TRACES = "traces"
    METRICS = "metrics"
    LOGS = "logs"


class OverflowPolicy(StrEnum):
    """What a full delivery queue does with an incoming batch.

    Values:
        BLOCK: Wait for capacity (bounded by enqueue timeout)
        DROP_NEWEST: Reject the incoming batch
        DROP_OLDEST: Evict the oldest queued batch to make room
    """

    BLOCK = "block"
    DROP_NEWEST = "drop_newest"
    DROP_OLDEST = "drop_oldest"


class DeliveryState(StrEnum):
    """Lifecycle of a DeliveryItem.

    QUEUED -> IN_FLIGHT -> {DELIVERED | QUEUED | DROPPED}. A queued item
    may also be dropped directly (overflow eviction, shutdown discard).
    DELIVERED and DROPPED are terminal.
    """

    QUEUED = "queued"
    IN_FLIGHT = "in_flight"
    DELIVERED = "delivered"
    DROPPED = "dropped"


class ValueKind(StrEnum):
    """Tag of an AnyValue variant."""

    EMPTY = "empty"
    STRING = "string"
    INT = "int"
    DOUBLE = "double"
    BOOL = "bool"
    BYTES = "bytes"
    ARRAY = "array"
    MAP = "map"


class MetricKind(StrEnum):
    """Metric series types. Only GAUGE and SUM carry number data points."""

    GAUGE = "gauge"
    SUM = "sum"
    HISTOGRAM = "histogram"
    EXPONENTIAL_HISTOGRAM = "exponential_histogram"
    SUMMARY = "summary"
    EMPTY = "empty"


# Transitions allowed by DeliveryItem.transition(). Terminal states map to
# an empty set.
DELIVERY_TRANSITIONS: dict[DeliveryState, frozenset[DeliveryState]] = {
    DeliveryState.QUEUED: frozenset({DeliveryState.IN_FLIGHT, DeliveryState.DROPPED}),
    DeliveryState.IN_FLIGHT: frozenset({DeliveryState.DELIVERED, DeliveryState.QUEUED, DeliveryState.DROPPED}),
    DeliveryState.DELIVERED: frozenset(),
    DeliveryState.DROPPED: frozenset(),
}
