# src/signalsink/exporter/encoders.py
"""Payload encoders for traces, metrics and logs.

Each encoder walks a signal tree (resource groups -> scope groups -> items)
and builds a value tree of plain dicts, lists and primitives, which is then
serialized to one compact JSON document per batch.

Payload shapes:
    traces:  {"traces": {"spans": <total>, "sample_names": [<= 10 names]}}
    metrics: {"metrics": [{"timestamp", "properties", "values"}, ...]}
    logs:    {"logs": [{"timestamp", "severity", "body", "attrs", "resource"}, ...]}

The trace payload is a summary, not a lossless export. Metric values keep
only the newest data point of each gauge/sum series.

Encoding failures mean the in-memory tree was malformed. They raise
EncodingError and are never retried.
"""

from __future__ import annotations

import base64
import json
from collections.abc import Callable, Iterator, Mapping
from typing import Any, TypeVar

import structlog

from signalsink.contracts.enums import MetricKind, Signal, ValueKind
from signalsink.contracts.errors import EncodingError
from signalsink.contracts.telemetry import AnyValue
from signalsink.exporter.protocols import ResourceGroupProtocol, ScopeGroupProtocol, SignalTreeProtocol

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Span names sampled into the trace summary
SAMPLE_NAME_CAP = 10

# Well-known resource attributes flattened under short names in metric properties
RESOURCE_RENAMES: Mapping[str, str] = {
    "service.name": "service",
    "deployment.environment": "environment",
    "cloud.region": "region",
}

# Metric kinds that carry NumberDataPoints
POINT_KINDS = frozenset({MetricKind.GAUGE, MetricKind.SUM})


def iter_items(
    tree: SignalTreeProtocol[T],
) -> Iterator[tuple[ResourceGroupProtocol[T], ScopeGroupProtocol[T], T]]:
    """Yield (resource group, scope group, item) in tree order."""
    for resource_group in tree.resource_groups:
        for scope_group in resource_group.scope_groups:
            for item in scope_group.items:
                yield resource_group, scope_group, item


def convert_value(value: AnyValue) -> Any:
    """Convert an AnyValue to its JSON-ready equivalent.

    BYTES stays bytes in the value tree (serialize_payload renders base64).
    EMPTY and unknown kinds become None.
    """
    match value.kind:
        case ValueKind.STRING | ValueKind.INT | ValueKind.DOUBLE | ValueKind.BOOL | ValueKind.BYTES:
            return value.value
        case ValueKind.ARRAY:
            return [convert_value(item) for item in value.value]
        case ValueKind.MAP:
            return {key: convert_value(item) for key, item in value.value.items()}
        case _:
            return None


def attributes_to_map(
    attributes: Mapping[str, AnyValue],
    rename: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Convert an attribute map, optionally renaming selected keys.

    When a renamed key collides with an attribute already using the short
    name, the renamed (well-known) attribute wins.
    """
    out: dict[str, Any] = {}
    renamed: dict[str, Any] = {}
    for key, value in attributes.items():
        if rename is not None and key in rename:
            renamed[rename[key]] = convert_value(value)
        else:
            out[key] = convert_value(value)
    out.update(renamed)
    return out


def build_trace_payload(tree: SignalTreeProtocol[Any]) -> dict[str, Any]:
    """Summarize a trace batch: total span count plus the first span names.

    Name sampling stops walking the tree once SAMPLE_NAME_CAP names are
    collected; the span count always covers the whole tree.
    """
    span_count = 0
    for resource_group in tree.resource_groups:
        for scope_group in resource_group.scope_groups:
            span_count += len(scope_group.items)

    names: list[str] = []
    for _, _, span in iter_items(tree):
        if len(names) >= SAMPLE_NAME_CAP:
            break
        names.append(span.name)

    return {"traces": {"spans": span_count, "sample_names": names}}


def _latest_point(data_points: Any) -> Any:
    """Data point with the greatest timestamp; the later one wins a tie."""
    latest = None
    for point in data_points:
        if latest is None or point.time_unix_nano >= latest.time_unix_nano:
            latest = point
    return latest


def build_metric_payload(tree: SignalTreeProtocol[Any]) -> dict[str, Any]:
    """One entry per resource group with the newest value of each gauge/sum.

    The entry timestamp is the greatest data-point timestamp among the
    values kept (0 when the group has none). Series of other kinds, and
    series without data points, are omitted.
    """
    entries: list[dict[str, Any]] = []
    for resource_group in tree.resource_groups:
        properties = attributes_to_map(resource_group.resource.attributes, RESOURCE_RENAMES)
        values: dict[str, Any] = {}
        value_times: dict[str, int] = {}
        timestamp = 0

        for scope_group in resource_group.scope_groups:
            for metric in scope_group.items:
                if metric.kind not in POINT_KINDS:
                    continue
                point = _latest_point(metric.data_points)
                if point is None:
                    continue
                point_time = int(point.time_unix_nano)
                # Same-named series across scopes: newest point wins
                if metric.name in value_times and value_times[metric.name] > point_time:
                    continue
                values[metric.name] = point.value
                value_times[metric.name] = point_time
                timestamp = max(timestamp, point_time)

        entries.append({"timestamp": timestamp, "properties": properties, "values": values})

    return {"metrics": entries}


def build_log_payload(tree: SignalTreeProtocol[Any]) -> dict[str, Any]:
    """One record per log item, each carrying its resource's attributes."""
    records: list[dict[str, Any]] = []
    for resource_group in tree.resource_groups:
        resource = attributes_to_map(resource_group.resource.attributes)
        for scope_group in resource_group.scope_groups:
            for record in scope_group.items:
                records.append(
                    {
                        "timestamp": int(record.time_unix_nano),
                        "severity": record.severity_text or "",
                        "body": convert_value(record.body),
                        "attrs": attributes_to_map(record.attributes),
                        "resource": dict(resource),
                    }
                )
    return {"logs": records}


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(value).decode("ascii")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def serialize_payload(signal: Signal, payload: dict[str, Any]) -> bytes:
    """Render a value tree as compact UTF-8 JSON.

    Raises:
        EncodingError: On non-finite floats or values JSON cannot carry
    """
    try:
        return json.dumps(
            payload,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
            default=_json_default,
        ).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise EncodingError(signal, str(e)) from e


_BUILDERS: dict[Signal, Callable[[SignalTreeProtocol[Any]], dict[str, Any]]] = {
    Signal.TRACES: build_trace_payload,
    Signal.METRICS: build_metric_payload,
    Signal.LOGS: build_log_payload,
}


def encode(signal: Signal, tree: SignalTreeProtocol[Any]) -> bytes:
    """Encode one signal batch into a request body.

    Raises:
        EncodingError: If the tree is malformed or holds unserializable values
    """
    try:
        payload = _BUILDERS[signal](tree)
    except EncodingError:
        raise
    except (AttributeError, TypeError, ValueError) as e:
        raise EncodingError(signal, f"malformed telemetry tree: {e}") from e
    body = serialize_payload(signal, payload)
    logger.debug("Encoded batch", signal=signal.value, bytes=len(body))
    return body


def encode_traces(tree: SignalTreeProtocol[Any]) -> bytes:
    return encode(Signal.TRACES, tree)


def encode_metrics(tree: SignalTreeProtocol[Any]) -> bytes:
    return encode(Signal.METRICS, tree)


def encode_logs(tree: SignalTreeProtocol[Any]) -> bytes:
    return encode(Signal.LOGS, tree)
