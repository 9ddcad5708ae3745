# src/signalsink/contracts/telemetry.py
"""In-memory telemetry data tree.

Each signal batch is a tree: resource groups, each holding a Resource and
scope groups, each holding an InstrumentationScope and the signal's items
(spans, metric series or log records). Item order within a scope is part of
the contract and is preserved end-to-end.

Attribute values use AnyValue, a closed tagged union. Conversion code
dispatches on AnyValue.kind, never on the Python type of the payload.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from signalsink.contracts.enums import MetricKind, ValueKind
from signalsink.contracts.errors import EncodingError

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

T = TypeVar("T")

Attributes = Mapping[str, "AnyValue"]


@dataclass(frozen=True, slots=True)
class AnyValue:
    """Tagged attribute value.

    Build through the per-kind constructors or AnyValue.of() rather than
    the raw dataclass constructor, so kind and payload always agree.

    Payload by kind:
        EMPTY: None
        STRING: str
        INT: int within int64
        DOUBLE: float
        BOOL: bool
        BYTES: bytes
        ARRAY: tuple[AnyValue, ...]
        MAP: dict[str, AnyValue]
    """

    kind: ValueKind
    value: Any = None

    @classmethod
    def empty(cls) -> AnyValue:
        return cls(ValueKind.EMPTY, None)

    @classmethod
    def string(cls, value: str) -> AnyValue:
        return cls(ValueKind.STRING, value)

    @classmethod
    def int_(cls, value: int) -> AnyValue:
        if not INT64_MIN <= value <= INT64_MAX:
            raise EncodingError("attribute", f"integer {value} out of int64 range")
        return cls(ValueKind.INT, value)

    @classmethod
    def double(cls, value: float) -> AnyValue:
        return cls(ValueKind.DOUBLE, float(value))

    @classmethod
    def bool_(cls, value: bool) -> AnyValue:
        return cls(ValueKind.BOOL, value)

    @classmethod
    def bytes_(cls, value: bytes | bytearray) -> AnyValue:
        return cls(ValueKind.BYTES, bytes(value))

    @classmethod
    def array(cls, values: Sequence[AnyValue]) -> AnyValue:
        return cls(ValueKind.ARRAY, tuple(values))

    @classmethod
    def map(cls, values: Mapping[str, AnyValue]) -> AnyValue:
        return cls(ValueKind.MAP, dict(values))

    @classmethod
    def of(cls, value: Any) -> AnyValue:
        """Build an AnyValue from a plain Python value.

        bool is checked before int (bool is an int subclass). Nested lists,
        tuples and string-keyed mappings are converted recursively.

        Raises:
            EncodingError: For unsupported types, non-string map keys or
                integers outside int64.
        """
        if isinstance(value, AnyValue):
            return value
        if value is None:
            return cls.empty()
        if isinstance(value, bool):
            return cls.bool_(value)
        if isinstance(value, int):
            return cls.int_(value)
        if isinstance(value, float):
            return cls.double(value)
        if isinstance(value, str):
            return cls.string(value)
        if isinstance(value, (bytes, bytearray)):
            return cls.bytes_(value)
        if isinstance(value, Mapping):
            converted: dict[str, AnyValue] = {}
            for key, item in value.items():
                if not isinstance(key, str):
                    raise EncodingError("attribute", f"map keys must be strings, got {type(key).__name__}")
                converted[key] = cls.of(item)
            return cls(ValueKind.MAP, converted)
        if isinstance(value, (list, tuple)):
            return cls(ValueKind.ARRAY, tuple(cls.of(item) for item in value))
        raise EncodingError("attribute", f"unsupported attribute value type {type(value).__name__}")


def make_attributes(values: Mapping[str, Any] | None = None) -> dict[str, AnyValue]:
    """Convert a plain mapping into an attribute map."""
    if not values:
        return {}
    return {key: AnyValue.of(item) for key, item in values.items()}


@dataclass(frozen=True, slots=True)
class Resource:
    """Entity that produced a batch (e.g. a service instance)."""

    attributes: Attributes = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class InstrumentationScope:
    """Instrumentation library grouping within a resource."""

    name: str = ""
    version: str = ""
    attributes: Attributes = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Span:
    name: str
    trace_id: bytes = b""
    span_id: bytes = b""
    parent_span_id: bytes = b""
    start_time_unix_nano: int = 0
    end_time_unix_nano: int = 0
    attributes: Attributes = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class NumberDataPoint:
    """Single gauge or sum sample. value keeps its int/float distinction."""

    time_unix_nano: int
    value: int | float
    start_time_unix_nano: int = 0
    attributes: Attributes = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Metric:
    """One metric series.

    data_points is only meaningful for GAUGE and SUM; other kinds are
    carried so the tree mirrors what the pipeline produced, and are
    skipped by the metric encoder.
    """

    name: str
    kind: MetricKind
    data_points: tuple[NumberDataPoint, ...] = ()
    description: str = ""
    unit: str = ""


@dataclass(frozen=True, slots=True)
class LogRecord:
    time_unix_nano: int = 0
    severity_text: str = ""
    severity_number: int = 0
    body: AnyValue = field(default_factory=AnyValue.empty)
    attributes: Attributes = field(default_factory=dict)
    observed_time_unix_nano: int = 0


@dataclass(frozen=True, slots=True)
class ScopeGroup(Generic[T]):
    scope: InstrumentationScope
    items: tuple[T, ...] = ()


@dataclass(frozen=True, slots=True)
class ResourceGroup(Generic[T]):
    resource: Resource
    scope_groups: tuple[ScopeGroup[T], ...] = ()


@dataclass(frozen=True, slots=True)
class TraceData:
    resource_groups: tuple[ResourceGroup[Span], ...] = ()

    def span_count(self) -> int:
        return sum(len(sg.items) for rg in self.resource_groups for sg in rg.scope_groups)


@dataclass(frozen=True, slots=True)
class MetricData:
    resource_groups: tuple[ResourceGroup[Metric], ...] = ()

    def metric_count(self) -> int:
        return sum(len(sg.items) for rg in self.resource_groups for sg in rg.scope_groups)

    def data_point_count(self) -> int:
        return sum(len(m.data_points) for rg in self.resource_groups for sg in rg.scope_groups for m in sg.items)


@dataclass(frozen=True, slots=True)
class LogData:
    resource_groups: tuple[ResourceGroup[LogRecord], ...] = ()

    def log_record_count(self) -> int:
        return sum(len(sg.items) for rg in self.resource_groups for sg in rg.scope_groups)
