# tests/unit/contracts/test_telemetry.py
"""Tests for the telemetry data tree and AnyValue construction."""

import pytest

from signalsink.contracts.enums import MetricKind, ValueKind
from signalsink.contracts.errors import EncodingError
from signalsink.contracts.telemetry import (
    INT64_MAX,
    INT64_MIN,
    AnyValue,
    InstrumentationScope,
    LogData,
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


class TestAnyValueOf:
    @pytest.mark.parametrize(
        ("value", "kind"),
        [
            (None, ValueKind.EMPTY),
            ("s", ValueKind.STRING),
            (1, ValueKind.INT),
            (1.0, ValueKind.DOUBLE),
            (True, ValueKind.BOOL),
            (b"x", ValueKind.BYTES),
            ([1, 2], ValueKind.ARRAY),
            ({"k": "v"}, ValueKind.MAP),
        ],
    )
    def test_kind_inference(self, value, kind: ValueKind) -> None:
        assert AnyValue.of(value).kind is kind

    def test_bool_is_not_int(self) -> None:
        assert AnyValue.of(False) == AnyValue.bool_(False)

    def test_existing_value_passed_through(self) -> None:
        value = AnyValue.string("x")

        assert AnyValue.of(value) is value

    def test_bytearray_frozen_to_bytes(self) -> None:
        assert AnyValue.of(bytearray(b"ab")).value == b"ab"

    @pytest.mark.parametrize("value", [INT64_MAX + 1, INT64_MIN - 1])
    def test_int64_range(self, value: int) -> None:
        with pytest.raises(EncodingError):
            AnyValue.of(value)

    def test_int64_bounds_accepted(self) -> None:
        assert AnyValue.of(INT64_MAX).value == INT64_MAX
        assert AnyValue.of(INT64_MIN).value == INT64_MIN

    def test_non_string_map_key_rejected(self) -> None:
        with pytest.raises(EncodingError):
            AnyValue.of({1: "x"})

    def test_unsupported_type_rejected(self) -> None:
        with pytest.raises(EncodingError):
            AnyValue.of(object())

    def test_make_attributes(self) -> None:
        assert make_attributes({"a": 1}) == {"a": AnyValue.int_(1)}
        assert make_attributes(None) == {}


class TestTreeCounts:
    def test_span_count(self) -> None:
        scope = ScopeGroup(InstrumentationScope(), (Span("a"), Span("b")))
        tree = TraceData((ResourceGroup(Resource(), (scope, scope)), ResourceGroup(Resource(), (scope,))))

        assert tree.span_count() == 6

    def test_metric_counts(self) -> None:
        metric = Metric("m", MetricKind.GAUGE, (NumberDataPoint(1, 1), NumberDataPoint(2, 2)))
        tree = MetricData((ResourceGroup(Resource(), (ScopeGroup(InstrumentationScope(), (metric, metric)),)),))

        assert tree.metric_count() == 2
        assert tree.data_point_count() == 4

    def test_empty_log_data(self) -> None:
        assert LogData().log_record_count() == 0
