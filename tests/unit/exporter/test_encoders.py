# tests/unit/exporter/test_encoders.py
"""Tests for the trace, metric and log payload encoders.

Tests cover:
- Trace summary: span count over the whole tree, name sampling cap
- Metrics: newest data point per series, resource attribute renames
- Logs: record order, body/attribute conversion, resource copy per record
- Value conversion: bytes as base64, EMPTY as null, strict JSON floats
- Malformed trees surface as EncodingError
"""

import base64
import json
from dataclasses import dataclass

import pytest

from signalsink.contracts.enums import MetricKind, Signal
from signalsink.contracts.errors import EncodingError
from signalsink.contracts.telemetry import (
    AnyValue,
    InstrumentationScope,
    LogData,
    Metric,
    MetricData,
    Resource,
    ResourceGroup,
    ScopeGroup,
    make_attributes,
)
from signalsink.exporter.encoders import (
    SAMPLE_NAME_CAP,
    attributes_to_map,
    convert_value,
    encode,
    encode_logs,
    encode_metrics,
    encode_traces,
)
from tests.helpers.builders import gauge, log_record, log_tree, metric_tree, trace_tree


def decode(body: bytes) -> dict:
    return json.loads(body.decode("utf-8"))


# =============================================================================
# Value conversion
# =============================================================================


class TestConvertValue:
    def test_scalars(self) -> None:
        assert convert_value(AnyValue.string("x")) == "x"
        assert convert_value(AnyValue.int_(7)) == 7
        assert convert_value(AnyValue.double(1.5)) == 1.5
        assert convert_value(AnyValue.bool_(False)) is False

    def test_empty_is_none(self) -> None:
        assert convert_value(AnyValue.empty()) is None

    def test_nested_array_and_map(self) -> None:
        value = AnyValue.of({"a": [1, "two", {"b": None}]})

        assert convert_value(value) == {"a": [1, "two", {"b": None}]}

    def test_bytes_stay_bytes_in_value_tree(self) -> None:
        assert convert_value(AnyValue.bytes_(b"\x00\xff")) == b"\x00\xff"


class TestAttributesToMap:
    def test_plain_conversion(self) -> None:
        attrs = make_attributes({"k": "v", "n": 3})

        assert attributes_to_map(attrs) == {"k": "v", "n": 3}

    def test_rename_wins_on_collision(self) -> None:
        attrs = make_attributes({"service": "shadowed", "service.name": "api"})

        assert attributes_to_map(attrs, {"service.name": "service"}) == {"service": "api"}


# =============================================================================
# Traces
# =============================================================================


class TestTraceEncoding:
    def test_counts_spans_and_samples_names(self) -> None:
        body = encode_traces(trace_tree(["a", "b"], ["c"]))

        assert decode(body) == {"traces": {"spans": 3, "sample_names": ["a", "b", "c"]}}

    def test_sample_names_capped_across_scopes(self) -> None:
        scopes = [[f"s{scope}-{i}" for i in range(10)] for scope in range(5)]

        payload = decode(encode_traces(trace_tree(*scopes)))

        assert payload["traces"]["spans"] == 50
        assert payload["traces"]["sample_names"] == [f"s0-{i}" for i in range(SAMPLE_NAME_CAP)]

    def test_cap_spans_scope_boundary_in_tree_order(self) -> None:
        payload = decode(encode_traces(trace_tree(["a"] * 7, ["b"] * 7)))

        assert payload["traces"]["sample_names"] == ["a"] * 7 + ["b"] * 3

    def test_empty_tree(self) -> None:
        payload = decode(encode_traces(trace_tree()))

        assert payload == {"traces": {"spans": 0, "sample_names": []}}


# =============================================================================
# Metrics
# =============================================================================


class TestMetricEncoding:
    @pytest.mark.parametrize(
        "points",
        [((100, 1), (200, 2)), ((200, 2), (100, 1))],
        ids=["ascending", "descending"],
    )
    def test_latest_point_wins_regardless_of_order(self, points: tuple) -> None:
        payload = decode(encode_metrics(metric_tree(gauge("m", *points))))

        entry = payload["metrics"][0]
        assert entry["values"] == {"m": 2}
        assert entry["timestamp"] == 200

    def test_timestamp_tie_takes_later_point(self) -> None:
        payload = decode(encode_metrics(metric_tree(gauge("m", (100, 1), (100, 5)))))

        assert payload["metrics"][0]["values"] == {"m": 5}

    def test_sum_included_histogram_skipped(self) -> None:
        tree = metric_tree(
            gauge("requests", (10, 4), kind=MetricKind.SUM),
            Metric(name="latency", kind=MetricKind.HISTOGRAM),
            gauge("empty", kind=MetricKind.GAUGE),
        )

        entry = decode(encode_metrics(tree))["metrics"][0]

        assert entry["values"] == {"requests": 4}
        assert entry["timestamp"] == 10

    def test_resource_renames(self) -> None:
        tree = metric_tree(
            gauge("m", (1, 1)),
            resource={
                "service.name": "api",
                "deployment.environment": "prod",
                "cloud.region": "eu-west-1",
                "host.name": "h1",
            },
        )

        properties = decode(encode_metrics(tree))["metrics"][0]["properties"]

        assert properties == {"service": "api", "environment": "prod", "region": "eu-west-1", "host.name": "h1"}

    def test_resource_group_without_points_still_emitted(self) -> None:
        tree = metric_tree(Metric(name="h", kind=MetricKind.HISTOGRAM), resource={"service.name": "api"})

        payload = decode(encode_metrics(tree))

        assert payload == {"metrics": [{"timestamp": 0, "properties": {"service": "api"}, "values": {}}]}

    def test_same_name_across_scopes_newest_wins(self) -> None:
        newer = ScopeGroup(InstrumentationScope(name="a"), (gauge("m", (300, 3)),))
        older = ScopeGroup(InstrumentationScope(name="b"), (gauge("m", (100, 1)),))
        tree = MetricData(resource_groups=(ResourceGroup(Resource(), (newer, older)),))

        entry = decode(encode_metrics(tree))["metrics"][0]

        assert entry == {"timestamp": 300, "properties": {}, "values": {"m": 3}}

    def test_one_entry_per_resource_group_in_order(self) -> None:
        groups = tuple(
            ResourceGroup(
                Resource(make_attributes({"service.name": name})),
                (ScopeGroup(InstrumentationScope(), (gauge("m", (1, i)),)),),
            )
            for i, name in enumerate(["a", "b", "c"])
        )

        payload = decode(encode_metrics(MetricData(resource_groups=groups)))

        assert [entry["properties"]["service"] for entry in payload["metrics"]] == ["a", "b", "c"]

    def test_non_finite_value_rejected(self) -> None:
        with pytest.raises(EncodingError) as exc_info:
            encode_metrics(metric_tree(gauge("m", (1, float("nan")))))

        assert exc_info.value.signal == Signal.METRICS


# =============================================================================
# Logs
# =============================================================================


class TestLogEncoding:
    def test_record_shape(self) -> None:
        record = log_record(
            {"a": 1, "b": "x", "c": [True, False]},
            time_unix_nano=42,
            severity="WARN",
            attributes={"user": "u1"},
        )
        tree = log_tree(record, resource={"service.name": "api"})

        payload = decode(encode_logs(tree))

        assert payload == {
            "logs": [
                {
                    "timestamp": 42,
                    "severity": "WARN",
                    "body": {"a": 1, "b": "x", "c": [True, False]},
                    "attrs": {"user": "u1"},
                    "resource": {"service.name": "api"},
                }
            ]
        }

    def test_record_order_preserved(self) -> None:
        tree = log_tree(*(log_record(f"msg-{i}") for i in range(5)))

        bodies = [record["body"] for record in decode(encode_logs(tree))["logs"]]

        assert bodies == [f"msg-{i}" for i in range(5)]

    def test_empty_body_is_null(self) -> None:
        payload = decode(encode_logs(log_tree(log_record(None))))

        assert payload["logs"][0]["body"] is None

    def test_bytes_rendered_as_base64(self) -> None:
        payload = decode(encode_logs(log_tree(log_record(b"\x01\x02\xff"))))

        assert payload["logs"][0]["body"] == base64.b64encode(b"\x01\x02\xff").decode("ascii")

    def test_no_resource_groups(self) -> None:
        assert decode(encode_logs(LogData())) == {"logs": []}


# =============================================================================
# Serialization & failure
# =============================================================================


class TestSerialization:
    def test_compact_utf8(self) -> None:
        body = encode_logs(log_tree(log_record("héllo ✓")))

        assert b" " not in body.replace("héllo ✓".encode(), b"")
        assert "héllo ✓".encode() in body

    def test_non_finite_double_attribute_rejected(self) -> None:
        record = log_record("x", attributes={"ratio": float("inf")})

        with pytest.raises(EncodingError):
            encode_logs(log_tree(record))

    def test_malformed_tree_raises_encoding_error(self) -> None:
        @dataclass
        class NotATree:
            something: int = 1

        with pytest.raises(EncodingError) as exc_info:
            encode(Signal.TRACES, NotATree())  # type: ignore[arg-type]

        assert "malformed telemetry tree" in exc_info.value.message
