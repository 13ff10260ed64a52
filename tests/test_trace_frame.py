"""Tests for OTLP decoding and trace frame conversion."""

import json

import pytest
from conftest import CHILD_SPAN_ID, ROOT_SPAN_ID, TRACE_ID, kv, make_traces
from opentelemetry.proto.common.v1.common_pb2 import AnyValue, ArrayValue, KeyValueList
from opentelemetry.proto.trace.v1.trace_pb2 import TracesData

from tempo_datasource.services.otlp_decoder import decode_traces
from tempo_datasource.services.trace_frame import TraceConversionError, trace_to_frame
from tempo_datasource.utils.diagnostics import ProtocolError


def test_decode_traces_parses_protobuf_payload():
    traces = decode_traces(make_traces().SerializeToString())

    assert len(traces.resource_spans[0].scope_spans[0].spans) == 2


def test_decode_traces_rejects_garbage():
    with pytest.raises(ProtocolError) as excinfo:
        decode_traces(b"not a protobuf", trace_id="abc123")

    assert excinfo.value.stage == "decode"
    assert excinfo.value.to_extra()["trace_id"] == "abc123"


def test_frame_schema():
    frame = trace_to_frame(make_traces())

    assert frame.name == "Trace"
    assert frame.meta == {"preferredVisualisationType": "trace"}
    assert [column.name for column in frame.fields] == [
        "traceID",
        "spanID",
        "parentSpanID",
        "operationName",
        "serviceName",
        "serviceTags",
        "startTime",
        "duration",
        "logs",
        "tags",
    ]


def test_frame_rows():
    frame = trace_to_frame(make_traces())

    assert frame.column("traceID").values == [TRACE_ID.hex(), TRACE_ID.hex()]
    assert frame.column("spanID").values == [ROOT_SPAN_ID.hex(), CHILD_SPAN_ID.hex()]
    assert frame.column("parentSpanID").values == ["", ROOT_SPAN_ID.hex()]
    assert frame.column("operationName").values == ["GET /cart", "SELECT carts"]
    assert frame.column("serviceName").values == ["checkout", "checkout"]
    assert frame.column("startTime").values == [1_700_000_000_000.0, 1_700_000_000_010.0]
    assert frame.column("duration").values == [250.0, 100.0]


def test_service_tags_exclude_service_name():
    frame = trace_to_frame(make_traces())

    assert json.loads(frame.column("serviceTags").values[0]) == [{"key": "host.name", "value": "web-1"}]


def test_span_tags_include_kind_status_and_library():
    frame = trace_to_frame(make_traces())

    root_tags = json.loads(frame.column("tags").values[0])
    child_tags = {tag["key"]: tag["value"] for tag in json.loads(frame.column("tags").values[1])}

    assert {"key": "http.status_code", "value": 200} in root_tags
    assert {"key": "span.kind", "value": "server"} in root_tags
    assert child_tags["span.kind"] == "client"
    assert child_tags["status.code"] == "STATUS_CODE_ERROR"
    assert child_tags["status.message"] == "timeout"
    assert child_tags["error"] is True
    assert child_tags["otel.library.name"] == "opentelemetry.instrumentation.flask"


def test_span_events_become_logs():
    frame = trace_to_frame(make_traces())

    assert json.loads(frame.column("logs").values[0]) == []
    (log,) = json.loads(frame.column("logs").values[1])
    assert log["timestamp"] == 1_700_000_000_100.0
    assert log["fields"] == [
        {"key": "event", "value": "exception"},
        {"key": "exception.type", "value": "TimeoutError"},
    ]


def test_nested_attribute_values_are_converted():
    traces = make_traces()
    span = traces.resource_spans[0].scope_spans[0].spans[0]
    span.attributes.append(kv("retry", True))
    nested = span.attributes.add(key="params")
    nested.value.CopyFrom(
        AnyValue(
            kvlist_value=KeyValueList(
                values=[kv("ids", 7)],
            )
        )
    )
    listed = span.attributes.add(key="hosts")
    listed.value.CopyFrom(
        AnyValue(array_value=ArrayValue(values=[AnyValue(string_value="a"), AnyValue(double_value=1.5)]))
    )

    tags = {tag["key"]: tag["value"] for tag in json.loads(trace_to_frame(traces).column("tags").values[0])}

    assert tags["retry"] is True
    assert tags["params"] == {"ids": 7}
    assert tags["hosts"] == ["a", 1.5]


def test_empty_trace_yields_empty_frame():
    frame = trace_to_frame(TracesData())

    assert len(frame) == 0
    assert frame.to_dict()["data"]["values"] == [[] for _ in range(10)]


def test_invalid_trace_id_fails_conversion():
    with pytest.raises(TraceConversionError, match="trace id"):
        trace_to_frame(make_traces(trace_id=b"\x01"))


def test_frame_serializes_to_columns():
    frame = trace_to_frame(make_traces())
    frame.ref_id = "A"

    document = frame.to_dict()

    assert document["schema"]["refId"] == "A"
    assert document["schema"]["fields"][6] == {"name": "startTime", "type": "number", "config": {"unit": "ms"}}
    assert document["data"]["values"][3] == ["GET /cart", "SELECT carts"]
