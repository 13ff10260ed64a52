"""Conversion of decoded OTLP traces into the tabular trace frame."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

from opentelemetry.proto.common.v1.common_pb2 import AnyValue, KeyValue
from opentelemetry.proto.trace.v1.trace_pb2 import Span, Status, TracesData

from tempo_datasource.services.models import Field, Frame

_SERVICE_NAME = "service.name"
_TRACE_ID_BYTES = 16
_SPAN_ID_BYTES = 8


class TraceConversionError(ValueError):
    """The trace decoded but cannot be laid out as rows."""


def trace_to_frame(traces: TracesData) -> Frame:
    """Flatten every span of ``traces`` into one row of the ``Trace`` frame.

    Timestamps and durations are milliseconds; tags, service tags and logs are JSON encoded key/value lists.
    """

    frame = Frame(
        name="Trace",
        fields=[
            Field("traceID", "string"),
            Field("spanID", "string"),
            Field("parentSpanID", "string"),
            Field("operationName", "string"),
            Field("serviceName", "string"),
            Field("serviceTags", "string"),
            Field("startTime", "number", config={"unit": "ms"}),
            Field("duration", "number", config={"unit": "ms"}),
            Field("logs", "string"),
            Field("tags", "string"),
        ],
        meta={"preferredVisualisationType": "trace"},
    )

    for resource_spans in traces.resource_spans:
        resource_attributes = resource_spans.resource.attributes
        service_name = ""
        service_tags = []
        for attribute in resource_attributes:
            if attribute.key == _SERVICE_NAME:
                service_name = str(_any_value(attribute.value))
            else:
                service_tags.append({"key": attribute.key, "value": _any_value(attribute.value)})

        for scope_spans in resource_spans.scope_spans:
            scope_tags = []
            if scope_spans.scope.name:
                scope_tags.append({"key": "otel.library.name", "value": scope_spans.scope.name})
            if scope_spans.scope.version:
                scope_tags.append({"key": "otel.library.version", "value": scope_spans.scope.version})

            for span in scope_spans.spans:
                frame.append_row(
                    _hex_id(span.trace_id, _TRACE_ID_BYTES, "trace id"),
                    _hex_id(span.span_id, _SPAN_ID_BYTES, "span id"),
                    _hex_id(span.parent_span_id, _SPAN_ID_BYTES, "parent span id", optional=True),
                    span.name,
                    service_name,
                    json.dumps(service_tags),
                    span.start_time_unix_nano / 1_000_000,
                    _duration_ms(span),
                    json.dumps(_span_logs(span)),
                    json.dumps(_span_tags(span) + scope_tags),
                )

    return frame


def _hex_id(raw: bytes, size: int, label: str, optional: bool = False) -> str:
    if optional and not raw:
        return ""
    if len(raw) != size:
        raise TraceConversionError(f"invalid {label}: expected {size} bytes, got {len(raw)}")
    return raw.hex()


def _duration_ms(span: Span) -> float:
    if span.end_time_unix_nano < span.start_time_unix_nano:
        raise TraceConversionError(f"span {span.span_id.hex()} ends before it starts")
    return (span.end_time_unix_nano - span.start_time_unix_nano) / 1_000_000


def _span_tags(span: Span) -> list[dict[str, Any]]:
    tags = _key_values(span.attributes)
    if span.kind != Span.SPAN_KIND_UNSPECIFIED:
        kind = Span.SpanKind.Name(span.kind).removeprefix("SPAN_KIND_").lower()
        tags.append({"key": "span.kind", "value": kind})
    if span.status.code != Status.STATUS_CODE_UNSET:
        tags.append({"key": "status.code", "value": Status.StatusCode.Name(span.status.code)})
        if span.status.code == Status.STATUS_CODE_ERROR:
            tags.append({"key": "error", "value": True})
    if span.status.message:
        tags.append({"key": "status.message", "value": span.status.message})
    return tags


def _span_logs(span: Span) -> list[dict[str, Any]]:
    logs = []
    for event in span.events:
        fields = _key_values(event.attributes)
        if event.name:
            fields.insert(0, {"key": "event", "value": event.name})
        logs.append({"timestamp": event.time_unix_nano / 1_000_000, "fields": fields})
    return logs


def _key_values(attributes: Iterable[KeyValue]) -> list[dict[str, Any]]:
    return [{"key": attribute.key, "value": _any_value(attribute.value)} for attribute in attributes]


def _any_value(value: AnyValue) -> Any:
    kind = value.WhichOneof("value")
    if kind is None:
        return None
    if kind == "array_value":
        return [_any_value(item) for item in value.array_value.values]
    if kind == "kvlist_value":
        return {item.key: _any_value(item.value) for item in value.kvlist_value.values}
    if kind == "bytes_value":
        return value.bytes_value.hex()
    return getattr(value, kind)


__all__ = ["trace_to_frame", "TraceConversionError"]
