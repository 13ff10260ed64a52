"""Decoding of OTLP protobuf payloads returned by Tempo."""

from __future__ import annotations

from google.protobuf.message import DecodeError
from opentelemetry.proto.trace.v1.trace_pb2 import TracesData

from tempo_datasource.utils.diagnostics import ProtocolError

PROTOBUF_CONTENT_TYPE = "application/protobuf"


def decode_traces(payload: bytes, trace_id: str | None = None) -> TracesData:
    """Parse ``payload`` into :class:`TracesData`.

    ``TracesData`` shares its wire format with ``ExportTraceServiceRequest``, which is what Tempo serves.
    """

    try:
        return TracesData.FromString(payload)
    except DecodeError as exc:
        raise ProtocolError(
            "decode",
            "failed to convert tempo response to Otlp",
            trace_id=trace_id,
            detail=str(exc),
        ) from exc


__all__ = ["decode_traces", "PROTOBUF_CONTENT_TYPE"]
