"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest
from opentelemetry.proto.common.v1.common_pb2 import AnyValue, InstrumentationScope, KeyValue
from opentelemetry.proto.resource.v1.resource_pb2 import Resource
from opentelemetry.proto.trace.v1.trace_pb2 import ResourceSpans, ScopeSpans, Span, Status, TracesData

from tempo_datasource.services.context_registry import ContextValueRegistry
from tempo_datasource.services.models import DataSource, OAuthToken, SignedInRequest, SignedInUser
from tempo_datasource.services.tempo_executor import TempoExecutor
from tempo_datasource.utils.logging import get_logger

TRACE_ID = bytes.fromhex("0af7651916cd43dd8448eb211c80319c")
ROOT_SPAN_ID = bytes.fromhex("b7ad6b7169203331")
CHILD_SPAN_ID = bytes.fromhex("00f067aa0ba902b7")
TEMPO_URL = "http://tempo:3200"


def kv(key: str, value: Any) -> KeyValue:
    if isinstance(value, bool):
        return KeyValue(key=key, value=AnyValue(bool_value=value))
    if isinstance(value, int):
        return KeyValue(key=key, value=AnyValue(int_value=value))
    if isinstance(value, float):
        return KeyValue(key=key, value=AnyValue(double_value=value))
    return KeyValue(key=key, value=AnyValue(string_value=value))


def make_traces(trace_id: bytes = TRACE_ID, span_id: bytes = CHILD_SPAN_ID) -> TracesData:
    """Two spans of the ``checkout`` service: a server root and an errored client child."""

    root = Span(
        trace_id=trace_id,
        span_id=ROOT_SPAN_ID,
        name="GET /cart",
        kind=Span.SPAN_KIND_SERVER,
        start_time_unix_nano=1_700_000_000_000_000_000,
        end_time_unix_nano=1_700_000_000_250_000_000,
        attributes=[kv("http.status_code", 200)],
    )
    child = Span(
        trace_id=trace_id,
        span_id=span_id,
        parent_span_id=ROOT_SPAN_ID,
        name="SELECT carts",
        kind=Span.SPAN_KIND_CLIENT,
        start_time_unix_nano=1_700_000_000_010_000_000,
        end_time_unix_nano=1_700_000_000_110_000_000,
        attributes=[kv("db.system", "postgresql")],
        status=Status(code=Status.STATUS_CODE_ERROR, message="timeout"),
        events=[
            Span.Event(
                time_unix_nano=1_700_000_000_100_000_000,
                name="exception",
                attributes=[kv("exception.type", "TimeoutError")],
            )
        ],
    )
    return TracesData(
        resource_spans=[
            ResourceSpans(
                resource=Resource(attributes=[kv("service.name", "checkout"), kv("host.name", "web-1")]),
                scope_spans=[
                    ScopeSpans(
                        scope=InstrumentationScope(name="opentelemetry.instrumentation.flask", version="0.44b0"),
                        spans=[root, child],
                    )
                ],
            )
        ]
    )


class FakeOAuthTokenService:
    """Returns a fixed token and records who asked for it."""

    def __init__(self, token: OAuthToken | None) -> None:
        self.token = token
        self.calls: list[SignedInUser] = []

    def get_current_oauth_token(self, request: SignedInRequest, user: SignedInUser) -> OAuthToken | None:
        self.calls.append(user)
        return self.token


@pytest.fixture
def datasource() -> DataSource:
    return DataSource(uid="tempo", name="Tempo", url=TEMPO_URL)


@pytest.fixture
def registry() -> ContextValueRegistry[SignedInRequest]:
    return ContextValueRegistry()


@pytest.fixture
def signed_in() -> SignedInRequest:
    return SignedInRequest(user=SignedInUser(login="alice"), headers={"x-webauth-user": "alice"})


@pytest.fixture
def oauth_tokens() -> FakeOAuthTokenService:
    return FakeOAuthTokenService(OAuthToken(access_token="s3cr3t", token_type="Bearer"))


@pytest.fixture
async def make_executor(
    registry: ContextValueRegistry[SignedInRequest], oauth_tokens: FakeOAuthTokenService
) -> AsyncIterator[Callable[[Callable[[httpx.Request], Any]], TempoExecutor]]:
    """Build executors whose HTTP client answers through ``handler``."""

    clients: list[httpx.AsyncClient] = []

    def factory(handler: Callable[[httpx.Request], Any]) -> TempoExecutor:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return TempoExecutor(
            client=client,
            registry=registry,
            oauth_tokens=oauth_tokens,
            logger=get_logger("test"),
        )

    yield factory

    for client in clients:
        await client.aclose()
