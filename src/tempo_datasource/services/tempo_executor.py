"""Trace queries against Grafana Tempo."""

from __future__ import annotations

import asyncio
from base64 import b64encode
from collections.abc import AsyncIterator, Callable, Sequence

import httpx

from tempo_datasource.services.context_registry import ABSENT, ContextValueRegistry
from tempo_datasource.services.http_client import HttpClientProvider
from tempo_datasource.services.models import DataQuery, DataResponse, DataSource, QueryResult, SignedInRequest
from tempo_datasource.services.oauth_token import OAuthTokenService, is_oauth_pass_thru_enabled
from tempo_datasource.services.otlp_decoder import PROTOBUF_CONTENT_TYPE, decode_traces
from tempo_datasource.services.query_context import QueryCancelled, QueryContext
from tempo_datasource.services.trace_frame import TraceConversionError, trace_to_frame
from tempo_datasource.utils.diagnostics import ConfigurationError, ProtocolError, TransportError
from tempo_datasource.utils.logging import Logger


class TempoExecutor:
    """Fetches a trace by ID from Tempo and converts it into a trace frame.

    The executor keeps no per-query state, so one instance serves concurrent queries. When the datasource forwards
    OAuth credentials, the signed-in request must be registered in ``registry`` under the query's
    :class:`QueryContext` before :meth:`execute` is awaited.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        registry: ContextValueRegistry[SignedInRequest],
        oauth_tokens: OAuthTokenService,
        logger: Logger,
    ) -> None:
        self._client = client
        self._registry = registry
        self._oauth_tokens = oauth_tokens
        self._logger = logger

    async def data_query(
        self, ctx: QueryContext, datasource: DataSource, queries: Sequence[DataQuery]
    ) -> DataResponse:
        """Run a batch of trace queries concurrently.

        Decode and conversion failures only fail their own query; configuration and transport errors abort the
        batch. Every query must carry its own ``ref_id``; duplicates raise :class:`ValueError` before any request
        is sent.
        """

        ref_ids = [query.ref_id for query in queries]
        duplicates = sorted({ref_id for ref_id in ref_ids if ref_ids.count(ref_id) > 1})
        if duplicates:
            raise ValueError(f"duplicate refId in query batch: {', '.join(duplicates)}")

        results = await asyncio.gather(
            *(self._execute_isolated(ctx, datasource, query) for query in queries),
            return_exceptions=True,
        )

        response = DataResponse()
        for result in results:
            if isinstance(result, BaseException):
                raise result
            response.results[result.ref_id] = result
        return response

    async def _execute_isolated(self, ctx: QueryContext, datasource: DataSource, query: DataQuery) -> QueryResult:
        try:
            return await self.execute(ctx, datasource, query.query, query.ref_id)
        except ProtocolError as exc:
            self._logger.warning("trace_query_failed", extra={"ref_id": query.ref_id, **exc.to_extra()})
            return QueryResult(ref_id=query.ref_id, error=str(exc))

    async def execute(self, ctx: QueryContext, datasource: DataSource, trace_id: str, ref_id: str) -> QueryResult:
        """Fetch ``trace_id`` and return it as a single frame tagged with ``ref_id``.

        A non-200 answer from Tempo is returned as a result whose ``error`` carries the status and body. Everything
        else that goes wrong raises a :class:`~tempo_datasource.utils.diagnostics.DiagnosticError`.
        """

        request = self.create_request(ctx, datasource, trace_id)

        try:
            response = await ctx.run(
                self._client.send(request, stream=True),
                on_discard=lambda late: self._close(late.stream),
            )
        except (httpx.HTTPError, QueryCancelled) as exc:
            raise TransportError("failed get to tempo", detail=str(exc)) from exc

        raw_stream = response.stream
        response.stream = _DeferredCloseStream(raw_stream)
        try:
            body = await ctx.run(response.aread())
        except (httpx.HTTPError, QueryCancelled) as exc:
            raise TransportError("failed to read tempo response", detail=str(exc)) from exc
        finally:
            await self._close(raw_stream)

        if response.status_code != httpx.codes.OK:
            text = body.decode("utf-8", errors="replace")
            return QueryResult(
                ref_id=ref_id,
                error=(
                    f"failed to get trace with id: {trace_id} "
                    f"Status: {response.status_code} {response.reason_phrase} Body: {text}"
                ),
            )

        traces = decode_traces(body, trace_id=trace_id)

        try:
            frame = trace_to_frame(traces)
        except TraceConversionError as exc:
            raise ProtocolError(
                "convert",
                f"failed to transform trace {trace_id} to data frame",
                trace_id=trace_id,
                detail=str(exc),
            ) from exc

        frame.ref_id = ref_id
        return QueryResult(ref_id=ref_id, frames=[frame])

    def create_request(self, ctx: QueryContext, datasource: DataSource, trace_id: str) -> httpx.Request:
        """Build the ``GET /api/traces/<id>`` request, applying basic auth and OAuth pass-through."""

        if not datasource.url:
            raise ConfigurationError(f"datasource {datasource.name!r} has no URL configured")

        request = self._client.build_request("GET", f"{datasource.url.rstrip('/')}/api/traces/{trace_id}")

        if datasource.basic_auth:
            credentials = f"{datasource.basic_auth_user}:{datasource.basic_auth_password}".encode()
            request.headers["Authorization"] = f"Basic {b64encode(credentials).decode()}"

        if is_oauth_pass_thru_enabled(datasource):
            self._logger.debug("configuring_oauth_passthru")
            signed_in = self._registry.get(ctx)
            if signed_in is ABSENT:
                raise ConfigurationError("request context not found; unable to configure oauth passthru")
            if not isinstance(signed_in, SignedInRequest):
                raise ConfigurationError(
                    "invalid request context object", detail=f"got {type(signed_in).__name__}"
                )

            token = self._oauth_tokens.get_current_oauth_token(signed_in, signed_in.user)
            if token is not None:
                self._logger.debug("setting_authorization_from_oauth")
                request.headers["Authorization"] = token.authorization()

        request.headers["Accept"] = PROTOBUF_CONTENT_TYPE

        self._logger.debug(
            "tempo_request",
            extra={"url": str(request.url), "headers": sorted(request.headers.keys())},
        )
        return request

    async def _close(self, stream: httpx.AsyncByteStream) -> None:
        try:
            await stream.aclose()
        except Exception as exc:
            self._logger.warning("failed_to_close_response_body", extra={"error": str(exc)})


class _DeferredCloseStream(httpx.AsyncByteStream):
    """Lets ``Response.aread`` drain the body while the executor keeps ownership of closing the stream."""

    def __init__(self, stream: httpx.AsyncByteStream) -> None:
        self._stream = stream

    async def __aiter__(self) -> AsyncIterator[bytes]:
        async for chunk in self._stream:
            yield chunk

    async def aclose(self) -> None:
        pass


def new_executor(
    client_provider: HttpClientProvider,
    registry: ContextValueRegistry[SignedInRequest],
    oauth_tokens: OAuthTokenService,
    logger: Logger,
) -> Callable[[DataSource], TempoExecutor]:
    """Return a factory building an executor bound to the given datasource's HTTP client."""

    def factory(datasource: DataSource) -> TempoExecutor:
        return TempoExecutor(
            client=client_provider.get_client(datasource),
            registry=registry,
            oauth_tokens=oauth_tokens,
            logger=logger,
        )

    return factory


__all__ = ["TempoExecutor", "new_executor"]
