"""Datasource query endpoint."""

from __future__ import annotations

from collections.abc import Sequence

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field, field_validator

from tempo_datasource.services.models import DataQuery, DataResponse, SignedInRequest
from tempo_datasource.services.query_context import QueryContext
from tempo_datasource.utils.diagnostics import ConfigurationError, DiagnosticError
from tempo_datasource.utils.logging import get_logger, log_structured

from .dependencies import AppState, app_state, signed_in_request_dep

router = APIRouter(prefix="/api/ds", tags=["query"])


class QueryModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ref_id: str = Field(alias="refId", min_length=1)
    query: str = ""


class QueryRequest(BaseModel):
    queries: list[QueryModel] = Field(min_length=1)

    @field_validator("queries")
    @classmethod
    def unique_ref_ids(cls, queries: list[QueryModel]) -> list[QueryModel]:
        seen: set[str] = set()
        for query in queries:
            if query.ref_id in seen:
                raise ValueError(f"duplicate refId {query.ref_id!r}; every query needs its own refId")
            seen.add(query.ref_id)
        return queries


async def run_queries(
    state: AppState, signed_in: SignedInRequest, queries: Sequence[DataQuery]
) -> DataResponse:
    """Run ``queries`` with the request's auth context registered for the lifetime of the call."""

    ctx = QueryContext(timeout_seconds=state.settings.api.query_timeout_seconds)
    try:
        with state.registry.scoped(ctx, signed_in):
            response = await state.executor.data_query(ctx, state.datasource, queries)
    except ConfigurationError as diagnostic:
        get_logger().error("query_configuration_error", extra=diagnostic.to_extra())
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=diagnostic.message,
        ) from diagnostic
    except DiagnosticError as diagnostic:
        get_logger().warning("query_failed", extra=diagnostic.to_extra())
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(diagnostic)) from diagnostic
    finally:
        ctx.cancel("query finished")

    log_structured(
        get_logger(),
        "query_completed",
        user=signed_in.user.login,
        ref_ids=sorted(response.results),
    )
    return response


@router.post("/query")
async def query_data(
    payload: QueryRequest,
    state: AppState = Depends(app_state),
    signed_in: SignedInRequest = Depends(signed_in_request_dep),
) -> dict[str, object]:
    """Fetch every queried trace ID from Tempo and return one result per ``refId``."""

    queries = [DataQuery(ref_id=query.ref_id, query=query.query) for query in payload.queries]
    response = await run_queries(state, signed_in, queries)
    return response.to_dict()


__all__ = ["router", "run_queries"]
