"""Trace exploration endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from tempo_datasource.services.models import DataQuery, SignedInRequest

from .dependencies import AppState, app_state, signed_in_request_dep
from .query import run_queries

router = APIRouter(prefix="/api/traces", tags=["traces"])


@router.get("/{trace_id}")
async def get_trace(
    trace_id: str,
    state: AppState = Depends(app_state),
    signed_in: SignedInRequest = Depends(signed_in_request_dep),
) -> dict[str, object]:
    """Fetch a single trace and return its query result."""

    response = await run_queries(state, signed_in, [DataQuery(ref_id="A", query=trace_id)])
    return response.results["A"].to_dict()


__all__ = ["router"]
