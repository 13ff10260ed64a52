"""Shared FastAPI dependency providers and application lifespan management."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
from fastapi import Depends, Request

from tempo_datasource.config import DatasourceSettings, Settings, get_settings
from tempo_datasource.services.context_registry import ContextValueRegistry
from tempo_datasource.services.http_client import HttpClientProvider
from tempo_datasource.services.models import DataSource, SignedInRequest, SignedInUser
from tempo_datasource.services.oauth_token import ForwardedOAuthTokenService, OAuthTokenService
from tempo_datasource.services.tempo_executor import TempoExecutor, new_executor
from tempo_datasource.utils.logging import get_logger

_ANONYMOUS = "anonymous"


@dataclass(slots=True)
class AppState:
    """Holds singletons that should be reused across requests."""

    settings: Settings
    registry: ContextValueRegistry[SignedInRequest]
    client_provider: HttpClientProvider
    oauth_tokens: OAuthTokenService
    datasource: DataSource
    executor: TempoExecutor


def settings() -> Settings:
    """Expose the cached settings instance for dependency injection."""

    return get_settings()


def datasource_from_settings(ds: DatasourceSettings) -> DataSource:
    """Snapshot the datasource settings into the immutable model handed to the executor."""

    return DataSource(
        uid=ds.uid,
        name=ds.name,
        url=str(ds.url) if ds.url is not None else "",
        basic_auth=ds.basic_auth,
        basic_auth_user=ds.basic_auth_user,
        basic_auth_password=ds.basic_auth_password.get_secret_value(),
        oauth_pass_thru=ds.oauth_pass_thru,
        timeout_seconds=ds.timeout_seconds,
    )


@asynccontextmanager
async def lifespan_dependencies(
    app_settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
    oauth_tokens: OAuthTokenService | None = None,
) -> AsyncIterator[AppState]:
    """Construct collaborators once at startup and dispose them during shutdown.

    ``transport`` and ``oauth_tokens`` let tests swap Tempo and the identity provider for fakes.
    """

    logger = get_logger()
    registry: ContextValueRegistry[SignedInRequest] = ContextValueRegistry()
    client_provider = HttpClientProvider(logger=logger.getChild("http"), transport=transport)
    tokens = oauth_tokens or ForwardedOAuthTokenService(logger=logger.getChild("oauth"))
    datasource = datasource_from_settings(app_settings.datasource)
    build_executor = new_executor(
        client_provider,
        registry=registry,
        oauth_tokens=tokens,
        logger=logger.getChild("executor"),
    )

    try:
        yield AppState(
            settings=app_settings,
            registry=registry,
            client_provider=client_provider,
            oauth_tokens=tokens,
            datasource=datasource,
            executor=build_executor(datasource),
        )
    finally:
        if len(registry):
            logger.warning("context_registry_not_empty", extra={"entries": len(registry)})
        await client_provider.aclose()


def app_state(request: Request) -> AppState:
    """Fetch the lazily constructed :class:`AppState` from FastAPI's lifespan."""

    state = getattr(request.app.state, "tempo_state", None)
    assert isinstance(state, AppState), "App state missing; ensure lifespan wiring executed."
    return state


def signed_in_request_dep(request: Request, state: AppState = Depends(app_state)) -> SignedInRequest:
    """Resolve the signed-in user from the auth proxy header and capture the request's headers."""

    login = request.headers.get(state.settings.api.user_header) or _ANONYMOUS
    return SignedInRequest(user=SignedInUser(login=login), headers=dict(request.headers))


__all__ = [
    "AppState",
    "settings",
    "datasource_from_settings",
    "lifespan_dependencies",
    "app_state",
    "signed_in_request_dep",
]
