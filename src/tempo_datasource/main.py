"""FastAPI application factory for the Tempo datasource backend."""

from __future__ import annotations

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tempo_datasource.api import query, traces
from tempo_datasource.api.dependencies import lifespan_dependencies, settings
from tempo_datasource.config import Settings
from tempo_datasource.services.oauth_token import OAuthTokenService
from tempo_datasource.utils.logging import get_logger, set_log_level


def create_app(
    app_settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    oauth_tokens: OAuthTokenService | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app_settings = app_settings or settings()
    set_log_level(app_settings.api.log_level)
    logger = get_logger()
    logger.info(
        "starting tempo datasource backend",
        extra={"port": app_settings.api.port, "datasource": app_settings.datasource.uid},
    )

    async def lifespan(app: FastAPI):
        async with lifespan_dependencies(app_settings, transport=transport, oauth_tokens=oauth_tokens) as state:
            app.state.tempo_state = state
            yield
            del app.state.tempo_state

    app = FastAPI(title="Tempo Datasource", lifespan=lifespan)

    if app_settings.api.enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=app_settings.api.allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(query.router)
    app.include_router(traces.router)

    @app.get("/healthz")
    async def readiness() -> dict[str, str]:  # pragma: no cover - trivial
        return {"status": "ok"}

    return app


def run() -> None:
    """Serve the application with uvicorn using the configured bind address."""

    app_settings = settings()
    uvicorn.run(create_app(app_settings), host=app_settings.api.host, port=app_settings.api.port)


__all__ = ["create_app", "run"]
