"""Runtime configuration models for the Tempo datasource backend."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, HttpUrl, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatasourceSettings(BaseSettings):
    """Connection settings for the Tempo datasource queried by this backend."""

    uid: str = Field(default="tempo", description="Stable identifier used to cache the datasource HTTP client.")
    name: str = Field(default="Tempo", description="Display name reported in logs.")
    url: HttpUrl | None = Field(
        default=None,
        description="Base URL of the Tempo query frontend. Queries fail with a configuration error when unset.",
    )
    basic_auth: bool = Field(default=False, description="Send HTTP basic auth credentials to Tempo.")
    basic_auth_user: str = Field(default="", description="Basic auth user name.")
    basic_auth_password: SecretStr = Field(
        default=SecretStr(""),
        description="Basic auth password. Kept as a secret so it never shows up in settings dumps.",
    )
    oauth_pass_thru: bool = Field(
        default=False,
        description=(
            "Forward the signed-in user's OAuth token to Tempo. Requires the request context to be registered "
            "for the duration of the query."
        ),
    )
    timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Timeout applied to the datasource HTTP client.",
    )

    model_config = SettingsConfigDict(env_prefix="TEMPO_DATASOURCE_")


class ApiSettings(BaseSettings):
    """API-level configuration for the FastAPI application."""

    host: str = Field(default="0.0.0.0", description="Address uvicorn should bind to.")
    port: int = Field(default=3100, ge=1, le=65535, description="Port exposed for HTTP traffic.")
    enable_cors: bool = Field(
        default=True,
        description="Whether to allow cross-origin requests from the dashboard frontend during development.",
    )
    allowed_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="Whitelisted origins if CORS is enabled.",
    )
    query_timeout_seconds: float | None = Field(
        default=60.0,
        ge=1.0,
        description="Deadline applied to each inbound query. ``None`` disables the deadline.",
    )
    user_header: str = Field(
        default="X-WEBAUTH-USER",
        description="Header set by the fronting auth proxy with the signed-in user's login.",
    )
    log_level: str = Field(
        default="INFO",
        pattern="(?i)^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Level of the ``tempo`` logger. DEBUG logs every outbound Tempo request.",
    )

    model_config = SettingsConfigDict(env_prefix="TEMPO_API_")


class Settings(BaseSettings):
    """Top-level settings container that aggregates subsystem configuration."""

    datasource: DatasourceSettings = Field(default_factory=DatasourceSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)

    model_config = SettingsConfigDict(env_prefix="TEMPO_", env_nested_delimiter="__")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached settings instance.

    Tests override values by clearing the cache with ``get_settings.cache_clear()``.
    """

    return Settings()


__all__ = ["Settings", "get_settings", "DatasourceSettings", "ApiSettings"]
