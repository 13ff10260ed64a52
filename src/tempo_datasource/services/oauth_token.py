"""OAuth token lookup for datasources that forward the user's credentials."""

from __future__ import annotations

from typing import Protocol

from tempo_datasource.services.models import DataSource, OAuthToken, SignedInRequest, SignedInUser
from tempo_datasource.utils.logging import Logger


class OAuthTokenService(Protocol):
    """Resolves the delegated OAuth token of a signed-in user."""

    def get_current_oauth_token(self, request: SignedInRequest, user: SignedInUser) -> OAuthToken | None:
        """Return the user's token, or ``None`` when the user has none."""
        ...


def is_oauth_pass_thru_enabled(datasource: DataSource) -> bool:
    return datasource.oauth_pass_thru


class ForwardedOAuthTokenService:
    """Reads the user's token from the ``Authorization`` header set by the identity proxy in front of the app."""

    def __init__(self, logger: Logger, header: str = "authorization") -> None:
        self._logger = logger
        self._header = header.lower()

    def get_current_oauth_token(self, request: SignedInRequest, user: SignedInUser) -> OAuthToken | None:
        value = next((v for k, v in request.headers.items() if k.lower() == self._header), None)
        if not value:
            self._logger.debug("oauth_token_missing", extra={"user": user.login})
            return None

        token_type, _, access_token = value.strip().partition(" ")
        access_token = access_token.strip()
        if not token_type or not access_token:
            self._logger.warning("oauth_token_malformed", extra={"user": user.login})
            return None
        return OAuthToken(access_token=access_token, token_type=token_type)


__all__ = ["OAuthTokenService", "ForwardedOAuthTokenService", "is_oauth_pass_thru_enabled"]
