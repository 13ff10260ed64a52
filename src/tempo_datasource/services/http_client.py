"""Per-datasource HTTP client cache."""

from __future__ import annotations

import httpx

from tempo_datasource.services.models import DataSource
from tempo_datasource.utils.logging import Logger


class HttpClientProvider:
    """Hands out one shared :class:`httpx.AsyncClient` per datasource uid and closes them on shutdown."""

    def __init__(self, logger: Logger, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._logger = logger
        self._transport = transport
        self._clients: dict[str, httpx.AsyncClient] = {}

    def get_client(self, datasource: DataSource) -> httpx.AsyncClient:
        client = self._clients.get(datasource.uid)
        if client is None:
            client = httpx.AsyncClient(timeout=datasource.timeout_seconds, transport=self._transport)
            self._clients[datasource.uid] = client
            self._logger.debug("http_client_created", extra={"datasource": datasource.uid})
        return client

    async def aclose(self) -> None:
        clients, self._clients = self._clients, {}
        for client in clients.values():
            await client.aclose()


__all__ = ["HttpClientProvider"]
