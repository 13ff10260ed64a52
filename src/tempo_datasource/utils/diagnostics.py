"""Error types surfaced by the datasource query path."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class DiagnosticError(RuntimeError):
    """Error raised when we want to surface a friendly message to the caller."""

    code: str
    message: str
    detail: str | None = None

    def __str__(self) -> str:
        return f"{self.code}: {self.message}" if not self.detail else f"{self.code}: {self.message} ({self.detail})"

    def to_extra(self) -> dict[str, Any]:
        """Return a dict suitable for log enrichment."""

        data = {"code": self.code, "error": self.message}
        if self.detail:
            data["detail"] = self.detail
        return data


class ConfigurationError(DiagnosticError):
    """The datasource or request context is not set up for the query. Raised before any network call."""

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__("ConfigurationError", message, detail)


class TransportError(DiagnosticError):
    """Tempo could not be reached, or the query context was cancelled while waiting for it."""

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__("TransportError", message, detail)


class ProtocolError(DiagnosticError):
    """Tempo answered but the payload could not be decoded or tabulated.

    ``stage`` is either ``"decode"`` or ``"convert"``.
    """

    def __init__(self, stage: str, message: str, trace_id: str | None = None, detail: str | None = None) -> None:
        super().__init__("ProtocolError", message, detail)
        self.stage = stage
        self.trace_id = trace_id

    def to_extra(self) -> dict[str, Any]:
        data = super().to_extra()
        data["stage"] = self.stage
        if self.trace_id is not None:
            data["trace_id"] = self.trace_id
        return data


__all__ = ["DiagnosticError", "ConfigurationError", "TransportError", "ProtocolError"]
