"""Domain models shared across the query path."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class DataSource:
    """Read-only snapshot of the datasource configuration used for one query."""

    uid: str
    name: str
    url: str
    basic_auth: bool = False
    basic_auth_user: str = ""
    basic_auth_password: str = ""
    oauth_pass_thru: bool = False
    timeout_seconds: float = 30.0

    def __repr__(self) -> str:
        return f"DataSource(uid={self.uid!r}, name={self.name!r}, url={self.url!r})"


@dataclass(frozen=True, slots=True)
class SignedInUser:
    """User identity resolved by the web layer for the inbound request."""

    login: str
    org_id: int = 1


@dataclass(frozen=True, slots=True)
class SignedInRequest:
    """Auth context of an inbound web request, shared with the executor through the context registry."""

    user: SignedInUser
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class OAuthToken:
    """Delegated OAuth credential for a signed-in user."""

    access_token: str
    token_type: str = "Bearer"

    def authorization(self) -> str:
        """Return the value of the ``Authorization`` header for this token."""

        return f"{self.token_type} {self.access_token}"


@dataclass(slots=True)
class Field:
    """A named, typed column of a :class:`Frame`."""

    name: str
    type: str
    values: list[Any] = field(default_factory=list)
    config: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Frame:
    """Tabular result consumed by the dashboard frontend."""

    name: str
    fields: list[Field]
    ref_id: str = ""
    meta: Mapping[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.fields[0].values) if self.fields else 0

    def column(self, name: str) -> Field:
        for column in self.fields:
            if column.name == name:
                return column
        raise KeyError(name)

    def append_row(self, *values: Any) -> None:
        if len(values) != len(self.fields):
            raise ValueError(f"expected {len(self.fields)} values, got {len(values)}")
        for column, value in zip(self.fields, values):
            column.values.append(value)

    def to_dict(self) -> dict[str, Any]:
        """Serialize into the columnar ``schema`` + ``data`` document the frontend expects."""

        schema_fields = []
        for column in self.fields:
            entry: dict[str, Any] = {"name": column.name, "type": column.type}
            if column.config:
                entry["config"] = dict(column.config)
            schema_fields.append(entry)
        return {
            "schema": {
                "name": self.name,
                "refId": self.ref_id,
                "meta": dict(self.meta),
                "fields": schema_fields,
            },
            "data": {"values": [list(column.values) for column in self.fields]},
        }


@dataclass(frozen=True, slots=True)
class DataQuery:
    """One query of a batch: the trace ID to fetch and its reference identifier."""

    ref_id: str
    query: str


@dataclass(slots=True)
class QueryResult:
    """Outcome of a single query.

    A populated ``error`` means Tempo answered but rejected the query; callers must check it in addition to
    handling raised errors.
    """

    ref_id: str
    frames: list[Frame] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"frames": [frame.to_dict() for frame in self.frames]}
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(slots=True)
class DataResponse:
    """Results of a query batch keyed by reference identifier."""

    results: dict[str, QueryResult] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"results": {ref_id: result.to_dict() for ref_id, result in self.results.items()}}


__all__ = [
    "DataSource",
    "SignedInUser",
    "SignedInRequest",
    "OAuthToken",
    "Field",
    "Frame",
    "DataQuery",
    "QueryResult",
    "DataResponse",
]
