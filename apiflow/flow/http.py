"""
HTTP-shaped inputs and outputs of a flow execution.

RequestContext is what the gateway hands the engine for one inbound
request; ExecutionResult is what it gets back. Neither carries any
transport object, so the engine never touches the web framework.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import unquote

from pydantic import BaseModel, ConfigDict, Field, field_validator

JSON_CONTENT_TYPE = "application/json"


class RequestContext(BaseModel):
    """Inbound request as seen by a flow."""

    model_config = ConfigDict(extra="ignore")

    method: str = "GET"
    path: str = "/"
    headers: dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    params: dict[str, Any] = Field(default_factory=dict)
    query: dict[str, Any] = Field(default_factory=dict)

    @field_validator("method")
    @classmethod
    def _normalize_method(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("path")
    @classmethod
    def _normalize_path(cls, value: str) -> str:
        return "/" + "/".join(segment for segment in value.split("/") if segment)

    @classmethod
    def coerce(cls, value: "RequestContext | dict[str, Any]") -> "RequestContext":
        if isinstance(value, cls):
            return value
        return cls.model_validate(value)


@dataclass(frozen=True)
class ExecutionResult:
    """
    HTTP-shaped result of one flow execution.

    Always well-formed: failures are expressed through `status` and an
    error `body`, never by raising.
    """

    status: int
    headers: dict[str, str] = field(default_factory=lambda: {"Content-Type": JSON_CONTENT_TYPE})
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 400

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "headers": dict(self.headers),
            "body": self.body,
        }


def match_route(pattern: str, path: str) -> dict[str, str] | None:
    """
    Match a request path against an entry-node route pattern.

    Patterns use `:name` segments for captures, e.g. `/users/:id`.

    Returns:
        Captured parameters, or None when the path does not match.
    """
    pattern_parts = [p for p in pattern.split("/") if p]
    path_parts = [p for p in path.split("/") if p]
    if len(pattern_parts) != len(path_parts):
        return None

    params: dict[str, str] = {}
    for expected, actual in zip(pattern_parts, path_parts):
        if expected.startswith(":") and len(expected) > 1:
            params[expected[1:]] = unquote(actual)
        elif expected != actual:
            return None
    return params
