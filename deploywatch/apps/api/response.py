from __future__ import annotations

from typing import Any, Generic, TypeVar
from uuid import uuid4

from fastapi import Request
from pydantic import BaseModel


API_VERSION = "v1"

DataT = TypeVar("DataT")


class Meta(BaseModel):
    request_id: str
    api_version: str = API_VERSION


class Envelope(BaseModel, Generic[DataT]):
    """Shape of every successful ``/v1`` response; ``/cron`` routes answer unwrapped."""

    data: DataT
    meta: Meta


def request_id_for(request: Request) -> str:
    # The middleware normally sets this; direct handler calls in tests may not.
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
    return request_id


def is_versioned_request(request: Request) -> bool:
    return request.url.path.startswith(f"/{API_VERSION}/")


def envelope(request: Request, data: Any) -> dict[str, Any]:
    if isinstance(data, BaseModel):
        data = data.model_dump()
    return {"data": data, "meta": Meta(request_id=request_id_for(request)).model_dump()}


def error_envelope(
    request: Request, *, code: str, message: str, details: dict[str, Any] | None = None
) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"error": error, "meta": Meta(request_id=request_id_for(request)).model_dump()}
