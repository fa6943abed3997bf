from __future__ import annotations

from typing import Any, Generic, TypeVar
from uuid import uuid4

from fastapi import Request
from pydantic import BaseModel

from atelier.core.config import get_settings
from atelier.services.listing import PageMeta


API_PREFIX = "/api"

T = TypeVar("T")


class ErrorDetail(BaseModel):
    # Standardize error codes/messages for every failure path.
    code: str
    message: str


class ErrorEnvelope(BaseModel):
    error: ErrorDetail


class PaginationModel(BaseModel):
    page: int
    limit: int
    total: int
    pages: int
    hasNext: bool
    hasPrev: bool


class SuccessEnvelope(BaseModel, Generic[T]):
    data: T


class ListEnvelope(BaseModel, Generic[T]):
    data: list[T]
    pagination: PaginationModel


def get_request_id(request: Request) -> str:
    # Use existing request IDs when provided to preserve traceability.
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return request_id
    header_request_id = request.headers.get(get_settings().request_id_header)
    if header_request_id:
        request.state.request_id = header_request_id
        return header_request_id
    generated = str(uuid4())
    request.state.request_id = generated
    return generated


def success_response(data: Any) -> dict[str, Any]:
    return {"data": data}


def list_response(data: list[Any], meta: PageMeta) -> dict[str, Any]:
    return {"data": data, "pagination": meta.as_dict()}


def error_response(*, code: str, message: str) -> dict[str, Any]:
    error = ErrorDetail(code=code, message=message)
    return {"error": error.model_dump()}
