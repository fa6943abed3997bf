from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from atelier.apps.api.response import error_response, get_request_id
from atelier.core.errors import AtelierError, InternalError


logger = logging.getLogger(__name__)

_DEFAULT_ERROR_CODES: dict[int, str] = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHENTICATED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
}


def _default_code(status_code: int) -> str:
    # Map status codes to fallback error codes when none are provided.
    return _DEFAULT_ERROR_CODES.get(status_code, "UNKNOWN_ERROR")


def _split_detail(detail: Any, status_code: int) -> tuple[str, str]:
    if isinstance(detail, dict):
        code = str(detail.get("code") or _default_code(status_code))
        message = str(detail.get("message") or "Request failed")
        return code, message
    if isinstance(detail, str):
        return _default_code(status_code), detail
    return _default_code(status_code), "Request failed"


def _log_context(request: Request) -> dict[str, Any]:
    return {
        "request_id": get_request_id(request),
        "principal_id": getattr(request.state, "principal_id", None),
        "method": request.method,
        "path": request.url.path,
    }


async def atelier_error_handler(request: Request, exc: AtelierError) -> JSONResponse:
    # Expected control-flow failures carry their own code and status.
    if isinstance(exc, InternalError):
        ctx = _log_context(request)
        logger.error(
            "internal_error request_id=%s principal_id=%s method=%s path=%s",
            ctx["request_id"],
            ctx["principal_id"],
            ctx["method"],
            ctx["path"],
        )
        payload = error_response(code=InternalError.code, message=InternalError.default_message)
        return JSONResponse(content=payload, status_code=InternalError.status_code)
    payload = error_response(code=exc.code, message=exc.message)
    return JSONResponse(content=payload, status_code=exc.status_code)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code, message = _split_detail(exc.detail, exc.status_code)
    return JSONResponse(
        content=error_response(code=code, message=message),
        status_code=exc.status_code,
        headers=exc.headers,
    )


async def starlette_http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    # Route misses and method mismatches raised by Starlette get the same envelope.
    code, message = _split_detail(exc.detail, exc.status_code)
    return JSONResponse(
        content=error_response(code=code, message=message),
        status_code=exc.status_code,
        headers=exc.headers,
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Malformed bodies are a bad request; report the first problem in plain words.
    errors = exc.errors()
    message = "Request validation failed"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = first.get("msg", "invalid value")
        message = f"{location}: {detail}" if location else str(detail)
    return JSONResponse(
        content=error_response(code="VALIDATION_ERROR", message=message),
        status_code=400,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Avoid leaking stack traces; log full detail server-side with correlating identifiers.
    ctx = _log_context(request)
    logger.error(
        "unhandled_exception request_id=%s principal_id=%s method=%s path=%s",
        ctx["request_id"],
        ctx["principal_id"],
        ctx["method"],
        ctx["path"],
        exc_info=exc,
    )
    return JSONResponse(
        content=error_response(code="INTERNAL_ERROR", message="Internal server error"),
        status_code=500,
    )
