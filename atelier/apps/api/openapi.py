from __future__ import annotations

from typing import Any

from atelier.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str) -> dict[str, Any]:
    # Build a consistent error envelope example for OpenAPI docs.
    return {"error": {"code": code, "message": message}}


def _error_response(description: str, *, code: str, message: str) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": _error_example(code=code, message=message)}},
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: _error_response("Malformed input", code="VALIDATION_ERROR", message="limit must be an integer"),
    401: _error_response("No verified principal", code="UNAUTHENTICATED", message="Authentication required"),
    403: _error_response("Insufficient authority", code="FORBIDDEN", message="insufficient resource role"),
    404: _error_response("Entity absent", code="NOT_FOUND", message="Group not found"),
    409: _error_response("Invalid for current state", code="CONFLICT", message="User is already suspended"),
    500: _error_response("Internal server error", code="INTERNAL_ERROR", message="Internal server error"),
}
