from __future__ import annotations

from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from starlette.exceptions import HTTPException as StarletteHTTPException

from atelier.apps.api.errors import (
    atelier_error_handler,
    http_exception_handler,
    starlette_http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from atelier.apps.api.response import API_PREFIX
from atelier.apps.api.routes.admin import router as admin_router
from atelier.apps.api.routes.galleries import router as galleries_router
from atelier.apps.api.routes.groups import router as groups_router
from atelier.apps.api.routes.health import router as health_router
from atelier.core.config import get_settings
from atelier.core.errors import AtelierError
from atelier.core.logging import configure_logging


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(title="Atelier API")

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get(settings.request_id_header) or str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers.setdefault(settings.request_id_header, request_id)
        return response

    @app.exception_handler(AtelierError)
    async def _atelier_error_handler(request: Request, exc: AtelierError):
        return await atelier_error_handler(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def _starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await starlette_http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException):
        return await http_exception_handler(request, exc)

    app.include_router(health_router, prefix=API_PREFIX)
    app.include_router(groups_router, prefix=API_PREFIX)
    app.include_router(galleries_router, prefix=API_PREFIX)
    # Admin endpoints are guarded per route by the ADMIN_ONLY chain.
    app.include_router(admin_router, prefix=API_PREFIX)

    def custom_openapi() -> dict:
        # Inject bearer auth into the OpenAPI schema for guarded routes.
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(title="Atelier API", version="1.0.0", routes=app.routes)
        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes["BearerAuth"] = {"type": "http", "scheme": "bearer"}
        for path, operations in schema.get("paths", {}).items():
            if path == f"{API_PREFIX}/health" or path.startswith(f"{API_PREFIX}/galleries"):
                continue
            for operation in operations.values():
                operation.setdefault("security", [{"BearerAuth": []}])
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
