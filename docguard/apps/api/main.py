from __future__ import annotations

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from starlette.exceptions import HTTPException as StarletteHTTPException

from docguard.apps.api.errors import (
    docguard_exception_handler,
    starlette_http_exception_handler,
    tenant_predicate_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from docguard.apps.api.response import API_VERSION
from docguard.apps.api.routes.access import router as access_router
from docguard.apps.api.routes.activity import router as activity_router
from docguard.apps.api.routes.health import router as health_router
from docguard.apps.api.routes.links import router as links_router
from docguard.apps.api.routes.notifications import router as notifications_router
from docguard.apps.api.routes.shares import router as shares_router
from docguard.core.config import get_settings
from docguard.core.errors import DocguardError
from docguard.core.logging import configure_logging
from docguard.persistence.guards import TenantPredicateError


logger = logging.getLogger(__name__)

_PUBLIC_PATHS = {"/v1/health", "/v1/links/{token}"}


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(title="docguard API", version=API_VERSION)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000.0
        logger.debug(
            "request_completed method=%s path=%s status=%s latency_ms=%.1f",
            request.method,
            request.url.path,
            response.status_code,
            latency_ms,
        )
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    @app.exception_handler(DocguardError)
    async def _docguard_exception_handler(request: Request, exc: DocguardError):
        return await docguard_exception_handler(request, exc)

    @app.exception_handler(TenantPredicateError)
    async def _tenant_predicate_exception_handler(request: Request, exc: TenantPredicateError):
        return await tenant_predicate_exception_handler(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def _starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await starlette_http_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    # Mount versioned v1 API routes.
    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(access_router, prefix=f"/{API_VERSION}")
    # Link resolution is public; link creation requires ownership.
    app.include_router(links_router, prefix=f"/{API_VERSION}")
    app.include_router(shares_router, prefix=f"/{API_VERSION}")
    app.include_router(notifications_router, prefix=f"/{API_VERSION}")
    app.include_router(activity_router, prefix=f"/{API_VERSION}")

    def custom_openapi() -> dict:
        # Inject bearer auth into the OpenAPI schema for every non-public route.
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title=f"{settings.app_name} API",
            version=API_VERSION,
            routes=app.routes,
        )
        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes["BearerAuth"] = {"type": "http", "scheme": "bearer"}
        for path, operations in schema.get("paths", {}).items():
            if path in _PUBLIC_PATHS:
                continue
            for operation in operations.values():
                operation.setdefault("security", [{"BearerAuth": []}])
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
