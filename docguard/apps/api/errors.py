from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from docguard.apps.api.response import error_response, is_versioned_request
from docguard.core.errors import DocguardError, RateLimitExceeded
from docguard.persistence.guards import TenantPredicateError


logger = logging.getLogger(__name__)

_DEFAULT_ERROR_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "AUTH_UNAUTHORIZED",
    403: "AUTH_FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    410: "GONE",
    422: "VALIDATION_ERROR",
    429: "RATE_LIMITED",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


def _default_code(status_code: int) -> str:
    return _DEFAULT_ERROR_CODES.get(status_code, "UNKNOWN_ERROR")


def _split_detail(detail: Any, status_code: int) -> tuple[str, str, dict[str, Any] | None]:
    # Extract code/message/details from HTTPException detail payloads.
    if isinstance(detail, dict):
        code = str(detail.get("code") or _default_code(status_code))
        message = str(detail.get("message") or "Request failed")
        details = {k: v for k, v in detail.items() if k not in {"code", "message"}}
        return code, message, details or None
    if isinstance(detail, str):
        return _default_code(status_code), detail, None
    return _default_code(status_code), "Request failed", None


def _error_headers(exc: DocguardError) -> dict[str, str] | None:
    if isinstance(exc, RateLimitExceeded):
        return {"Retry-After": str(exc.retry_after_s)}
    if exc.status_code == 401:
        return {"WWW-Authenticate": "Bearer"}
    return None


async def docguard_exception_handler(request: Request, exc: DocguardError) -> JSONResponse:
    # Map the error taxonomy onto status codes and the shared envelope.
    if exc.status_code >= 500:
        logger.warning("request_failed code=%s path=%s", exc.code, request.url.path, exc_info=exc)
    headers = _error_headers(exc)
    if not is_versioned_request(request):
        return JSONResponse(
            content={"detail": {"code": exc.code, "message": exc.message}},
            status_code=exc.status_code,
            headers=headers,
        )
    payload = error_response(
        request=request,
        code=exc.code,
        message=exc.message,
        details=jsonable_encoder(exc.details) or None,
        retryable=True if exc.retryable else None,
    )
    return JSONResponse(content=payload, status_code=exc.status_code, headers=headers)


async def tenant_predicate_exception_handler(request: Request, exc: TenantPredicateError) -> JSONResponse:
    # A query without a tenant is a server bug; never echo the query shape.
    logger.error("tenant_predicate_missing path=%s", request.url.path, exc_info=exc)
    payload = error_response(
        request=request,
        code="TENANT_PREDICATE_REQUIRED",
        message="Tenant scoping failed",
    )
    return JSONResponse(content=payload, status_code=500)


async def starlette_http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    # Covers fastapi.HTTPException as well, which subclasses Starlette's.
    if not is_versioned_request(request):
        return JSONResponse(content={"detail": exc.detail}, status_code=exc.status_code, headers=exc.headers)
    code, message, details = _split_detail(exc.detail, exc.status_code)
    payload = error_response(request=request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=exc.status_code, headers=exc.headers)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    if not is_versioned_request(request):
        return JSONResponse(content={"detail": jsonable_encoder(exc.errors())}, status_code=422)
    payload = error_response(
        request=request,
        code="REQUEST_VALIDATION_ERROR",
        message="Validation error",
        details={"errors": jsonable_encoder(exc.errors())},
    )
    return JSONResponse(content=payload, status_code=422)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Avoid leaking stack traces; return a stable internal error envelope.
    logger.exception("unhandled_exception path=%s", request.url.path, exc_info=exc)
    if not is_versioned_request(request):
        return JSONResponse(content={"detail": "Internal Server Error"}, status_code=500)
    payload = error_response(
        request=request,
        code="INTERNAL_ERROR",
        message="Internal server error",
    )
    return JSONResponse(content=payload, status_code=500)
