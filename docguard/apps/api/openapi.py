from __future__ import annotations

from typing import Any

from docguard.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _response(description: str, *, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {
            "application/json": {
                "example": _error_example(code=code, message=message, details=details),
            }
        },
    }


DEFAULT_ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    401: _response("Unauthorized", code="AUTH_UNAUTHORIZED", message="Authentication required"),
    403: _response("Forbidden", code="AUTH_FORBIDDEN", message="Insufficient permissions"),
    404: _response("Not found", code="NOT_FOUND", message="Resource not found"),
    422: _response("Validation error", code="REQUEST_VALIDATION_ERROR", message="Validation error"),
    429: _response(
        "Rate limited",
        code="RATE_LIMITED",
        message="Rate limit exceeded",
        details={"retry_after_s": 42, "action": "workspace:invite", "scope": "user"},
    ),
    500: _response("Internal server error", code="INTERNAL_ERROR", message="Internal server error"),
    503: _response("Authorization backend unavailable", code="RESOLUTION_FAILED", message="Authorization backend unavailable"),
}

LINK_ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    404: _response("Unknown link", code="LINK_INVALID", message="Invalid link token"),
    410: _response("Expired link", code="LINK_EXPIRED", message="Link expired"),
}
