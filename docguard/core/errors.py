from __future__ import annotations

from typing import Any


class DocguardError(Exception):
    """Base error for docguard."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    # Only infrastructure failures are safe for callers to retry.
    retryable: bool = False
    default_message = "Request failed"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details


class AuthenticationMissing(DocguardError):
    """No identity could be established for the request."""

    status_code = 401
    code = "AUTH_UNAUTHORIZED"
    default_message = "Authentication required"


class AccountSuspended(DocguardError):
    """The identity exists but its account is suspended."""

    status_code = 403
    code = "ACCOUNT_SUSPENDED"
    default_message = "Account is suspended"


class TenantContextMissing(DocguardError):
    """The identity has no resolvable tenant."""

    status_code = 401
    code = "TENANT_CONTEXT_MISSING"
    default_message = "Tenant context could not be resolved"


class WorkspaceAccessDenied(DocguardError):
    """The workspace selector names a workspace the identity cannot use."""

    status_code = 403
    code = "WORKSPACE_FORBIDDEN"
    default_message = "You don't have access to this workspace"


class ResourceNotFound(DocguardError):
    """Directory, document, summary or report absent in the tenant."""

    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class InsufficientPermission(DocguardError):
    """Resolved role ranks below the required role."""

    status_code = 403
    code = "AUTH_FORBIDDEN"
    default_message = "Insufficient permissions"


class RateLimitExceeded(DocguardError):
    """Action count exceeded the limit for the current window."""

    status_code = 429
    code = "RATE_LIMITED"
    default_message = "Rate limit exceeded"

    def __init__(self, *, retry_after_s: int, message: str | None = None, **details: Any) -> None:
        super().__init__(message, retry_after_s=retry_after_s, **details)
        self.retry_after_s = retry_after_s


class ResolutionInfrastructureFailure(DocguardError):
    """Repository or counter store unreachable or timed out."""

    status_code = 503
    code = "RESOLUTION_FAILED"
    retryable = True
    default_message = "Authorization backend unavailable"


class ActivityLogWriteError(ResolutionInfrastructureFailure):
    """The durable activity log entry could not be written."""

    default_message = "Activity log write failed"


class LinkTokenInvalid(DocguardError):
    """No link grant matches the presented token."""

    status_code = 403
    code = "LINK_INVALID"
    default_message = "Invalid link token"


class LinkTokenExpired(DocguardError):
    """The link grant matched but has expired."""

    status_code = 410
    code = "LINK_EXPIRED"
    default_message = "Link expired"
