from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, AsyncGenerator, Awaitable, Callable

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from docguard.core.config import get_settings
from docguard.core.errors import (
    AccountSuspended,
    AuthenticationMissing,
    InsufficientPermission,
    WorkspaceAccessDenied,
)
from docguard.domain.grants import LinkAccess
from docguard.domain.identity import AccessContext, Identity
from docguard.domain.roles import Role
from docguard.persistence import db as db_module
from docguard.persistence.db import get_session
from docguard.persistence.repos.grants import SqlGrantRepository
from docguard.services.auth.identity import identity_from_token, parse_bearer_token
from docguard.services.authz.guard import (
    AccessGuard,
    CreateInDirectoryTarget,
    DirectoryTarget,
    DocumentTarget,
    GuardDecision,
    GuardTarget,
    ReportTarget,
    SummaryTarget,
    decision_to_error,
    extract_resource_id,
)
from docguard.services.authz.links import resolve_link_access
from docguard.services.events import EventPublisher


logger = logging.getLogger(__name__)

GuardDependency = Callable[..., Awaitable[GuardDecision]]


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


def get_grant_repository(db: AsyncSession = Depends(get_db)) -> SqlGrantRepository:
    return SqlGrantRepository(db)


def get_access_guard(repo: SqlGrantRepository = Depends(get_grant_repository)) -> AccessGuard:
    return AccessGuard(repo)


def get_event_publisher() -> EventPublisher:
    return EventPublisher(db_module.SessionLocal)


async def get_optional_identity(
    request: Request,
    repo: SqlGrantRepository = Depends(get_grant_repository),
) -> Identity | None:
    # No credential yields None; a malformed or invalid credential is still an error.
    settings = get_settings()
    token = parse_bearer_token(request.headers.get(settings.auth_header))
    if token is None:
        return None
    return await identity_from_token(repo, token)


async def get_identity(identity: Identity | None = Depends(get_optional_identity)) -> Identity:
    if identity is None:
        raise AuthenticationMissing()
    # Suspended accounts are rejected before any route or guard logic runs.
    if identity.is_suspended:
        raise AccountSuspended()
    return identity


async def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.is_admin:
        raise InsufficientPermission("Admin role required", required_role="admin")
    return identity


def _link_token_from_request(request: Request) -> str | None:
    settings = get_settings()
    token = request.headers.get(settings.link_token_header) or request.query_params.get(
        settings.link_token_query_param
    )
    token = (token or "").strip()
    return token or None


async def get_link_access(
    request: Request,
    repo: SqlGrantRepository = Depends(get_grant_repository),
) -> LinkAccess | None:
    # A presented token must be valid; an absent one simply grants nothing.
    token = _link_token_from_request(request)
    if token is None:
        return None
    return await resolve_link_access(repo, token)


@dataclass(frozen=True)
class WorkspaceSelection:
    workspace_id: str | None
    # Tenant the request resolves in; differs from the home tenant for cross-tenant members.
    tenant_id: str


async def _check_workspace(
    repo: SqlGrantRepository,
    identity: Identity,
    workspace_id: str,
) -> WorkspaceSelection | None:
    # The tenant itself, an active membership (any tenant), or admin privilege within the home tenant.
    if workspace_id == identity.tenant_id:
        return WorkspaceSelection(workspace_id, identity.tenant_id)
    membership = await repo.get_active_membership(user_id=identity.subject_id, workspace_id=workspace_id)
    if membership is not None:
        return WorkspaceSelection(workspace_id, membership.workspace_tenant_id)
    if identity.is_admin:
        return WorkspaceSelection(workspace_id, identity.tenant_id)
    return None


async def select_workspace(
    repo: SqlGrantRepository,
    identity: Identity,
    selector: str | None,
) -> WorkspaceSelection:
    """Validate the workspace selector for this request.

    An explicit selector that fails the check is rejected. Without one, the identity's last
    selected workspace goes through the same check and is dropped in favour of the tenant
    when it fails, e.g. after the membership was suspended.
    """
    home = WorkspaceSelection(None, identity.tenant_id)
    selector = (selector or "").strip()
    if selector:
        selection = await _check_workspace(repo, identity, selector)
        if selection is None:
            raise WorkspaceAccessDenied(workspace_id=selector)
        return selection
    if not identity.default_workspace_id:
        return home
    selection = await _check_workspace(repo, identity, identity.default_workspace_id)
    if selection is None:
        logger.info(
            "default_workspace_ignored subject_id=%s workspace_id=%s",
            identity.subject_id,
            identity.default_workspace_id,
        )
        return home
    return selection


def _context(
    identity: Identity,
    selection: WorkspaceSelection,
    link_access: LinkAccess | None = None,
) -> AccessContext:
    workspace_tenant_id = selection.tenant_id if selection.tenant_id != identity.tenant_id else None
    return AccessContext(
        identity=identity,
        workspace_id=selection.workspace_id,
        link_access=link_access,
        workspace_tenant_id=workspace_tenant_id,
    )


async def get_access_context(
    request: Request,
    identity: Identity = Depends(get_identity),
    repo: SqlGrantRepository = Depends(get_grant_repository),
    link_access: LinkAccess | None = Depends(get_link_access),
) -> AccessContext:
    settings = get_settings()
    selection = await select_workspace(repo, identity, request.headers.get(settings.workspace_header))
    return _context(identity, selection, link_access)


async def get_optional_access_context(
    request: Request,
    identity: Identity | None = Depends(get_optional_identity),
    repo: SqlGrantRepository = Depends(get_grant_repository),
) -> AccessContext | None:
    # Used where anonymous callers are allowed, e.g. rate limiting by workspace.
    if identity is None or identity.is_suspended:
        return None
    settings = get_settings()
    selection = await select_workspace(repo, identity, request.headers.get(settings.workspace_header))
    return _context(identity, selection)


async def _json_body(request: Request) -> Any:
    # Only JSON bodies can carry resource ids; anything else is ignored.
    content_type = (request.headers.get("content-type") or "").lower()
    if not content_type.startswith("application/json"):
        return None
    try:
        return await request.json()
    except ValueError:
        return None


def _missing_id(key: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"code": "RESOURCE_ID_REQUIRED", "message": f"Missing {key}"},
    )


async def _enforce(
    guard: AccessGuard,
    context: AccessContext,
    target: GuardTarget,
    required_role: Role,
) -> GuardDecision:
    decision = await guard.enforce(context, target, required_role)
    if not decision.allowed:
        raise decision_to_error(decision)
    return decision


def require_directory_permission(required_role: Role, *, key: str = "directory_id") -> GuardDependency:
    # Missing ids and the "root" sentinel address the root of the tree.
    async def _dependency(
        request: Request,
        context: AccessContext = Depends(get_access_context),
        guard: AccessGuard = Depends(get_access_guard),
    ) -> GuardDecision:
        body = await _json_body(request)
        directory_id = extract_resource_id(
            request.path_params, body, request.query_params, key, directory=True
        )
        return await _enforce(guard, context, DirectoryTarget(directory_id), required_role)

    return _dependency


def require_create_in_directory(*, key: str = "parent_id") -> GuardDependency:
    # Creating anything under a directory needs at least editor on the parent.
    async def _dependency(
        request: Request,
        context: AccessContext = Depends(get_access_context),
        guard: AccessGuard = Depends(get_access_guard),
    ) -> GuardDecision:
        body = await _json_body(request)
        parent_id = extract_resource_id(request.path_params, body, request.query_params, key, directory=True)
        return await _enforce(guard, context, CreateInDirectoryTarget(parent_id), Role.EDITOR)

    return _dependency


def require_document_permission(required_role: Role, *, key: str = "document_id") -> GuardDependency:
    async def _dependency(
        request: Request,
        context: AccessContext = Depends(get_access_context),
        guard: AccessGuard = Depends(get_access_guard),
    ) -> GuardDecision:
        body = await _json_body(request)
        document_id = extract_resource_id(request.path_params, body, request.query_params, key)
        if document_id is None:
            raise _missing_id(key)
        return await _enforce(guard, context, DocumentTarget(document_id), required_role)

    return _dependency


def require_body_document_permission(required_role: Role, *, key: str = "document_id") -> GuardDependency:
    # Body-only variant for routes whose path does not name the document.
    async def _dependency(
        request: Request,
        context: AccessContext = Depends(get_access_context),
        guard: AccessGuard = Depends(get_access_guard),
    ) -> GuardDecision:
        body = await _json_body(request)
        document_id = extract_resource_id(None, body, None, key)
        if document_id is None:
            raise _missing_id(key)
        return await _enforce(guard, context, DocumentTarget(document_id), required_role)

    return _dependency


def require_summary_permission(required_role: Role, *, key: str = "summary_id") -> GuardDependency:
    async def _dependency(
        request: Request,
        context: AccessContext = Depends(get_access_context),
        guard: AccessGuard = Depends(get_access_guard),
    ) -> GuardDecision:
        summary_id = extract_resource_id(request.path_params, None, request.query_params, key)
        if summary_id is None:
            raise _missing_id(key)
        return await _enforce(guard, context, SummaryTarget(summary_id), required_role)

    return _dependency


def require_report_permission(required_role: Role, *, key: str = "report_id") -> GuardDependency:
    async def _dependency(
        request: Request,
        context: AccessContext = Depends(get_access_context),
        guard: AccessGuard = Depends(get_access_guard),
    ) -> GuardDecision:
        report_id = extract_resource_id(request.path_params, None, request.query_params, key)
        if report_id is None:
            raise _missing_id(key)
        return await _enforce(guard, context, ReportTarget(report_id), required_role)

    return _dependency
