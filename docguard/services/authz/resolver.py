from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any, Callable, Protocol

from docguard.domain.grants import (
    RESOURCE_DIRECTORY,
    RESOURCE_DOCUMENT,
    SCOPE_USER,
    SCOPE_WORKSPACE,
    LinkAccess,
    LinkGrant,
    ShareGrant,
)
from docguard.domain.identity import AccessContext
from docguard.domain.models import DOCUMENT_TYPE_DRHP, DOCUMENT_TYPE_RHP
from docguard.domain.roles import Role


logger = logging.getLogger(__name__)

SOURCE_ROOT = "root"
SOURCE_ADMIN = "admin"
SOURCE_NOT_FOUND = "not_found"
SOURCE_OWNER = "owner"
SOURCE_WORKSPACE_MEMBER = "workspace_member"
SOURCE_LINK = "link"
SOURCE_LINK_COUNTERPART = "link_counterpart"
SOURCE_USER_GRANT = "user_grant"
SOURCE_WORKSPACE_GRANT = "workspace_grant"
SOURCE_NO_GRANT = "no_grant"


class GrantRepository(Protocol):
    """Tenant-scoped read access to resources, grants, users and memberships.

    Implementations raise ``ResolutionInfrastructureFailure`` when the backing store is
    unreachable; a missing row is always ``None``.
    """

    async def get_directory(self, *, tenant_id: str, directory_id: str) -> Any | None: ...

    async def get_document(self, *, tenant_id: str, document_id: str) -> Any | None: ...

    async def get_summary(self, *, tenant_id: str, summary_id: str) -> Any | None: ...

    async def get_report(self, *, tenant_id: str, report_id: str) -> Any | None: ...

    async def get_user(self, *, user_id: str) -> Any | None: ...

    async def find_share_grant(
        self,
        *,
        tenant_id: str,
        resource_type: str,
        resource_id: str,
        scope: str,
        principal_id: str,
        now: datetime,
    ) -> ShareGrant | None: ...

    async def find_link_grant(self, *, token: str) -> LinkGrant | None: ...

    async def get_active_membership(self, *, user_id: str, workspace_id: str) -> Any | None: ...

    async def list_audience_candidates(self, *, tenant_id: str) -> list[Any]: ...

    async def list_tenant_admins(self, *, tenant_id: str) -> list[Any]: ...


@dataclass(frozen=True)
class Resolution:
    # found is False only when the resource is absent in the caller's tenant.
    role: Role
    found: bool
    source: str


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PermissionResolver:
    """Compute the effective role of an access context on a directory or document.

    Rules are evaluated in a fixed precedence order and the first match wins. "No access"
    is expressed as ``Role.NONE``; only repository failures raise.
    """

    def __init__(self, repo: GrantRepository, *, clock: Callable[[], datetime] | None = None) -> None:
        self._repo = repo
        self._clock = clock or _utc_now

    async def resolve_directory_role(self, context: AccessContext, directory_id: str | None) -> Role:
        return (await self.resolve_directory(context, directory_id)).role

    async def resolve_document_role(self, context: AccessContext, document_id: str) -> Role:
        return (await self.resolve_document(context, document_id)).role

    async def resolve_directory(self, context: AccessContext, directory_id: str | None) -> Resolution:
        # Root is creatable by every authenticated tenant member.
        if directory_id is None:
            return Resolution(Role.EDITOR, True, SOURCE_ROOT)
        if context.identity.is_admin:
            return Resolution(Role.OWNER, True, SOURCE_ADMIN)

        directory = await self._repo.get_directory(tenant_id=context.tenant_id, directory_id=directory_id)
        if directory is None:
            return Resolution(Role.NONE, False, SOURCE_NOT_FOUND)
        if directory.owner_user_id and directory.owner_user_id == context.identity.subject_id:
            return Resolution(Role.OWNER, True, SOURCE_OWNER)

        link = self._link_for(context)
        if link is not None and link.matches(resource_type=RESOURCE_DIRECTORY, resource_id=directory.id):
            return Resolution(link.role, True, SOURCE_LINK)

        return await self._resolve_share_grants(context, RESOURCE_DIRECTORY, directory.id)

    async def resolve_document(self, context: AccessContext, document_id: str) -> Resolution:
        if context.identity.is_admin:
            return Resolution(Role.OWNER, True, SOURCE_ADMIN)

        document = await self._repo.get_document(tenant_id=context.tenant_id, document_id=document_id)
        if document is None:
            return Resolution(Role.NONE, False, SOURCE_NOT_FOUND)
        # Documents inside the caller's current workspace are editable by its members.
        if document.workspace_id == context.workspace_key:
            return Resolution(Role.EDITOR, True, SOURCE_WORKSPACE_MEMBER)

        link = self._link_for(context)
        if link is not None:
            if link.matches(resource_type=RESOURCE_DOCUMENT, resource_id=document.id):
                return Resolution(link.role, True, SOURCE_LINK)
            if link.resource_type == RESOURCE_DOCUMENT and _is_counterpart(document, link.resource_id):
                return Resolution(link.role, True, SOURCE_LINK_COUNTERPART)

        return await self._resolve_share_grants(context, RESOURCE_DOCUMENT, document.id)

    def _link_for(self, context: AccessContext) -> LinkAccess | None:
        # A link from another tenant never applies to this request.
        link = context.link_access
        if link is None:
            return None
        if link.tenant_id != context.tenant_id:
            logger.info(
                "link_access_ignored reason=tenant_mismatch resource_type=%s resource_id=%s",
                link.resource_type,
                link.resource_id,
            )
            return None
        return link

    async def _resolve_share_grants(
        self, context: AccessContext, resource_type: str, resource_id: str
    ) -> Resolution:
        now = self._clock()
        user_grant = await self._repo.find_share_grant(
            tenant_id=context.tenant_id,
            resource_type=resource_type,
            resource_id=resource_id,
            scope=SCOPE_USER,
            principal_id=context.identity.subject_id,
            now=now,
        )
        if user_grant is not None and not user_grant.is_expired(now):
            return Resolution(user_grant.role, True, SOURCE_USER_GRANT)

        workspace_grant = await self._repo.find_share_grant(
            tenant_id=context.tenant_id,
            resource_type=resource_type,
            resource_id=resource_id,
            scope=SCOPE_WORKSPACE,
            principal_id=context.workspace_key,
            now=now,
        )
        if workspace_grant is not None and not workspace_grant.is_expired(now):
            return Resolution(workspace_grant.role, True, SOURCE_WORKSPACE_GRANT)

        return Resolution(Role.NONE, True, SOURCE_NO_GRANT)


def _is_counterpart(document: Any, linked_document_id: str) -> bool:
    # Only the direct DRHP/RHP reference carries a link grant across the pair.
    if document.type == DOCUMENT_TYPE_RHP:
        return bool(document.related_drhp_id) and document.related_drhp_id == linked_document_id
    if document.type == DOCUMENT_TYPE_DRHP:
        return bool(document.related_rhp_id) and document.related_rhp_id == linked_document_id
    return False
