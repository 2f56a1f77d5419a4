from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Any, Awaitable, Callable, TypeVar
from uuid import uuid4

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from docguard.core.errors import ResolutionInfrastructureFailure
from docguard.domain.grants import (
    SCOPE_LINK,
    LinkGrant,
    ShareGrant,
    grant_from_row,
    link_grant_from_row,
)
from docguard.domain.models import (
    MEMBERSHIP_ACTIVE,
    Directory,
    Document,
    Report,
    SharePermission,
    Summary,
    User,
    Workspace,
    WorkspaceMembership,
)
from docguard.domain.roles import Role, is_admin
from docguard.persistence.guards import require_tenant_id, tenant_scoped


logger = logging.getLogger(__name__)

T = TypeVar("T")


async def get_directory(session: AsyncSession, *, tenant_id: str, directory_id: str) -> Directory | None:
    # Return None for tenant mismatch so cross-tenant ids look absent.
    result = await session.execute(
        select(Directory).where(tenant_scoped(Directory, tenant_id, Directory.id == directory_id))
    )
    return result.scalar_one_or_none()


async def get_document(session: AsyncSession, *, tenant_id: str, document_id: str) -> Document | None:
    result = await session.execute(
        select(Document).where(tenant_scoped(Document, tenant_id, Document.id == document_id))
    )
    return result.scalar_one_or_none()


async def get_summary(session: AsyncSession, *, tenant_id: str, summary_id: str) -> Summary | None:
    result = await session.execute(
        select(Summary).where(tenant_scoped(Summary, tenant_id, Summary.id == summary_id))
    )
    return result.scalar_one_or_none()


async def get_report(session: AsyncSession, *, tenant_id: str, report_id: str) -> Report | None:
    result = await session.execute(
        select(Report).where(tenant_scoped(Report, tenant_id, Report.id == report_id))
    )
    return result.scalar_one_or_none()


async def get_user(session: AsyncSession, *, user_id: str) -> User | None:
    # Identity lookup happens before a tenant is known.
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def find_share_grant(
    session: AsyncSession,
    *,
    tenant_id: str,
    resource_type: str,
    resource_id: str,
    scope: str,
    principal_id: str,
    now: datetime,
) -> ShareGrant | None:
    # Point lookup by the unique (tenant, resource, scope, principal) key; expired grants never match.
    result = await session.execute(
        select(SharePermission)
        .where(
            tenant_scoped(
                SharePermission,
                tenant_id,
                SharePermission.resource_type == resource_type,
                SharePermission.resource_id == resource_id,
                SharePermission.scope == scope,
                SharePermission.principal_id == principal_id,
            ),
            or_(SharePermission.expires_at.is_(None), SharePermission.expires_at > now),
        )
        .order_by(SharePermission.created_at.asc(), SharePermission.id.asc())
        .limit(1)
    )
    row = result.scalar_one_or_none()
    return grant_from_row(row) if row is not None else None


async def find_link_grant(session: AsyncSession, *, token: str) -> LinkGrant | None:
    # Link tokens are globally unique; the caller checks the grant's tenant.
    if not token:
        return None
    result = await session.execute(
        select(SharePermission).where(
            SharePermission.scope == SCOPE_LINK,
            SharePermission.link_token == token,
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        return None
    return link_grant_from_row(row)


async def save_link_grant(
    session: AsyncSession,
    *,
    tenant_id: str,
    resource_type: str,
    resource_id: str,
    role: Role,
    token: str,
    created_by: str | None,
    expires_at: datetime | None = None,
) -> LinkGrant:
    # One link per resource; rotating replaces the token and role in place.
    result = await session.execute(
        select(SharePermission)
        .where(
            tenant_scoped(
                SharePermission,
                tenant_id,
                SharePermission.resource_type == resource_type,
                SharePermission.resource_id == resource_id,
                SharePermission.scope == SCOPE_LINK,
            )
        )
        .limit(1)
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = SharePermission(
            id=f"lnk_{uuid4().hex}",
            tenant_id=tenant_id,
            resource_type=resource_type,
            resource_id=resource_id,
            scope=SCOPE_LINK,
            principal_id=None,
        )
        session.add(row)
    row.role = role.value
    row.link_token = token
    row.expires_at = expires_at
    row.created_by = created_by
    await session.flush()
    return link_grant_from_row(row)


async def list_share_grants(
    session: AsyncSession,
    *,
    tenant_id: str,
    resource_type: str,
    resource_id: str,
) -> list[ShareGrant]:
    # Every grant on one resource, newest first; expired grants are listed too.
    result = await session.execute(
        select(SharePermission)
        .where(
            tenant_scoped(
                SharePermission,
                tenant_id,
                SharePermission.resource_type == resource_type,
                SharePermission.resource_id == resource_id,
            )
        )
        .order_by(SharePermission.created_at.desc(), SharePermission.id.desc())
    )
    return [grant_from_row(row) for row in result.scalars().all()]


async def get_share_grant(session: AsyncSession, *, tenant_id: str, grant_id: str) -> ShareGrant | None:
    result = await session.execute(
        select(SharePermission).where(tenant_scoped(SharePermission, tenant_id, SharePermission.id == grant_id))
    )
    row = result.scalar_one_or_none()
    return grant_from_row(row) if row is not None else None


async def save_share_grant(
    session: AsyncSession,
    *,
    tenant_id: str,
    resource_type: str,
    resource_id: str,
    scope: str,
    principal_id: str,
    role: Role,
    created_by: str | None,
    expires_at: datetime | None = None,
    invited_email: str | None = None,
) -> ShareGrant:
    # User and workspace grants are unique per principal; granting again replaces role and expiry.
    if scope == SCOPE_LINK:
        raise ValueError("Link grants are created through save_link_grant")
    if not principal_id:
        raise ValueError(f"A principal is required for {scope} grants")
    result = await session.execute(
        select(SharePermission).where(
            tenant_scoped(
                SharePermission,
                tenant_id,
                SharePermission.resource_type == resource_type,
                SharePermission.resource_id == resource_id,
                SharePermission.scope == scope,
                SharePermission.principal_id == principal_id,
            )
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = SharePermission(
            id=f"shr_{uuid4().hex}",
            tenant_id=tenant_id,
            resource_type=resource_type,
            resource_id=resource_id,
            scope=scope,
            principal_id=principal_id,
        )
        session.add(row)
    row.role = role.value
    row.expires_at = expires_at
    row.invited_email = invited_email
    row.created_by = created_by
    await session.flush()
    return grant_from_row(row)


async def delete_share_grant(session: AsyncSession, *, tenant_id: str, grant_id: str) -> bool:
    result = await session.execute(
        delete(SharePermission).where(tenant_scoped(SharePermission, tenant_id, SharePermission.id == grant_id))
    )
    return bool(result.rowcount)


@dataclass(frozen=True)
class ActiveMembership:
    # An active membership together with the tenant owning its workspace.
    user_id: str
    workspace_id: str
    workspace_tenant_id: str
    role: str


async def get_active_membership(
    session: AsyncSession,
    *,
    user_id: str,
    workspace_id: str,
) -> ActiveMembership | None:
    # Keyed by the user; the workspace may belong to another tenant.
    result = await session.execute(
        select(WorkspaceMembership, Workspace.tenant_id)
        .join(Workspace, Workspace.id == WorkspaceMembership.workspace_id)
        .where(
            WorkspaceMembership.user_id == user_id,
            WorkspaceMembership.workspace_id == workspace_id,
            WorkspaceMembership.status == MEMBERSHIP_ACTIVE,
        )
    )
    row = result.first()
    if row is None:
        return None
    membership, workspace_tenant_id = row
    return ActiveMembership(
        user_id=membership.user_id,
        workspace_id=membership.workspace_id,
        workspace_tenant_id=workspace_tenant_id,
        role=membership.role,
    )


async def list_audience_candidates(session: AsyncSession, *, tenant_id: str) -> list[User]:
    # Primary-tenant users plus users with an active membership in one of the tenant's workspaces.
    require_tenant_id(tenant_id)
    cross_members = (
        select(WorkspaceMembership.user_id)
        .join(Workspace, Workspace.id == WorkspaceMembership.workspace_id)
        .where(
            Workspace.tenant_id == tenant_id,
            WorkspaceMembership.status == MEMBERSHIP_ACTIVE,
        )
    )
    result = await session.execute(
        select(User)
        .where(or_(User.tenant_id == tenant_id, User.id.in_(cross_members)))
        .order_by(User.id.asc())
    )
    return list(result.scalars().all())


async def list_tenant_admins(session: AsyncSession, *, tenant_id: str) -> list[User]:
    # Admin-role users among the tenant's audience candidates.
    return [
        user
        for user in await list_audience_candidates(session, tenant_id=tenant_id)
        if is_admin(user.role)
    ]


class SqlGrantRepository:
    """GrantRepository backed by an AsyncSession.

    Database errors surface as ResolutionInfrastructureFailure so that callers never
    confuse an unreachable store with "no access".
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _call(self, op: str, fn: Callable[..., Awaitable[T]], **kwargs: Any) -> T:
        try:
            return await fn(self._session, **kwargs)
        except SQLAlchemyError as exc:
            logger.warning("grant_repository_failed op=%s", op, exc_info=exc)
            raise ResolutionInfrastructureFailure(f"Grant repository unavailable ({op})") from exc

    async def get_directory(self, *, tenant_id: str, directory_id: str) -> Directory | None:
        return await self._call("get_directory", get_directory, tenant_id=tenant_id, directory_id=directory_id)

    async def get_document(self, *, tenant_id: str, document_id: str) -> Document | None:
        return await self._call("get_document", get_document, tenant_id=tenant_id, document_id=document_id)

    async def get_summary(self, *, tenant_id: str, summary_id: str) -> Summary | None:
        return await self._call("get_summary", get_summary, tenant_id=tenant_id, summary_id=summary_id)

    async def get_report(self, *, tenant_id: str, report_id: str) -> Report | None:
        return await self._call("get_report", get_report, tenant_id=tenant_id, report_id=report_id)

    async def get_user(self, *, user_id: str) -> User | None:
        return await self._call("get_user", get_user, user_id=user_id)

    async def find_share_grant(
        self,
        *,
        tenant_id: str,
        resource_type: str,
        resource_id: str,
        scope: str,
        principal_id: str,
        now: datetime,
    ) -> ShareGrant | None:
        return await self._call(
            "find_share_grant",
            find_share_grant,
            tenant_id=tenant_id,
            resource_type=resource_type,
            resource_id=resource_id,
            scope=scope,
            principal_id=principal_id,
            now=now,
        )

    async def find_link_grant(self, *, token: str) -> LinkGrant | None:
        return await self._call("find_link_grant", find_link_grant, token=token)

    async def get_active_membership(self, *, user_id: str, workspace_id: str) -> ActiveMembership | None:
        return await self._call(
            "get_active_membership",
            get_active_membership,
            user_id=user_id,
            workspace_id=workspace_id,
        )

    async def list_audience_candidates(self, *, tenant_id: str) -> list[User]:
        return await self._call("list_audience_candidates", list_audience_candidates, tenant_id=tenant_id)

    async def list_tenant_admins(self, *, tenant_id: str) -> list[User]:
        return await self._call("list_tenant_admins", list_tenant_admins, tenant_id=tenant_id)