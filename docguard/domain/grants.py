from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Union

from docguard.domain.roles import GRANTABLE_ROLES, Role, normalize_role


RESOURCE_DIRECTORY = "directory"
RESOURCE_DOCUMENT = "document"

SCOPE_USER = "user"
SCOPE_WORKSPACE = "workspace"
SCOPE_LINK = "link"


@dataclass(frozen=True)
class _GrantBase:
    id: str
    tenant_id: str
    resource_type: str
    resource_id: str
    role: Role
    expires_at: datetime | None

    def is_expired(self, now: datetime) -> bool:
        return _is_past(self.expires_at, now)


@dataclass(frozen=True)
class UserGrant(_GrantBase):
    # Share with a single subject.
    subject_id: str
    scope: str = SCOPE_USER


@dataclass(frozen=True)
class WorkspaceGrant(_GrantBase):
    # Share with every member of a workspace (or a tenant acting as its default workspace).
    workspace_id: str
    scope: str = SCOPE_WORKSPACE


@dataclass(frozen=True)
class LinkGrant(_GrantBase):
    # Anonymous share addressed by a globally unique token.
    token: str
    scope: str = SCOPE_LINK


ShareGrant = Union[UserGrant, WorkspaceGrant, LinkGrant]


@dataclass(frozen=True)
class LinkAccess:
    # Request-scoped view of a presented, unexpired link grant.
    role: Role
    resource_type: str
    resource_id: str
    tenant_id: str

    def matches(self, *, resource_type: str, resource_id: str) -> bool:
        return self.resource_type == resource_type and self.resource_id == resource_id


def _is_past(expires_at: datetime | None, now: datetime) -> bool:
    if expires_at is None:
        return False
    # SQLite hands back naive datetimes; treat them as UTC.
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at < now


def grant_from_row(row) -> ShareGrant:
    # Convert a share_permissions row into the variant its scope allows.
    role = normalize_role(row.role)
    if role not in GRANTABLE_ROLES:
        raise ValueError(f"Grant {row.id} carries non-grantable role {row.role}")
    common = {
        "id": row.id,
        "tenant_id": row.tenant_id,
        "resource_type": row.resource_type,
        "resource_id": row.resource_id,
        "role": role,
        "expires_at": row.expires_at,
    }
    if row.scope == SCOPE_USER:
        if not row.principal_id:
            raise ValueError(f"User grant {row.id} has no principal")
        return UserGrant(subject_id=row.principal_id, **common)
    if row.scope == SCOPE_WORKSPACE:
        if not row.principal_id:
            raise ValueError(f"Workspace grant {row.id} has no principal")
        return WorkspaceGrant(workspace_id=row.principal_id, **common)
    if row.scope == SCOPE_LINK:
        if not row.link_token:
            raise ValueError(f"Link grant {row.id} has no token")
        return LinkGrant(token=row.link_token, **common)
    raise ValueError(f"Unsupported grant scope: {row.scope}")


def link_access_from_grant(grant: LinkGrant) -> LinkAccess:
    return LinkAccess(
        role=grant.role,
        resource_type=grant.resource_type,
        resource_id=grant.resource_id,
        tenant_id=grant.tenant_id,
    )


def link_grant_from_row(row) -> LinkGrant:
    # Callers that selected scope == link still get an explicit error on a mismatched row.
    grant = grant_from_row(row)
    if not isinstance(grant, LinkGrant):
        raise ValueError(f"Grant {row.id} is not a link grant")
    return grant


def grant_principal(grant: ShareGrant) -> str | None:
    # Subject for user grants, workspace for workspace grants, nothing for links.
    if isinstance(grant, UserGrant):
        return grant.subject_id
    if isinstance(grant, WorkspaceGrant):
        return grant.workspace_id
    return None
