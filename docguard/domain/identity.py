from __future__ import annotations

from dataclasses import dataclass

from docguard.domain.grants import LinkAccess
from docguard.domain.roles import is_admin


STATUS_ACTIVE = "active"
STATUS_SUSPENDED = "suspended"


@dataclass(frozen=True)
class Identity:
    # Authenticated subject, immutable for the lifetime of a request.
    subject_id: str
    tenant_id: str
    global_role: str
    status: str = STATUS_ACTIVE
    # Workspace the user last selected; validated like a selector before use.
    default_workspace_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return is_admin(self.global_role)

    @property
    def is_suspended(self) -> bool:
        return self.status == STATUS_SUSPENDED


@dataclass(frozen=True)
class AccessContext:
    """Everything the resolver needs about the caller, threaded through every call.

    ``workspace_id`` is the explicitly selected workspace for this request, if any.
    ``workspace_tenant_id`` is that workspace's tenant when it differs from the identity's
    home tenant (an active cross-tenant membership); resolution then runs in that tenant.
    ``link_access`` carries a validated share-link presented with the request.
    """

    identity: Identity
    workspace_id: str | None = None
    link_access: LinkAccess | None = None
    workspace_tenant_id: str | None = None

    @property
    def tenant_id(self) -> str:
        return self.workspace_tenant_id or self.identity.tenant_id

    @property
    def workspace_key(self) -> str:
        # Current workspace, falling back to the tenant when none was selected.
        return self.workspace_id or self.tenant_id
