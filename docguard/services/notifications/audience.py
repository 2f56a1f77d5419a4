from __future__ import annotations

from typing import Any, Iterable

from docguard.domain.events import AdminsOnly, AudienceDirective, ExplicitRecipients, WholeWorkspace
from docguard.domain.roles import is_admin
from docguard.services.authz.resolver import GrantRepository


def select_workspace_audience(
    candidates: Iterable[Any],
    *,
    tenant_id: str,
    actor_id: str | None = None,
) -> list[str]:
    """Filter tenant audience candidates down to the whole-workspace recipients.

    Candidates are primary-tenant users plus users with an active membership in one of the
    tenant's workspaces. The actor, primary-tenant users and global admins are kept;
    cross-workspace members without admin rights only receive notifications addressed to them.
    """
    recipients: list[str] = []
    seen: set[str] = set()
    for user in candidates:
        if user.id in seen:
            continue
        keep = (
            (actor_id is not None and user.id == actor_id)
            or user.tenant_id == tenant_id
            or is_admin(user.role)
        )
        if keep:
            seen.add(user.id)
            recipients.append(user.id)
    return recipients


async def resolve_audience(
    repo: GrantRepository,
    *,
    tenant_id: str,
    directive: AudienceDirective | None,
    actor_id: str | None = None,
) -> list[str]:
    # Log-only events have no directive.
    if directive is None:
        return []
    if isinstance(directive, ExplicitRecipients):
        return list(dict.fromkeys(subject_id for subject_id in directive.subject_ids if subject_id))
    if isinstance(directive, AdminsOnly):
        admins = await repo.list_tenant_admins(tenant_id=tenant_id)
        return [user.id for user in admins]
    if isinstance(directive, WholeWorkspace):
        candidates = await repo.list_audience_candidates(tenant_id=tenant_id)
        return select_workspace_audience(candidates, tenant_id=tenant_id, actor_id=actor_id)
    raise TypeError(f"Unsupported audience directive: {type(directive).__name__}")
