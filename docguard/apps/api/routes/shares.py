from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from docguard.apps.api.deps import (
    get_access_context,
    get_access_guard,
    get_db,
    get_event_publisher,
)
from docguard.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from docguard.apps.api.response import SuccessEnvelope, success_response
from docguard.core.errors import ResourceNotFound
from docguard.domain.events import DomainEvent, explicit
from docguard.domain.grants import SCOPE_USER, ShareGrant, grant_principal
from docguard.domain.identity import AccessContext
from docguard.domain.roles import Role
from docguard.persistence.repos import grants as grants_repo
from docguard.services.authz.guard import AccessGuard, decision_to_error, share_target
from docguard.services.events import EventPublisher


router = APIRouter(prefix="/shares", tags=["shares"], responses=DEFAULT_ERROR_RESPONSES)


class ShareCreateRequest(BaseModel):
    resource_type: Literal["directory", "document"]
    resource_id: str
    scope: Literal["user", "workspace"]
    principal_id: str = Field(min_length=1)
    role: Literal["viewer", "editor", "owner"] = "viewer"
    expires_at: datetime | None = None
    invited_email: str | None = None


class ShareResponse(BaseModel):
    id: str
    resource_type: str
    resource_id: str
    scope: str
    principal_id: str | None
    role: Role
    expires_at: datetime | None


class ShareDeleteResponse(BaseModel):
    deleted: bool


def _to_response(grant: ShareGrant) -> ShareResponse:
    # Link tokens stay out of listings; they are only returned when minted.
    return ShareResponse(
        id=grant.id,
        resource_type=grant.resource_type,
        resource_id=grant.resource_id,
        scope=grant.scope,
        principal_id=grant_principal(grant),
        role=grant.role,
        expires_at=grant.expires_at,
    )


async def _require_owner(
    guard: AccessGuard, context: AccessContext, resource_type: str, resource_id: str
) -> None:
    decision = await guard.enforce(context, share_target(resource_type, resource_id), Role.OWNER)
    if not decision.allowed:
        raise decision_to_error(decision)


@router.get("", response_model=SuccessEnvelope[list[ShareResponse]])
async def list_shares(
    resource_type: Literal["directory", "document"],
    resource_id: str,
    request: Request,
    context: AccessContext = Depends(get_access_context),
    guard: AccessGuard = Depends(get_access_guard),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await _require_owner(guard, context, resource_type, resource_id)
    grants = await grants_repo.list_share_grants(
        db,
        tenant_id=context.tenant_id,
        resource_type=resource_type,
        resource_id=resource_id,
    )
    data = [_to_response(grant).model_dump(mode="json") for grant in grants]
    return success_response(request=request, data=data)


@router.post("", response_model=SuccessEnvelope[ShareResponse], status_code=status.HTTP_201_CREATED)
async def create_share(
    body: ShareCreateRequest,
    request: Request,
    context: AccessContext = Depends(get_access_context),
    guard: AccessGuard = Depends(get_access_guard),
    db: AsyncSession = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> dict:
    # Only owners may grant; granting the same principal again replaces the role.
    await _require_owner(guard, context, body.resource_type, body.resource_id)
    grant = await grants_repo.save_share_grant(
        db,
        tenant_id=context.tenant_id,
        resource_type=body.resource_type,
        resource_id=body.resource_id,
        scope=body.scope,
        principal_id=body.principal_id,
        role=Role(body.role),
        created_by=context.identity.subject_id,
        expires_at=body.expires_at,
        invited_email=body.invited_email,
    )
    await db.commit()

    await publisher.publish(
        DomainEvent(
            tenant_id=context.tenant_id,
            actor_id=context.identity.subject_id,
            action="share.granted",
            resource_type=body.resource_type,
            resource_id=body.resource_id,
            title=f"Share granted: {grant.role.value}",
            metadata={"role": grant.role.value, "scope": body.scope, "principal_id": body.principal_id},
            audience=explicit(body.principal_id) if body.scope == SCOPE_USER else None,
        )
    )
    return success_response(request=request, data=_to_response(grant))


@router.delete("/{share_id}", response_model=SuccessEnvelope[ShareDeleteResponse])
async def revoke_share(
    share_id: str,
    request: Request,
    context: AccessContext = Depends(get_access_context),
    guard: AccessGuard = Depends(get_access_guard),
    db: AsyncSession = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> dict:
    # Grants from other tenants look absent.
    grant = await grants_repo.get_share_grant(db, tenant_id=context.tenant_id, grant_id=share_id)
    if grant is None:
        raise ResourceNotFound("Share not found", resource_type="share", resource_id=share_id)
    await _require_owner(guard, context, grant.resource_type, grant.resource_id)
    await grants_repo.delete_share_grant(db, tenant_id=context.tenant_id, grant_id=share_id)
    await db.commit()

    await publisher.publish(
        DomainEvent(
            tenant_id=context.tenant_id,
            actor_id=context.identity.subject_id,
            action="share.revoked",
            resource_type=grant.resource_type,
            resource_id=grant.resource_id,
            title="Share revoked",
            metadata={"share_id": grant.id, "scope": grant.scope},
        )
    )
    return success_response(request=request, data=ShareDeleteResponse(deleted=True))
