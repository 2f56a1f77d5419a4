from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from docguard.apps.api.deps import (
    get_access_context,
    get_access_guard,
    get_db,
    get_event_publisher,
    get_grant_repository,
)
from docguard.apps.api.openapi import DEFAULT_ERROR_RESPONSES, LINK_ERROR_RESPONSES
from docguard.apps.api.rate_limit import ACTION_SHARE_LINK, check_workspace_rate_limit
from docguard.apps.api.response import SuccessEnvelope, success_response
from docguard.core.errors import LinkTokenInvalid
from docguard.domain.events import DomainEvent
from docguard.domain.identity import AccessContext
from docguard.domain.roles import Role
from docguard.persistence.repos import grants as grants_repo
from docguard.persistence.repos.grants import SqlGrantRepository
from docguard.services.authz.guard import AccessGuard, decision_to_error, share_target
from docguard.services.authz.links import generate_link_token, resolve_link_access
from docguard.services.events import EventPublisher


router = APIRouter(prefix="/links", tags=["links"], responses=DEFAULT_ERROR_RESPONSES)


class LinkResolveResponse(BaseModel):
    resource_type: str
    resource_id: str
    role: Role
    tenant_id: str


class LinkCreateRequest(BaseModel):
    resource_type: Literal["directory", "document"]
    resource_id: str
    role: Literal["viewer", "editor", "owner"] = "viewer"
    expires_at: datetime | None = None


class LinkCreateResponse(BaseModel):
    token: str
    resource_type: str
    resource_id: str
    role: Role
    expires_at: datetime | None


@router.get(
    "/{token}",
    response_model=SuccessEnvelope[LinkResolveResponse],
    responses=LINK_ERROR_RESPONSES,
)
async def resolve_link(
    token: str,
    request: Request,
    repo: SqlGrantRepository = Depends(get_grant_repository),
) -> dict:
    # Public: anyone holding the token may learn what it points at.
    try:
        link = await resolve_link_access(repo, token)
    except LinkTokenInvalid as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": exc.code, "message": exc.message},
        ) from exc
    payload = LinkResolveResponse(
        resource_type=link.resource_type,
        resource_id=link.resource_id,
        role=link.role,
        tenant_id=link.tenant_id,
    )
    return success_response(request=request, data=payload)


@router.post("", response_model=SuccessEnvelope[LinkCreateResponse], status_code=status.HTTP_201_CREATED)
async def create_or_rotate_link(
    body: LinkCreateRequest,
    request: Request,
    response: Response,
    context: AccessContext = Depends(get_access_context),
    guard: AccessGuard = Depends(get_access_guard),
    db: AsyncSession = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> dict:
    # Only owners may share; the guard runs before the limiter counts the attempt.
    decision = await guard.enforce(context, share_target(body.resource_type, body.resource_id), Role.OWNER)
    if not decision.allowed:
        raise decision_to_error(decision)
    await check_workspace_rate_limit(context, ACTION_SHARE_LINK, response)

    grant = await grants_repo.save_link_grant(
        db,
        tenant_id=context.tenant_id,
        resource_type=body.resource_type,
        resource_id=body.resource_id,
        role=Role(body.role),
        token=generate_link_token(),
        created_by=context.identity.subject_id,
        expires_at=body.expires_at,
    )
    await db.commit()

    await publisher.publish(
        DomainEvent(
            tenant_id=context.tenant_id,
            actor_id=context.identity.subject_id,
            action="share.link.rotated",
            resource_type=body.resource_type,
            resource_id=body.resource_id,
            title="Share link created/rotated",
            metadata={"role": grant.role.value},
        )
    )
    payload = LinkCreateResponse(
        token=grant.token,
        resource_type=grant.resource_type,
        resource_id=grant.resource_id,
        role=grant.role,
        expires_at=grant.expires_at,
    )
    return success_response(request=request, data=payload)
