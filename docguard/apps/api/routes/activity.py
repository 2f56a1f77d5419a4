from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from docguard.apps.api.deps import get_db, require_admin
from docguard.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from docguard.apps.api.response import Page, SuccessEnvelope, success_response
from docguard.domain.identity import Identity
from docguard.persistence.repos import activity as activity_repo


router = APIRouter(prefix="/activity", tags=["activity"], responses=DEFAULT_ERROR_RESPONSES)


class ActivityEntryResponse(BaseModel):
    id: str
    actor_id: str | None
    action: str
    resource_type: str
    resource_id: str
    title: str
    metadata: dict[str, Any]
    created_at: datetime


def _to_response(entry) -> ActivityEntryResponse:
    return ActivityEntryResponse(
        id=entry.id,
        actor_id=entry.actor_id,
        action=entry.action,
        resource_type=entry.resource_type,
        resource_id=entry.resource_id,
        title=entry.title,
        metadata=entry.metadata_json or {},
        created_at=entry.created_at,
    )


@router.get("", response_model=SuccessEnvelope[Page[ActivityEntryResponse]])
async def list_activity(
    request: Request,
    action: str | None = None,
    actor_id: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Admins only see their own tenant's log.
    rows = await activity_repo.list_entries(
        db,
        tenant_id=identity.tenant_id,
        action=action,
        actor_id=actor_id,
        resource_type=resource_type,
        resource_id=resource_id,
        offset=(page - 1) * page_size,
        limit=page_size,
    )
    total = await activity_repo.count_entries(
        db,
        tenant_id=identity.tenant_id,
        action=action,
        actor_id=actor_id,
        resource_type=resource_type,
        resource_id=resource_id,
    )
    payload = Page[ActivityEntryResponse](
        items=[_to_response(row) for row in rows],
        page=page,
        page_size=page_size,
        total=total,
    )
    return success_response(request=request, data=payload)
