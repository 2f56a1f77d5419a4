from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from docguard.apps.api.deps import get_access_context, get_db, get_identity
from docguard.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from docguard.apps.api.response import Page, SuccessEnvelope, success_response
from docguard.core.config import get_settings
from docguard.core.errors import ResourceNotFound
from docguard.domain.identity import AccessContext, Identity
from docguard.persistence.repos import notifications as notifications_repo


router = APIRouter(prefix="/notifications", tags=["notifications"], responses=DEFAULT_ERROR_RESPONSES)


class NotificationResponse(BaseModel):
    id: str
    type: str
    title: str
    body: str | None
    resource_type: str | None
    resource_id: str | None
    is_read: bool
    created_at: datetime


class NotificationPage(Page[NotificationResponse]):
    unread_count: int


class MarkAllReadResponse(BaseModel):
    updated: int


class DeleteResponse(BaseModel):
    deleted: bool


def _to_response(row) -> NotificationResponse:
    return NotificationResponse(
        id=row.id,
        type=row.type,
        title=row.title,
        body=row.body,
        resource_type=row.resource_type,
        resource_id=row.resource_id,
        is_read=bool(row.is_read),
        created_at=row.created_at,
    )


def _page_bounds(page: int, page_size: int | None) -> tuple[int, int]:
    # Clamp page size into the configured bounds.
    settings = get_settings()
    size = page_size or settings.notifications_default_page_size
    size = max(1, min(size, settings.notifications_max_page_size))
    return (page - 1) * size, size


@router.get("", response_model=SuccessEnvelope[NotificationPage])
async def list_notifications(
    request: Request,
    unread: bool = False,
    page: int = Query(default=1, ge=1),
    page_size: int | None = Query(default=None, ge=1),
    context: AccessContext = Depends(get_access_context),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Own inbox within the current workspace's tenant.
    identity = context.identity
    offset, limit = _page_bounds(page, page_size)
    rows = await notifications_repo.list_for_recipient(
        db,
        tenant_id=context.tenant_id,
        recipient_id=identity.subject_id,
        unread_only=unread,
        offset=offset,
        limit=limit,
    )
    total = await notifications_repo.count_for_recipient(
        db,
        tenant_id=context.tenant_id,
        recipient_id=identity.subject_id,
        unread_only=unread,
    )
    unread_count = await notifications_repo.count_for_recipient(
        db,
        tenant_id=context.tenant_id,
        recipient_id=identity.subject_id,
        unread_only=True,
    )
    payload = NotificationPage(
        items=[_to_response(row) for row in rows],
        page=page,
        page_size=limit,
        total=total,
        unread_count=unread_count,
    )
    return success_response(request=request, data=payload)


@router.post("/read-all", response_model=SuccessEnvelope[MarkAllReadResponse])
async def mark_all_read(
    request: Request,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> dict:
    updated = await notifications_repo.mark_all_read(db, recipient_id=identity.subject_id)
    await db.commit()
    return success_response(request=request, data=MarkAllReadResponse(updated=updated))


@router.post("/{notification_id}/read", response_model=SuccessEnvelope[NotificationResponse])
async def mark_read(
    notification_id: str,
    request: Request,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> dict:
    row = await notifications_repo.mark_read(
        db,
        recipient_id=identity.subject_id,
        notification_id=notification_id,
    )
    if row is None:
        raise ResourceNotFound("Notification not found")
    await db.commit()
    return success_response(request=request, data=_to_response(row))


@router.delete("/{notification_id}", response_model=SuccessEnvelope[DeleteResponse])
async def delete_notification(
    notification_id: str,
    request: Request,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> dict:
    deleted = await notifications_repo.delete_notification(
        db,
        recipient_id=identity.subject_id,
        notification_id=notification_id,
    )
    if not deleted:
        raise ResourceNotFound("Notification not found")
    await db.commit()
    return success_response(request=request, data=DeleteResponse(deleted=True))
