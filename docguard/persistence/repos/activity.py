from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from docguard.domain.models import ActivityLog
from docguard.persistence.guards import tenant_predicate


async def append_entry(session: AsyncSession, entry: ActivityLog) -> ActivityLog:
    # Activity rows are insert-only; callers own the commit.
    session.add(entry)
    await session.flush()
    return entry


def _apply_filters(
    stmt: Any,
    *,
    tenant_id: str,
    action: str | None,
    actor_id: str | None,
    resource_type: str | None,
    resource_id: str | None,
) -> Any:
    # Scope all activity queries to a tenant to prevent cross-tenant leakage.
    stmt = stmt.where(tenant_predicate(ActivityLog, tenant_id))
    if action:
        stmt = stmt.where(ActivityLog.action == action)
    if actor_id:
        stmt = stmt.where(ActivityLog.actor_id == actor_id)
    if resource_type:
        stmt = stmt.where(ActivityLog.resource_type == resource_type)
    if resource_id:
        stmt = stmt.where(ActivityLog.resource_id == resource_id)
    return stmt


async def list_entries(
    session: AsyncSession,
    *,
    tenant_id: str,
    action: str | None = None,
    actor_id: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[ActivityLog]:
    stmt = _apply_filters(
        select(ActivityLog),
        tenant_id=tenant_id,
        action=action,
        actor_id=actor_id,
        resource_type=resource_type,
        resource_id=resource_id,
    )
    stmt = stmt.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
    stmt = stmt.offset(offset).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_entries(
    session: AsyncSession,
    *,
    tenant_id: str,
    action: str | None = None,
    actor_id: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
) -> int:
    stmt = _apply_filters(
        select(func.count()).select_from(ActivityLog),
        tenant_id=tenant_id,
        action=action,
        actor_id=actor_id,
        resource_type=resource_type,
        resource_id=resource_id,
    )
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def delete_entries_before(session: AsyncSession, *, cutoff: datetime) -> int:
    # Retention sweep across tenants; only ever removes whole rows.
    result = await session.execute(delete(ActivityLog).where(ActivityLog.created_at < cutoff))
    return int(result.rowcount or 0)
