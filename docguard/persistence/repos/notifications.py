from __future__ import annotations

from typing import Iterable

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from docguard.domain.models import Notification
from docguard.persistence.guards import tenant_scoped


async def add_notifications(session: AsyncSession, rows: Iterable[Notification]) -> list[Notification]:
    # Bulk insert for one fan-out; callers own the commit.
    items = list(rows)
    session.add_all(items)
    await session.flush()
    return items


async def list_for_recipient(
    session: AsyncSession,
    *,
    tenant_id: str,
    recipient_id: str,
    unread_only: bool = False,
    offset: int = 0,
    limit: int = 20,
) -> list[Notification]:
    # Inbox listing is always limited to the caller's own rows, newest first.
    stmt = select(Notification).where(
        tenant_scoped(Notification, tenant_id, Notification.recipient_id == recipient_id)
    )
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
    result = await session.execute(stmt.offset(offset).limit(limit))
    return list(result.scalars().all())


async def count_for_recipient(
    session: AsyncSession,
    *,
    tenant_id: str,
    recipient_id: str,
    unread_only: bool = False,
) -> int:
    stmt = select(func.count()).select_from(Notification).where(
        tenant_scoped(Notification, tenant_id, Notification.recipient_id == recipient_id)
    )
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def mark_read(
    session: AsyncSession,
    *,
    recipient_id: str,
    notification_id: str,
) -> Notification | None:
    # Mutations are keyed by recipient, whichever tenant the notification was published in.
    result = await session.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.recipient_id == recipient_id,
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        return None
    row.is_read = True
    await session.flush()
    return row


async def mark_all_read(session: AsyncSession, *, recipient_id: str) -> int:
    result = await session.execute(
        update(Notification)
        .where(Notification.recipient_id == recipient_id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    return int(result.rowcount or 0)


async def delete_notification(
    session: AsyncSession,
    *,
    recipient_id: str,
    notification_id: str,
) -> bool:
    result = await session.execute(
        delete(Notification).where(
            Notification.id == notification_id,
            Notification.recipient_id == recipient_id,
        )
    )
    return bool(result.rowcount)
