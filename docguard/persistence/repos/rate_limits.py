from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from docguard.domain.models import RateLimitCounter


_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


async def increment_counter(
    session: AsyncSession,
    *,
    namespace: str,
    subject_key: str,
    action: str,
    window_start_ms: int,
    window_ms: int,
) -> int:
    # Create-or-increment in one statement and read back the post-increment count.
    dialect = session.get_bind().dialect.name
    insert_fn = _INSERTS.get(dialect)
    if insert_fn is None:
        raise RuntimeError(f"Atomic counter upsert is not supported on dialect {dialect}")
    table = RateLimitCounter.__table__
    stmt = (
        insert_fn(table)
        .values(
            namespace=namespace,
            subject_key=subject_key,
            action=action,
            window_start_ms=window_start_ms,
            window_ms=window_ms,
            count=1,
        )
        .on_conflict_do_update(
            index_elements=[table.c.namespace, table.c.subject_key, table.c.action, table.c.window_start_ms],
            set_={"count": table.c.count + 1},
        )
        .returning(table.c.count)
    )
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def get_counter(
    session: AsyncSession,
    *,
    namespace: str,
    subject_key: str,
    action: str,
    window_start_ms: int,
) -> RateLimitCounter | None:
    result = await session.execute(
        select(RateLimitCounter).where(
            RateLimitCounter.namespace == namespace,
            RateLimitCounter.subject_key == subject_key,
            RateLimitCounter.action == action,
            RateLimitCounter.window_start_ms == window_start_ms,
        )
    )
    return result.scalar_one_or_none()


async def count_rows(session: AsyncSession, *, namespace: str, subject_key: str, action: str) -> int:
    result = await session.execute(
        select(RateLimitCounter.window_start_ms).where(
            RateLimitCounter.namespace == namespace,
            RateLimitCounter.subject_key == subject_key,
            RateLimitCounter.action == action,
        )
    )
    return len(result.scalars().all())


async def delete_closed_windows(session: AsyncSession, *, cutoff_ms: int) -> int:
    # A window is closed once its end falls before the cutoff.
    result = await session.execute(
        delete(RateLimitCounter).where(
            RateLimitCounter.window_start_ms + RateLimitCounter.window_ms < cutoff_ms
        )
    )
    return int(result.rowcount or 0)
