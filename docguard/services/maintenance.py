from __future__ import annotations

from datetime import datetime, timedelta, timezone
import time

from sqlalchemy.ext.asyncio import AsyncSession

from docguard.core.config import get_settings
from docguard.persistence.repos import activity as activity_repo
from docguard.persistence.repos import rate_limits as rate_limits_repo


async def prune_rate_limit_counters(session: AsyncSession, *, now_ms: int | None = None) -> int:
    # Drop counters whose window closed more than the grace period ago.
    settings = get_settings()
    current_ms = int(time.time() * 1000) if now_ms is None else now_ms
    cutoff_ms = current_ms - settings.rl_counter_grace_ms
    return await rate_limits_repo.delete_closed_windows(session, cutoff_ms=cutoff_ms)


async def prune_activity(session: AsyncSession, *, now: datetime | None = None) -> int:
    # Remove activity entries beyond the retention window.
    settings = get_settings()
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=settings.activity_retention_days)
    return await activity_repo.delete_entries_before(session, cutoff=cutoff)
