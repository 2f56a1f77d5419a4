from __future__ import annotations

import asyncio

from docguard.persistence.db import SessionLocal
from docguard.services.maintenance import prune_activity


async def prune() -> None:
    # Retention is read from ACTIVITY_RETENTION_DAYS.
    async with SessionLocal() as session:
        deleted = await prune_activity(session)
        await session.commit()
        print(f"pruned_activity_logs={deleted}")


if __name__ == "__main__":
    asyncio.run(prune())
