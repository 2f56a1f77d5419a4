from __future__ import annotations

import asyncio

from docguard.persistence.db import SessionLocal
from docguard.services.maintenance import prune_rate_limit_counters


async def prune() -> None:
    async with SessionLocal() as session:
        deleted = await prune_rate_limit_counters(session)
        await session.commit()
        print(f"pruned_rate_limit_counters={deleted}")


if __name__ == "__main__":
    asyncio.run(prune())
