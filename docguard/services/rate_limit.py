from __future__ import annotations

from dataclasses import dataclass
import logging
import math
import time
from typing import Awaitable, Callable, Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docguard.core.config import get_settings
from docguard.core.errors import ResolutionInfrastructureFailure
from docguard.domain.identity import AccessContext, Identity
from docguard.persistence.repos import rate_limits as rate_limits_repo


logger = logging.getLogger(__name__)

NAMESPACE_USER = "user"
NAMESPACE_WORKSPACE = "workspace"


class CounterStore(Protocol):
    # Atomic "create with 1 or increment, then return the new count" by composite key.
    async def increment(
        self,
        *,
        namespace: str,
        subject_key: str,
        action: str,
        window_start_ms: int,
        window_ms: int,
    ) -> int: ...


class SqlCounterStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def increment(
        self,
        *,
        namespace: str,
        subject_key: str,
        action: str,
        window_start_ms: int,
        window_ms: int,
    ) -> int:
        # One short transaction per increment; no session is held across requests.
        try:
            async with self._session_factory() as session:
                count = await rate_limits_repo.increment_counter(
                    session,
                    namespace=namespace,
                    subject_key=subject_key,
                    action=action,
                    window_start_ms=window_start_ms,
                    window_ms=window_ms,
                )
                await session.commit()
                return count
        except (SQLAlchemyError, OSError) as exc:
            logger.warning(
                "rate_limit_store_failed backend=database namespace=%s action=%s",
                namespace,
                action,
                exc_info=exc,
            )
            raise ResolutionInfrastructureFailure("Rate limit store unavailable") from exc


_INCR_WINDOW_LUA = r"""
local count = redis.call("INCR", KEYS[1])
if count == 1 then
  redis.call("PEXPIRE", KEYS[1], ARGV[1])
end
return count
"""


class RedisCounterStore:
    def __init__(
        self,
        redis_provider: Callable[[], Awaitable[Redis]],
        *,
        prefix: str | None = None,
        grace_ms: int | None = None,
    ) -> None:
        settings = get_settings()
        self._redis_provider = redis_provider
        self._prefix = prefix or settings.rl_redis_prefix
        self._grace_ms = settings.rl_counter_grace_ms if grace_ms is None else grace_ms

    def key_for(self, *, namespace: str, subject_key: str, action: str, window_start_ms: int) -> str:
        return f"{self._prefix}:{namespace}:{subject_key}:{action}:{window_start_ms}"

    async def increment(
        self,
        *,
        namespace: str,
        subject_key: str,
        action: str,
        window_start_ms: int,
        window_ms: int,
    ) -> int:
        # INCR and the first-write PEXPIRE run as one script so the key never lingers without a TTL.
        key = self.key_for(
            namespace=namespace,
            subject_key=subject_key,
            action=action,
            window_start_ms=window_start_ms,
        )
        try:
            redis = await self._redis_provider()
            result = await redis.eval(_INCR_WINDOW_LUA, 1, key, int(window_ms + self._grace_ms))
        except (RedisError, OSError) as exc:
            logger.warning(
                "rate_limit_store_failed backend=redis namespace=%s action=%s",
                namespace,
                action,
                exc_info=exc,
            )
            raise ResolutionInfrastructureFailure("Rate limit store unavailable") from exc
        return int(result)


@dataclass(frozen=True)
class RateLimitDecision:
    # Outcome of one counted attempt; retry_after_s is 0 when allowed.
    allowed: bool
    count: int
    limit: int
    window_start_ms: int
    window_ms: int
    retry_after_s: int = 0

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


def window_start_for(now_ms: int, window_ms: int) -> int:
    # Fixed windows: floor the timestamp to a multiple of the window size.
    if window_ms <= 0:
        raise ValueError("window_ms must be positive")
    return (now_ms // window_ms) * window_ms


def retry_after_seconds(*, window_start_ms: int, window_ms: int, now_ms: int) -> int:
    remaining_ms = window_start_ms + window_ms - now_ms
    return max(1, int(math.ceil(remaining_ms / 1000.0)))


class WindowedRateLimiter:
    def __init__(
        self,
        namespace: str,
        store: CounterStore,
        *,
        time_provider: Callable[[], float] | None = None,
    ) -> None:
        # Allow injecting time for deterministic tests.
        self.namespace = namespace
        self._store = store
        self._time_provider = time_provider or time.time

    async def check(self, subject_key: str, action: str, limit: int, window_ms: int) -> RateLimitDecision:
        # Count this attempt first; the post-increment value decides the outcome.
        if limit < 0:
            raise ValueError("limit must be non-negative")
        now_ms = int(self._time_provider() * 1000)
        window_start_ms = window_start_for(now_ms, window_ms)
        count = await self._store.increment(
            namespace=self.namespace,
            subject_key=subject_key,
            action=action,
            window_start_ms=window_start_ms,
            window_ms=window_ms,
        )
        if count <= limit:
            return RateLimitDecision(
                allowed=True,
                count=count,
                limit=limit,
                window_start_ms=window_start_ms,
                window_ms=window_ms,
            )
        return RateLimitDecision(
            allowed=False,
            count=count,
            limit=limit,
            window_start_ms=window_start_ms,
            window_ms=window_ms,
            retry_after_s=retry_after_seconds(
                window_start_ms=window_start_ms,
                window_ms=window_ms,
                now_ms=now_ms,
            ),
        )


def user_subject_key(identity: Identity | None) -> str:
    # Unauthenticated callers share one pseudo-identity.
    if identity is not None and identity.subject_id:
        return identity.subject_id
    return get_settings().rl_anonymous_subject


def workspace_subject_key(context: AccessContext | None) -> str:
    # Current workspace, then tenant, then the global bucket.
    if context is not None:
        if context.workspace_id:
            return context.workspace_id
        if context.tenant_id:
            return context.tenant_id
    return get_settings().rl_global_bucket
