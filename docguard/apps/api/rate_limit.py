from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from fastapi import Depends, Response
from redis.asyncio import Redis

from docguard.apps.api.deps import get_optional_access_context, get_optional_identity
from docguard.core.config import get_settings
from docguard.core.errors import RateLimitExceeded
from docguard.domain.identity import AccessContext, Identity
from docguard.persistence import db
from docguard.services.rate_limit import (
    NAMESPACE_USER,
    NAMESPACE_WORKSPACE,
    CounterStore,
    RateLimitDecision,
    RedisCounterStore,
    SqlCounterStore,
    WindowedRateLimiter,
    user_subject_key,
    workspace_subject_key,
)


logger = logging.getLogger(__name__)

ACTION_WORKSPACE_INVITE = "workspace:invite"
ACTION_SHARE_LINK = "share:link"

RateLimitDependency = Callable[..., Awaitable[RateLimitDecision | None]]

_redis_pool: Redis | None = None
_redis_loop: asyncio.AbstractEventLoop | None = None
_redis_lock = asyncio.Lock()
_limiters: dict[str, WindowedRateLimiter] = {}


async def _get_redis() -> Redis:
    # Cache Redis connections to avoid reconnecting per request.
    global _redis_pool, _redis_loop
    current_loop = asyncio.get_running_loop()
    if _redis_pool is not None and _redis_loop == current_loop:
        return _redis_pool
    if _redis_pool is not None and _redis_loop != current_loop:
        _redis_pool = None
    async with _redis_lock:
        if _redis_pool is None:
            settings = get_settings()
            _redis_pool = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            _redis_loop = current_loop
    return _redis_pool


def _build_store() -> CounterStore:
    settings = get_settings()
    if settings.rl_backend.lower() == "redis":
        return RedisCounterStore(_get_redis)
    return SqlCounterStore(db.SessionLocal)


def get_rate_limiter(namespace: str) -> WindowedRateLimiter:
    # One limiter per namespace so requests share the store and its connections.
    limiter = _limiters.get(namespace)
    if limiter is None:
        limiter = WindowedRateLimiter(namespace, _build_store())
        _limiters[namespace] = limiter
    return limiter


def reset_rate_limiter_state() -> None:
    # Reset cached limiters and Redis connections for deterministic test setup.
    global _redis_pool, _redis_loop
    _limiters.clear()
    _redis_pool = None
    _redis_loop = None


def _configured_limits(action: str) -> tuple[int, int] | None:
    settings = get_settings()
    configured = {
        ACTION_WORKSPACE_INVITE: (settings.rl_invite_limit, settings.rl_invite_window_ms),
        ACTION_SHARE_LINK: (settings.rl_share_link_limit, settings.rl_share_link_window_ms),
    }
    return configured.get(action)


def _resolve_limits(action: str, limit: int | None, window_ms: int | None) -> tuple[int, int]:
    # Explicit arguments win over the configured defaults for known actions.
    defaults = _configured_limits(action)
    if defaults is not None:
        limit = defaults[0] if limit is None else limit
        window_ms = defaults[1] if window_ms is None else window_ms
    if limit is None or window_ms is None:
        raise ValueError(f"No rate limit configured for action {action}")
    return limit, window_ms


async def _enforce(
    *,
    namespace: str,
    subject_key: str,
    action: str,
    limit: int | None,
    window_ms: int | None,
    response: Response,
) -> RateLimitDecision | None:
    settings = get_settings()
    if not settings.rate_limit_enabled:
        return None
    resolved_limit, resolved_window_ms = _resolve_limits(action, limit, window_ms)
    decision = await get_rate_limiter(namespace).check(subject_key, action, resolved_limit, resolved_window_ms)
    if not decision.allowed:
        logger.info(
            "rate_limited scope=%s action=%s count=%s limit=%s retry_after_s=%s",
            namespace,
            action,
            decision.count,
            decision.limit,
            decision.retry_after_s,
        )
        raise RateLimitExceeded(
            retry_after_s=decision.retry_after_s,
            message="Too many requests. Please try again later.",
            action=action,
            limit=decision.limit,
            window_ms=decision.window_ms,
            scope=namespace,
        )
    response.headers["X-RateLimit-Limit"] = str(decision.limit)
    response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
    return decision


async def check_user_rate_limit(
    identity: Identity | None,
    action: str,
    response: Response,
    *,
    limit: int | None = None,
    window_ms: int | None = None,
) -> RateLimitDecision | None:
    # Counts per authenticated subject; anonymous callers share one bucket.
    return await _enforce(
        namespace=NAMESPACE_USER,
        subject_key=user_subject_key(identity),
        action=action,
        limit=limit,
        window_ms=window_ms,
        response=response,
    )


async def check_workspace_rate_limit(
    context: AccessContext | None,
    action: str,
    response: Response,
    *,
    limit: int | None = None,
    window_ms: int | None = None,
) -> RateLimitDecision | None:
    # Counts per current workspace, falling back to the tenant, then the global bucket.
    return await _enforce(
        namespace=NAMESPACE_WORKSPACE,
        subject_key=workspace_subject_key(context),
        action=action,
        limit=limit,
        window_ms=window_ms,
        response=response,
    )


def rate_limit_by_user(
    action: str,
    *,
    limit: int | None = None,
    window_ms: int | None = None,
) -> RateLimitDependency:
    async def _dependency(
        response: Response,
        identity: Identity | None = Depends(get_optional_identity),
    ) -> RateLimitDecision | None:
        return await check_user_rate_limit(identity, action, response, limit=limit, window_ms=window_ms)

    return _dependency


def rate_limit_by_workspace(
    action: str,
    *,
    limit: int | None = None,
    window_ms: int | None = None,
) -> RateLimitDependency:
    async def _dependency(
        response: Response,
        context: AccessContext | None = Depends(get_optional_access_context),
    ) -> RateLimitDecision | None:
        return await check_workspace_rate_limit(context, action, response, limit=limit, window_ms=window_ms)

    return _dependency
