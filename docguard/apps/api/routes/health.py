from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from docguard.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from docguard.apps.api.response import SuccessEnvelope, success_response
from docguard.core.config import get_settings
from docguard.persistence.db import pool_stats

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class PoolStats(BaseModel):
    size: int | None
    checked_out: int | None


class HealthResponse(BaseModel):
    status: str
    service: str
    rate_limit_backend: str
    db_pool: PoolStats


@router.get("/health", response_model=SuccessEnvelope[HealthResponse])
async def health(request: Request) -> dict:
    # Public liveness check; never touches the database.
    settings = get_settings()
    payload = HealthResponse(
        status="ok",
        service=settings.app_name,
        rate_limit_backend=settings.rl_backend,
        db_pool=PoolStats(**pool_stats()),
    )
    return success_response(request=request, data=payload)
