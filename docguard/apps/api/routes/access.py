from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from docguard.apps.api.deps import get_access_context, get_access_guard
from docguard.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from docguard.apps.api.response import SuccessEnvelope, success_response
from docguard.domain.identity import AccessContext
from docguard.domain.roles import Role
from docguard.services.authz.guard import (
    AccessGuard,
    DirectoryTarget,
    DocumentTarget,
    GuardDecision,
    GuardTarget,
    ReportTarget,
    SummaryTarget,
    decision_to_error,
    normalize_directory_id,
)


router = APIRouter(prefix="/access", tags=["access"], responses=DEFAULT_ERROR_RESPONSES)


class EffectiveRoleResponse(BaseModel):
    resource_type: str
    resource_id: str | None
    role: Role
    source: str


class AccessCheckRequest(BaseModel):
    resource_type: Literal["directory", "document", "summary", "report"]
    # Omitted or "root" addresses the directory root.
    resource_id: str | None = None
    required_role: Literal["viewer", "editor", "owner"] = "viewer"


class AccessCheckResponse(BaseModel):
    allowed: bool
    outcome: str
    role: Role
    required_role: Role
    reason: str
    resource_type: str | None
    resource_id: str | None


def _target_for(resource_type: str, resource_id: str | None) -> GuardTarget | None:
    if resource_type == "directory":
        return DirectoryTarget(normalize_directory_id(resource_id))
    if not resource_id:
        return None
    if resource_type == "document":
        return DocumentTarget(resource_id)
    if resource_type == "summary":
        return SummaryTarget(resource_id)
    return ReportTarget(resource_id)


async def _effective_role(
    guard: AccessGuard,
    context: AccessContext,
    target: GuardTarget,
) -> GuardDecision:
    # Requiring "none" always passes, so only absence or suspension can deny.
    decision = await guard.enforce(context, target, Role.NONE)
    if not decision.allowed:
        raise decision_to_error(decision)
    return decision


@router.get("/directories/{directory_id}", response_model=SuccessEnvelope[EffectiveRoleResponse])
async def directory_role(
    directory_id: str,
    request: Request,
    context: AccessContext = Depends(get_access_context),
    guard: AccessGuard = Depends(get_access_guard),
) -> dict:
    target = DirectoryTarget(normalize_directory_id(directory_id))
    decision = await _effective_role(guard, context, target)
    payload = EffectiveRoleResponse(
        resource_type="directory",
        resource_id=target.directory_id,
        role=decision.role,
        source=decision.reason,
    )
    return success_response(request=request, data=payload)


@router.get("/documents/{document_id}", response_model=SuccessEnvelope[EffectiveRoleResponse])
async def document_role(
    document_id: str,
    request: Request,
    context: AccessContext = Depends(get_access_context),
    guard: AccessGuard = Depends(get_access_guard),
) -> dict:
    decision = await _effective_role(guard, context, DocumentTarget(document_id))
    payload = EffectiveRoleResponse(
        resource_type="document",
        resource_id=document_id,
        role=decision.role,
        source=decision.reason,
    )
    return success_response(request=request, data=payload)


@router.post("/check", response_model=SuccessEnvelope[AccessCheckResponse])
async def check_access(
    body: AccessCheckRequest,
    request: Request,
    context: AccessContext = Depends(get_access_context),
    guard: AccessGuard = Depends(get_access_guard),
) -> dict:
    # Denials are reported as data here rather than raised.
    target = _target_for(body.resource_type, body.resource_id)
    if target is None:
        payload = AccessCheckResponse(
            allowed=False,
            outcome="denied_not_found",
            role=Role.NONE,
            required_role=Role(body.required_role),
            reason="missing_resource_id",
            resource_type=body.resource_type,
            resource_id=None,
        )
        return success_response(request=request, data=payload)
    decision = await guard.enforce(context, target, Role(body.required_role))
    payload = AccessCheckResponse(
        allowed=decision.allowed,
        outcome=decision.outcome.value,
        role=decision.role,
        required_role=decision.required,
        reason=decision.reason,
        resource_type=body.resource_type,
        resource_id=body.resource_id if body.resource_type != "directory" else normalize_directory_id(body.resource_id),
    )
    return success_response(request=request, data=payload)
