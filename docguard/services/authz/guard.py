from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any, Awaitable, Callable, Mapping, Union

from docguard.core.config import get_settings
from docguard.core.errors import (
    AccountSuspended,
    DocguardError,
    InsufficientPermission,
    ResolutionInfrastructureFailure,
    ResourceNotFound,
)
from docguard.domain.grants import RESOURCE_DIRECTORY, RESOURCE_DOCUMENT
from docguard.domain.identity import AccessContext
from docguard.domain.roles import Role, normalize_role, role_allows, role_rank
from docguard.services.authz.resolver import (
    SOURCE_NOT_FOUND,
    GrantRepository,
    PermissionResolver,
    Resolution,
)


logger = logging.getLogger(__name__)

ROOT_SENTINEL = "root"


class GuardOutcome(str, Enum):
    ALLOWED = "allowed"
    DENIED_INSUFFICIENT_ROLE = "denied_insufficient_role"
    DENIED_NOT_FOUND = "denied_not_found"
    DENIED_SUSPENDED = "denied_suspended"


@dataclass(frozen=True)
class GuardDecision:
    # Deterministic guard result; routes turn denials into errors via decision_to_error.
    outcome: GuardOutcome
    role: Role
    required: Role
    reason: str
    resource_type: str | None = None
    resource_id: str | None = None

    @property
    def allowed(self) -> bool:
        return self.outcome == GuardOutcome.ALLOWED


@dataclass(frozen=True)
class DirectoryTarget:
    # None addresses the root of the tree.
    directory_id: str | None


@dataclass(frozen=True)
class DocumentTarget:
    document_id: str


@dataclass(frozen=True)
class SummaryTarget:
    summary_id: str


@dataclass(frozen=True)
class ReportTarget:
    report_id: str


@dataclass(frozen=True)
class CreateInDirectoryTarget:
    # Parent of the directory or document about to be created; None is the root.
    parent_id: str | None


GuardTarget = Union[DirectoryTarget, DocumentTarget, SummaryTarget, ReportTarget, CreateInDirectoryTarget]

GuardCheck = Callable[[], Awaitable[GuardDecision]]


def share_target(resource_type: str, resource_id: str) -> GuardTarget:
    # Grants attach to directories or documents only.
    if resource_type == RESOURCE_DIRECTORY:
        return DirectoryTarget(resource_id)
    if resource_type == RESOURCE_DOCUMENT:
        return DocumentTarget(resource_id)
    raise ValueError(f"Unsupported share resource type: {resource_type}")


def normalize_directory_id(value: str | None) -> str | None:
    # Missing, blank and "root" all address the root.
    if value is None:
        return None
    cleaned = str(value).strip()
    if not cleaned or cleaned == ROOT_SENTINEL:
        return None
    return cleaned


def extract_resource_id(
    path_params: Mapping[str, Any] | None,
    body: Any,
    query: Mapping[str, Any] | None,
    key: str,
    *,
    directory: bool = False,
) -> str | None:
    """Pick a resource id from the path, then the body, then the query string.

    The first non-empty value wins. With ``directory=True`` the ``"root"`` sentinel maps to
    ``None``.
    """
    candidates: list[Any] = []
    if path_params:
        candidates.append(path_params.get(key))
    if isinstance(body, Mapping):
        candidates.append(body.get(key))
    if query:
        candidates.append(query.get(key))
    for candidate in candidates:
        if candidate is None:
            continue
        value = str(candidate).strip()
        if value:
            return normalize_directory_id(value) if directory else value
    return None


def _target_ref(target: GuardTarget) -> tuple[str, str | None]:
    if isinstance(target, DirectoryTarget):
        return "directory", target.directory_id
    if isinstance(target, DocumentTarget):
        return "document", target.document_id
    if isinstance(target, SummaryTarget):
        return "summary", target.summary_id
    if isinstance(target, ReportTarget):
        return "report", target.report_id
    return "directory", target.parent_id


class AccessGuard:
    def __init__(
        self,
        repo: GrantRepository,
        *,
        resolver: PermissionResolver | None = None,
        timeout_ms: int | None = None,
    ) -> None:
        self._repo = repo
        self._resolver = resolver or PermissionResolver(repo)
        settings = get_settings()
        self._timeout_ms = settings.authz_resolution_timeout_ms if timeout_ms is None else timeout_ms

    @property
    def resolver(self) -> PermissionResolver:
        return self._resolver

    async def enforce(
        self,
        context: AccessContext,
        target: GuardTarget,
        required_role: Role | str,
    ) -> GuardDecision:
        # Suspension is a hard deny before any resolution.
        required = normalize_role(required_role)
        if isinstance(target, CreateInDirectoryTarget) and role_rank(required) < role_rank(Role.EDITOR):
            required = Role.EDITOR
        resource_type, resource_id = _target_ref(target)

        if context.identity.is_suspended:
            return self._deny(
                GuardOutcome.DENIED_SUSPENDED, Role.NONE, required, "account_suspended", resource_type, resource_id
            )

        resolution = await self._resolve_with_deadline(context, target)
        if not resolution.found:
            return self._deny(
                GuardOutcome.DENIED_NOT_FOUND, Role.NONE, required, resolution.source, resource_type, resource_id
            )
        if not role_allows(role=resolution.role, required=required):
            return self._deny(
                GuardOutcome.DENIED_INSUFFICIENT_ROLE,
                resolution.role,
                required,
                resolution.source,
                resource_type,
                resource_id,
            )
        return GuardDecision(
            outcome=GuardOutcome.ALLOWED,
            role=resolution.role,
            required=required,
            reason=resolution.source,
            resource_type=resource_type,
            resource_id=resource_id,
        )

    async def _resolve_with_deadline(self, context: AccessContext, target: GuardTarget) -> Resolution:
        # A timeout is an infrastructure failure, never "no access".
        timeout_s = self._timeout_ms / 1000.0 if self._timeout_ms and self._timeout_ms > 0 else None
        try:
            return await asyncio.wait_for(self._resolve(context, target), timeout=timeout_s)
        except asyncio.TimeoutError as exc:
            logger.warning("authz_resolution_timeout timeout_ms=%s", self._timeout_ms)
            raise ResolutionInfrastructureFailure("Authorization resolution timed out") from exc

    async def _resolve(self, context: AccessContext, target: GuardTarget) -> Resolution:
        if isinstance(target, DirectoryTarget):
            return await self._resolver.resolve_directory(context, normalize_directory_id(target.directory_id))
        if isinstance(target, CreateInDirectoryTarget):
            return await self._resolver.resolve_directory(context, normalize_directory_id(target.parent_id))
        if isinstance(target, DocumentTarget):
            return await self._resolver.resolve_document(context, target.document_id)
        if isinstance(target, SummaryTarget):
            summary = await self._repo.get_summary(tenant_id=context.tenant_id, summary_id=target.summary_id)
            if summary is None or not summary.document_id:
                return Resolution(Role.NONE, False, SOURCE_NOT_FOUND)
            return await self._resolver.resolve_document(context, summary.document_id)
        if isinstance(target, ReportTarget):
            report = await self._repo.get_report(tenant_id=context.tenant_id, report_id=target.report_id)
            # Reports are guarded through their DRHP, falling back to the RHP.
            document_id = (report.drhp_id or report.rhp_id) if report is not None else None
            if not document_id:
                return Resolution(Role.NONE, False, SOURCE_NOT_FOUND)
            return await self._resolver.resolve_document(context, document_id)
        raise TypeError(f"Unsupported guard target: {type(target).__name__}")

    def _deny(
        self,
        outcome: GuardOutcome,
        role: Role,
        required: Role,
        reason: str,
        resource_type: str,
        resource_id: str | None,
    ) -> GuardDecision:
        logger.info(
            "authz_denied outcome=%s resource_type=%s resource_id=%s role=%s required=%s",
            outcome.value,
            resource_type,
            resource_id,
            role.value,
            required.value,
        )
        return GuardDecision(
            outcome=outcome,
            role=role,
            required=required,
            reason=reason,
            resource_type=resource_type,
            resource_id=resource_id,
        )


async def run_guards(*checks: GuardCheck) -> GuardDecision | None:
    # Apply guards in order and stop at the first denial.
    last: GuardDecision | None = None
    for check in checks:
        last = await check()
        if not last.allowed:
            return last
    return last


def decision_to_error(decision: GuardDecision) -> DocguardError:
    if decision.outcome == GuardOutcome.DENIED_NOT_FOUND:
        return ResourceNotFound(resource_type=decision.resource_type, resource_id=decision.resource_id)
    if decision.outcome == GuardOutcome.DENIED_SUSPENDED:
        return AccountSuspended()
    if decision.outcome == GuardOutcome.DENIED_INSUFFICIENT_ROLE:
        return InsufficientPermission(
            f"Requires {decision.required.value} access",
            required_role=decision.required.value,
        )
    raise ValueError("Allowed decisions carry no error")
