from __future__ import annotations

from types import SimpleNamespace

import pytest

from docguard.core.errors import (
    AccountSuspended,
    InsufficientPermission,
    ResolutionInfrastructureFailure,
    ResourceNotFound,
)
from docguard.domain.grants import UserGrant
from docguard.domain.identity import AccessContext, Identity
from docguard.domain.roles import Role
from docguard.services.authz.guard import (
    AccessGuard,
    CreateInDirectoryTarget,
    DirectoryTarget,
    DocumentTarget,
    GuardDecision,
    GuardOutcome,
    ReportTarget,
    SummaryTarget,
    decision_to_error,
    extract_resource_id,
    normalize_directory_id,
    run_guards,
)
from docguard.tests.utils.fakes import InMemoryGrantRepository


def _context(subject_id: str = "u1", *, status: str = "active", workspace_id: str | None = None) -> AccessContext:
    identity = Identity(subject_id=subject_id, tenant_id="t1", global_role="user", status=status)
    return AccessContext(identity=identity, workspace_id=workspace_id)


def _grant(resource_type: str, resource_id: str, role: Role) -> UserGrant:
    return UserGrant(
        id=f"g-{resource_id}",
        tenant_id="t1",
        resource_type=resource_type,
        resource_id=resource_id,
        role=role,
        expires_at=None,
        subject_id="u1",
    )


@pytest.fixture
def repo() -> InMemoryGrantRepository:
    repo = InMemoryGrantRepository()
    repo.add_directory("d1", tenant_id="t1")
    repo.add_document("doc1", tenant_id="t1", workspace_id="ws-other")
    repo.grants.append(_grant("directory", "d1", Role.VIEWER))
    repo.grants.append(_grant("document", "doc1", Role.EDITOR))
    return repo


@pytest.mark.asyncio
async def test_enforce_allows_sufficient_role(repo) -> None:
    guard = AccessGuard(repo)
    decision = await guard.enforce(_context(), DirectoryTarget("d1"), Role.VIEWER)
    assert decision.allowed
    assert decision.role == Role.VIEWER
    assert decision.resource_type == "directory"


@pytest.mark.asyncio
async def test_enforce_denies_insufficient_role(repo) -> None:
    guard = AccessGuard(repo)
    decision = await guard.enforce(_context(), DirectoryTarget("d1"), Role.EDITOR)
    assert decision.outcome == GuardOutcome.DENIED_INSUFFICIENT_ROLE
    assert decision.role == Role.VIEWER
    assert decision.required == Role.EDITOR


@pytest.mark.asyncio
async def test_enforce_reports_not_found_distinctly(repo) -> None:
    guard = AccessGuard(repo)
    decision = await guard.enforce(_context(), DocumentTarget("missing"), Role.VIEWER)
    assert decision.outcome == GuardOutcome.DENIED_NOT_FOUND


@pytest.mark.asyncio
async def test_suspended_identity_is_denied_before_resolution(repo) -> None:
    guard = AccessGuard(repo)
    decision = await guard.enforce(_context(status="suspended"), DocumentTarget("doc1"), Role.VIEWER)
    assert decision.outcome == GuardOutcome.DENIED_SUSPENDED
    assert repo.calls == []


@pytest.mark.asyncio
async def test_create_in_directory_requires_editor(repo) -> None:
    guard = AccessGuard(repo)
    decision = await guard.enforce(_context(), CreateInDirectoryTarget("d1"), Role.VIEWER)
    assert decision.outcome == GuardOutcome.DENIED_INSUFFICIENT_ROLE
    assert decision.required == Role.EDITOR

    at_root = await guard.enforce(_context(), CreateInDirectoryTarget(None), Role.EDITOR)
    assert at_root.allowed


@pytest.mark.asyncio
async def test_root_sentinel_addresses_root(repo) -> None:
    guard = AccessGuard(repo)
    decision = await guard.enforce(_context(), DirectoryTarget("root"), Role.EDITOR)
    assert decision.allowed
    assert repo.calls == []


@pytest.mark.asyncio
async def test_summary_inherits_document_role(repo) -> None:
    repo.summaries["s1"] = SimpleNamespace(id="s1", tenant_id="t1", document_id="doc1")
    guard = AccessGuard(repo)
    assert (await guard.enforce(_context(), SummaryTarget("s1"), Role.EDITOR)).allowed
    missing = await guard.enforce(_context(), SummaryTarget("s-missing"), Role.VIEWER)
    assert missing.outcome == GuardOutcome.DENIED_NOT_FOUND


@pytest.mark.asyncio
async def test_report_falls_back_to_rhp(repo) -> None:
    repo.reports["r1"] = SimpleNamespace(id="r1", tenant_id="t1", drhp_id=None, rhp_id="doc1")
    repo.reports["r2"] = SimpleNamespace(id="r2", tenant_id="t1", drhp_id=None, rhp_id=None)
    guard = AccessGuard(repo)
    assert (await guard.enforce(_context(), ReportTarget("r1"), Role.VIEWER)).allowed
    orphan = await guard.enforce(_context(), ReportTarget("r2"), Role.VIEWER)
    assert orphan.outcome == GuardOutcome.DENIED_NOT_FOUND


@pytest.mark.asyncio
async def test_slow_resolution_is_an_infrastructure_failure(repo) -> None:
    repo.delay_s = 0.2
    guard = AccessGuard(repo, timeout_ms=20)
    with pytest.raises(ResolutionInfrastructureFailure):
        await guard.enforce(_context(), DocumentTarget("doc1"), Role.VIEWER)


@pytest.mark.asyncio
async def test_repository_failure_propagates(repo) -> None:
    repo.fail_with = ResolutionInfrastructureFailure("down")
    guard = AccessGuard(repo)
    with pytest.raises(ResolutionInfrastructureFailure):
        await guard.enforce(_context(), DirectoryTarget("d1"), Role.VIEWER)


@pytest.mark.asyncio
async def test_run_guards_stops_at_first_denial(repo) -> None:
    guard = AccessGuard(repo)
    evaluated: list[str] = []

    def _check(name: str, target, role: Role):
        async def _run() -> GuardDecision:
            evaluated.append(name)
            return await guard.enforce(_context(), target, role)

        return _run

    decision = await run_guards(
        _check("dir", DirectoryTarget("d1"), Role.VIEWER),
        _check("doc", DocumentTarget("doc1"), Role.OWNER),
        _check("never", DirectoryTarget("d1"), Role.VIEWER),
    )
    assert decision is not None
    assert decision.outcome == GuardOutcome.DENIED_INSUFFICIENT_ROLE
    assert evaluated == ["dir", "doc"]
    assert await run_guards() is None


def test_decision_to_error_maps_outcomes() -> None:
    def _decision(outcome: GuardOutcome) -> GuardDecision:
        return GuardDecision(
            outcome=outcome,
            role=Role.VIEWER,
            required=Role.EDITOR,
            reason="test",
            resource_type="document",
            resource_id="doc1",
        )

    assert isinstance(decision_to_error(_decision(GuardOutcome.DENIED_NOT_FOUND)), ResourceNotFound)
    assert isinstance(decision_to_error(_decision(GuardOutcome.DENIED_SUSPENDED)), AccountSuspended)
    forbidden = decision_to_error(_decision(GuardOutcome.DENIED_INSUFFICIENT_ROLE))
    assert isinstance(forbidden, InsufficientPermission)
    assert forbidden.details["required_role"] == "editor"
    with pytest.raises(ValueError):
        decision_to_error(_decision(GuardOutcome.ALLOWED))


def test_extract_resource_id_prefers_path_then_body_then_query() -> None:
    assert extract_resource_id({"document_id": "p"}, {"document_id": "b"}, {"document_id": "q"}, "document_id") == "p"
    assert extract_resource_id({}, {"document_id": "b"}, {"document_id": "q"}, "document_id") == "b"
    assert extract_resource_id({}, {"document_id": "  "}, {"document_id": "q"}, "document_id") == "q"
    assert extract_resource_id(None, ["not", "a", "mapping"], None, "document_id") is None
    assert extract_resource_id({"directory_id": "root"}, None, None, "directory_id", directory=True) is None


def test_normalize_directory_id() -> None:
    assert normalize_directory_id(None) is None
    assert normalize_directory_id("") is None
    assert normalize_directory_id("root") is None
    assert normalize_directory_id(" d1 ") == "d1"
