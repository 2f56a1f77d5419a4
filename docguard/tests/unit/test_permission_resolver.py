from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from docguard.core.errors import ResolutionInfrastructureFailure
from docguard.domain.grants import LinkAccess, LinkGrant, UserGrant, WorkspaceGrant
from docguard.domain.identity import AccessContext, Identity
from docguard.domain.roles import Role
from docguard.services.authz import resolver as resolver_module
from docguard.services.authz.resolver import PermissionResolver
from docguard.tests.utils.fakes import InMemoryGrantRepository


NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def _context(
    subject_id: str = "u1",
    *,
    tenant_id: str = "t1",
    global_role: str = "user",
    workspace_id: str | None = None,
    link: LinkAccess | None = None,
) -> AccessContext:
    identity = Identity(subject_id=subject_id, tenant_id=tenant_id, global_role=global_role)
    return AccessContext(identity=identity, workspace_id=workspace_id, link_access=link)


def _user_grant(resource_type: str, resource_id: str, subject_id: str, role: Role, **kwargs) -> UserGrant:
    return UserGrant(
        id=f"g-{subject_id}-{resource_id}",
        tenant_id=kwargs.get("tenant_id", "t1"),
        resource_type=resource_type,
        resource_id=resource_id,
        role=role,
        expires_at=kwargs.get("expires_at"),
        subject_id=subject_id,
    )


def _workspace_grant(resource_type: str, resource_id: str, workspace_id: str, role: Role) -> WorkspaceGrant:
    return WorkspaceGrant(
        id=f"w-{workspace_id}-{resource_id}",
        tenant_id="t1",
        resource_type=resource_type,
        resource_id=resource_id,
        role=role,
        expires_at=None,
        workspace_id=workspace_id,
    )


@pytest.fixture
def repo() -> InMemoryGrantRepository:
    return InMemoryGrantRepository()


@pytest.fixture
def resolver(repo: InMemoryGrantRepository) -> PermissionResolver:
    return PermissionResolver(repo, clock=lambda: NOW)


@pytest.mark.asyncio
async def test_root_directory_is_editor_for_everyone(resolver, repo) -> None:
    resolution = await resolver.resolve_directory(_context(), None)
    assert resolution.role == Role.EDITOR
    assert resolution.source == resolver_module.SOURCE_ROOT
    assert repo.calls == []


@pytest.mark.asyncio
async def test_admin_is_owner_of_any_directory_without_lookup(resolver, repo) -> None:
    role = await resolver.resolve_directory_role(_context(global_role="admin"), "missing")
    assert role == Role.OWNER
    assert repo.calls == []


@pytest.mark.asyncio
async def test_owner_beats_grants(resolver, repo) -> None:
    repo.add_directory("d1", tenant_id="t1", owner_user_id="u1")
    repo.grants.append(_user_grant("directory", "d1", "u1", Role.VIEWER))
    resolution = await resolver.resolve_directory(_context("u1"), "d1")
    assert resolution.role == Role.OWNER
    assert resolution.source == resolver_module.SOURCE_OWNER


@pytest.mark.asyncio
async def test_directory_in_other_tenant_is_not_found(resolver, repo) -> None:
    repo.add_directory("d1", tenant_id="t2", owner_user_id="u1")
    resolution = await resolver.resolve_directory(_context("u1"), "d1")
    assert resolution.found is False
    assert resolution.role == Role.NONE


@pytest.mark.asyncio
async def test_directory_link_then_user_then_workspace_precedence(resolver, repo) -> None:
    repo.add_directory("d1", tenant_id="t1")
    repo.grants.append(_user_grant("directory", "d1", "u1", Role.EDITOR))
    repo.grants.append(_workspace_grant("directory", "d1", "t1", Role.OWNER))
    link = LinkAccess(role=Role.VIEWER, resource_type="directory", resource_id="d1", tenant_id="t1")

    # The link wins even though it carries the weakest role.
    assert await resolver.resolve_directory_role(_context("u1", link=link), "d1") == Role.VIEWER
    # Without the link, the user grant is checked before the workspace grant.
    assert await resolver.resolve_directory_role(_context("u1"), "d1") == Role.EDITOR
    # Another user in the same tenant falls through to the workspace grant.
    assert await resolver.resolve_directory_role(_context("u2"), "d1") == Role.OWNER


@pytest.mark.asyncio
async def test_workspace_grant_uses_selected_workspace(resolver, repo) -> None:
    repo.add_directory("d1", tenant_id="t1")
    repo.grants.append(_workspace_grant("directory", "d1", "ws-a", Role.EDITOR))
    assert await resolver.resolve_directory_role(_context("u1", workspace_id="ws-a"), "d1") == Role.EDITOR
    assert await resolver.resolve_directory_role(_context("u1"), "d1") == Role.NONE


@pytest.mark.asyncio
async def test_expired_grant_never_applies(resolver, repo) -> None:
    repo.add_directory("d1", tenant_id="t1")
    repo.grants.append(_user_grant("directory", "d1", "u1", Role.EDITOR, expires_at=NOW - timedelta(seconds=1)))
    resolution = await resolver.resolve_directory(_context("u1"), "d1")
    assert resolution.role == Role.NONE
    assert resolution.found is True
    assert resolution.source == resolver_module.SOURCE_NO_GRANT


@pytest.mark.asyncio
async def test_document_in_current_workspace_is_editor(resolver, repo) -> None:
    repo.add_document("doc1", tenant_id="t1", workspace_id="ws-a")
    assert await resolver.resolve_document_role(_context(workspace_id="ws-a"), "doc1") == Role.EDITOR
    # The tenant doubles as the default workspace.
    repo.add_document("doc2", tenant_id="t1", workspace_id="t1")
    assert await resolver.resolve_document_role(_context(), "doc2") == Role.EDITOR


@pytest.mark.asyncio
async def test_document_link_applies_to_counterpart_both_ways(resolver, repo) -> None:
    repo.add_document("drhp", tenant_id="t1", workspace_id="ws-x", doc_type="DRHP", related_rhp_id="rhp")
    repo.add_document("rhp", tenant_id="t1", workspace_id="ws-x", doc_type="RHP", related_drhp_id="drhp")

    link_on_drhp = LinkAccess(role=Role.VIEWER, resource_type="document", resource_id="drhp", tenant_id="t1")
    resolution = await resolver.resolve_document(_context(link=link_on_drhp), "rhp")
    assert resolution.role == Role.VIEWER
    assert resolution.source == resolver_module.SOURCE_LINK_COUNTERPART

    link_on_rhp = LinkAccess(role=Role.EDITOR, resource_type="document", resource_id="rhp", tenant_id="t1")
    assert await resolver.resolve_document_role(_context(link=link_on_rhp), "drhp") == Role.EDITOR


@pytest.mark.asyncio
async def test_link_does_not_reach_unrelated_document(resolver, repo) -> None:
    repo.add_document("drhp", tenant_id="t1", workspace_id="ws-x", doc_type="DRHP", related_rhp_id="rhp")
    repo.add_document("other", tenant_id="t1", workspace_id="ws-x", doc_type="RHP", related_drhp_id="elsewhere")
    link = LinkAccess(role=Role.VIEWER, resource_type="document", resource_id="drhp", tenant_id="t1")
    assert await resolver.resolve_document_role(_context(link=link), "other") == Role.NONE


@pytest.mark.asyncio
async def test_user_and_workspace_grants_do_not_cross_the_pair(resolver, repo) -> None:
    repo.add_document("drhp", tenant_id="t1", workspace_id="ws-x", doc_type="DRHP", related_rhp_id="rhp")
    repo.add_document("rhp", tenant_id="t1", workspace_id="ws-x", doc_type="RHP", related_drhp_id="drhp")
    repo.grants.append(_user_grant("document", "drhp", "u1", Role.EDITOR))
    repo.grants.append(_workspace_grant("document", "drhp", "t1", Role.VIEWER))
    assert await resolver.resolve_document_role(_context("u1"), "drhp") == Role.EDITOR
    assert await resolver.resolve_document_role(_context("u1"), "rhp") == Role.NONE


@pytest.mark.asyncio
async def test_cross_tenant_link_is_ignored(resolver, repo) -> None:
    repo.add_document("doc1", tenant_id="t1", workspace_id="ws-x")
    foreign = LinkAccess(role=Role.OWNER, resource_type="document", resource_id="doc1", tenant_id="t2")
    resolution = await resolver.resolve_document(_context(link=foreign), "doc1")
    assert resolution.role == Role.NONE
    assert resolution.source == resolver_module.SOURCE_NO_GRANT


@pytest.mark.asyncio
async def test_document_of_other_tenant_looks_absent(resolver, repo) -> None:
    repo.add_document("doc1", tenant_id="t2", workspace_id="t1")
    repo.grants.append(_user_grant("document", "doc1", "u1", Role.OWNER, tenant_id="t2"))
    resolution = await resolver.resolve_document(_context("u1"), "doc1")
    assert resolution.found is False
    assert resolution.role == Role.NONE


@pytest.mark.asyncio
async def test_resolution_is_idempotent(resolver, repo) -> None:
    repo.add_directory("d1", tenant_id="t1")
    repo.grants.append(_user_grant("directory", "d1", "u1", Role.VIEWER))
    first = await resolver.resolve_directory(_context("u1"), "d1")
    second = await resolver.resolve_directory(_context("u1"), "d1")
    assert first == second


@pytest.mark.asyncio
async def test_repository_failure_is_not_treated_as_no_access(resolver, repo) -> None:
    repo.add_document("doc1", tenant_id="t1", workspace_id="ws-x")
    repo.fail_with = ResolutionInfrastructureFailure("down")
    with pytest.raises(ResolutionInfrastructureFailure):
        await resolver.resolve_document_role(_context(), "doc1")


@pytest.mark.asyncio
async def test_link_grant_on_directory_does_not_leak_to_documents(resolver, repo) -> None:
    repo.add_document("doc1", tenant_id="t1", workspace_id="ws-x")
    repo.grants.append(
        LinkGrant(
            id="l1",
            tenant_id="t1",
            resource_type="directory",
            resource_id="doc1",
            role=Role.OWNER,
            expires_at=None,
            token="tok",
        )
    )
    link = LinkAccess(role=Role.OWNER, resource_type="directory", resource_id="doc1", tenant_id="t1")
    assert await resolver.resolve_document_role(_context(link=link), "doc1") == Role.NONE
