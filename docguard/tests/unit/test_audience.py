from __future__ import annotations

from types import SimpleNamespace

import pytest

from docguard.domain.events import AdminsOnly, WholeWorkspace, explicit
from docguard.domain.models import MEMBERSHIP_PENDING, MEMBERSHIP_SUSPENDED
from docguard.services.notifications import resolve_audience, select_workspace_audience
from docguard.tests.utils.fakes import InMemoryGrantRepository


def _seed() -> InMemoryGrantRepository:
    repo = InMemoryGrantRepository()
    repo.add_user("actor", tenant_id="t1")
    repo.add_user("admin1", tenant_id="t1", role="admin")
    repo.add_user("member1", tenant_id="t1")
    repo.add_user("guest-active", tenant_id="t2")
    repo.add_user("guest-admin", tenant_id="t2", role="admin")
    repo.add_user("guest-pending", tenant_id="t2")
    repo.add_user("guest-suspended", tenant_id="t2")
    repo.add_user("stranger", tenant_id="t3")
    repo.workspaces["ws1"] = SimpleNamespace(id="ws1", tenant_id="t1")
    repo.workspaces["ws-foreign"] = SimpleNamespace(id="ws-foreign", tenant_id="t3")
    repo.memberships.extend(
        [
            SimpleNamespace(user_id="guest-active", workspace_id="ws1", status="active"),
            SimpleNamespace(user_id="guest-admin", workspace_id="ws1", status="active"),
            SimpleNamespace(user_id="guest-pending", workspace_id="ws1", status=MEMBERSHIP_PENDING),
            SimpleNamespace(user_id="guest-suspended", workspace_id="ws1", status=MEMBERSHIP_SUSPENDED),
            SimpleNamespace(user_id="stranger", workspace_id="ws-foreign", status="active"),
        ]
    )
    return repo


@pytest.mark.asyncio
async def test_explicit_recipients_are_deduplicated_in_order() -> None:
    repo = _seed()
    directive = explicit("member1", "admin1", "member1", "")
    assert directive.subject_ids == ("member1", "admin1")
    assert await resolve_audience(repo, tenant_id="t1", directive=directive) == ["member1", "admin1"]
    assert repo.calls == []


@pytest.mark.asyncio
async def test_no_directive_means_no_recipients() -> None:
    assert await resolve_audience(_seed(), tenant_id="t1", directive=None) == []


@pytest.mark.asyncio
async def test_admins_only_returns_tenant_admins() -> None:
    recipients = await resolve_audience(_seed(), tenant_id="t1", directive=AdminsOnly())
    assert sorted(recipients) == ["admin1", "guest-admin"]


@pytest.mark.asyncio
async def test_whole_workspace_excludes_inactive_and_foreign_members() -> None:
    recipients = await resolve_audience(_seed(), tenant_id="t1", directive=WholeWorkspace(), actor_id="actor")
    assert set(recipients) == {"actor", "admin1", "member1", "guest-admin"}
    assert "guest-pending" not in recipients
    assert "guest-suspended" not in recipients
    assert "stranger" not in recipients
    # Active cross-tenant members without admin rights are not part of the broadcast.
    assert "guest-active" not in recipients


def test_actor_is_kept_only_when_among_candidates() -> None:
    candidates = [
        SimpleNamespace(id="guest", tenant_id="t2", role="user"),
        SimpleNamespace(id="local", tenant_id="t1", role="user"),
        SimpleNamespace(id="local", tenant_id="t1", role="user"),
    ]
    assert select_workspace_audience(candidates, tenant_id="t1", actor_id="guest") == ["guest", "local"]
    assert select_workspace_audience(candidates, tenant_id="t1", actor_id="absent") == ["local"]
