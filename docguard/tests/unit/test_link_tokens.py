from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from docguard.core.errors import LinkTokenExpired, LinkTokenInvalid
from docguard.domain.grants import LinkGrant, link_grant_from_row
from docguard.domain.roles import Role
from docguard.services.authz.links import generate_link_token, resolve_link_access
from docguard.tests.utils.fakes import InMemoryGrantRepository


NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _link(token: str, *, expires_at: datetime | None = None) -> LinkGrant:
    return LinkGrant(
        id=f"l-{token}",
        tenant_id="t1",
        resource_type="document",
        resource_id="doc1",
        role=Role.VIEWER,
        expires_at=expires_at,
        token=token,
    )


def test_generated_tokens_are_url_safe_and_unique() -> None:
    tokens = {generate_link_token() for _ in range(50)}
    assert len(tokens) == 50
    for token in tokens:
        assert len(token) >= 32
        assert all(ch.isalnum() or ch in "-_" for ch in token)


def _row(scope: str, **overrides) -> SimpleNamespace:
    values = {
        "id": "shr1",
        "tenant_id": "t1",
        "resource_type": "document",
        "resource_id": "doc1",
        "scope": scope,
        "principal_id": None,
        "role": "viewer",
        "link_token": None,
        "expires_at": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_link_rows_convert_and_other_scopes_are_rejected() -> None:
    grant = link_grant_from_row(_row("link", link_token="tok"))
    assert isinstance(grant, LinkGrant)
    assert grant.token == "tok"

    with pytest.raises(ValueError, match="not a link grant"):
        link_grant_from_row(_row("user", principal_id="u1"))


@pytest.mark.asyncio
async def test_valid_token_yields_link_access() -> None:
    repo = InMemoryGrantRepository()
    repo.grants.append(_link("abc", expires_at=NOW + timedelta(days=1)))
    access = await resolve_link_access(repo, " abc ", now=NOW)
    assert access.role == Role.VIEWER
    assert access.matches(resource_type="document", resource_id="doc1")
    assert access.tenant_id == "t1"


@pytest.mark.asyncio
async def test_unknown_or_blank_token_is_invalid() -> None:
    repo = InMemoryGrantRepository()
    with pytest.raises(LinkTokenInvalid):
        await resolve_link_access(repo, "nope", now=NOW)
    with pytest.raises(LinkTokenInvalid):
        await resolve_link_access(repo, "   ", now=NOW)
    # Blank tokens never reach the repository.
    assert repo.calls == ["find_link_grant"]


@pytest.mark.asyncio
async def test_expired_token_is_reported_as_expired() -> None:
    repo = InMemoryGrantRepository()
    repo.grants.append(_link("old", expires_at=NOW - timedelta(minutes=1)))
    with pytest.raises(LinkTokenExpired):
        await resolve_link_access(repo, "old", now=NOW)
