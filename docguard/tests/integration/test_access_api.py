from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from docguard.apps.api.main import create_app
from docguard.domain.grants import SCOPE_USER
from docguard.tests.utils.seed import (
    add_membership,
    auth_headers,
    create_directory,
    create_document,
    create_grant,
    create_report,
    create_summary,
    create_user,
    create_workspace,
)


@pytest.fixture
async def client() -> AsyncClient:
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.mark.asyncio
async def test_health_is_public(client: AsyncClient) -> None:
    response = await client.get("/v1/health")
    assert response.status_code == 200
    body = response.json()
    assert body["data"]["status"] == "ok"
    assert body["data"]["rate_limit_backend"] == "database"
    assert body["meta"]["api_version"] == "v1"


@pytest.mark.asyncio
async def test_missing_credentials_return_401(client: AsyncClient) -> None:
    response = await client.get("/v1/access/directories/root")
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"
    assert response.json()["error"]["code"] == "AUTH_UNAUTHORIZED"

    malformed = await client.get("/v1/access/directories/root", headers={"Authorization": "Token abc"})
    assert malformed.status_code == 401


@pytest.mark.asyncio
async def test_owner_sees_owner_role_and_root_is_editor(client: AsyncClient) -> None:
    owner = await create_user(tenant_id="t1")
    directory = await create_directory(tenant_id="t1", owner_user_id=owner.id)

    response = await client.get(f"/v1/access/directories/{directory.id}", headers=auth_headers(owner.id))
    assert response.status_code == 200
    assert response.json()["data"]["role"] == "owner"
    assert response.json()["data"]["source"] == "owner"

    root = await client.get("/v1/access/directories/root", headers=auth_headers(owner.id))
    assert root.json()["data"] == {"resource_type": "directory", "resource_id": None, "role": "editor", "source": "root"}


@pytest.mark.asyncio
async def test_cross_tenant_resources_look_absent(client: AsyncClient) -> None:
    intruder = await create_user(tenant_id="t2")
    directory = await create_directory(tenant_id="t1")
    document = await create_document(tenant_id="t1", workspace_id="t1")

    for path in (f"/v1/access/directories/{directory.id}", f"/v1/access/documents/{document.id}"):
        response = await client.get(path, headers=auth_headers(intruder.id))
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_check_reports_insufficient_role_as_data(client: AsyncClient) -> None:
    viewer = await create_user(tenant_id="t1")
    document = await create_document(tenant_id="t1", workspace_id="ws-elsewhere")
    await create_grant(
        tenant_id="t1",
        resource_type="document",
        resource_id=document.id,
        scope=SCOPE_USER,
        principal_id=viewer.id,
        role="viewer",
    )
    response = await client.post(
        "/v1/access/check",
        json={"resource_type": "document", "resource_id": document.id, "required_role": "editor"},
        headers=auth_headers(viewer.id),
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["allowed"] is False
    assert data["outcome"] == "denied_insufficient_role"
    assert data["role"] == "viewer"
    assert data["required_role"] == "editor"


@pytest.mark.asyncio
async def test_check_covers_summaries_and_reports(client: AsyncClient) -> None:
    user = await create_user(tenant_id="t1")
    document = await create_document(tenant_id="t1", workspace_id="t1")
    summary = await create_summary(tenant_id="t1", workspace_id="t1", document_id=document.id)
    report = await create_report(tenant_id="t1", workspace_id="t1", drhp_id=document.id)

    for resource_type, resource_id in (("summary", summary.id), ("report", report.id)):
        response = await client.post(
            "/v1/access/check",
            json={"resource_type": resource_type, "resource_id": resource_id, "required_role": "editor"},
            headers=auth_headers(user.id),
        )
        assert response.json()["data"]["allowed"] is True

    missing_id = await client.post(
        "/v1/access/check",
        json={"resource_type": "summary"},
        headers=auth_headers(user.id),
    )
    assert missing_id.json()["data"]["outcome"] == "denied_not_found"


@pytest.mark.asyncio
async def test_workspace_selector_requires_membership(client: AsyncClient) -> None:
    user = await create_user(tenant_id="t1")
    joined = await create_workspace(tenant_id="t1")
    other = await create_workspace(tenant_id="t1")
    await add_membership(user_id=user.id, workspace_id=joined.id)
    document = await create_document(tenant_id="t1", workspace_id=joined.id)

    allowed = await client.get(
        f"/v1/access/documents/{document.id}",
        headers=auth_headers(user.id, workspace=joined.id),
    )
    assert allowed.status_code == 200
    assert allowed.json()["data"]["role"] == "editor"

    forbidden = await client.get(
        f"/v1/access/documents/{document.id}",
        headers=auth_headers(user.id, workspace=other.id),
    )
    assert forbidden.status_code == 403
    assert forbidden.json()["error"]["code"] == "WORKSPACE_FORBIDDEN"


@pytest.mark.asyncio
async def test_admin_may_select_any_workspace_and_owns_everything(client: AsyncClient) -> None:
    admin = await create_user(tenant_id="t1", role="admin")
    document = await create_document(tenant_id="t1", workspace_id="ws-any")
    response = await client.get(
        f"/v1/access/documents/{document.id}",
        headers=auth_headers(admin.id, workspace="ws-unjoined"),
    )
    assert response.status_code == 200
    assert response.json()["data"]["role"] == "owner"


@pytest.mark.asyncio
async def test_suspended_account_is_rejected(client: AsyncClient) -> None:
    user = await create_user(tenant_id="t1", status="suspended")
    response = await client.get("/v1/access/directories/root", headers=auth_headers(user.id))
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "ACCOUNT_SUSPENDED"


@pytest.mark.asyncio
async def test_default_workspace_comes_from_user_record(client: AsyncClient) -> None:
    workspace = await create_workspace(tenant_id="t1", workspace_id="ws-last")
    user = await create_user(tenant_id="t1", current_workspace_id=workspace.id)
    await add_membership(user_id=user.id, workspace_id=workspace.id)
    document = await create_document(tenant_id="t1", workspace_id="ws-last")
    response = await client.get(f"/v1/access/documents/{document.id}", headers=auth_headers(user.id))
    assert response.json()["data"]["source"] == "workspace_member"


@pytest.mark.asyncio
async def test_suspended_membership_drops_default_workspace(client: AsyncClient) -> None:
    workspace = await create_workspace(tenant_id="t1", workspace_id="ws-former")
    user = await create_user(tenant_id="t1", current_workspace_id=workspace.id)
    await add_membership(user_id=user.id, workspace_id=workspace.id, status="suspended")
    document = await create_document(tenant_id="t1", workspace_id=workspace.id)

    implicit = await client.get(f"/v1/access/documents/{document.id}", headers=auth_headers(user.id))
    assert implicit.status_code == 200
    assert implicit.json()["data"]["role"] == "none"

    explicit = await client.get(
        f"/v1/access/documents/{document.id}",
        headers=auth_headers(user.id, workspace=workspace.id),
    )
    assert explicit.status_code == 403
    assert explicit.json()["error"]["code"] == "WORKSPACE_FORBIDDEN"


@pytest.mark.asyncio
async def test_cross_tenant_member_resolves_in_workspace_tenant(client: AsyncClient) -> None:
    guest = await create_user(tenant_id="t2")
    workspace = await create_workspace(tenant_id="t1", workspace_id="ws-shared")
    await add_membership(user_id=guest.id, workspace_id=workspace.id)
    document = await create_document(tenant_id="t1", workspace_id=workspace.id)

    root = await client.get("/v1/access/directories/root", headers=auth_headers(guest.id, workspace=workspace.id))
    assert root.status_code == 200

    response = await client.get(
        f"/v1/access/documents/{document.id}",
        headers=auth_headers(guest.id, workspace=workspace.id),
    )
    assert response.status_code == 200
    assert response.json()["data"]["role"] == "editor"
    assert response.json()["data"]["source"] == "workspace_member"

    # Without the selector the guest resolves in the home tenant, where the document is absent.
    home = await client.get(f"/v1/access/documents/{document.id}", headers=auth_headers(guest.id))
    assert home.status_code == 404
