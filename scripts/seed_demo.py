from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass

from docguard.domain.grants import SCOPE_USER
from docguard.domain.models import (
    DOCUMENT_TYPE_DRHP,
    DOCUMENT_TYPE_RHP,
    MEMBERSHIP_ACTIVE,
    Directory,
    Document,
    SharePermission,
    User,
    Workspace,
    WorkspaceMembership,
)
from docguard.persistence.db import SessionLocal
from docguard.services.auth.identity import issue_access_token


DEMO_TENANT_ID = "t1"
DEMO_WORKSPACE_ID = "ws-demo"


@dataclass(frozen=True)
class DemoUser:
    id: str
    role: str
    email: str
    # Remembered workspace; only users who can select it get one.
    workspace_id: str | None = DEMO_WORKSPACE_ID


DEMO_USERS = (
    DemoUser(id="usr-admin", role="admin", email="admin@demo.test"),
    DemoUser(id="usr-analyst", role="user", email="analyst@demo.test"),
    DemoUser(id="usr-reviewer", role="user", email="reviewer@demo.test", workspace_id=None),
)


def build_demo_rows() -> list:
    # Fixed ids keep repeated runs pointing at the same rows.
    rows: list = [
        Workspace(id=DEMO_WORKSPACE_ID, tenant_id=DEMO_TENANT_ID, name="Demo Deal Room"),
    ]
    for user in DEMO_USERS:
        rows.append(
            User(
                id=user.id,
                tenant_id=DEMO_TENANT_ID,
                email=user.email,
                role=user.role,
                status="active",
                current_workspace_id=user.workspace_id,
            )
        )
    rows.append(
        WorkspaceMembership(
            id="mem-analyst",
            user_id="usr-analyst",
            workspace_id=DEMO_WORKSPACE_ID,
            status=MEMBERSHIP_ACTIVE,
        )
    )
    rows.append(
        Directory(id="dir-filings", tenant_id=DEMO_TENANT_ID, name="Filings", owner_user_id="usr-analyst")
    )
    rows.append(
        Document(
            id="doc-drhp",
            tenant_id=DEMO_TENANT_ID,
            workspace_id=DEMO_WORKSPACE_ID,
            name="Draft prospectus.pdf",
            type=DOCUMENT_TYPE_DRHP,
            directory_id="dir-filings",
            related_rhp_id="doc-rhp",
        )
    )
    rows.append(
        Document(
            id="doc-rhp",
            tenant_id=DEMO_TENANT_ID,
            workspace_id=DEMO_WORKSPACE_ID,
            name="Final prospectus.pdf",
            type=DOCUMENT_TYPE_RHP,
            directory_id="dir-filings",
            related_drhp_id="doc-drhp",
        )
    )
    # The reviewer is not a workspace member and reads the directory through a direct grant.
    rows.append(
        SharePermission(
            id="shr-reviewer",
            tenant_id=DEMO_TENANT_ID,
            resource_type="directory",
            resource_id="dir-filings",
            scope=SCOPE_USER,
            principal_id="usr-reviewer",
            role="viewer",
            created_by="usr-analyst",
        )
    )
    return rows


async def seed_demo() -> int:
    async with SessionLocal() as session:
        if await session.get(Workspace, DEMO_WORKSPACE_ID) is not None:
            print("Demo tenant already seeded; skipping.")
        else:
            session.add_all(build_demo_rows())
            await session.commit()
            print(f"Seeded demo tenant {DEMO_TENANT_ID} with {len(DEMO_USERS)} users.")
    for user in DEMO_USERS:
        print(f"{user.id} ({user.role}): Bearer {issue_access_token(subject_id=user.id)}")
    return 0


def main() -> int:
    # Exit non-zero so dev scripts can detect a broken database URL.
    try:
        return asyncio.run(seed_demo())
    except Exception as exc:  # noqa: BLE001 - surface any setup or DB errors
        print(f"seed_demo failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
