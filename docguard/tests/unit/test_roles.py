from __future__ import annotations

import pytest

from docguard.domain.roles import GRANTABLE_ROLES, Role, is_admin, normalize_role, role_allows, role_rank


def test_roles_are_totally_ordered() -> None:
    ordered = [Role.NONE, Role.VIEWER, Role.EDITOR, Role.OWNER]
    ranks = [role_rank(role) for role in ordered]
    assert ranks == sorted(ranks)
    assert len(set(ranks)) == len(ranks)


def test_role_allows_is_at_least_comparison() -> None:
    assert role_allows(role=Role.OWNER, required=Role.VIEWER)
    assert role_allows(role=Role.EDITOR, required=Role.EDITOR)
    assert not role_allows(role=Role.VIEWER, required=Role.EDITOR)
    # Everything, including none, satisfies a "none" requirement.
    assert role_allows(role=Role.NONE, required=Role.NONE)


def test_normalize_role_accepts_stored_strings() -> None:
    assert normalize_role(" Editor ") == Role.EDITOR
    assert normalize_role(Role.OWNER) is Role.OWNER
    with pytest.raises(ValueError):
        normalize_role("superuser")


def test_none_is_never_grantable() -> None:
    assert Role.NONE not in GRANTABLE_ROLES
    assert GRANTABLE_ROLES == {Role.VIEWER, Role.EDITOR, Role.OWNER}


def test_is_admin_matches_global_role() -> None:
    assert is_admin("admin")
    assert is_admin("ADMIN")
    assert not is_admin("user")
    assert not is_admin(None)
