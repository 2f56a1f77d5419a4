from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    # Effective role on a directory or document, totally ordered by rank.
    NONE = "none"
    VIEWER = "viewer"
    EDITOR = "editor"
    OWNER = "owner"


class GlobalRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


ROLE_ORDER: dict[Role, int] = {
    Role.NONE: 0,
    Role.VIEWER: 1,
    Role.EDITOR: 2,
    Role.OWNER: 3,
}

# Roles a share grant may carry; "none" is never stored.
GRANTABLE_ROLES = frozenset({Role.VIEWER, Role.EDITOR, Role.OWNER})


def normalize_role(role: str | Role) -> Role:
    # Accept stored strings in any case; unknown values are a data error.
    if isinstance(role, Role):
        return role
    try:
        return Role(role.strip().lower())
    except ValueError as exc:
        raise ValueError(f"Unsupported role: {role}") from exc


def role_rank(role: str | Role) -> int:
    return ROLE_ORDER[normalize_role(role)]


def role_allows(*, role: str | Role, required: str | Role) -> bool:
    # Compare roles using numeric ordering for least-privilege enforcement.
    return role_rank(role) >= role_rank(required)


def is_admin(global_role: str | GlobalRole | None) -> bool:
    if global_role is None:
        return False
    value = global_role.value if isinstance(global_role, GlobalRole) else str(global_role).lower()
    return value == GlobalRole.ADMIN.value
