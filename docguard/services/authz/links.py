from __future__ import annotations

from datetime import datetime, timezone
import secrets

from docguard.core.errors import LinkTokenExpired, LinkTokenInvalid
from docguard.domain.grants import LinkAccess, link_access_from_grant
from docguard.services.authz.resolver import GrantRepository


_TOKEN_BYTES = 24


def generate_link_token() -> str:
    # URL-safe and unguessable; uniqueness is enforced by the link_token index.
    return secrets.token_urlsafe(_TOKEN_BYTES)


async def resolve_link_access(
    repo: GrantRepository,
    token: str,
    now: datetime | None = None,
) -> LinkAccess:
    # Turn a presented token into the request-scoped link view, or fail.
    if not token or not token.strip():
        raise LinkTokenInvalid()
    grant = await repo.find_link_grant(token=token.strip())
    if grant is None:
        raise LinkTokenInvalid()
    if grant.is_expired(now or datetime.now(timezone.utc)):
        raise LinkTokenExpired()
    return link_access_from_grant(grant)
