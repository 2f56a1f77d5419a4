from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Any

import jwt

from docguard.core.config import get_settings
from docguard.core.errors import AuthenticationMissing, TenantContextMissing
from docguard.domain.identity import Identity
from docguard.services.authz.resolver import GrantRepository


logger = logging.getLogger(__name__)


def parse_bearer_token(header_value: str | None) -> str | None:
    # Enforce the "Bearer <token>" format; absence is not an error here.
    if not header_value:
        return None
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationMissing("Missing or invalid bearer token")
    return parts[1]


def issue_access_token(*, subject_id: str, ttl_s: int = 3600, claims: dict[str, Any] | None = None) -> str:
    # Mint a token the local verifier accepts; used by dev scripts and tests.
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": subject_id,
        "iat": now,
        "exp": now + timedelta(seconds=ttl_s),
    }
    payload.update(claims or {})
    return jwt.encode(payload, settings.auth_jwt_secret, algorithm=settings.auth_jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        claims = jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=[settings.auth_jwt_algorithm],
            leeway=settings.auth_jwt_leeway_s,
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationMissing("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        logger.info("auth_token_rejected reason=%s", type(exc).__name__)
        raise AuthenticationMissing("Invalid token") from exc
    return claims


async def identity_from_token(repo: GrantRepository, token: str) -> Identity:
    # The token only names the subject; tenant, role and status come from the user record.
    claims = decode_access_token(token)
    user = await repo.get_user(user_id=str(claims["sub"]))
    if user is None:
        raise AuthenticationMissing("User not found")
    if not user.tenant_id:
        raise TenantContextMissing()
    return Identity(
        subject_id=user.id,
        tenant_id=user.tenant_id,
        global_role=user.role,
        status=user.status,
        default_workspace_id=user.current_workspace_id,
    )
