from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import and_

from docguard.core.config import get_settings


@dataclass
class TenantPredicateError(RuntimeError):
    # Raised when a repository query would run without tenant scoping.
    # Not frozen: contextlib reassigns __traceback__ on RuntimeError subclasses.
    message: str


def require_tenant_id(tenant_id: str | None) -> None:
    if not get_settings().authz_require_tenant_predicate:
        return
    if not tenant_id:
        raise TenantPredicateError("Tenant predicate required but tenant_id is missing")


def tenant_predicate(model: Any, tenant_id: str) -> Any:
    # Every tenant filter goes through here so the guard cannot be bypassed.
    require_tenant_id(tenant_id)
    return model.tenant_id == tenant_id


def tenant_scoped(model: Any, tenant_id: str, *criteria: Any) -> Any:
    # Combine the tenant predicate with point-lookup criteria.
    return and_(tenant_predicate(model, tenant_id), *criteria)
