from __future__ import annotations

import logging
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docguard.core.errors import ActivityLogWriteError, DocguardError, TenantContextMissing
from docguard.domain.events import DomainEvent, PublishResult
from docguard.domain.models import new_activity_entry, new_notification
from docguard.persistence.guards import TenantPredicateError
from docguard.persistence.repos import activity as activity_repo
from docguard.persistence.repos import notifications as notifications_repo
from docguard.persistence.repos.grants import SqlGrantRepository
from docguard.services.authz.resolver import GrantRepository
from docguard.services.notifications.audience import resolve_audience


logger = logging.getLogger(__name__)

_SENSITIVE_KEY_PATTERNS = ["api_key", "authorization", "token", "secret", "password"]
_REDACTED_VALUE = "[REDACTED]"


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(pattern in lowered for pattern in _SENSITIVE_KEY_PATTERNS)


def sanitize_metadata(value: Any) -> Any:
    # Recursively scrub credential-like fields before they reach the activity log.
    if isinstance(value, dict):
        sanitized: dict[str, Any] = {}
        for raw_key, raw_value in value.items():
            key = str(raw_key)
            if _is_sensitive_key(key):
                sanitized[key] = _REDACTED_VALUE
            else:
                sanitized[key] = sanitize_metadata(raw_value)
        return sanitized
    if isinstance(value, list):
        return [sanitize_metadata(item) for item in value]
    return value


class EventPublisher:
    """Record domain events and fan out notifications.

    The activity entry is committed first and on its own; a failure there propagates as
    ``ActivityLogWriteError``. Audience resolution and notification inserts run in a second
    transaction, and their failures are logged and reported on the returned ``PublishResult``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        repo_factory: Callable[[AsyncSession], GrantRepository] = SqlGrantRepository,
    ) -> None:
        self._session_factory = session_factory
        self._repo_factory = repo_factory

    async def publish(self, event: DomainEvent) -> PublishResult:
        if not event.tenant_id:
            raise TenantContextMissing("Events must carry a tenant")
        entry = new_activity_entry(
            tenant_id=event.tenant_id,
            actor_id=event.actor_id,
            action=event.action,
            resource_type=event.resource_type,
            resource_id=event.resource_id,
            title=event.display_title,
            metadata=sanitize_metadata(dict(event.metadata or {})),
        )
        activity_id = entry.id
        try:
            async with self._session_factory() as session:
                await activity_repo.append_entry(session, entry)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            logger.error(
                "activity_log_write_failed tenant_id=%s action=%s",
                event.tenant_id,
                event.action,
                exc_info=exc,
            )
            raise ActivityLogWriteError() from exc

        if event.audience is None:
            return PublishResult(activity_id=activity_id)

        try:
            recipients = await self._fan_out(event)
        except (DocguardError, TenantPredicateError, SQLAlchemyError, OSError) as exc:
            logger.warning(
                "notification_fanout_failed activity_id=%s action=%s",
                activity_id,
                event.action,
                exc_info=exc,
            )
            return PublishResult(activity_id=activity_id, fanout_error=type(exc).__name__)
        return PublishResult(activity_id=activity_id, recipient_ids=tuple(recipients))

    async def _fan_out(self, event: DomainEvent) -> list[str]:
        async with self._session_factory() as session:
            recipients = await resolve_audience(
                self._repo_factory(session),
                tenant_id=event.tenant_id,
                directive=event.audience,
                actor_id=event.actor_id,
            )
            if not recipients:
                return []
            await notifications_repo.add_notifications(
                session,
                (
                    new_notification(
                        recipient_id=recipient_id,
                        tenant_id=event.tenant_id,
                        type=event.action,
                        title=event.display_title,
                        body=event.message,
                        resource_type=event.resource_type,
                        resource_id=event.resource_id,
                    )
                    for recipient_id in recipients
                ),
            )
            await session.commit()
            return recipients
