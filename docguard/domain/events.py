from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class ExplicitRecipients:
    # Notify exactly these subjects.
    subject_ids: tuple[str, ...]


@dataclass(frozen=True)
class AdminsOnly:
    # Notify every admin of the event's tenant.
    pass


@dataclass(frozen=True)
class WholeWorkspace:
    # Notify everyone who can see the tenant's workspace.
    pass


AudienceDirective = Union[ExplicitRecipients, AdminsOnly, WholeWorkspace]


@dataclass(frozen=True)
class DomainEvent:
    """A completed business action to record and fan out.

    ``actor_id`` is ``None`` for system-triggered events. ``audience`` is ``None`` when the
    event should only be logged.
    """

    tenant_id: str
    action: str
    resource_type: str
    resource_id: str
    actor_id: str | None = None
    title: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    audience: AudienceDirective | None = None

    @property
    def display_title(self) -> str:
        return self.title or self.action

    @property
    def message(self) -> str | None:
        value = self.metadata.get("message") if self.metadata else None
        return str(value) if value is not None else None


@dataclass(frozen=True)
class PublishResult:
    # The activity id is always present; fan-out may degrade independently.
    activity_id: str
    recipient_ids: tuple[str, ...] = ()
    fanout_error: str | None = None

    @property
    def notified(self) -> int:
        return len(self.recipient_ids)

    @property
    def degraded(self) -> bool:
        return self.fanout_error is not None


def explicit(*subject_ids: str) -> ExplicitRecipients:
    # De-duplicate while preserving the caller's order.
    seen: dict[str, None] = {}
    for subject_id in subject_ids:
        if subject_id:
            seen.setdefault(subject_id, None)
    return ExplicitRecipients(subject_ids=tuple(seen))
