from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# JSONB on Postgres, plain JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")

DOCUMENT_TYPE_DRHP = "DRHP"
DOCUMENT_TYPE_RHP = "RHP"

MEMBERSHIP_ACTIVE = "active"
MEMBERSHIP_PENDING = "pending"
MEMBERSHIP_SUSPENDED = "suspended"


class Base(DeclarativeBase):
    pass


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    # Primary tenant (domain) of the user.
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    # Global role: "admin" or "user".
    role: Mapped[str] = mapped_column(String, default="user", index=True)
    status: Mapped[str] = mapped_column(String, default="active", index=True)
    # Last selected workspace; the tenant id stands in when unset.
    current_workspace_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Workspace(Base):
    __tablename__ = "workspaces"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    name: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class WorkspaceMembership(Base):
    __tablename__ = "workspace_memberships"
    __table_args__ = (
        UniqueConstraint("user_id", "workspace_id", name="uq_workspace_memberships_user_workspace"),
        Index("ix_workspace_memberships_workspace_status", "workspace_id", "status"),
        Index("ix_workspace_memberships_user_status", "user_id", "status"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"))
    workspace_id: Mapped[str] = mapped_column(String, ForeignKey("workspaces.id"))
    # Workspace-level role ("admin", "member", "viewer"); distinct from resource roles.
    role: Mapped[str] = mapped_column(String, default="member")
    # Only active memberships confer audience eligibility.
    status: Mapped[str] = mapped_column(String, default=MEMBERSHIP_ACTIVE)
    invited_by: Mapped[str | None] = mapped_column(String, nullable=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Directory(Base):
    __tablename__ = "directories"
    __table_args__ = (Index("ix_directories_tenant_parent_name", "tenant_id", "parent_id", "name"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    # Never changes after creation.
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    name: Mapped[str] = mapped_column(String)
    # Assigned once at creation; null for top-level folders.
    parent_id: Mapped[str | None] = mapped_column(String, ForeignKey("directories.id"), nullable=True)
    owner_user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (Index("ix_documents_tenant_workspace", "tenant_id", "workspace_id"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    workspace_id: Mapped[str] = mapped_column(String)
    name: Mapped[str] = mapped_column(String)
    # "DRHP" or "RHP".
    type: Mapped[str] = mapped_column(String)
    directory_id: Mapped[str | None] = mapped_column(String, nullable=True)
    # Counterpart of the other type; at most one each way.
    related_drhp_id: Mapped[str | None] = mapped_column(String, nullable=True)
    related_rhp_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Summary(Base):
    __tablename__ = "summaries"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    workspace_id: Mapped[str] = mapped_column(String)
    document_id: Mapped[str] = mapped_column(String, index=True)
    title: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Report(Base):
    __tablename__ = "reports"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    workspace_id: Mapped[str] = mapped_column(String)
    drhp_id: Mapped[str | None] = mapped_column(String, nullable=True)
    rhp_id: Mapped[str | None] = mapped_column(String, nullable=True)
    title: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class SharePermission(Base):
    __tablename__ = "share_permissions"
    __table_args__ = (
        # One authoritative grant per (resource, scope, principal).
        UniqueConstraint(
            "tenant_id",
            "resource_type",
            "resource_id",
            "scope",
            "principal_id",
            name="uq_share_permissions_resource_scope_principal",
        ),
        Index("ix_share_permissions_tenant_resource", "tenant_id", "resource_type", "resource_id"),
        Index("ix_share_permissions_scope_principal", "scope", "principal_id"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    resource_type: Mapped[str] = mapped_column(String)
    resource_id: Mapped[str] = mapped_column(String)
    # "user", "workspace" or "link".
    scope: Mapped[str] = mapped_column(String)
    # Subject id for user scope, workspace id for workspace scope, null for links.
    principal_id: Mapped[str | None] = mapped_column(String, nullable=True)
    role: Mapped[str] = mapped_column(String)
    invited_email: Mapped[str | None] = mapped_column(String, nullable=True)
    link_token: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ActivityLog(Base):
    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_logs_tenant_created", "tenant_id", "created_at"),
        Index("ix_activity_logs_actor_created", "actor_id", "created_at"),
    )

    # Append-only; rows are never updated.
    id: Mapped[str] = mapped_column(String, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String)
    actor_id: Mapped[str | None] = mapped_column(String, nullable=True)
    action: Mapped[str] = mapped_column(String, index=True)
    resource_type: Mapped[str] = mapped_column(String)
    resource_id: Mapped[str] = mapped_column(String)
    title: Mapped[str] = mapped_column(String)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_recipient_read_created", "recipient_id", "is_read", "created_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    recipient_id: Mapped[str] = mapped_column(String)
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    type: Mapped[str] = mapped_column(String)
    title: Mapped[str] = mapped_column(String)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    resource_type: Mapped[str | None] = mapped_column(String, nullable=True)
    resource_id: Mapped[str | None] = mapped_column(String, nullable=True)
    # Toggled only by the recipient.
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class RateLimitCounter(Base):
    __tablename__ = "rate_limit_counters"

    # One row per (namespace, subject, action, window); created on first increment.
    namespace: Mapped[str] = mapped_column(String, primary_key=True)
    subject_key: Mapped[str] = mapped_column(String, primary_key=True)
    action: Mapped[str] = mapped_column(String, primary_key=True)
    window_start_ms: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    window_ms: Mapped[int] = mapped_column(BigInteger)
    count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


def new_activity_entry(
    *,
    tenant_id: str,
    action: str,
    resource_type: str,
    resource_id: str,
    title: str,
    actor_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    created_at: datetime | None = None,
) -> ActivityLog:
    # Ids and timestamps are fixed here rather than by a persistence hook.
    return ActivityLog(
        id=f"act_{uuid4().hex}",
        tenant_id=tenant_id,
        actor_id=actor_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        title=title,
        metadata_json=dict(metadata or {}),
        created_at=created_at or _utc_now(),
    )


def new_notification(
    *,
    recipient_id: str,
    tenant_id: str,
    type: str,
    title: str,
    body: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    created_at: datetime | None = None,
) -> Notification:
    return Notification(
        id=f"ntf_{uuid4().hex}",
        recipient_id=recipient_id,
        tenant_id=tenant_id,
        type=type,
        title=title,
        body=body,
        resource_type=resource_type,
        resource_id=resource_id,
        is_read=False,
        created_at=created_at or _utc_now(),
    )
