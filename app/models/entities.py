from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class UserRole(str, Enum):
    """Platform role carried in the access token."""

    business_admin = "business_admin"
    staff = "staff"
    client = "client"


class QualityRole(str, Enum):
    team_leader = "team_leader"
    quality_staff = "quality_staff"
    site_supervisor = "site_supervisor"
    project_manager = "project_manager"
    operations_manager = "operations_manager"


class InspectionType(str, Enum):
    detailed = "detailed"
    simple = "simple"


class InspectionStatus(str, Enum):
    draft = "draft"
    pending = "pending"
    under_review = "under_review"
    approved = "approved"
    rejected = "rejected"
    complete = "complete"


class AuditSeverity(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class AuditAction(str, Enum):
    business_config_updated = "business_config_updated"
    user_role_changed = "user_role_changed"
    quality_role_removed = "quality_role_removed"
    quality_inspection_created = "quality_inspection_created"
    quality_inspection_updated = "quality_inspection_updated"
    quality_inspection_deleted = "quality_inspection_deleted"
    quality_inspection_submitted = "quality_inspection_submitted"
    quality_inspection_assigned = "quality_inspection_assigned"
    quality_inspection_approved = "quality_inspection_approved"
    quality_inspection_rejected = "quality_inspection_rejected"
    quality_inspection_revision_requested = "quality_inspection_revision_requested"
    quality_inspection_final_approved = "quality_inspection_final_approved"
    quality_inspection_overridden = "quality_inspection_overridden"
    client_inspection_reviewed = "client_inspection_reviewed"
    client_inspection_approved = "client_inspection_approved"
    client_inspection_rejected = "client_inspection_rejected"
    unauthorized_access_attempt = "unauthorized_access_attempt"


class ResourceType(str, Enum):
    business = "business"
    user = "user"
    quality_inspection = "quality_inspection"


class OutboxStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    delivered = "delivered"
    failed = "failed"


def generate_uuid() -> str:
    return str(uuid.uuid4())


class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String, nullable=False)
    admin_user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    api_key_hash: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    inspection_config: Mapped["TenantInspectionConfig | None"] = relationship(
        back_populates="tenant", uselist=False, cascade="all, delete-orphan"
    )
    staff: Mapped[list["StaffMember"]] = relationship(back_populates="tenant", cascade="all, delete-orphan")


class TenantInspectionConfig(Base):
    __tablename__ = "tenant_inspection_configs"

    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), primary_key=True)
    can_inspect: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    can_review: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    final_approver: Mapped[str] = mapped_column(String, nullable=False)
    allow_self_review: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    require_client_signoff: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    require_photos: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    require_signature: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    use_detailed_inspections: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tenant: Mapped[Tenant] = relationship(back_populates="inspection_config")


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_uuid)
    email: Mapped[str] = mapped_column(String, unique=True, index=True)
    full_name: Mapped[str] = mapped_column(String, default="")
    role: Mapped[str] = mapped_column(String, default=UserRole.staff.value)
    tenant_id: Mapped[str | None] = mapped_column(ForeignKey("tenants.id"), nullable=True, index=True)
    external_client_id: Mapped[str | None] = mapped_column(ForeignKey("external_clients.id"), nullable=True)
    hashed_password: Mapped[str] = mapped_column(String)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    email_notifications_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class StaffMember(Base):
    """Employment record of a user inside a tenant, carrying both role slots."""

    __tablename__ = "staff_members"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_uuid)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)
    main_role: Mapped[str] = mapped_column(String, default="business_staff", nullable=False)
    quality_role: Mapped[str | None] = mapped_column(String, nullable=True)
    quality_assigned_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    quality_permissions: Mapped[dict[str, bool] | None] = mapped_column(JSON, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    tenant: Mapped[Tenant] = relationship(back_populates="staff")
    user: Mapped[User] = relationship()


class ExternalClient(Base):
    __tablename__ = "external_clients"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_uuid)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_uuid)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), index=True)
    external_client_id: Mapped[str | None] = mapped_column(ForeignKey("external_clients.id"), nullable=True)
    name: Mapped[str] = mapped_column(String, nullable=False)

    external_client: Mapped[ExternalClient | None] = relationship()


class Inspection(Base):
    __tablename__ = "quality_inspections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id"), index=True)
    project_id: Mapped[str] = mapped_column(ForeignKey("projects.id"), index=True)
    external_client_id: Mapped[str] = mapped_column(ForeignKey("external_clients.id"), index=True)
    inspector_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)
    reviewer_id: Mapped[str | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    approver_id: Mapped[str | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    type: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, default=InspectionStatus.draft.value, index=True)
    location: Mapped[str] = mapped_column(String, nullable=False)
    inspection_category: Mapped[str | None] = mapped_column(String, nullable=True)
    total_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    passed_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    overall_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    has_photos: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_signature: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_critical_issues: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    checklist_items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    photos: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    signature: Mapped[str | None] = mapped_column(Text(), nullable=True)
    workflow_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    inspection_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    reviewed_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    approved_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    project: Mapped[Project] = relationship()
    external_client: Mapped[ExternalClient] = relationship()
    inspector: Mapped[User] = relationship(foreign_keys=[inspector_id])
    reviewer: Mapped[User | None] = relationship(foreign_keys=[reviewer_id])
    approver: Mapped[User | None] = relationship(foreign_keys=[approver_id])

    __mapper_args__ = {"version_id_col": version}

    @property
    def pass_rate(self) -> int | None:
        if not self.total_items:
            return None
        return round((self.passed_items / self.total_items) * 100)


class AuditLogEntry(Base):
    """Append-only record of permission-sensitive actions."""

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    user_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    action: Mapped[str] = mapped_column(String, nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String, nullable=False)
    resource_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    resource_name: Mapped[str | None] = mapped_column(String, nullable=True)
    old_values: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    new_values: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    changed_fields: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    error_code: Mapped[str | None] = mapped_column(String, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text(), nullable=True)
    severity: Mapped[str] = mapped_column(String, default=AuditSeverity.low.value, nullable=False)
    ip_address: Mapped[str] = mapped_column(String, default="unknown", nullable=False)
    user_agent: Mapped[str | None] = mapped_column(String, nullable=True)
    request_id: Mapped[str | None] = mapped_column(String, nullable=True)
    details: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)


class Notification(Base):
    """In-app notification shown to a single user."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    body: Mapped[str] = mapped_column(Text(), nullable=False)
    priority: Mapped[str] = mapped_column(String, default="medium", nullable=False)
    reference_type: Mapped[str | None] = mapped_column(String, nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String, nullable=True)
    action_data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class NotificationOutbox(Base):
    """Post-commit notification work enqueued in the same transaction as a transition."""

    __tablename__ = "notification_outbox"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    reference_type: Mapped[str] = mapped_column(String, nullable=False)
    reference_id: Mapped[str] = mapped_column(String, nullable=False)
    recipient_ids: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    status: Mapped[str] = mapped_column(String, default=OutboxStatus.pending.value, nullable=False, index=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
