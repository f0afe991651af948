"""
Effective roles and permission checks for quality inspections.

A staff member carries two role slots: the ``main_role`` of their employment
record and an optional ``quality_role``. Tenant policy lists may name either
kind, so membership checks test both slots. Permission flags come from the
quality role when one is set and fall back to the main role otherwise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from sqlalchemy.orm import Session, selectinload

from app.core.context import AuthContext, RequestMeta
from app.core.errors import InvalidInputError, NotFoundError, PermissionDeniedError
from app.models.entities import (
    AuditAction,
    AuditSeverity,
    QualityRole,
    ResourceType,
    StaffMember,
    Tenant,
    TenantInspectionConfig,
    User,
)
from app.services import audit as audit_service
from app.services import notifications as notification_service

logger = logging.getLogger(__name__)

VALID_QUALITY_ROLES = tuple(role.value for role in QualityRole)

# Fixed allow-list; tenant policy does not apply to overrides.
OVERRIDE_ROLES = frozenset({"operations_manager", "general_manager", "business_admin"})

ROLE_PERMISSIONS: dict[str, dict[str, bool]] = {
    "team_leader": {
        "can_create": True,
        "can_review": True,
        "can_approve": False,
        "can_override": False,
        "can_view_all": False,
        "can_export": False,
        "can_delete": False,
        "restrict_to_own_projects": True,
    },
    "quality_staff": {
        "can_create": True,
        "can_review": False,
        "can_approve": False,
        "can_override": False,
        "can_view_all": False,
        "can_export": False,
        "can_delete": False,
        "restrict_to_own_projects": True,
    },
    "site_supervisor": {
        "can_create": True,
        "can_review": True,
        "can_approve": False,
        "can_override": False,
        "can_view_all": True,
        "can_export": False,
        "can_delete": False,
        "restrict_to_own_projects": False,
    },
    "project_manager": {
        "can_create": False,
        "can_review": True,
        "can_approve": True,
        "can_override": False,
        "can_view_all": True,
        "can_export": True,
        "can_delete": False,
        "restrict_to_own_projects": False,
    },
    "operations_manager": {
        "can_create": False,
        "can_review": True,
        "can_approve": True,
        "can_override": True,
        "can_view_all": True,
        "can_export": True,
        "can_delete": True,
        "restrict_to_own_projects": False,
    },
}


def role_permissions(role: str | None) -> dict[str, bool]:
    """Permission flags for a role name; unknown roles get the quality_staff set."""
    return dict(ROLE_PERMISSIONS.get(role or "", ROLE_PERMISSIONS["quality_staff"]))


@dataclass(frozen=True)
class EffectiveRole:
    main_role: str
    quality_role: str | None = None

    @property
    def primary(self) -> str:
        return self.quality_role or self.main_role

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(role for role in (self.quality_role, self.main_role) if role)

    @property
    def permissions(self) -> dict[str, bool]:
        return role_permissions(self.primary)

    def has_any(self, roles: Iterable[str]) -> bool:
        allowed = set(roles)
        return any(role in allowed for role in self.names)


def _staff_record(db: Session, tenant_id: str, user_id: str) -> StaffMember | None:
    return (
        db.query(StaffMember)
        .filter(
            StaffMember.tenant_id == tenant_id,
            StaffMember.user_id == user_id,
            StaffMember.is_deleted.is_(False),
        )
        .first()
    )


def resolve_role(db: Session, tenant_id: str, user_id: str) -> EffectiveRole:
    staff = _staff_record(db, tenant_id, user_id)
    if staff is None:
        raise NotFoundError("Staff member not found for this business")
    return EffectiveRole(main_role=staff.main_role, quality_role=staff.quality_role)


def can_inspect(role: EffectiveRole, config: TenantInspectionConfig) -> bool:
    return role.has_any(config.can_inspect or [])


def can_review(role: EffectiveRole, config: TenantInspectionConfig) -> bool:
    return role.has_any(config.can_review or [])


def is_final_approver(role: EffectiveRole, config: TenantInspectionConfig) -> bool:
    return bool(config.final_approver) and role.has_any([config.final_approver])


def can_override(role: EffectiveRole) -> bool:
    return role.has_any(OVERRIDE_ROLES)


def require(allowed: bool, message: str) -> None:
    if not allowed:
        raise PermissionDeniedError(message)


def assign_quality_role(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    user_id: str,
    role: str,
) -> StaffMember:
    action = AuditAction.user_role_changed.value
    with audit_service.audited(
        db,
        ctx,
        meta,
        action=action,
        resource_type=ResourceType.user.value,
        resource_id=user_id,
        details={"requested_role": role},
    ):
        if not ctx.tenant_id:
            raise InvalidInputError("Business id is required")
        if role not in VALID_QUALITY_ROLES:
            raise InvalidInputError(f"Invalid quality role. Must be one of: {', '.join(VALID_QUALITY_ROLES)}")
        if db.get(Tenant, ctx.tenant_id) is None:
            raise NotFoundError("Business not found")
        staff = _staff_record(db, ctx.tenant_id, user_id)
        if staff is None:
            raise NotFoundError("Employee not found in this business")

        old_role = staff.quality_role
        staff.quality_role = role
        staff.quality_assigned_at = datetime.utcnow()
        staff.quality_permissions = role_permissions(role)
        user = db.get(User, user_id)
        audit_service.record_success(
            db,
            ctx,
            meta,
            action=action,
            resource_type=ResourceType.user.value,
            resource_id=user_id,
            resource_name=user.full_name if user else None,
            old_values={"quality_role": old_role},
            new_values={"quality_role": role},
            severity=AuditSeverity.medium.value,
            details={"main_role": staff.main_role, "permissions": staff.quality_permissions},
        )
        notification_service.enqueue(
            db,
            tenant_id=ctx.tenant_id,
            event_type="quality_role_assigned",
            reference_type=notification_service.USER_REFERENCE,
            reference_id=user_id,
            recipient_ids=[user_id],
            context={"role": role.replace("_", " "), "assigned_by": ctx.user_id},
        )
        db.commit()
    db.refresh(staff)
    logger.info("Assigned quality role %s to user %s in tenant %s", role, user_id, ctx.tenant_id)
    return staff


def remove_quality_role(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    user_id: str,
) -> StaffMember:
    action = AuditAction.quality_role_removed.value
    with audit_service.audited(
        db, ctx, meta, action=action, resource_type=ResourceType.user.value, resource_id=user_id
    ):
        staff = _staff_record(db, ctx.tenant_id, user_id)
        if staff is None:
            raise NotFoundError("Employee not found in this business")
        old_role = staff.quality_role
        if not old_role:
            raise InvalidInputError("Employee does not have a quality role assigned")

        staff.quality_role = None
        staff.quality_assigned_at = None
        staff.quality_permissions = None
        user = db.get(User, user_id)
        audit_service.record_success(
            db,
            ctx,
            meta,
            action=action,
            resource_type=ResourceType.user.value,
            resource_id=user_id,
            resource_name=user.full_name if user else None,
            old_values={"quality_role": old_role},
            new_values={"quality_role": None},
        )
        notification_service.enqueue(
            db,
            tenant_id=ctx.tenant_id,
            event_type="quality_role_removed",
            reference_type=notification_service.USER_REFERENCE,
            reference_id=user_id,
            recipient_ids=[user_id],
            context={"role": old_role.replace("_", " "), "removed_by": ctx.user_id},
        )
        db.commit()
    db.refresh(staff)
    logger.info("Removed quality role %s from user %s in tenant %s", old_role, user_id, ctx.tenant_id)
    return staff


def get_quality_team(db: Session, tenant_id: str) -> list[StaffMember]:
    if db.get(Tenant, tenant_id) is None:
        raise NotFoundError("Business not found")
    return (
        db.query(StaffMember)
        .options(selectinload(StaffMember.user))
        .filter(
            StaffMember.tenant_id == tenant_id,
            StaffMember.is_deleted.is_(False),
            StaffMember.quality_role.is_not(None),
        )
        .order_by(StaffMember.quality_assigned_at.desc())
        .all()
    )
