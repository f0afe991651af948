from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from app.core.context import AuthContext, RequestMeta
from app.core.errors import InvalidInputError, NotFoundError
from app.models.entities import AuditAction, ResourceType, Tenant, TenantInspectionConfig
from app.schemas.config import InspectionConfigUpdate
from app.services import audit as audit_service

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_VALUES: dict[str, Any] = {
    "can_inspect": ["team_leader", "quality_staff"],
    "can_review": ["team_leader", "project_manager"],
    "final_approver": "operations_manager",
    "allow_self_review": True,
    "require_client_signoff": False,
    "require_photos": True,
    "require_signature": True,
    "use_detailed_inspections": True,
}

CONFIG_FIELDS = tuple(DEFAULT_CONFIG_VALUES)


def default_config(tenant_id: str) -> TenantInspectionConfig:
    values = {key: list(value) if isinstance(value, list) else value for key, value in DEFAULT_CONFIG_VALUES.items()}
    return TenantInspectionConfig(tenant_id=tenant_id, **values)


def get_config(db: Session, tenant_id: str) -> TenantInspectionConfig:
    """Return the stored policy for a tenant, or an unsaved default when none exists."""
    config = db.get(TenantInspectionConfig, tenant_id)
    if config is None:
        return default_config(tenant_id)
    return config


def config_snapshot(config: TenantInspectionConfig) -> dict[str, Any]:
    return {field: getattr(config, field) for field in CONFIG_FIELDS}


def _normalize_roles(values: list[str], field: str) -> list[str]:
    roles: list[str] = []
    for value in values:
        role = (value or "").strip()
        if not role:
            raise InvalidInputError(f"{field} cannot contain empty role names")
        if role not in roles:
            roles.append(role)
    if not roles:
        raise InvalidInputError(f"{field} must list at least one role")
    return roles


def update_config(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    payload: InspectionConfigUpdate,
) -> TenantInspectionConfig:
    action = AuditAction.business_config_updated.value
    with audit_service.audited(
        db, ctx, meta, action=action, resource_type=ResourceType.business.value, resource_id=ctx.tenant_id
    ):
        tenant = db.get(Tenant, ctx.tenant_id)
        if tenant is None:
            raise NotFoundError("Business not found")
        can_inspect = _normalize_roles(payload.can_inspect, "can_inspect")
        can_review = _normalize_roles(payload.can_review, "can_review")
        final_approver = (payload.final_approver or "").strip()
        if not final_approver:
            raise InvalidInputError("final_approver is required")

        config = db.get(TenantInspectionConfig, ctx.tenant_id)
        if config is None:
            config = default_config(ctx.tenant_id)
            db.add(config)
        old_values = config_snapshot(config)

        config.can_inspect = can_inspect
        config.can_review = can_review
        config.final_approver = final_approver
        config.allow_self_review = payload.allow_self_review
        config.require_client_signoff = payload.require_client_signoff
        config.require_photos = payload.require_photos
        config.require_signature = payload.require_signature
        config.use_detailed_inspections = payload.use_detailed_inspections

        audit_service.record_success(
            db,
            ctx,
            meta,
            action=action,
            resource_type=ResourceType.business.value,
            resource_id=tenant.id,
            resource_name=tenant.name,
            old_values=old_values,
            new_values=config_snapshot(config),
            details={"section": "quality_inspection_config"},
        )
        db.commit()
    db.refresh(config)
    logger.info("Updated quality inspection config for tenant %s", ctx.tenant_id)
    return config
