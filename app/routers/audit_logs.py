from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.context import AuthContext
from app.core.database import get_db
from app.schemas.audit import AuditLogRead
from app.schemas.common import ApiResponse, Page
from app.services import audit as audit_service
from app.services import auth as auth_service

router = APIRouter()


@router.get("/", response_model=ApiResponse[Page[AuditLogRead]])
def list_audit_logs(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    action: str | None = Query(default=None),
    resource_type: str | None = Query(default=None, alias="resourceType"),
    resource_id: str | None = Query(default=None, alias="resourceId"),
    success: bool | None = Query(default=None),
    severity: str | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_business_admin_context),
) -> ApiResponse[Page[AuditLogRead]]:
    items, total = audit_service.list_audit_logs(
        db,
        ctx.tenant_id,
        page=page,
        limit=limit,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        success=success,
        severity=severity,
    )
    data = Page[AuditLogRead].build(
        [AuditLogRead.model_validate(item) for item in items], total=total, page=page, limit=limit
    )
    return ApiResponse(message="Audit log retrieved", data=data)
