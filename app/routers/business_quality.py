from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.core.context import AuthContext, RequestMeta, get_request_meta
from app.core.database import get_db
from app.core.errors import WorkflowError
from app.models.entities import StaffMember
from app.schemas.common import ApiResponse
from app.schemas.config import (
    InspectionConfigRead,
    InspectionConfigUpdate,
    QualityRoleAssign,
    QualityTeamMember,
)
from app.services import auth as auth_service
from app.services import config as config_service
from app.services import notifications as notification_service
from app.services import roles as role_service

router = APIRouter()
logger = logging.getLogger(__name__)


def _team_member(staff: StaffMember) -> QualityTeamMember:
    return QualityTeamMember(
        staff_member_id=staff.id,
        user_id=staff.user_id,
        name=staff.user.full_name if staff.user else "",
        email=staff.user.email if staff.user else "",
        main_role=staff.main_role,
        quality_role=staff.quality_role,
        quality_assigned_at=staff.quality_assigned_at,
        quality_permissions=staff.quality_permissions,
        is_active=bool(staff.user and staff.user.is_active),
    )


@router.get("/config", response_model=ApiResponse[InspectionConfigRead])
def read_config(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_business_admin_context),
) -> ApiResponse[InspectionConfigRead]:
    config = config_service.get_config(db, ctx.tenant_id)
    return ApiResponse(message="Quality inspection settings retrieved", data=InspectionConfigRead.model_validate(config))


@router.put("/config", response_model=ApiResponse[InspectionConfigRead])
def update_config(
    payload: InspectionConfigUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_business_admin_context),
    meta: RequestMeta = Depends(get_request_meta),
) -> ApiResponse[InspectionConfigRead]:
    try:
        config = config_service.update_config(db, ctx, meta, payload)
    except WorkflowError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to update quality inspection settings for tenant %s", ctx.tenant_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to update quality inspection settings",
        ) from exc
    return ApiResponse(message="Quality inspection settings updated", data=InspectionConfigRead.model_validate(config))


@router.get("/team", response_model=ApiResponse[list[QualityTeamMember]])
def read_quality_team(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_business_admin_context),
) -> ApiResponse[list[QualityTeamMember]]:
    team = role_service.get_quality_team(db, ctx.tenant_id)
    return ApiResponse(message="Quality team retrieved", data=[_team_member(staff) for staff in team])


@router.post("/team/assign", response_model=ApiResponse[QualityTeamMember])
def assign_quality_role(
    payload: QualityRoleAssign,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_business_admin_context),
    meta: RequestMeta = Depends(get_request_meta),
) -> ApiResponse[QualityTeamMember]:
    try:
        staff = role_service.assign_quality_role(db, ctx, meta, payload.user_id, payload.role)
    except WorkflowError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to assign quality role to user %s", payload.user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to assign quality role",
        ) from exc
    background_tasks.add_task(notification_service.dispatch_pending_notifications, ctx.tenant_id)
    return ApiResponse(message="Quality role assigned", data=_team_member(staff))


@router.delete("/team/{user_id}", response_model=ApiResponse[QualityTeamMember])
def remove_quality_role(
    user_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_business_admin_context),
    meta: RequestMeta = Depends(get_request_meta),
) -> ApiResponse[QualityTeamMember]:
    try:
        staff = role_service.remove_quality_role(db, ctx, meta, user_id)
    except WorkflowError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to remove quality role from user %s", user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to remove quality role",
        ) from exc
    background_tasks.add_task(notification_service.dispatch_pending_notifications, ctx.tenant_id)
    return ApiResponse(message="Quality role removed", data=_team_member(staff))
