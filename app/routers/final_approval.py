from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from app.core.context import AuthContext, RequestMeta, get_expected_version, get_request_meta
from app.core.database import get_db
from app.routers.common import run_transition
from app.schemas.common import ApiResponse, Page
from app.schemas.inspection import (
    ApprovalAnalytics,
    ApprovalQueueSummary,
    FinalApprovalRequest,
    InspectionRead,
    OverrideRequest,
)
from app.services import auth as auth_service
from app.services import workflow as workflow_service

router = APIRouter()


@router.get("/pending", response_model=ApiResponse[Page[InspectionRead]])
def list_pending_final_approval(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    inspection_type: str | None = Query(default=None, alias="type"),
    priority: str | None = Query(default=None),
    has_critical_issues: bool | None = Query(default=None, alias="hasCriticalIssues"),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_staff_context),
) -> ApiResponse[Page[InspectionRead]]:
    items, total = workflow_service.list_for_final_approval(
        db,
        ctx,
        page=page,
        limit=limit,
        inspection_type=inspection_type,
        priority=priority,
        has_critical_issues=has_critical_issues,
    )
    data = Page[InspectionRead].build(
        [InspectionRead.model_validate(item) for item in items], total=total, page=page, limit=limit
    )
    return ApiResponse(message="Inspections awaiting final approval retrieved", data=data)


@router.get("/analytics", response_model=ApiResponse[ApprovalAnalytics])
def approval_analytics(
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_staff_context),
) -> ApiResponse[ApprovalAnalytics]:
    analytics = workflow_service.approval_analytics(db, ctx, start_date=start_date, end_date=end_date)
    return ApiResponse(message="Approval analytics retrieved", data=ApprovalAnalytics(**analytics))


@router.get("/queue-summary", response_model=ApiResponse[ApprovalQueueSummary])
def approval_queue_summary(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_staff_context),
) -> ApiResponse[ApprovalQueueSummary]:
    summary = workflow_service.approval_queue_summary(db, ctx)
    return ApiResponse(message="Approval queue summary retrieved", data=ApprovalQueueSummary(**summary))


@router.put("/{inspection_id}/approve", response_model=ApiResponse[InspectionRead])
def final_approve(
    inspection_id: int,
    payload: FinalApprovalRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_staff_context),
    meta: RequestMeta = Depends(get_request_meta),
    expected_version: int | None = Depends(get_expected_version),
) -> ApiResponse[InspectionRead]:
    inspection = run_transition(
        lambda: workflow_service.final_approve(
            db, ctx, meta, inspection_id, payload, expected_version=expected_version
        ),
        failure_detail="Unable to give final approval",
        tenant_id=ctx.tenant_id,
        background_tasks=background_tasks,
    )
    return ApiResponse(message="Final approval granted", data=InspectionRead.model_validate(inspection))


@router.put("/{inspection_id}/override", response_model=ApiResponse[InspectionRead])
def override_decision(
    inspection_id: int,
    payload: OverrideRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_staff_context),
    meta: RequestMeta = Depends(get_request_meta),
    expected_version: int | None = Depends(get_expected_version),
) -> ApiResponse[InspectionRead]:
    inspection = run_transition(
        lambda: workflow_service.override_decision(
            db, ctx, meta, inspection_id, payload, expected_version=expected_version
        ),
        failure_detail="Unable to override inspection decision",
        tenant_id=ctx.tenant_id,
        background_tasks=background_tasks,
    )
    return ApiResponse(message="Inspection decision overridden", data=InspectionRead.model_validate(inspection))
