from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from app.core.context import AuthContext, RequestMeta, get_expected_version, get_request_meta
from app.core.database import get_db
from app.routers.common import run_transition
from app.schemas.common import ApiResponse, Page
from app.schemas.inspection import (
    InspectionRead,
    ReviewApprove,
    ReviewerAssignment,
    ReviewReject,
    RevisionRequest,
)
from app.services import auth as auth_service
from app.services import workflow as workflow_service

router = APIRouter()


@router.get("/pending", response_model=ApiResponse[Page[InspectionRead]])
def list_pending_reviews(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    status_filter: str | None = Query(default=None, alias="status", description="pending or under_review"),
    inspection_type: str | None = Query(default=None, alias="type"),
    priority: str | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_staff_context),
) -> ApiResponse[Page[InspectionRead]]:
    items, total = workflow_service.list_for_review(
        db,
        ctx,
        page=page,
        limit=limit,
        status=status_filter,
        inspection_type=inspection_type,
        priority=priority,
    )
    data = Page[InspectionRead].build(
        [InspectionRead.model_validate(item) for item in items], total=total, page=page, limit=limit
    )
    return ApiResponse(message="Inspections awaiting review retrieved", data=data)


@router.put("/{inspection_id}/approve", response_model=ApiResponse[InspectionRead])
def approve_inspection(
    inspection_id: int,
    payload: ReviewApprove,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_staff_context),
    meta: RequestMeta = Depends(get_request_meta),
    expected_version: int | None = Depends(get_expected_version),
) -> ApiResponse[InspectionRead]:
    inspection = run_transition(
        lambda: workflow_service.approve_inspection(
            db, ctx, meta, inspection_id, payload, expected_version=expected_version
        ),
        failure_detail="Unable to approve inspection",
        tenant_id=ctx.tenant_id,
        background_tasks=background_tasks,
    )
    return ApiResponse(message="Inspection approved", data=InspectionRead.model_validate(inspection))


@router.put("/{inspection_id}/reject", response_model=ApiResponse[InspectionRead])
def reject_inspection(
    inspection_id: int,
    payload: ReviewReject,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_staff_context),
    meta: RequestMeta = Depends(get_request_meta),
    expected_version: int | None = Depends(get_expected_version),
) -> ApiResponse[InspectionRead]:
    inspection = run_transition(
        lambda: workflow_service.reject_inspection(
            db, ctx, meta, inspection_id, payload, expected_version=expected_version
        ),
        failure_detail="Unable to reject inspection",
        tenant_id=ctx.tenant_id,
        background_tasks=background_tasks,
    )
    return ApiResponse(
        message="Inspection rejected and returned to the inspector",
        data=InspectionRead.model_validate(inspection),
    )


@router.put("/{inspection_id}/request-revision", response_model=ApiResponse[InspectionRead])
def request_revision(
    inspection_id: int,
    payload: RevisionRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_staff_context),
    meta: RequestMeta = Depends(get_request_meta),
    expected_version: int | None = Depends(get_expected_version),
) -> ApiResponse[InspectionRead]:
    inspection = run_transition(
        lambda: workflow_service.request_revision(
            db, ctx, meta, inspection_id, payload, expected_version=expected_version
        ),
        failure_detail="Unable to request revision",
        tenant_id=ctx.tenant_id,
        background_tasks=background_tasks,
    )
    return ApiResponse(message="Revision requested", data=InspectionRead.model_validate(inspection))


@router.put("/{inspection_id}/assign", response_model=ApiResponse[InspectionRead])
def assign_reviewer(
    inspection_id: int,
    payload: ReviewerAssignment,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_staff_context),
    meta: RequestMeta = Depends(get_request_meta),
    expected_version: int | None = Depends(get_expected_version),
) -> ApiResponse[InspectionRead]:
    inspection = run_transition(
        lambda: workflow_service.assign_reviewer(
            db, ctx, meta, inspection_id, payload.reviewer_id, expected_version=expected_version
        ),
        failure_detail="Unable to assign reviewer",
        tenant_id=ctx.tenant_id,
        background_tasks=background_tasks,
    )
    return ApiResponse(message="Inspection assigned to reviewer", data=InspectionRead.model_validate(inspection))
