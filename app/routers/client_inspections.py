from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from app.core.context import AuthContext, RequestMeta, get_expected_version, get_request_meta
from app.core.database import get_db
from app.models.entities import Inspection
from app.routers.common import run_transition
from app.schemas.client import (
    ClientApprovalRequest,
    ClientInspectionDetail,
    ClientInspectionRead,
    ClientInspectionSummary,
    ClientRejectionRequest,
    ClientReviewRequest,
)
from app.schemas.common import ApiResponse, Page
from app.services import auth as auth_service
from app.services import client_review as client_service

router = APIRouter()


def _detail(inspection: Inspection) -> ClientInspectionDetail:
    return ClientInspectionDetail.model_validate(client_service.to_client_view(inspection, detail=True), from_attributes=True)


@router.get("/", response_model=ApiResponse[Page[ClientInspectionRead]])
def list_client_inspections(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    status_filter: str | None = Query(default=None, alias="status"),
    project_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_client_context),
) -> ApiResponse[Page[ClientInspectionRead]]:
    items, total = client_service.list_client_inspections(
        db, ctx, page=page, limit=limit, status=status_filter, project_id=project_id
    )
    data = Page[ClientInspectionRead].build(
        [ClientInspectionRead.model_validate(client_service.to_client_view(item), from_attributes=True) for item in items],
        total=total,
        page=page,
        limit=limit,
    )
    return ApiResponse(message="Inspections retrieved", data=data)


@router.get("/summary/stats", response_model=ApiResponse[ClientInspectionSummary])
def client_summary(
    project_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_client_context),
) -> ApiResponse[ClientInspectionSummary]:
    summary = client_service.client_summary(db, ctx, project_id=project_id)
    return ApiResponse(message="Inspection summary retrieved", data=ClientInspectionSummary(**summary))


@router.get("/{inspection_id}", response_model=ApiResponse[ClientInspectionDetail])
def get_client_inspection(
    inspection_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_client_context),
) -> ApiResponse[ClientInspectionDetail]:
    inspection = client_service.get_client_inspection(db, ctx, inspection_id)
    return ApiResponse(message="Inspection retrieved", data=_detail(inspection))


@router.put("/{inspection_id}/review", response_model=ApiResponse[ClientInspectionDetail])
def review_inspection(
    inspection_id: int,
    payload: ClientReviewRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_client_context),
    meta: RequestMeta = Depends(get_request_meta),
    expected_version: int | None = Depends(get_expected_version),
) -> ApiResponse[ClientInspectionDetail]:
    inspection = run_transition(
        lambda: client_service.review_inspection(
            db, ctx, meta, inspection_id, payload, expected_version=expected_version
        ),
        failure_detail="Unable to submit inspection review",
        tenant_id=ctx.tenant_id,
        background_tasks=background_tasks,
    )
    return ApiResponse(message="Review submitted", data=_detail(inspection))


@router.put("/{inspection_id}/approve", response_model=ApiResponse[ClientInspectionDetail])
def approve_inspection(
    inspection_id: int,
    payload: ClientApprovalRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_client_context),
    meta: RequestMeta = Depends(get_request_meta),
    expected_version: int | None = Depends(get_expected_version),
) -> ApiResponse[ClientInspectionDetail]:
    inspection = run_transition(
        lambda: client_service.approve_inspection(
            db, ctx, meta, inspection_id, payload, expected_version=expected_version
        ),
        failure_detail="Unable to record inspection approval",
        tenant_id=ctx.tenant_id,
        background_tasks=background_tasks,
    )
    message = "Inspection approved" if payload.approved else "Changes requested"
    return ApiResponse(message=message, data=_detail(inspection))


@router.put("/{inspection_id}/reject", response_model=ApiResponse[ClientInspectionDetail])
def reject_inspection(
    inspection_id: int,
    payload: ClientRejectionRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_client_context),
    meta: RequestMeta = Depends(get_request_meta),
    expected_version: int | None = Depends(get_expected_version),
) -> ApiResponse[ClientInspectionDetail]:
    inspection = run_transition(
        lambda: client_service.reject_inspection(
            db, ctx, meta, inspection_id, payload, expected_version=expected_version
        ),
        failure_detail="Unable to record inspection rejection",
        tenant_id=ctx.tenant_id,
        background_tasks=background_tasks,
    )
    return ApiResponse(message="Inspection rejected; rework requested", data=_detail(inspection))
