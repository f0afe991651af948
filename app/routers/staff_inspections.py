from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.core.context import AuthContext, RequestMeta, get_expected_version, get_request_meta
from app.core.database import get_db
from app.core.errors import WorkflowError
from app.schemas.common import ApiResponse, Page
from app.schemas.inspection import (
    DetailedInspectionCreate,
    InspectionRead,
    InspectionUpdate,
    SimpleInspectionCreate,
)
from app.services import auth as auth_service
from app.services import inspections as inspection_service
from app.services import notifications as notification_service
from app.services import workflow as workflow_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/detailed", response_model=ApiResponse[InspectionRead], status_code=status.HTTP_201_CREATED)
def create_detailed_inspection(
    payload: DetailedInspectionCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_staff_context),
    meta: RequestMeta = Depends(get_request_meta),
) -> ApiResponse[InspectionRead]:
    try:
        inspection = inspection_service.create_detailed_inspection(db, ctx, meta, payload)
    except WorkflowError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to create detailed inspection for user %s", ctx.user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to create inspection",
        ) from exc
    background_tasks.add_task(notification_service.dispatch_pending_notifications, ctx.tenant_id)
    return ApiResponse(message="Detailed inspection created", data=InspectionRead.model_validate(inspection))


@router.post("/simple", response_model=ApiResponse[InspectionRead], status_code=status.HTTP_201_CREATED)
def create_simple_inspection(
    payload: SimpleInspectionCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_staff_context),
    meta: RequestMeta = Depends(get_request_meta),
) -> ApiResponse[InspectionRead]:
    try:
        inspection = inspection_service.create_simple_inspection(db, ctx, meta, payload)
    except WorkflowError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to create simple inspection for user %s", ctx.user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to create inspection",
        ) from exc
    background_tasks.add_task(notification_service.dispatch_pending_notifications, ctx.tenant_id)
    return ApiResponse(message="Simple inspection created", data=InspectionRead.model_validate(inspection))


@router.get("/my-inspections", response_model=ApiResponse[Page[InspectionRead]])
def list_my_inspections(
    page: int = Query(default=1, ge=1, description="Page number (1-indexed)"),
    limit: int = Query(default=10, ge=1, le=100),
    status_filter: str | None = Query(default=None, alias="status", description="Filter by inspection status"),
    inspection_type: str | None = Query(default=None, alias="type", description="detailed or simple"),
    project_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_staff_context),
) -> ApiResponse[Page[InspectionRead]]:
    items, total = inspection_service.list_my_inspections(
        db,
        ctx,
        page=page,
        limit=limit,
        status=status_filter,
        inspection_type=inspection_type,
        project_id=project_id,
    )
    data = Page[InspectionRead].build(
        [InspectionRead.model_validate(item) for item in items], total=total, page=page, limit=limit
    )
    return ApiResponse(message="Inspections retrieved", data=data)


@router.get("/{inspection_id}", response_model=ApiResponse[InspectionRead])
def get_inspection(
    inspection_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_staff_context),
) -> ApiResponse[InspectionRead]:
    inspection = inspection_service.get_inspection_for_staff(db, ctx, inspection_id)
    return ApiResponse(message="Inspection retrieved", data=InspectionRead.model_validate(inspection))


@router.put("/{inspection_id}", response_model=ApiResponse[InspectionRead])
def update_inspection(
    inspection_id: int,
    payload: InspectionUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_staff_context),
    meta: RequestMeta = Depends(get_request_meta),
    expected_version: int | None = Depends(get_expected_version),
) -> ApiResponse[InspectionRead]:
    try:
        inspection = inspection_service.update_inspection(
            db, ctx, meta, inspection_id, payload, expected_version=expected_version
        )
    except WorkflowError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to update inspection %s", inspection_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to update inspection",
        ) from exc
    return ApiResponse(message="Inspection updated", data=InspectionRead.model_validate(inspection))


@router.delete("/{inspection_id}", response_model=ApiResponse[None])
def delete_inspection(
    inspection_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_staff_context),
    meta: RequestMeta = Depends(get_request_meta),
    expected_version: int | None = Depends(get_expected_version),
) -> ApiResponse[None]:
    try:
        inspection_service.delete_inspection(db, ctx, meta, inspection_id, expected_version=expected_version)
    except WorkflowError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to delete inspection %s", inspection_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to delete inspection",
        ) from exc
    return ApiResponse(message="Inspection deleted", data=None)


@router.put("/{inspection_id}/submit", response_model=ApiResponse[InspectionRead])
def submit_inspection(
    inspection_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_staff_context),
    meta: RequestMeta = Depends(get_request_meta),
    expected_version: int | None = Depends(get_expected_version),
) -> ApiResponse[InspectionRead]:
    try:
        inspection = workflow_service.submit_inspection(
            db, ctx, meta, inspection_id, expected_version=expected_version
        )
    except WorkflowError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to submit inspection %s", inspection_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to submit inspection",
        ) from exc
    background_tasks.add_task(notification_service.dispatch_pending_notifications, ctx.tenant_id)
    return ApiResponse(message="Inspection submitted for review", data=InspectionRead.model_validate(inspection))
