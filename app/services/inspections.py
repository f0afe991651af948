from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy.orm import Query, Session, selectinload

from app.core.context import AuthContext, RequestMeta
from app.core.errors import ConflictError, InvalidInputError, NotFoundError, PermissionDeniedError
from app.models.entities import (
    AuditAction,
    ExternalClient,
    Inspection,
    InspectionStatus,
    InspectionType,
    Project,
    ResourceType,
)
from app.schemas.inspection import (
    ChecklistItem,
    DetailedInspectionCreate,
    InspectionUpdate,
    SimpleInspectionCreate,
)
from app.schemas.workflow import InspectionMetadata, read_metadata, write_metadata
from app.services import audit as audit_service
from app.services import config as config_service
from app.services import notifications as notification_service
from app.services import roles as role_service

logger = logging.getLogger(__name__)

# Simple inspections rated at or below this value are flagged as critical.
CRITICAL_RATING_THRESHOLD = 2
EDITABLE_STATUSES = {InspectionStatus.draft.value, InspectionStatus.rejected.value}


def base_query(db: Session, tenant_id: str) -> Query:
    return (
        db.query(Inspection)
        .options(
            selectinload(Inspection.inspector),
            selectinload(Inspection.reviewer),
            selectinload(Inspection.approver),
            selectinload(Inspection.project),
        )
        .filter(Inspection.tenant_id == tenant_id, Inspection.is_deleted.is_(False))
    )


def get_inspection(db: Session, tenant_id: str, inspection_id: int) -> Inspection:
    inspection = base_query(db, tenant_id).filter(Inspection.id == inspection_id).first()
    if inspection is None:
        raise NotFoundError("Quality inspection not found")
    return inspection


def check_version(inspection: Inspection, expected_version: int | None) -> None:
    if expected_version is not None and inspection.version != expected_version:
        raise ConflictError(
            f"Inspection version mismatch: expected {expected_version}, current is {inspection.version}"
        )


def paginate(query: Query, page: int, limit: int) -> tuple[list[Any], int]:
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, total


def summarize_checklist(items: Iterable[ChecklistItem | dict[str, Any]]) -> dict[str, Any]:
    """Derive totals and the critical flag from checklist entries."""
    entries = [item if isinstance(item, ChecklistItem) else ChecklistItem.model_validate(item) for item in items]
    return {
        "total_items": len(entries),
        "passed_items": sum(1 for item in entries if item.status == "pass"),
        "failed_items": sum(1 for item in entries if item.status == "fail"),
        "has_critical_issues": any(item.status == "fail" and item.critical for item in entries),
    }


def is_critical_rating(rating: int | None) -> bool:
    return rating is not None and rating <= CRITICAL_RATING_THRESHOLD


def _apply_checklist(inspection: Inspection, items: list[ChecklistItem]) -> None:
    inspection.checklist_items = [item.model_dump() for item in items]
    summary = summarize_checklist(items)
    inspection.total_items = summary["total_items"]
    inspection.passed_items = summary["passed_items"]
    inspection.failed_items = summary["failed_items"]
    inspection.has_critical_issues = summary["has_critical_issues"]


def _apply_rating(inspection: Inspection, rating: int) -> None:
    inspection.overall_rating = rating
    inspection.has_critical_issues = is_critical_rating(rating)


def _validate_references(db: Session, tenant_id: str, project_id: str, external_client_id: str) -> None:
    project = db.query(Project).filter(Project.id == project_id, Project.tenant_id == tenant_id).first()
    if project is None:
        raise NotFoundError("Project not found")
    client = (
        db.query(ExternalClient)
        .filter(ExternalClient.id == external_client_id, ExternalClient.tenant_id == tenant_id)
        .first()
    )
    if client is None:
        raise NotFoundError("Client not found")
    if project.external_client_id and project.external_client_id != external_client_id:
        raise InvalidInputError("Project does not belong to the selected client")


def snapshot(inspection: Inspection) -> dict[str, Any]:
    return {
        "status": inspection.status,
        "reviewer_id": inspection.reviewer_id,
        "approver_id": inspection.approver_id,
        "has_critical_issues": inspection.has_critical_issues,
    }


def _create(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    inspection_type: InspectionType,
    payload: DetailedInspectionCreate | SimpleInspectionCreate,
) -> Inspection:
    config = config_service.get_config(db, ctx.tenant_id)
    role = role_service.resolve_role(db, ctx.tenant_id, ctx.user_id)
    role_service.require(role_service.can_inspect(role, config), "You do not have permission to create inspections")
    if inspection_type == InspectionType.detailed:
        role_service.require(
            config.use_detailed_inspections, "Detailed inspections are not enabled for this business"
        )
    _validate_references(db, ctx.tenant_id, payload.project_id, payload.external_client_id)

    now = datetime.utcnow()
    inspection = Inspection(
        tenant_id=ctx.tenant_id,
        project_id=payload.project_id,
        external_client_id=payload.external_client_id,
        inspector_id=ctx.user_id,
        type=inspection_type.value,
        status=InspectionStatus.draft.value,
        location=payload.location.strip(),
        inspection_category=payload.inspection_category,
        inspection_date=now,
        created_at=now,
    )
    metadata = InspectionMetadata(notes=payload.notes or "", priority=payload.priority)
    if isinstance(payload, DetailedInspectionCreate):
        _apply_checklist(inspection, payload.checklist_items)
        inspection.photos = list(payload.photos)
        inspection.has_photos = bool(payload.photos)
        inspection.signature = payload.signature
        inspection.has_signature = bool(payload.signature)
    else:
        _apply_rating(inspection, payload.overall_rating)
        inspection.checklist_items = []
        inspection.photos = []
        metadata.remarks = payload.remarks.strip()
        metadata.improvement_suggestions = payload.improvement_suggestions or ""
    write_metadata(inspection, metadata)
    db.add(inspection)
    db.flush()

    audit_service.record_success(
        db,
        ctx,
        meta,
        action=AuditAction.quality_inspection_created.value,
        resource_type=ResourceType.quality_inspection.value,
        resource_id=inspection.id,
        resource_name=inspection.location,
        new_values={**snapshot(inspection), "type": inspection.type},
    )
    notification_service.enqueue_inspection_event(db, inspection, "inspection_created", config=config)
    db.commit()
    db.refresh(inspection)
    return inspection


def create_detailed_inspection(
    db: Session, ctx: AuthContext, meta: RequestMeta | None, payload: DetailedInspectionCreate
) -> Inspection:
    logger.info("Creating detailed inspection for tenant %s by %s", ctx.tenant_id, ctx.user_id)
    with audit_service.audited(
        db,
        ctx,
        meta,
        action=AuditAction.quality_inspection_created.value,
        resource_type=ResourceType.quality_inspection.value,
        details={"type": InspectionType.detailed.value},
    ):
        inspection = _create(db, ctx, meta, InspectionType.detailed, payload)
    logger.info("Created detailed inspection %s", inspection.id)
    return inspection


def create_simple_inspection(
    db: Session, ctx: AuthContext, meta: RequestMeta | None, payload: SimpleInspectionCreate
) -> Inspection:
    logger.info("Creating simple inspection for tenant %s by %s", ctx.tenant_id, ctx.user_id)
    with audit_service.audited(
        db,
        ctx,
        meta,
        action=AuditAction.quality_inspection_created.value,
        resource_type=ResourceType.quality_inspection.value,
        details={"type": InspectionType.simple.value},
    ):
        inspection = _create(db, ctx, meta, InspectionType.simple, payload)
    logger.info("Created simple inspection %s (critical=%s)", inspection.id, inspection.has_critical_issues)
    return inspection


def update_inspection(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    inspection_id: int,
    payload: InspectionUpdate,
    *,
    expected_version: int | None = None,
) -> Inspection:
    """Edit an own draft or rejected inspection; a rejected one returns to draft."""
    with audit_service.audited(
        db,
        ctx,
        meta,
        action=AuditAction.quality_inspection_updated.value,
        resource_type=ResourceType.quality_inspection.value,
        resource_id=inspection_id,
    ):
        inspection = get_inspection(db, ctx.tenant_id, inspection_id)
        check_version(inspection, expected_version)
        if inspection.inspector_id != ctx.user_id:
            raise PermissionDeniedError("Only the inspector can edit this inspection")
        if inspection.status not in EDITABLE_STATUSES:
            raise InvalidInputError("Only draft or rejected inspections can be edited")
        old_values = snapshot(inspection)
        metadata = read_metadata(inspection)
        fields = payload.model_fields_set

        if "location" in fields:
            if not (payload.location or "").strip():
                raise InvalidInputError("Location cannot be empty")
            inspection.location = payload.location.strip()
        if "inspection_category" in fields:
            inspection.inspection_category = payload.inspection_category
        if "notes" in fields:
            metadata.notes = payload.notes or ""
        if "priority" in fields:
            metadata.priority = payload.priority

        if inspection.type == InspectionType.detailed.value:
            if payload.checklist_items is not None:
                _apply_checklist(inspection, payload.checklist_items)
            if payload.photos is not None:
                inspection.photos = list(payload.photos)
                inspection.has_photos = bool(payload.photos)
            if "signature" in fields:
                inspection.signature = payload.signature
                inspection.has_signature = bool(payload.signature)
        else:
            if payload.overall_rating is not None:
                _apply_rating(inspection, payload.overall_rating)
            if "remarks" in fields:
                if not (payload.remarks or "").strip():
                    raise InvalidInputError("Remarks are required for simple inspections")
                metadata.remarks = payload.remarks.strip()
            if "improvement_suggestions" in fields:
                metadata.improvement_suggestions = payload.improvement_suggestions or ""

        if inspection.status == InspectionStatus.rejected.value:
            inspection.status = InspectionStatus.draft.value
        write_metadata(inspection, metadata)
        audit_service.record_success(
            db,
            ctx,
            meta,
            action=AuditAction.quality_inspection_updated.value,
            resource_type=ResourceType.quality_inspection.value,
            resource_id=inspection.id,
            resource_name=inspection.location,
            old_values=old_values,
            new_values=snapshot(inspection),
            details={"fields": sorted(fields)},
        )
        db.commit()
    db.refresh(inspection)
    logger.info("Updated inspection %s", inspection.id)
    return inspection


def delete_inspection(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    inspection_id: int,
    *,
    expected_version: int | None = None,
) -> None:
    with audit_service.audited(
        db,
        ctx,
        meta,
        action=AuditAction.quality_inspection_deleted.value,
        resource_type=ResourceType.quality_inspection.value,
        resource_id=inspection_id,
    ):
        inspection = get_inspection(db, ctx.tenant_id, inspection_id)
        check_version(inspection, expected_version)
        if inspection.inspector_id != ctx.user_id:
            raise PermissionDeniedError("Only the inspector can delete this inspection")
        if inspection.status != InspectionStatus.draft.value:
            raise InvalidInputError("Only draft inspections can be deleted")
        inspection.is_deleted = True
        inspection.deleted_at = datetime.utcnow()
        audit_service.record_success(
            db,
            ctx,
            meta,
            action=AuditAction.quality_inspection_deleted.value,
            resource_type=ResourceType.quality_inspection.value,
            resource_id=inspection.id,
            resource_name=inspection.location,
            old_values={"is_deleted": False},
            new_values={"is_deleted": True},
        )
        db.commit()
    logger.info("Soft-deleted inspection %s", inspection_id)


def get_inspection_for_staff(db: Session, ctx: AuthContext, inspection_id: int) -> Inspection:
    """Participants and roles with review, approval or view-all rights may read an inspection."""
    inspection = get_inspection(db, ctx.tenant_id, inspection_id)
    if ctx.user_id in {inspection.inspector_id, inspection.reviewer_id, inspection.approver_id}:
        return inspection
    config = config_service.get_config(db, ctx.tenant_id)
    role = role_service.resolve_role(db, ctx.tenant_id, ctx.user_id)
    allowed = (
        role.permissions["can_view_all"]
        or role_service.can_review(role, config)
        or role_service.is_final_approver(role, config)
        or role_service.can_override(role)
    )
    role_service.require(allowed, "You do not have permission to view this inspection")
    return inspection


def list_my_inspections(
    db: Session,
    ctx: AuthContext,
    *,
    page: int = 1,
    limit: int = 10,
    status: str | None = None,
    inspection_type: str | None = None,
    project_id: str | None = None,
) -> tuple[list[Inspection], int]:
    query = base_query(db, ctx.tenant_id).filter(Inspection.inspector_id == ctx.user_id)
    if status:
        query = query.filter(Inspection.status == status)
    if inspection_type:
        query = query.filter(Inspection.type == inspection_type)
    if project_id:
        query = query.filter(Inspection.project_id == project_id)
    return paginate(query.order_by(Inspection.created_at.desc(), Inspection.id.desc()), page, limit)
