from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Query, Session

from app.core.context import AuthContext, RequestMeta
from app.core.errors import InvalidInputError, InvalidStateTransitionError, NotFoundError, PermissionDeniedError
from app.models.entities import AuditAction, Inspection, InspectionStatus, InspectionType, ResourceType
from app.schemas.client import ClientApprovalRequest, ClientRejectionRequest, ClientReviewRequest
from app.schemas.workflow import ClientFeedback, read_metadata, write_metadata
from app.services import audit as audit_service
from app.services import config as config_service
from app.services import inspections as inspection_service
from app.services import notifications as notification_service

logger = logging.getLogger(__name__)

CLIENT_VISIBLE_STATUSES = (InspectionStatus.complete.value, InspectionStatus.approved.value)


def _client_id(ctx: AuthContext) -> str:
    if not ctx.external_client_id:
        raise PermissionDeniedError("Client account is not linked to a client record")
    return ctx.external_client_id


def _client_query(db: Session, ctx: AuthContext) -> Query:
    return inspection_service.base_query(db, ctx.tenant_id).filter(
        Inspection.external_client_id == _client_id(ctx),
        Inspection.status.in_(CLIENT_VISIBLE_STATUSES),
    )


def get_client_inspection(db: Session, ctx: AuthContext, inspection_id: int) -> Inspection:
    inspection = _client_query(db, ctx).filter(Inspection.id == inspection_id).first()
    if inspection is None:
        raise NotFoundError("Quality inspection not found")
    return inspection


def list_client_inspections(
    db: Session,
    ctx: AuthContext,
    *,
    page: int = 1,
    limit: int = 10,
    status: str | None = None,
    project_id: str | None = None,
) -> tuple[list[Inspection], int]:
    query = _client_query(db, ctx)
    if status in CLIENT_VISIBLE_STATUSES:
        query = query.filter(Inspection.status == status)
    if project_id:
        query = query.filter(Inspection.project_id == project_id)
    query = query.order_by(Inspection.completed_date.desc(), Inspection.created_at.desc(), Inspection.id.desc())
    return inspection_service.paginate(query, page, limit)


def _summary_text(inspection: Inspection, remarks: str) -> str:
    if inspection.type == InspectionType.simple.value:
        return remarks or f"Overall rating {inspection.overall_rating}/5"
    return f"{inspection.passed_items} of {inspection.total_items} checks passed"


def to_client_view(inspection: Inspection, *, detail: bool = False) -> dict[str, Any]:
    """Client-facing projection; raw checklist entries and photo URLs stay internal."""
    metadata = read_metadata(inspection)
    client = metadata.client or ClientFeedback()
    view: dict[str, Any] = {
        "id": inspection.id,
        "type": inspection.type,
        "status": inspection.status,
        "location": inspection.location,
        "inspection_category": inspection.inspection_category,
        "overall_rating": inspection.overall_rating,
        "pass_rate": inspection.pass_rate,
        "has_critical_issues": inspection.has_critical_issues,
        "inspection_date": inspection.inspection_date,
        "completed_date": inspection.completed_date,
        "project_id": inspection.project_id,
        "project_name": inspection.project.name if inspection.project else None,
        "inspector": inspection.inspector,
        "reviewer": inspection.reviewer,
        "approver": inspection.approver,
        "summary": _summary_text(inspection, metadata.remarks),
        "client_feedback": client.feedback,
        "client_rating": client.rating,
    }
    if detail:
        view.update(
            {
                "passed_items": inspection.passed_items,
                "failed_items": inspection.failed_items,
                "total_items": inspection.total_items,
                "improvement_suggestions": metadata.improvement_suggestions or None,
                "client_approved": client.approved,
                "client_approved_at": client.approved_at,
                "client_review_status": client.review_status,
                "requires_rework": client.requires_rework,
                "has_photos": inspection.has_photos,
                "photo_count": len(inspection.photos or []),
                "created_at": inspection.created_at,
                "client_reviewed_at": client.reviewed_at,
            }
        )
    return view


def _load_for_action(
    db: Session, ctx: AuthContext, inspection_id: int, expected_version: int | None
) -> Inspection:
    inspection = get_client_inspection(db, ctx, inspection_id)
    inspection_service.check_version(inspection, expected_version)
    if inspection.status != InspectionStatus.complete.value:
        raise InvalidStateTransitionError("Only completed inspections can be reviewed by the client")
    return inspection


def _finish(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    inspection: Inspection,
    *,
    action: AuditAction,
    old_client: ClientFeedback | None,
    new_client: ClientFeedback,
) -> Inspection:
    metadata = read_metadata(inspection)
    metadata.client = new_client
    write_metadata(inspection, metadata)
    audit_service.record_success(
        db,
        ctx,
        meta,
        action=action.value,
        resource_type=ResourceType.quality_inspection.value,
        resource_id=inspection.id,
        resource_name=inspection.location,
        old_values={"client": old_client.model_dump(mode="json") if old_client else None},
        new_values={"client": new_client.model_dump(mode="json")},
        details={"external_client_id": ctx.external_client_id},
    )
    notification_service.enqueue_inspection_event(
        db,
        inspection,
        "client_review_submitted",
        extra={"client_review_status": new_client.review_status},
        priority="high" if new_client.review_status == "rejected" else None,
    )
    db.commit()
    db.refresh(inspection)
    return inspection


def review_inspection(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    inspection_id: int,
    payload: ClientReviewRequest,
    *,
    expected_version: int | None = None,
) -> Inspection:
    action = AuditAction.client_inspection_reviewed
    with audit_service.audited(
        db, ctx, meta, action=action.value, resource_type=ResourceType.quality_inspection.value, resource_id=inspection_id
    ):
        inspection = _load_for_action(db, ctx, inspection_id, expected_version)
        previous = read_metadata(inspection).client
        client = (previous or ClientFeedback()).model_copy(deep=True)
        client.review_status = "reviewed"
        client.feedback = payload.feedback
        client.rating = payload.rating
        client.concerns = list(payload.concerns)
        client.requested_changes = list(payload.requested_changes)
        client.reviewed_at = datetime.utcnow()
        result = _finish(db, ctx, meta, inspection, action=action, old_client=previous, new_client=client)
    logger.info("Client %s reviewed inspection %s", ctx.external_client_id, inspection_id)
    return result


def approve_inspection(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    inspection_id: int,
    payload: ClientApprovalRequest,
    *,
    expected_version: int | None = None,
) -> Inspection:
    action = AuditAction.client_inspection_approved
    with audit_service.audited(
        db, ctx, meta, action=action.value, resource_type=ResourceType.quality_inspection.value, resource_id=inspection_id
    ):
        inspection = _load_for_action(db, ctx, inspection_id, expected_version)
        config = config_service.get_config(db, ctx.tenant_id)
        if payload.approved and config.require_client_signoff and not (payload.client_signature or "").strip():
            raise InvalidInputError("Client signature is required to approve this inspection")
        previous = read_metadata(inspection).client
        client = (previous or ClientFeedback()).model_copy(deep=True)
        client.approved = payload.approved
        client.signature = payload.client_signature
        client.approval_notes = payload.notes
        client.satisfaction_rating = payload.satisfaction_rating
        client.approved_at = datetime.utcnow()
        client.review_status = "approved" if payload.approved else "pending_changes"
        if payload.approved:
            client.requires_rework = False
        result = _finish(db, ctx, meta, inspection, action=action, old_client=previous, new_client=client)
    logger.info("Client %s set approval=%s on inspection %s", ctx.external_client_id, payload.approved, inspection_id)
    return result


def reject_inspection(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    inspection_id: int,
    payload: ClientRejectionRequest,
    *,
    expected_version: int | None = None,
) -> Inspection:
    """Record a client rejection; a follow-up inspection is created outside this service."""
    action = AuditAction.client_inspection_rejected
    with audit_service.audited(
        db, ctx, meta, action=action.value, resource_type=ResourceType.quality_inspection.value, resource_id=inspection_id
    ):
        inspection = _load_for_action(db, ctx, inspection_id, expected_version)
        reason = (payload.reason or "").strip()
        changes = [change.strip() for change in payload.requested_changes if change and change.strip()]
        if not reason or not changes:
            raise InvalidInputError("Reason and at least one requested change are required")
        previous = read_metadata(inspection).client
        client = (previous or ClientFeedback()).model_copy(deep=True)
        client.review_status = "rejected"
        client.approved = False
        client.rejection_reason = reason
        client.requested_changes = changes
        client.rejection_priority = payload.priority
        client.scheduled_revisit_date = payload.scheduled_revisit_date
        client.rejected_at = datetime.utcnow()
        client.requires_rework = True
        result = _finish(db, ctx, meta, inspection, action=action, old_client=previous, new_client=client)
    logger.info("Client %s rejected inspection %s", ctx.external_client_id, inspection_id)
    return result


def client_summary(db: Session, ctx: AuthContext, *, project_id: str | None = None) -> dict[str, Any]:
    query = _client_query(db, ctx)
    if project_id:
        query = query.filter(Inspection.project_id == project_id)
    inspections = query.order_by(Inspection.completed_date.desc(), Inspection.id.desc()).all()

    total = len(inspections)
    by_status: dict[str, int] = {}
    client_approved = 0
    ratings: list[int] = []
    recent: list[dict[str, Any]] = []
    for inspection in inspections:
        by_status[inspection.status] = by_status.get(inspection.status, 0) + 1
        client = read_metadata(inspection).client
        if client and client.approved:
            client_approved += 1
        if client and client.rating:
            ratings.append(client.rating)
    for inspection in inspections[:5]:
        client = read_metadata(inspection).client
        recent.append(
            {
                "id": inspection.id,
                "location": inspection.location,
                "status": inspection.status,
                "completed_date": inspection.completed_date,
                "client_review_status": client.review_status if client else None,
            }
        )
    completed = by_status.get(InspectionStatus.complete.value, 0)
    return {
        "total_inspections": total,
        "completed_inspections": completed,
        "client_approved_count": client_approved,
        "critical_issues_count": sum(1 for inspection in inspections if inspection.has_critical_issues),
        "approval_rate": round(client_approved / completed * 100) if completed else 0,
        "average_client_rating": round(sum(ratings) / len(ratings), 1) if ratings else 0.0,
        "inspections_by_status": by_status,
        "recent_activity": recent,
        "project_filter": project_id or "all",
    }
