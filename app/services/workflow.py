"""
Review and approval state machine for quality inspections.

    draft -> pending -> under_review -> approved -> complete

``pending`` and ``under_review`` both accept approve, reject and revision
requests; reject and revision route the inspection back to ``draft``.
``rejected`` is only reached through an override and returns to ``draft``
when the inspector edits it. An override from any non-draft state forces
``complete`` or ``rejected``.

Every transition runs inside ``audit.audited`` so refused attempts are
recorded, stages its success audit entry and notification outbox row on the
same session, and commits once. Notification delivery happens after commit.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from app.core.context import AuthContext, RequestMeta
from app.core.errors import InvalidInputError, InvalidStateTransitionError, NotFoundError, PermissionDeniedError
from app.models.entities import (
    AuditAction,
    Inspection,
    InspectionStatus,
    InspectionType,
    ResourceType,
    TenantInspectionConfig,
)
from app.schemas.inspection import (
    FinalApprovalRequest,
    OverrideRequest,
    ReviewApprove,
    ReviewReject,
    RevisionRequest,
)
from app.schemas.workflow import (
    ApprovedReview,
    AssignmentRecord,
    FinalApproval,
    OverrideDecision,
    RejectedReview,
    RevisionRequested,
    SubmissionRecord,
    read_metadata,
    write_metadata,
)
from app.services import audit as audit_service
from app.services import config as config_service
from app.services import inspections as inspection_service
from app.services import notifications as notification_service
from app.services import roles as role_service
from app.services.roles import EffectiveRole

logger = logging.getLogger(__name__)

REVIEWABLE_STATUSES = (InspectionStatus.pending.value, InspectionStatus.under_review.value)
OVERRIDE_DECISIONS = {"approve", "reject"}


def _load(
    db: Session, ctx: AuthContext, inspection_id: int, expected_version: int | None
) -> tuple[Inspection, TenantInspectionConfig]:
    inspection = inspection_service.get_inspection(db, ctx.tenant_id, inspection_id)
    inspection_service.check_version(inspection, expected_version)
    return inspection, config_service.get_config(db, ctx.tenant_id)


def _check_self_review(inspection: Inspection, ctx: AuthContext, config: TenantInspectionConfig) -> None:
    # Identity comparison only; the actor's role does not matter here.
    if not config.allow_self_review and inspection.inspector_id == ctx.user_id:
        raise PermissionDeniedError("Self-review is not allowed for this business")


def _require_reviewer(
    db: Session, ctx: AuthContext, inspection: Inspection, config: TenantInspectionConfig
) -> EffectiveRole:
    role = role_service.resolve_role(db, ctx.tenant_id, ctx.user_id)
    role_service.require(role_service.can_review(role, config), "You do not have permission to review inspections")
    _check_self_review(inspection, ctx, config)
    if inspection.status not in REVIEWABLE_STATUSES:
        raise InvalidStateTransitionError("Inspection is not available for review")
    return role


def _finish(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    inspection: Inspection,
    *,
    action: AuditAction,
    old_values: dict[str, Any],
    event_type: str,
    config: TenantInspectionConfig,
    details: dict[str, Any] | None = None,
    priority: str | None = None,
) -> Inspection:
    audit_service.record_success(
        db,
        ctx,
        meta,
        action=action.value,
        resource_type=ResourceType.quality_inspection.value,
        resource_id=inspection.id,
        resource_name=inspection.location,
        old_values=old_values,
        new_values=inspection_service.snapshot(inspection),
        details=details,
    )
    notification_service.enqueue_inspection_event(db, inspection, event_type, config=config, priority=priority)
    db.commit()
    db.refresh(inspection)
    return inspection


def submit_inspection(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    inspection_id: int,
    *,
    expected_version: int | None = None,
) -> Inspection:
    logger.info("Submitting inspection %s by %s", inspection_id, ctx.user_id)
    action = AuditAction.quality_inspection_submitted
    with audit_service.audited(
        db, ctx, meta, action=action.value, resource_type=ResourceType.quality_inspection.value, resource_id=inspection_id
    ):
        inspection, config = _load(db, ctx, inspection_id, expected_version)
        role_service.require(inspection.inspector_id == ctx.user_id, "You can only submit your own inspections")
        if inspection.status != InspectionStatus.draft.value:
            raise InvalidStateTransitionError("Only draft inspections can be submitted")
        if inspection.type == InspectionType.detailed.value:
            if config.require_photos and not inspection.has_photos:
                raise InvalidInputError("Photos are required for this inspection")
            if config.require_signature and not inspection.has_signature:
                raise InvalidInputError("Signature is required for this inspection")

        old_values = inspection_service.snapshot(inspection)
        now = datetime.utcnow()
        metadata = read_metadata(inspection)
        metadata.submission = SubmissionRecord(submitted_at=now, submitted_by=ctx.user_id)
        write_metadata(inspection, metadata)
        inspection.status = InspectionStatus.pending.value
        result = _finish(
            db,
            ctx,
            meta,
            inspection,
            action=action,
            old_values=old_values,
            event_type="inspection_submitted",
            config=config,
        )
    logger.info("Inspection %s submitted for review", inspection_id)
    return result


def assign_reviewer(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    inspection_id: int,
    reviewer_id: str,
    *,
    expected_version: int | None = None,
) -> Inspection:
    logger.info("Assigning inspection %s to reviewer %s", inspection_id, reviewer_id)
    action = AuditAction.quality_inspection_assigned
    with audit_service.audited(
        db,
        ctx,
        meta,
        action=action.value,
        resource_type=ResourceType.quality_inspection.value,
        resource_id=inspection_id,
        details={"reviewer_id": reviewer_id},
    ):
        inspection, config = _load(db, ctx, inspection_id, expected_version)
        role = role_service.resolve_role(db, ctx.tenant_id, ctx.user_id)
        role_service.require(role_service.can_review(role, config), "You do not have permission to assign reviewers")
        if inspection.status != InspectionStatus.pending.value:
            raise InvalidStateTransitionError("Only pending inspections can be assigned")
        try:
            reviewer_role = role_service.resolve_role(db, ctx.tenant_id, reviewer_id)
        except NotFoundError:
            raise NotFoundError("Reviewer not found in business") from None
        if not role_service.can_review(reviewer_role, config):
            raise InvalidInputError("Selected reviewer does not have permission to review inspections")
        if not config.allow_self_review and reviewer_id == inspection.inspector_id:
            raise InvalidInputError("The inspector cannot review their own inspection")

        old_values = inspection_service.snapshot(inspection)
        metadata = read_metadata(inspection)
        metadata.assignment = AssignmentRecord(
            reviewer_id=reviewer_id, assigned_by=ctx.user_id, assigned_at=datetime.utcnow()
        )
        write_metadata(inspection, metadata)
        inspection.status = InspectionStatus.under_review.value
        inspection.reviewer_id = reviewer_id
        result = _finish(
            db,
            ctx,
            meta,
            inspection,
            action=action,
            old_values=old_values,
            event_type="inspection_assigned",
            config=config,
        )
    logger.info("Inspection %s assigned to reviewer %s", inspection_id, reviewer_id)
    return result


def approve_inspection(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    inspection_id: int,
    payload: ReviewApprove,
    *,
    expected_version: int | None = None,
) -> Inspection:
    logger.info("Approving inspection %s by reviewer %s", inspection_id, ctx.user_id)
    action = AuditAction.quality_inspection_approved
    with audit_service.audited(
        db, ctx, meta, action=action.value, resource_type=ResourceType.quality_inspection.value, resource_id=inspection_id
    ):
        inspection, config = _load(db, ctx, inspection_id, expected_version)
        _require_reviewer(db, ctx, inspection, config)

        old_values = inspection_service.snapshot(inspection)
        now = datetime.utcnow()
        review = ApprovedReview(
            reviewer_id=ctx.user_id,
            reviewed_at=now,
            notes=payload.notes or "",
            comments=payload.review_comments or "",
        )
        metadata = read_metadata(inspection)
        metadata.review = review
        metadata.review_history = [*metadata.review_history, review]
        write_metadata(inspection, metadata)
        inspection.status = InspectionStatus.approved.value
        inspection.reviewer_id = ctx.user_id
        inspection.reviewed_date = now
        result = _finish(
            db,
            ctx,
            meta,
            inspection,
            action=action,
            old_values=old_values,
            event_type="inspection_approved",
            config=config,
        )
    logger.info("Inspection %s approved", inspection_id)
    return result


def reject_inspection(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    inspection_id: int,
    payload: ReviewReject,
    *,
    expected_version: int | None = None,
) -> Inspection:
    logger.info("Rejecting inspection %s by reviewer %s", inspection_id, ctx.user_id)
    action = AuditAction.quality_inspection_rejected
    with audit_service.audited(
        db, ctx, meta, action=action.value, resource_type=ResourceType.quality_inspection.value, resource_id=inspection_id
    ):
        inspection, config = _load(db, ctx, inspection_id, expected_version)
        _require_reviewer(db, ctx, inspection, config)
        reason = (payload.reason or "").strip()
        feedback = (payload.feedback or "").strip()
        if not reason or not feedback:
            raise InvalidInputError("Reason and feedback are required for rejection")

        old_values = inspection_service.snapshot(inspection)
        now = datetime.utcnow()
        review = RejectedReview(
            reviewer_id=ctx.user_id,
            reviewed_at=now,
            reason=reason,
            feedback=feedback,
            required_changes=[change for change in payload.required_changes if change.strip()],
        )
        metadata = read_metadata(inspection)
        metadata.review = review
        metadata.review_history = [*metadata.review_history, review]
        write_metadata(inspection, metadata)
        inspection.status = InspectionStatus.draft.value
        inspection.reviewer_id = ctx.user_id
        inspection.reviewed_date = now
        result = _finish(
            db,
            ctx,
            meta,
            inspection,
            action=action,
            old_values=old_values,
            event_type="inspection_rejected",
            config=config,
            details={"reason": reason},
        )
    logger.info("Inspection %s rejected and returned to draft", inspection_id)
    return result


def request_revision(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    inspection_id: int,
    payload: RevisionRequest,
    *,
    expected_version: int | None = None,
) -> Inspection:
    logger.info("Requesting revision of inspection %s by reviewer %s", inspection_id, ctx.user_id)
    action = AuditAction.quality_inspection_revision_requested
    with audit_service.audited(
        db, ctx, meta, action=action.value, resource_type=ResourceType.quality_inspection.value, resource_id=inspection_id
    ):
        inspection, config = _load(db, ctx, inspection_id, expected_version)
        _require_reviewer(db, ctx, inspection, config)
        feedback = (payload.feedback or "").strip()
        changes = [change.strip() for change in payload.required_changes if change and change.strip()]
        if not feedback or not changes:
            raise InvalidInputError("Feedback and at least one required change are needed to request a revision")

        old_values = inspection_service.snapshot(inspection)
        now = datetime.utcnow()
        review = RevisionRequested(
            reviewer_id=ctx.user_id,
            reviewed_at=now,
            feedback=feedback,
            required_changes=changes,
            priority=payload.priority,
        )
        metadata = read_metadata(inspection)
        metadata.review = review
        metadata.review_history = [*metadata.review_history, review]
        metadata.revision_count += 1
        write_metadata(inspection, metadata)
        inspection.status = InspectionStatus.draft.value
        inspection.reviewer_id = ctx.user_id
        inspection.reviewed_date = now
        result = _finish(
            db,
            ctx,
            meta,
            inspection,
            action=action,
            old_values=old_values,
            event_type="inspection_revision_requested",
            config=config,
            details={"revision_count": metadata.revision_count},
            priority=payload.priority,
        )
    logger.info("Revision requested for inspection %s", inspection_id)
    return result


def final_approve(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    inspection_id: int,
    payload: FinalApprovalRequest,
    *,
    expected_version: int | None = None,
) -> Inspection:
    logger.info("Final approval of inspection %s by %s", inspection_id, ctx.user_id)
    action = AuditAction.quality_inspection_final_approved
    with audit_service.audited(
        db, ctx, meta, action=action.value, resource_type=ResourceType.quality_inspection.value, resource_id=inspection_id
    ):
        inspection, config = _load(db, ctx, inspection_id, expected_version)
        role = role_service.resolve_role(db, ctx.tenant_id, ctx.user_id)
        role_service.require(
            role_service.is_final_approver(role, config), "Only the designated final approver can approve inspections"
        )
        _check_self_review(inspection, ctx, config)
        if inspection.completed_date is not None:
            raise InvalidStateTransitionError("Inspection has already received final approval")
        if inspection.status != InspectionStatus.approved.value:
            raise InvalidStateTransitionError("Only reviewer-approved inspections can receive final approval")

        old_values = inspection_service.snapshot(inspection)
        now = datetime.utcnow()
        metadata = read_metadata(inspection)
        metadata.final_decision = FinalApproval(
            approver_id=ctx.user_id,
            decided_at=now,
            notes=payload.notes or "",
            client_notification_required=payload.client_notification_required,
            scheduled_completion_date=payload.scheduled_completion_date,
        )
        write_metadata(inspection, metadata)
        inspection.status = InspectionStatus.complete.value
        inspection.approver_id = ctx.user_id
        inspection.approved_date = now
        inspection.completed_date = now
        result = _finish(
            db,
            ctx,
            meta,
            inspection,
            action=action,
            old_values=old_values,
            event_type="final_approval_granted",
            config=config,
            details={"client_notification_required": payload.client_notification_required},
        )
    logger.info("Inspection %s completed", inspection_id)
    return result


def override_decision(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    inspection_id: int,
    payload: OverrideRequest,
    *,
    expected_version: int | None = None,
) -> Inspection:
    logger.info("Override (%s) of inspection %s by %s", payload.decision, inspection_id, ctx.user_id)
    action = AuditAction.quality_inspection_overridden
    with audit_service.audited(
        db,
        ctx,
        meta,
        action=action.value,
        resource_type=ResourceType.quality_inspection.value,
        resource_id=inspection_id,
        details={"decision": payload.decision},
    ):
        inspection, config = _load(db, ctx, inspection_id, expected_version)
        role = role_service.resolve_role(db, ctx.tenant_id, ctx.user_id)
        role_service.require(
            role_service.can_override(role) and role_service.is_final_approver(role, config),
            "You do not have permission to override inspection decisions",
        )
        _check_self_review(inspection, ctx, config)
        decision = (payload.decision or "").strip().lower()
        if decision not in OVERRIDE_DECISIONS:
            raise InvalidInputError("Decision must be either approve or reject")
        reason = (payload.reason or "").strip()
        justification = (payload.justification or "").strip()
        if not reason or not justification:
            raise InvalidInputError("Reason and justification are required for overrides")
        if inspection.status == InspectionStatus.draft.value:
            raise InvalidStateTransitionError("Draft inspections cannot be overridden")

        old_values = inspection_service.snapshot(inspection)
        now = datetime.utcnow()
        metadata = read_metadata(inspection)
        metadata.final_decision = OverrideDecision(
            action="override_approved" if decision == "approve" else "override_rejected",
            approver_id=ctx.user_id,
            decided_at=now,
            reason=reason,
            justification=justification,
            override_previous_review=payload.override_previous_review,
            original_status=inspection.status,
            original_reviewer_id=inspection.reviewer_id,
        )
        write_metadata(inspection, metadata)
        inspection.approver_id = ctx.user_id
        if decision == "approve":
            inspection.status = InspectionStatus.complete.value
            inspection.approved_date = now
            inspection.completed_date = now
        else:
            inspection.status = InspectionStatus.rejected.value
            inspection.completed_date = None
        result = _finish(
            db,
            ctx,
            meta,
            inspection,
            action=action,
            old_values=old_values,
            event_type="inspection_overridden",
            config=config,
            details={"decision": decision, "reason": reason, "original_status": old_values["status"]},
            priority="high",
        )
    logger.info("Inspection %s overridden to %s", inspection_id, result.status)
    return result


def list_for_review(
    db: Session,
    ctx: AuthContext,
    *,
    page: int = 1,
    limit: int = 10,
    status: str | None = None,
    inspection_type: str | None = None,
    priority: str | None = None,
) -> tuple[list[Inspection], int]:
    config = config_service.get_config(db, ctx.tenant_id)
    role = role_service.resolve_role(db, ctx.tenant_id, ctx.user_id)
    role_service.require(role_service.can_review(role, config), "You do not have permission to review inspections")
    statuses = [status] if status in REVIEWABLE_STATUSES else list(REVIEWABLE_STATUSES)
    query = inspection_service.base_query(db, ctx.tenant_id).filter(Inspection.status.in_(statuses))
    if not config.allow_self_review:
        query = query.filter(Inspection.inspector_id != ctx.user_id)
    if inspection_type:
        query = query.filter(Inspection.type == inspection_type)
    if priority:
        query = query.filter(Inspection.workflow_metadata["priority"].as_string() == priority)
    query = query.order_by(Inspection.has_critical_issues.desc(), Inspection.created_at.asc(), Inspection.id.asc())
    return inspection_service.paginate(query, page, limit)


def _final_approval_query(db: Session, tenant_id: str):
    return inspection_service.base_query(db, tenant_id).filter(
        Inspection.status == InspectionStatus.approved.value,
        Inspection.completed_date.is_(None),
    )


def _require_final_approver(db: Session, ctx: AuthContext) -> TenantInspectionConfig:
    config = config_service.get_config(db, ctx.tenant_id)
    role = role_service.resolve_role(db, ctx.tenant_id, ctx.user_id)
    role_service.require(
        role_service.is_final_approver(role, config) or role_service.can_override(role),
        "You do not have permission to view the final approval queue",
    )
    return config


def list_for_final_approval(
    db: Session,
    ctx: AuthContext,
    *,
    page: int = 1,
    limit: int = 10,
    inspection_type: str | None = None,
    priority: str | None = None,
    has_critical_issues: bool | None = None,
) -> tuple[list[Inspection], int]:
    _require_final_approver(db, ctx)
    query = _final_approval_query(db, ctx.tenant_id)
    if inspection_type:
        query = query.filter(Inspection.type == inspection_type)
    if priority:
        query = query.filter(Inspection.workflow_metadata["priority"].as_string() == priority)
    if has_critical_issues is not None:
        query = query.filter(Inspection.has_critical_issues.is_(has_critical_issues))
    query = query.order_by(Inspection.has_critical_issues.desc(), Inspection.reviewed_date.asc(), Inspection.id.asc())
    return inspection_service.paginate(query, page, limit)


def approval_analytics(
    db: Session,
    ctx: AuthContext,
    *,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> dict[str, Any]:
    _require_final_approver(db, ctx)
    query = db.query(Inspection).filter(Inspection.tenant_id == ctx.tenant_id, Inspection.is_deleted.is_(False))
    if start_date:
        query = query.filter(Inspection.created_at >= start_date)
    if end_date:
        query = query.filter(Inspection.created_at <= end_date)
    inspections = query.all()

    total = len(inspections)
    completed = [item for item in inspections if item.status == InspectionStatus.complete.value]
    by_type: dict[str, int] = {}
    overridden = 0
    approval_hours: list[float] = []
    for item in inspections:
        by_type[item.type] = by_type.get(item.type, 0) + 1
        decision = read_metadata(item).final_decision
        if isinstance(decision, OverrideDecision):
            overridden += 1
    for item in completed:
        if item.reviewed_date and item.completed_date:
            approval_hours.append((item.completed_date - item.reviewed_date).total_seconds() / 3600)

    return {
        "total_inspections": total,
        "completed_inspections": len(completed),
        "pending_approval": sum(
            1
            for item in inspections
            if item.status == InspectionStatus.approved.value and item.completed_date is None
        ),
        "critical_issues": sum(1 for item in inspections if item.has_critical_issues),
        "overridden_decisions": overridden,
        "completion_rate": round(len(completed) / total * 100) if total else 0,
        "inspections_by_type": by_type,
        "average_approval_time_hours": round(sum(approval_hours) / len(approval_hours), 2) if approval_hours else 0.0,
        "start_date": start_date,
        "end_date": end_date,
    }


def approval_queue_summary(db: Session, ctx: AuthContext) -> dict[str, Any]:
    _require_final_approver(db, ctx)
    pending = _final_approval_query(db, ctx.tenant_id).all()
    return {
        "total_pending_approval": len(pending),
        "critical_issues": sum(1 for item in pending if item.has_critical_issues),
        "detailed_inspections": sum(1 for item in pending if item.type == InspectionType.detailed.value),
        "simple_inspections": sum(1 for item in pending if item.type == InspectionType.simple.value),
        "last_updated": datetime.utcnow(),
    }
