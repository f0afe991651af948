from __future__ import annotations

import pytest

from app.core.context import RequestMeta
from app.core.errors import (
    ConflictError,
    InvalidInputError,
    InvalidStateTransitionError,
    NotFoundError,
    PermissionDeniedError,
)
from app.models.entities import (
    AuditLogEntry,
    Inspection,
    InspectionStatus,
    NotificationOutbox,
    TenantInspectionConfig,
    User,
)
from app.schemas.client import ClientApprovalRequest, ClientRejectionRequest, ClientReviewRequest
from app.schemas.inspection import (
    DetailedInspectionCreate,
    FinalApprovalRequest,
    InspectionUpdate,
    OverrideRequest,
    ReviewApprove,
    ReviewReject,
    RevisionRequest,
    SimpleInspectionCreate,
)
from app.schemas.workflow import OverrideDecision, read_metadata
from app.services import client_review as client_service
from app.services import inspections as inspection_service
from app.services import workflow as workflow_service

META = RequestMeta(ip_address="127.0.0.1", user_agent="pytest")
TENANT_ID = "demo-tenant"


def _simple_payload(**overrides) -> SimpleInspectionCreate:
    data = {
        "project_id": "demo-project",
        "external_client_id": "demo-client",
        "location": "Level 3 bathroom",
        "overall_rating": 4,
        "remarks": "Grout finish acceptable",
    }
    data.update(overrides)
    return SimpleInspectionCreate(**data)


def _detailed_payload(**overrides) -> DetailedInspectionCreate:
    data = {
        "project_id": "demo-project",
        "external_client_id": "demo-client",
        "location": "Lobby ceiling",
        "checklist_items": [
            {"name": "Panels aligned", "status": "pass"},
            {"name": "Fire rating labels", "status": "pass", "critical": True},
        ],
        "photos": ["https://files.example.com/lobby-1.jpg"],
        "signature": "data:image/png;base64,AAAA",
    }
    data.update(overrides)
    return DetailedInspectionCreate(**data)


def _set_config(db, **values) -> None:
    config = db.get(TenantInspectionConfig, TENANT_ID)
    for key, value in values.items():
        setattr(config, key, value)
    db.commit()


def _user_id(db, email: str) -> str:
    return db.query(User).filter(User.email == email).one().id


def _submitted(db, ctx_for, inspector: str = "inspector@example.com", **overrides) -> Inspection:
    ctx = ctx_for(inspector)
    inspection = inspection_service.create_simple_inspection(db, ctx, META, _simple_payload(**overrides))
    return workflow_service.submit_inspection(db, ctx, META, inspection.id)


def _approved(db, ctx_for, **overrides) -> Inspection:
    inspection = _submitted(db, ctx_for, **overrides)
    return workflow_service.approve_inspection(
        db, ctx_for("leader@example.com"), META, inspection.id, ReviewApprove(notes="Looks good")
    )


def _completed(db, ctx_for, **overrides) -> Inspection:
    inspection = _approved(db, ctx_for, **overrides)
    return workflow_service.final_approve(
        db, ctx_for("ops@example.com"), META, inspection.id, FinalApprovalRequest(notes="Signed off")
    )


def _failed_audits(db, action: str) -> list[AuditLogEntry]:
    return (
        db.query(AuditLogEntry)
        .filter(AuditLogEntry.action == action, AuditLogEntry.success.is_(False))
        .all()
    )


def test_low_rated_simple_inspection_is_critical_draft(db, ctx_for):
    ctx = ctx_for("inspector@example.com")
    inspection = inspection_service.create_simple_inspection(
        db, ctx, META, _simple_payload(overall_rating=1, remarks="cracked tile")
    )

    assert inspection.status == InspectionStatus.draft.value
    assert inspection.has_critical_issues is True
    assert inspection.inspector_id == ctx.user_id
    assert inspection.completed_date is None
    assert read_metadata(inspection).remarks == "cracked tile"


@pytest.mark.parametrize("rating,critical", [(1, True), (2, True), (3, False), (5, False)])
def test_simple_rating_threshold(db, ctx_for, rating, critical):
    inspection = inspection_service.create_simple_inspection(
        db, ctx_for("inspector@example.com"), META, _simple_payload(overall_rating=rating)
    )
    assert inspection.has_critical_issues is critical


def test_detailed_critical_flag_follows_failed_critical_items(db, ctx_for):
    ctx = ctx_for("inspector@example.com")
    minor_fail = inspection_service.create_detailed_inspection(
        db,
        ctx,
        META,
        _detailed_payload(
            checklist_items=[
                {"name": "Paint touch-ups", "status": "fail"},
                {"name": "Fire rating labels", "status": "pass", "critical": True},
            ]
        ),
    )
    critical_fail = inspection_service.create_detailed_inspection(
        db,
        ctx,
        META,
        _detailed_payload(
            checklist_items=[
                {"name": "Paint touch-ups", "status": "pass"},
                {"name": "Fire rating labels", "status": "fail", "critical": True},
            ]
        ),
    )

    assert minor_fail.has_critical_issues is False
    assert minor_fail.failed_items == 1
    assert minor_fail.pass_rate == 50
    assert critical_fail.has_critical_issues is True


def test_submit_detailed_without_photos_fails_and_stays_draft(db, ctx_for):
    ctx = ctx_for("inspector@example.com")
    inspection = inspection_service.create_detailed_inspection(db, ctx, META, _detailed_payload(photos=[]))

    with pytest.raises(InvalidInputError):
        workflow_service.submit_inspection(db, ctx, META, inspection.id)

    reloaded = inspection_service.get_inspection(db, TENANT_ID, inspection.id)
    assert reloaded.status == InspectionStatus.draft.value
    failures = _failed_audits(db, "quality_inspection_submitted")
    assert len(failures) == 1
    assert failures[0].error_code == "invalid_input"


def test_submit_detailed_without_signature_fails_and_stays_draft(db, ctx_for):
    _set_config(db, require_photos=False, require_signature=True)
    ctx = ctx_for("inspector@example.com")
    inspection = inspection_service.create_detailed_inspection(
        db, ctx, META, _detailed_payload(photos=[], signature=None)
    )

    with pytest.raises(InvalidInputError, match="Signature is required"):
        workflow_service.submit_inspection(db, ctx, META, inspection.id)

    reloaded = inspection_service.get_inspection(db, TENANT_ID, inspection.id)
    assert reloaded.status == InspectionStatus.draft.value
    assert read_metadata(reloaded).submission is None


def test_submit_without_photos_allowed_when_policy_disabled(db, ctx_for):
    _set_config(db, require_photos=False)
    ctx = ctx_for("inspector@example.com")
    inspection = inspection_service.create_detailed_inspection(db, ctx, META, _detailed_payload(photos=[]))

    submitted = workflow_service.submit_inspection(db, ctx, META, inspection.id)
    assert submitted.status == InspectionStatus.pending.value
    assert read_metadata(submitted).submission.submitted_by == ctx.user_id


def test_reviewer_approval_sets_reviewed_date_and_notifies_final_approver(db, ctx_for):
    _set_config(db, allow_self_review=False)
    inspection = _submitted(db, ctx_for)
    leader = ctx_for("leader@example.com")

    approved = workflow_service.approve_inspection(db, leader, META, inspection.id, ReviewApprove(notes="OK"))

    assert approved.status == InspectionStatus.approved.value
    assert approved.reviewed_date is not None
    assert approved.reviewer_id == leader.user_id
    assert approved.completed_date is None
    outbox = (
        db.query(NotificationOutbox)
        .filter(
            NotificationOutbox.event_type == "inspection_approved",
            NotificationOutbox.reference_id == str(inspection.id),
        )
        .one()
    )
    assert _user_id(db, "ops@example.com") in outbox.recipient_ids
    assert approved.inspector_id in outbox.recipient_ids


def test_override_approve_records_original_status(db, ctx_for):
    inspection = _submitted(db, ctx_for)
    ops = ctx_for("ops@example.com")

    overridden = workflow_service.override_decision(
        db,
        ops,
        META,
        inspection.id,
        OverrideRequest(decision="approve", reason="Site visit confirmed", justification="Client deadline"),
    )

    assert overridden.status == InspectionStatus.complete.value
    assert overridden.completed_date is not None
    assert overridden.approver_id == ops.user_id
    decision = read_metadata(overridden).final_decision
    assert isinstance(decision, OverrideDecision)
    assert decision.action == "override_approved"
    assert decision.original_status == InspectionStatus.pending.value


def test_override_reject_clears_completion(db, ctx_for):
    inspection = _completed(db, ctx_for)

    overridden = workflow_service.override_decision(
        db,
        ctx_for("ops@example.com"),
        META,
        inspection.id,
        OverrideRequest(decision="reject", reason="Defect found later", justification="Water damage"),
    )

    assert overridden.status == InspectionStatus.rejected.value
    assert overridden.completed_date is None
    assert read_metadata(overridden).final_decision.action == "override_rejected"


def test_override_requires_reason_and_known_decision(db, ctx_for):
    inspection = _submitted(db, ctx_for)
    ops = ctx_for("ops@example.com")

    with pytest.raises(InvalidInputError):
        workflow_service.override_decision(
            db, ops, META, inspection.id, OverrideRequest(decision="approve", reason="", justification="x")
        )
    with pytest.raises(InvalidInputError):
        workflow_service.override_decision(
            db, ops, META, inspection.id, OverrideRequest(decision="maybe", reason="x", justification="y")
        )


def test_override_refused_for_reviewer_role(db, ctx_for):
    inspection = _submitted(db, ctx_for)

    with pytest.raises(PermissionDeniedError):
        workflow_service.override_decision(
            db,
            ctx_for("leader@example.com"),
            META,
            inspection.id,
            OverrideRequest(decision="approve", reason="x", justification="y"),
        )
    failures = _failed_audits(db, "quality_inspection_overridden")
    assert failures and failures[0].severity == "high"


def test_client_rejection_flags_rework_without_changing_status(db, ctx_for):
    inspection = _completed(db, ctx_for)
    client_ctx = ctx_for("client@example.com")

    result = client_service.reject_inspection(
        db,
        client_ctx,
        META,
        inspection.id,
        ClientRejectionRequest(reason="Grout colour wrong", requested_changes=["Regrout east wall"]),
    )

    assert result.status == InspectionStatus.complete.value
    client = read_metadata(result).client
    assert client.requires_rework is True
    assert client.review_status == "rejected"
    assert client.requested_changes == ["Regrout east wall"]


@pytest.mark.parametrize(
    "operation",
    [
        lambda db, ctx, inspection_id: workflow_service.approve_inspection(
            db, ctx, META, inspection_id, ReviewApprove()
        ),
        lambda db, ctx, inspection_id: workflow_service.reject_inspection(
            db, ctx, META, inspection_id, ReviewReject(reason="Incomplete", feedback="Add photos")
        ),
        lambda db, ctx, inspection_id: workflow_service.request_revision(
            db, ctx, META, inspection_id, RevisionRequest(feedback="Recheck", required_changes=["Measure gaps"])
        ),
    ],
    ids=["approve", "reject", "request_revision"],
)
def test_self_review_refused_when_disallowed(db, ctx_for, operation):
    _set_config(db, allow_self_review=False)
    inspection = _submitted(db, ctx_for, inspector="leader@example.com")

    with pytest.raises(PermissionDeniedError):
        operation(db, ctx_for("leader@example.com"), inspection.id)

    reloaded = inspection_service.get_inspection(db, TENANT_ID, inspection.id)
    assert reloaded.status == InspectionStatus.pending.value


def test_self_review_allowed_by_default(db, ctx_for):
    inspection = _submitted(db, ctx_for, inspector="leader@example.com")
    approved = workflow_service.approve_inspection(db, ctx_for("leader@example.com"), META, inspection.id, ReviewApprove())
    assert approved.status == InspectionStatus.approved.value


def test_reviewer_permission_required(db, ctx_for):
    inspection = _submitted(db, ctx_for)
    with pytest.raises(PermissionDeniedError):
        workflow_service.approve_inspection(db, ctx_for("inspector@example.com"), META, inspection.id, ReviewApprove())


def test_review_transitions_refused_outside_review_states(db, ctx_for):
    ctx = ctx_for("inspector@example.com")
    draft = inspection_service.create_simple_inspection(db, ctx, META, _simple_payload())
    leader = ctx_for("leader@example.com")
    ops = ctx_for("ops@example.com")

    with pytest.raises(InvalidStateTransitionError):
        workflow_service.approve_inspection(db, leader, META, draft.id, ReviewApprove())
    with pytest.raises(InvalidStateTransitionError):
        workflow_service.final_approve(db, ops, META, draft.id, FinalApprovalRequest())
    with pytest.raises(InvalidStateTransitionError):
        workflow_service.override_decision(
            db, ops, META, draft.id, OverrideRequest(decision="approve", reason="x", justification="y")
        )

    pending = workflow_service.submit_inspection(db, ctx, META, draft.id)
    with pytest.raises(InvalidStateTransitionError):
        workflow_service.submit_inspection(db, ctx, META, pending.id)
    with pytest.raises(InvalidStateTransitionError):
        workflow_service.final_approve(db, ops, META, pending.id, FinalApprovalRequest())


def test_reject_returns_to_draft_and_requires_reason(db, ctx_for):
    inspection = _submitted(db, ctx_for)
    leader = ctx_for("leader@example.com")

    with pytest.raises(InvalidInputError):
        workflow_service.reject_inspection(db, leader, META, inspection.id, ReviewReject(reason="", feedback=""))
    assert _failed_audits(db, "quality_inspection_rejected")[0].severity == "medium"

    rejected = workflow_service.reject_inspection(
        db,
        leader,
        META,
        inspection.id,
        ReviewReject(reason="Missing areas", feedback="Cover the east wing", required_changes=["East wing"]),
    )
    assert rejected.status == InspectionStatus.draft.value
    review = read_metadata(rejected).review
    assert review.action == "rejected"
    assert review.reason == "Missing areas"

    resubmitted = workflow_service.submit_inspection(db, ctx_for("inspector@example.com"), META, inspection.id)
    assert resubmitted.status == InspectionStatus.pending.value


def test_revision_request_counts_revisions(db, ctx_for):
    inspection = _submitted(db, ctx_for)
    leader = ctx_for("leader@example.com")

    with pytest.raises(InvalidInputError):
        workflow_service.request_revision(
            db, leader, META, inspection.id, RevisionRequest(feedback="Recheck", required_changes=[" "])
        )

    revised = workflow_service.request_revision(
        db,
        leader,
        META,
        inspection.id,
        RevisionRequest(feedback="Recheck", required_changes=["Measure tile gaps"], priority="high"),
    )
    metadata = read_metadata(revised)
    assert revised.status == InspectionStatus.draft.value
    assert metadata.revision_count == 1
    assert [entry.action for entry in metadata.review_history] == ["revision_requested"]


def test_assign_reviewer_moves_to_under_review(db, ctx_for):
    inspection = _submitted(db, ctx_for)
    leader = ctx_for("leader@example.com")
    pm_id = _user_id(db, "pm@example.com")

    assigned = workflow_service.assign_reviewer(db, leader, META, inspection.id, pm_id)

    assert assigned.status == InspectionStatus.under_review.value
    assert assigned.reviewer_id == pm_id
    outbox = db.query(NotificationOutbox).filter(NotificationOutbox.event_type == "inspection_assigned").one()
    assert outbox.recipient_ids == [pm_id]

    approved = workflow_service.approve_inspection(db, ctx_for("pm@example.com"), META, inspection.id, ReviewApprove())
    assert approved.status == InspectionStatus.approved.value


def test_assign_reviewer_validates_target(db, ctx_for):
    inspection = _submitted(db, ctx_for)
    leader = ctx_for("leader@example.com")

    with pytest.raises(InvalidInputError):
        workflow_service.assign_reviewer(db, leader, META, inspection.id, _user_id(db, "crew@example.com"))
    with pytest.raises(NotFoundError):
        workflow_service.assign_reviewer(db, leader, META, inspection.id, "missing-user")


def test_assign_reviewer_only_from_pending(db, ctx_for):
    inspection = _submitted(db, ctx_for)
    leader = ctx_for("leader@example.com")
    pm_id = _user_id(db, "pm@example.com")
    workflow_service.assign_reviewer(db, leader, META, inspection.id, pm_id)

    with pytest.raises(InvalidStateTransitionError):
        workflow_service.assign_reviewer(db, leader, META, inspection.id, _user_id(db, "leader@example.com"))

    reloaded = inspection_service.get_inspection(db, TENANT_ID, inspection.id)
    assert reloaded.status == InspectionStatus.under_review.value
    assert reloaded.reviewer_id == pm_id
    assert _failed_audits(db, "quality_inspection_assigned")[0].error_code == "invalid_state_transition"


def test_assign_refuses_inspector_as_reviewer_without_self_review(db, ctx_for):
    _set_config(db, allow_self_review=False)
    inspection = _submitted(db, ctx_for, inspector="leader@example.com")
    leader_id = _user_id(db, "leader@example.com")

    with pytest.raises(InvalidInputError):
        workflow_service.assign_reviewer(db, ctx_for("pm@example.com"), META, inspection.id, leader_id)

    reloaded = inspection_service.get_inspection(db, TENANT_ID, inspection.id)
    assert reloaded.status == InspectionStatus.pending.value
    assert reloaded.reviewer_id is None


def test_assign_inspector_as_reviewer_when_self_review_allowed(db, ctx_for):
    inspection = _submitted(db, ctx_for, inspector="leader@example.com")
    leader_id = _user_id(db, "leader@example.com")

    assigned = workflow_service.assign_reviewer(db, ctx_for("pm@example.com"), META, inspection.id, leader_id)

    assert assigned.reviewer_id == leader_id


def test_final_approval_completes_once(db, ctx_for):
    inspection = _completed(db, ctx_for)

    assert inspection.status == InspectionStatus.complete.value
    assert inspection.completed_date is not None
    assert inspection.approved_date is not None
    assert read_metadata(inspection).final_decision.action == "approved"

    with pytest.raises(InvalidStateTransitionError):
        workflow_service.final_approve(db, ctx_for("ops@example.com"), META, inspection.id, FinalApprovalRequest())


def test_final_approval_restricted_to_designated_role(db, ctx_for):
    inspection = _approved(db, ctx_for)
    with pytest.raises(PermissionDeniedError):
        workflow_service.final_approve(db, ctx_for("pm@example.com"), META, inspection.id, FinalApprovalRequest())


def test_stale_version_is_a_conflict(db, ctx_for):
    inspection = _submitted(db, ctx_for)
    leader = ctx_for("leader@example.com")
    current_version = inspection.version

    with pytest.raises(ConflictError):
        workflow_service.approve_inspection(
            db, leader, META, inspection.id, ReviewApprove(), expected_version=current_version - 1
        )
    assert _failed_audits(db, "quality_inspection_approved")[0].error_code == "conflict"

    approved = workflow_service.approve_inspection(
        db, leader, META, inspection.id, ReviewApprove(), expected_version=current_version
    )
    assert approved.version == current_version + 1


def test_create_requires_inspect_permission(db, ctx_for):
    with pytest.raises(PermissionDeniedError):
        inspection_service.create_simple_inspection(db, ctx_for("crew@example.com"), META, _simple_payload())

    failure = _failed_audits(db, "quality_inspection_created")[0]
    assert failure.severity == "high"
    assert failure.error_code == "permission_denied"


def test_create_rejects_project_of_other_client(db, ctx_for):
    with pytest.raises(InvalidInputError):
        inspection_service.create_simple_inspection(
            db, ctx_for("inspector@example.com"), META, _simple_payload(project_id="other-project")
        )
    with pytest.raises(NotFoundError):
        inspection_service.create_simple_inspection(
            db, ctx_for("inspector@example.com"), META, _simple_payload(project_id="missing-project")
        )


def test_editing_rejected_inspection_returns_it_to_draft(db, ctx_for):
    inspection = _submitted(db, ctx_for)
    workflow_service.override_decision(
        db,
        ctx_for("ops@example.com"),
        META,
        inspection.id,
        OverrideRequest(decision="reject", reason="Wrong scope", justification="Redo"),
    )
    ctx = ctx_for("inspector@example.com")

    updated = inspection_service.update_inspection(
        db, ctx, META, inspection.id, InspectionUpdate(overall_rating=2, remarks="Scope corrected")
    )

    assert updated.status == InspectionStatus.draft.value
    assert updated.has_critical_issues is True
    assert read_metadata(updated).remarks == "Scope corrected"


def test_only_own_drafts_are_editable_or_deletable(db, ctx_for):
    ctx = ctx_for("inspector@example.com")
    draft = inspection_service.create_simple_inspection(db, ctx, META, _simple_payload())

    with pytest.raises(PermissionDeniedError):
        inspection_service.update_inspection(
            db, ctx_for("leader@example.com"), META, draft.id, InspectionUpdate(location="Roof")
        )

    inspection_service.delete_inspection(db, ctx, META, draft.id)
    with pytest.raises(NotFoundError):
        inspection_service.get_inspection(db, TENANT_ID, draft.id)

    pending = _submitted(db, ctx_for)
    with pytest.raises(InvalidInputError):
        inspection_service.delete_inspection(db, ctx, META, pending.id)


def test_review_queue_hides_own_inspections_without_self_review(db, ctx_for):
    _set_config(db, allow_self_review=False)
    own = _submitted(db, ctx_for, inspector="leader@example.com")
    other = _submitted(db, ctx_for, overall_rating=1)

    items, total = workflow_service.list_for_review(db, ctx_for("leader@example.com"))

    ids = [item.id for item in items]
    assert total == 1
    assert ids == [other.id]
    assert own.id not in ids


def test_final_approval_queue_lists_critical_first(db, ctx_for):
    routine = _approved(db, ctx_for)
    critical = _approved(db, ctx_for, overall_rating=2)
    ops = ctx_for("ops@example.com")

    items, total = workflow_service.list_for_final_approval(db, ops)
    assert total == 2
    assert [item.id for item in items] == [critical.id, routine.id]

    summary = workflow_service.approval_queue_summary(db, ops)
    assert summary["total_pending_approval"] == 2
    assert summary["critical_issues"] == 1
    assert summary["simple_inspections"] == 2

    with pytest.raises(PermissionDeniedError):
        workflow_service.list_for_final_approval(db, ctx_for("leader@example.com"))


def test_approval_analytics_counts_outcomes(db, ctx_for):
    _completed(db, ctx_for)
    overridden = _submitted(db, ctx_for)
    ops = ctx_for("ops@example.com")
    workflow_service.override_decision(
        db, ops, META, overridden.id, OverrideRequest(decision="approve", reason="x", justification="y")
    )
    _approved(db, ctx_for)

    analytics = workflow_service.approval_analytics(db, ops)

    assert analytics["total_inspections"] == 3
    assert analytics["completed_inspections"] == 2
    assert analytics["pending_approval"] == 1
    assert analytics["overridden_decisions"] == 1
    assert analytics["completion_rate"] == 67
    assert analytics["inspections_by_type"] == {"simple": 3}


def test_completed_date_set_only_when_complete(db, ctx_for):
    inspection = _submitted(db, ctx_for)
    assert inspection.completed_date is None
    approved = workflow_service.approve_inspection(db, ctx_for("leader@example.com"), META, inspection.id, ReviewApprove())
    assert approved.completed_date is None
    completed = workflow_service.final_approve(db, ctx_for("ops@example.com"), META, inspection.id, FinalApprovalRequest())
    assert completed.status == InspectionStatus.complete.value
    assert completed.completed_date is not None


def test_client_sees_only_own_finished_inspections(db, ctx_for):
    pending = _submitted(db, ctx_for)
    completed = _completed(db, ctx_for)
    client_ctx = ctx_for("client@example.com")

    with pytest.raises(NotFoundError):
        client_service.get_client_inspection(db, client_ctx, pending.id)
    with pytest.raises(NotFoundError):
        client_service.get_client_inspection(db, ctx_for("other-client@example.com"), completed.id)

    items, total = client_service.list_client_inspections(db, client_ctx)
    assert total == 1
    view = client_service.to_client_view(items[0], detail=True)
    assert "checklist_items" not in view
    assert "photos" not in view
    assert view["photo_count"] == 0


def test_client_approval_requires_signature_when_signoff_enabled(db, ctx_for):
    _set_config(db, require_client_signoff=True)
    inspection = _completed(db, ctx_for)
    client_ctx = ctx_for("client@example.com")

    with pytest.raises(InvalidInputError):
        client_service.approve_inspection(db, client_ctx, META, inspection.id, ClientApprovalRequest(approved=True))

    approved = client_service.approve_inspection(
        db,
        client_ctx,
        META,
        inspection.id,
        ClientApprovalRequest(approved=True, client_signature="J. Client", satisfaction_rating=5),
    )
    client = read_metadata(approved).client
    assert client.approved is True
    assert client.review_status == "approved"


def test_client_review_feeds_summary(db, ctx_for):
    inspection = _completed(db, ctx_for)
    client_ctx = ctx_for("client@example.com")

    client_service.review_inspection(
        db, client_ctx, META, inspection.id, ClientReviewRequest(feedback="Tidy work", rating=4)
    )
    summary = client_service.client_summary(db, client_ctx)

    assert summary["total_inspections"] == 1
    assert summary["completed_inspections"] == 1
    assert summary["average_client_rating"] == 4.0
    assert summary["recent_activity"][0]["client_review_status"] == "reviewed"
    outbox = db.query(NotificationOutbox).filter(NotificationOutbox.event_type == "client_review_submitted").one()
    assert _user_id(db, "pm@example.com") in outbox.recipient_ids
    assert _user_id(db, "admin@example.com") in outbox.recipient_ids
