"""
Typed view of the JSON ``metadata`` column on inspections.

Each transition owns one optional section, so contextual data attached by
a reviewer, final approver or external client is validated on read and
write instead of living in an open key/value map. Bump ``schema_version``
when a section changes shape.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, Field

from app.models.entities import Inspection

METADATA_SCHEMA_VERSION = 1


class SubmissionRecord(BaseModel):
    submitted_at: datetime
    submitted_by: str


class AssignmentRecord(BaseModel):
    reviewer_id: str
    assigned_by: str
    assigned_at: datetime


class ApprovedReview(BaseModel):
    action: Literal["approved"] = "approved"
    reviewer_id: str
    reviewed_at: datetime
    notes: str = ""
    comments: str = ""


class RejectedReview(BaseModel):
    action: Literal["rejected"] = "rejected"
    reviewer_id: str
    reviewed_at: datetime
    reason: str
    feedback: str
    required_changes: List[str] = Field(default_factory=list)


class RevisionRequested(BaseModel):
    action: Literal["revision_requested"] = "revision_requested"
    reviewer_id: str
    reviewed_at: datetime
    feedback: str
    required_changes: List[str]
    priority: str = "medium"


ReviewRecord = Annotated[
    Union[ApprovedReview, RejectedReview, RevisionRequested],
    Field(discriminator="action"),
]


class FinalApproval(BaseModel):
    action: Literal["approved"] = "approved"
    approver_id: str
    decided_at: datetime
    notes: str = ""
    client_notification_required: bool = False
    scheduled_completion_date: datetime | None = None


class OverrideDecision(BaseModel):
    action: Literal["override_approved", "override_rejected"]
    approver_id: str
    decided_at: datetime
    reason: str
    justification: str
    override_previous_review: bool = False
    original_status: str
    original_reviewer_id: str | None = None


FinalDecision = Annotated[Union[FinalApproval, OverrideDecision], Field(discriminator="action")]


class ClientFeedback(BaseModel):
    review_status: Literal["reviewed", "approved", "pending_changes", "rejected"] | None = None
    feedback: str | None = None
    rating: int | None = None
    concerns: List[str] = Field(default_factory=list)
    requested_changes: List[str] = Field(default_factory=list)
    reviewed_at: datetime | None = None
    approved: bool | None = None
    signature: str | None = None
    approval_notes: str | None = None
    satisfaction_rating: int | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    rejection_priority: str | None = None
    scheduled_revisit_date: datetime | None = None
    rejected_at: datetime | None = None
    requires_rework: bool = False


class InspectionMetadata(BaseModel):
    schema_version: int = METADATA_SCHEMA_VERSION
    notes: str = ""
    remarks: str = ""
    improvement_suggestions: str = ""
    priority: str | None = None
    submission: SubmissionRecord | None = None
    assignment: AssignmentRecord | None = None
    review: ReviewRecord | None = None
    review_history: List[ReviewRecord] = Field(default_factory=list)
    revision_count: int = 0
    final_decision: FinalDecision | None = None
    client: ClientFeedback | None = None


def read_metadata(inspection: Inspection) -> InspectionMetadata:
    return InspectionMetadata.model_validate(inspection.workflow_metadata or {})


def write_metadata(inspection: Inspection, metadata: InspectionMetadata) -> None:
    # Assign a fresh dict so the JSON column is flagged dirty.
    inspection.workflow_metadata = metadata.model_dump(mode="json")
