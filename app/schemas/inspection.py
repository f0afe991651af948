from __future__ import annotations

from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel, Field, model_validator

from app.schemas.auth import UserSummary
from app.schemas.workflow import InspectionMetadata


class ChecklistItem(BaseModel):
    name: str
    status: Literal["pass", "fail", "na", "pending"] = "pending"
    critical: bool = False
    notes: str | None = None


class InspectionCreateBase(BaseModel):
    project_id: str
    external_client_id: str
    location: str = Field(min_length=1)
    inspection_category: str | None = None
    notes: str | None = None
    priority: Literal["low", "medium", "high", "urgent"] | None = None


class DetailedInspectionCreate(InspectionCreateBase):
    checklist_items: List[ChecklistItem] = Field(default_factory=list)
    photos: List[str] = Field(default_factory=list)
    signature: str | None = None


class SimpleInspectionCreate(InspectionCreateBase):
    overall_rating: int = Field(ge=1, le=5)
    remarks: str
    improvement_suggestions: str | None = None

    @model_validator(mode="after")
    def validate_remarks(self) -> "SimpleInspectionCreate":
        if not (self.remarks or "").strip():
            raise ValueError("Remarks are required for simple inspections")
        return self


class InspectionUpdate(BaseModel):
    location: str | None = None
    inspection_category: str | None = None
    checklist_items: List[ChecklistItem] | None = None
    photos: List[str] | None = None
    signature: str | None = None
    notes: str | None = None
    overall_rating: int | None = Field(default=None, ge=1, le=5)
    remarks: str | None = None
    priority: Literal["low", "medium", "high", "urgent"] | None = None
    improvement_suggestions: str | None = None


class InspectionRead(BaseModel):
    id: int
    tenant_id: str
    project_id: str
    external_client_id: str
    inspector_id: str
    reviewer_id: str | None = None
    approver_id: str | None = None
    type: str
    status: str
    location: str
    inspection_category: str | None = None
    total_items: int
    passed_items: int
    failed_items: int
    pass_rate: int | None = None
    overall_rating: int | None = None
    has_photos: bool
    has_signature: bool
    has_critical_issues: bool
    checklist_items: List[ChecklistItem] = Field(default_factory=list)
    photos: List[str] = Field(default_factory=list)
    metadata: InspectionMetadata = Field(validation_alias="workflow_metadata")
    created_at: datetime
    inspection_date: datetime | None = None
    reviewed_date: datetime | None = None
    approved_date: datetime | None = None
    completed_date: datetime | None = None
    version: int
    inspector: UserSummary | None = None
    reviewer: UserSummary | None = None
    approver: UserSummary | None = None

    class Config:
        from_attributes = True


# Reviewer actions. Required-field checks happen in the workflow service so
# that a rejected attempt is still written to the audit log.
class ReviewApprove(BaseModel):
    notes: str | None = None
    review_comments: str | None = None


class ReviewReject(BaseModel):
    reason: str = ""
    feedback: str = ""
    required_changes: List[str] = Field(default_factory=list)


class RevisionRequest(BaseModel):
    feedback: str = ""
    required_changes: List[str] = Field(default_factory=list)
    priority: Literal["low", "medium", "high"] = "medium"


class ReviewerAssignment(BaseModel):
    reviewer_id: str


class FinalApprovalRequest(BaseModel):
    notes: str | None = None
    client_notification_required: bool = False
    scheduled_completion_date: datetime | None = None


class OverrideRequest(BaseModel):
    decision: str
    reason: str = ""
    justification: str = ""
    override_previous_review: bool = False


class ApprovalAnalytics(BaseModel):
    total_inspections: int
    completed_inspections: int
    pending_approval: int
    critical_issues: int
    overridden_decisions: int
    completion_rate: int
    inspections_by_type: dict[str, int]
    average_approval_time_hours: float
    start_date: datetime | None = None
    end_date: datetime | None = None


class ApprovalQueueSummary(BaseModel):
    total_pending_approval: int
    critical_issues: int
    detailed_inspections: int
    simple_inspections: int
    last_updated: datetime
