from __future__ import annotations

from datetime import datetime
from typing import Any, List, Literal

from pydantic import BaseModel, Field

from app.schemas.auth import UserSummary


class ClientInspectionRead(BaseModel):
    """Restricted inspection view for the external client; no checklist or photo URLs."""

    id: int
    type: str
    status: str
    location: str
    inspection_category: str | None = None
    overall_rating: int | None = None
    pass_rate: int | None = None
    has_critical_issues: bool
    inspection_date: datetime | None = None
    completed_date: datetime | None = None
    project_id: str
    project_name: str | None = None
    inspector: UserSummary | None = None
    reviewer: UserSummary | None = None
    approver: UserSummary | None = None
    summary: str
    client_feedback: str | None = None
    client_rating: int | None = None


class ClientInspectionDetail(ClientInspectionRead):
    passed_items: int
    failed_items: int
    total_items: int
    improvement_suggestions: str | None = None
    client_approved: bool | None = None
    client_approved_at: datetime | None = None
    client_review_status: str | None = None
    requires_rework: bool = False
    has_photos: bool
    photo_count: int
    created_at: datetime
    client_reviewed_at: datetime | None = None


class ClientReviewRequest(BaseModel):
    feedback: str = ""
    rating: int | None = Field(default=None, ge=1, le=5)
    concerns: List[str] = Field(default_factory=list)
    requested_changes: List[str] = Field(default_factory=list)


class ClientApprovalRequest(BaseModel):
    approved: bool
    client_signature: str | None = None
    notes: str | None = None
    satisfaction_rating: int | None = Field(default=None, ge=1, le=5)


class ClientRejectionRequest(BaseModel):
    reason: str = ""
    requested_changes: List[str] = Field(default_factory=list)
    priority: Literal["low", "medium", "high"] = "medium"
    scheduled_revisit_date: datetime | None = None


class ClientInspectionSummary(BaseModel):
    total_inspections: int
    completed_inspections: int
    client_approved_count: int
    critical_issues_count: int
    approval_rate: int
    average_client_rating: float
    inspections_by_status: dict[str, int]
    recent_activity: List[dict[str, Any]]
    project_filter: str
