from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, StrictBool


class InspectionConfigBase(BaseModel):
    can_inspect: List[str]
    can_review: List[str]
    final_approver: str
    allow_self_review: StrictBool
    require_client_signoff: StrictBool
    require_photos: StrictBool
    require_signature: StrictBool
    use_detailed_inspections: StrictBool


class InspectionConfigUpdate(InspectionConfigBase):
    pass


class InspectionConfigRead(InspectionConfigBase):
    class Config:
        from_attributes = True


class QualityRoleAssign(BaseModel):
    user_id: str
    role: str


class QualityTeamMember(BaseModel):
    staff_member_id: str
    user_id: str
    name: str
    email: str
    main_role: str
    quality_role: str | None = None
    quality_assigned_at: datetime | None = None
    quality_permissions: dict[str, bool] | None = None
    is_active: bool = True
