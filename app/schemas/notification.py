from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class NotificationRead(BaseModel):
    id: int
    event_type: str
    title: str
    body: str
    priority: str
    reference_type: str | None = None
    reference_id: str | None = None
    action_data: dict[str, Any] = Field(default_factory=dict)
    read_at: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True
