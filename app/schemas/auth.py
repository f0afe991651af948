from __future__ import annotations

from pydantic import BaseModel, EmailStr


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserSummary(BaseModel):
    id: str
    email: EmailStr
    full_name: str

    class Config:
        from_attributes = True


class UserRead(UserSummary):
    role: str
    tenant_id: str | None = None
    external_client_id: str | None = None
