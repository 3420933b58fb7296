from datetime import datetime

from pydantic import BaseModel, EmailStr


class MemberResponse(BaseModel):
    id: int
    full_name: str
    email: EmailStr
    phone: str | None
    role: str
    is_verified: bool
    verified_at: datetime | None
    is_active: bool

    model_config = {"from_attributes": True}


class AdminLogResponse(BaseModel):
    id: int
    actor_id: int | None
    action_type: str
    target_id: int | None
    description: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
