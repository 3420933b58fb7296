from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class SubscriptionCreate(BaseModel):
    """Staff-side request naming the member and the plan they buy."""

    model_config = ConfigDict(extra="forbid")

    user_id: int = Field(..., gt=0)
    plan_id: int = Field(..., gt=0)


class DeskSubscriptionCreate(SubscriptionCreate):
    """Staff-side request that records a cash payment awaiting verification."""

    reference_number: str | None = Field(None, max_length=100)


class SubscriptionResponse(BaseModel):
    id: int
    user_id: int
    plan_id: int
    start_date: date
    end_date: date
    status: str
    amount: Decimal
    duration_months: int
    verified_by: int | None
    verified_at: datetime | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
