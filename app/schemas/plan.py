from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class PlanBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    duration_months: int = Field(..., ge=1, le=36)
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    features: list[str] = Field(default_factory=list)


class PlanCreate(PlanBase):
    model_config = ConfigDict(extra="forbid")


class PlanUpdate(PlanBase):
    model_config = ConfigDict(extra="forbid")


class PlanResponse(PlanBase):
    id: int
    created_by: int | None
    deleted_at: datetime | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
