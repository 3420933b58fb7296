from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PaymentSubmission(BaseModel):
    """Payment details a member sends with a subscription request."""

    model_config = ConfigDict(extra="forbid")

    payment_method: Literal["cash", "gcash", "bank"]
    reference_number: str | None = Field(None, max_length=100)
    proof_ref: str | None = None

    @field_validator("payment_method", mode="before")
    @classmethod
    def _lower_method(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("reference_number")
    @classmethod
    def _blank_reference(cls, value):
        if value is None:
            return None
        return value.strip() or None

    @model_validator(mode="after")
    def _gcash_needs_reference(self):
        if self.payment_method == "gcash" and not self.reference_number:
            raise ValueError("Reference number is required for GCash payments")
        return self

    @property
    def needs_proof(self) -> bool:
        return self.payment_method != "cash"


class PaymentReject(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: str | None = Field(None, max_length=500)


class PaymentResponse(BaseModel):
    id: int
    subscription_id: int
    user_id: int
    amount: Decimal
    payment_method: str
    reference_number: str | None
    payment_proof: str | None
    status: str
    verified_by: int | None
    verified_at: datetime | None
    rejection_reason: str | None
    payment_date: datetime
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
