"""
Payment Schemas

Pydantic schemas for request validation and response serialization.

Format rules (code, phone, amount) are not enforced here: the service
runs them through the validation module so that every failure is
reported with its own error code.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from placement_api.modules.applications.models import ApplicationPaymentStatus, ApplicationStatus
from placement_api.modules.payments.models import PaymentStatus


class PaymentSubmitRequest(BaseModel):
    """Request body for POST /payments."""

    application_id: UUID
    transaction_code: str = Field(..., max_length=50, description="M-Pesa transaction code")
    phone_number: str = Field(..., max_length=30, description="Phone number that paid")
    amount: int | float | str = Field(..., description="Amount paid in KES")


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    application_id: UUID
    user_id: UUID
    amount: int
    transaction_code: str
    phone_number: str
    status: PaymentStatus
    warnings: list[str] | None = None
    verified_at: datetime | None = None
    verified_by: UUID | None = None
    verification_notes: str | None = None
    rejection_reason: str | None = None
    rejected_at: datetime | None = None
    rejected_by: UUID | None = None
    created_at: datetime


class PaymentSubmitResponse(BaseModel):
    """Created payment plus any non-blocking warnings for the applicant."""

    payment: PaymentResponse
    application_status: ApplicationStatus
    warnings: list[str] = Field(default_factory=list)
    message: str = "Payment submitted. An administrator will verify it shortly."


class ParseMessageRequest(BaseModel):
    message: str = Field(..., max_length=2000, description="Pasted M-Pesa confirmation SMS")


class ParseMessageResponse(BaseModel):
    """Fields found in the message; anything not found is null."""

    parsed: bool
    transaction_code: str | None = None
    amount: int | None = None
    phone_number: str | None = None
    sender_name: str | None = None
    timestamp: str | None = None


class PaymentStatusResponse(BaseModel):
    """Payment and application status snapshot for polling clients."""

    application_id: UUID
    application_status: ApplicationStatus
    payment_status: ApplicationPaymentStatus
    rejection_reason: str | None = None
    mpesa_receipt_number: str | None = None
    latest_payment: PaymentResponse | None = None
    payments: list[PaymentResponse] = Field(default_factory=list)
    can_submit_payment: bool


# ============================================
# Admin Schemas
# ============================================


class VerifyPaymentRequest(BaseModel):
    notes: str | None = Field(None, max_length=1000)


class RejectPaymentRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("A rejection reason is required")
        return value


class FlagDuplicateRequest(BaseModel):
    notes: str | None = Field(None, max_length=1000)


class PaymentActionResponse(BaseModel):
    """Result of an admin action on a payment."""

    payment: PaymentResponse
    application_id: UUID
    application_status: ApplicationStatus
    payment_status: ApplicationPaymentStatus
    message: str


class PaymentListResponse(BaseModel):
    items: list[PaymentResponse]
    total: int
    skip: int
    limit: int


class PaymentStatusTotals(BaseModel):
    count: int = 0
    amount: int = 0


class PaymentStats(BaseModel):
    """Payment counts and amounts per status for the admin dashboard."""

    total_count: int
    total_amount: int
    pending: PaymentStatusTotals
    verified: PaymentStatusTotals
    rejected: PaymentStatusTotals
    duplicate: PaymentStatusTotals
