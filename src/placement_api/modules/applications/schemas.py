"""
Applications Schemas

Pydantic schemas for request validation and response serialization.
"""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from placement_api.core.config import settings
from placement_api.modules.applications.helpers import REVIEW_DECISIONS, validate_document
from placement_api.modules.applications.models import (
    ApplicationPaymentStatus,
    ApplicationStatus,
    ApplicationType,
    IdType,
)


class DocumentReference(BaseModel):
    """An uploaded document held by external file storage."""

    url: str = Field(..., min_length=1, max_length=1000)
    public_id: str = Field(..., min_length=1, max_length=255)
    content_type: str = Field(..., min_length=1, max_length=100)
    size_bytes: int = Field(..., ge=0)

    @model_validator(mode="after")
    def check_type_and_size(self) -> "DocumentReference":
        error = validate_document(
            self.url, self.content_type, self.size_bytes, settings.max_upload_size_bytes
        )
        if error:
            raise ValueError(error)
        return self


class ApplicationFields(BaseModel):
    """Fields the applicant provides when creating an application."""

    # Personal
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: str = Field(..., min_length=9, max_length=20)
    date_of_birth: date
    nationality: str = Field(..., min_length=1, max_length=100)
    id_type: IdType
    id_number: str = Field(..., min_length=1, max_length=50)

    # Education
    institution: str = Field(..., min_length=1, max_length=200)
    course: str = Field(..., min_length=1, max_length=200)
    year_of_study: int = Field(..., ge=1, le=10)
    student_id: str = Field(..., min_length=1, max_length=50)

    application_type: ApplicationType

    # Documents
    resume: DocumentReference
    recommendation_letter: DocumentReference
    referral_form: DocumentReference | None = None
    cover_letter: str | None = Field(None, max_length=2000)


class ApplicationCreate(ApplicationFields):
    """Request body for POST /applications."""

    opportunity_id: UUID


NULLABLE_UPDATE_FIELDS = frozenset({"referral_form", "cover_letter"})


class ApplicationUpdate(BaseModel):
    """Request body for PATCH /applications/{id}. Only provided fields change."""

    first_name: str | None = Field(None, min_length=1, max_length=100)
    last_name: str | None = Field(None, min_length=1, max_length=100)
    email: EmailStr | None = None
    phone: str | None = Field(None, min_length=9, max_length=20)
    date_of_birth: date | None = None
    nationality: str | None = Field(None, min_length=1, max_length=100)
    id_type: IdType | None = None
    id_number: str | None = Field(None, min_length=1, max_length=50)
    institution: str | None = Field(None, min_length=1, max_length=200)
    course: str | None = Field(None, min_length=1, max_length=200)
    year_of_study: int | None = Field(None, ge=1, le=10)
    student_id: str | None = Field(None, min_length=1, max_length=50)
    application_type: ApplicationType | None = None
    resume: DocumentReference | None = None
    recommendation_letter: DocumentReference | None = None
    referral_form: DocumentReference | None = None
    cover_letter: str | None = Field(None, max_length=2000)

    @model_validator(mode="after")
    def check_required_not_cleared(self) -> "ApplicationUpdate":
        cleared = [
            name
            for name in self.model_fields_set
            if getattr(self, name) is None and name not in NULLABLE_UPDATE_FIELDS
        ]
        if cleared:
            raise ValueError(f"Fields cannot be cleared: {', '.join(sorted(cleared))}")
        return self

    def changed_values(self) -> dict:
        """Fields explicitly set in the request, with documents as plain dicts."""
        return self.model_dump(exclude_unset=True)


class TimelineEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: ApplicationStatus
    actor_id: UUID | None = None
    note: str | None = None
    created_at: datetime


class ApplicationResponse(BaseModel):
    """Full application with its timeline (owner and admin views)."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    applicant_id: UUID
    opportunity_id: UUID

    first_name: str
    last_name: str
    email: str
    phone: str
    date_of_birth: date
    nationality: str
    id_type: IdType
    id_number: str
    institution: str
    course: str
    year_of_study: int
    student_id: str
    application_type: ApplicationType
    resume: dict
    recommendation_letter: dict
    referral_form: dict | None = None
    cover_letter: str | None = None

    status: ApplicationStatus
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None
    reviewed_by: UUID | None = None
    rejection_reason: str | None = None

    payment_status: ApplicationPaymentStatus
    payment_amount: int | None = None
    payment_phone_number: str | None = None
    mpesa_receipt_number: str | None = None
    payment_date: datetime | None = None
    payment_verified_at: datetime | None = None

    created_at: datetime
    updated_at: datetime
    timeline: list[TimelineEntryResponse] = Field(default_factory=list)


class ApplicationListItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    applicant_id: UUID
    opportunity_id: UUID
    first_name: str
    last_name: str
    email: str
    institution: str
    application_type: ApplicationType
    status: ApplicationStatus
    payment_status: ApplicationPaymentStatus
    submitted_at: datetime | None = None
    created_at: datetime


class ApplicationListResponse(BaseModel):
    items: list[ApplicationListItem]
    total: int
    skip: int
    limit: int


class ApplicationStatusResponse(BaseModel):
    """Lightweight status snapshot for polling clients."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: ApplicationStatus
    payment_status: ApplicationPaymentStatus
    rejection_reason: str | None = None
    mpesa_receipt_number: str | None = None
    updated_at: datetime


class ReviewDecisionRequest(BaseModel):
    """Request body for POST /admin/applications/{id}/status."""

    status: ApplicationStatus
    note: str | None = Field(None, max_length=1000)
    reason: str | None = Field(None, max_length=1000)

    @model_validator(mode="after")
    def check_decision(self) -> "ReviewDecisionRequest":
        if self.status not in REVIEW_DECISIONS:
            allowed = ", ".join(sorted(s.value for s in REVIEW_DECISIONS))
            raise ValueError(f"Review decision must be one of: {allowed}")
        if self.status == ApplicationStatus.REJECTED and not (self.reason and self.reason.strip()):
            raise ValueError("A reason is required when rejecting an application")
        return self


class DashboardStats(BaseModel):
    """Application counts per status for the admin dashboard."""

    total: int
    by_status: dict[ApplicationStatus, int]
    awaiting_payment_verification: int
    awaiting_review: int
