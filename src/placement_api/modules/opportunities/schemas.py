"""
Opportunity Schemas

Pydantic schemas for request validation and response serialization.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from placement_api.modules.opportunities.models import OpportunityStatus, OpportunityType


class OpportunityCreate(BaseModel):
    """Request body for POST /opportunities."""

    company_name: str = Field(..., min_length=1, max_length=200)
    company_email: EmailStr
    company_phone: str | None = Field(None, max_length=20)

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    opportunity_type: OpportunityType
    category: str = Field(..., min_length=1, max_length=100)
    location: str = Field(..., min_length=1, max_length=200)
    duration: str = Field(..., min_length=1, max_length=100)
    requirements: list[str] | None = None
    benefits: list[str] | None = None

    available_slots: int = Field(..., ge=1)
    application_deadline: datetime
    status: OpportunityStatus = OpportunityStatus.OPEN


class OpportunityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_name: str
    company_email: str
    company_phone: str | None = None
    title: str
    description: str
    opportunity_type: OpportunityType
    category: str
    location: str
    duration: str
    requirements: list[str] | None = None
    benefits: list[str] | None = None
    available_slots: int
    application_deadline: datetime
    status: OpportunityStatus
    closed_at: datetime | None = None
    created_at: datetime


class OpportunityListResponse(BaseModel):
    items: list[OpportunityResponse]
    total: int
    skip: int
    limit: int
