"""
Opportunity Models

Internship and industrial-attachment positions that applicants apply to.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Enum, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from placement_api.core.database import Base


class OpportunityType(str, enum.Enum):
    """Kind of placement offered."""

    INTERNSHIP = "internship"
    INDUSTRIAL_ATTACHMENT = "industrial-attachment"
    BOTH = "both"


class OpportunityStatus(str, enum.Enum):
    """Lifecycle of a posting. Only OPEN postings accept applications."""

    DRAFT = "draft"
    OPEN = "open"
    CLOSED = "closed"
    ARCHIVED = "archived"


class Opportunity(Base):
    """A posted placement with a deadline and a number of available slots."""

    __tablename__ = "opportunities"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Company
    company_name: Mapped[str] = mapped_column(String(200), nullable=False)
    company_email: Mapped[str] = mapped_column(String(255), nullable=False)
    company_phone: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Position
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    opportunity_type: Mapped[OpportunityType] = mapped_column(
        Enum(OpportunityType, name="opportunity_type"), nullable=False
    )
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    location: Mapped[str] = mapped_column(String(200), nullable=False)
    duration: Mapped[str] = mapped_column(String(100), nullable=False)
    requirements: Mapped[list | None] = mapped_column(JSON, nullable=True)
    benefits: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # Capacity and timing
    available_slots: Mapped[int] = mapped_column(Integer, nullable=False)
    application_deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[OpportunityStatus] = mapped_column(
        Enum(OpportunityStatus, name="opportunity_status"),
        nullable=False,
        default=OpportunityStatus.OPEN,
    )
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Note: user accounts live in the identity service, so no FK
    posted_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("available_slots >= 0", name="ck_opportunities_slots_non_negative"),
        Index("ix_opportunities_status_deadline", "status", "application_deadline"),
    )
