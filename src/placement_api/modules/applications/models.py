"""
Application Models

An Application is one applicant's submission for one Opportunity, with its
documents, its fee payment state and an append-only status timeline.
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from placement_api.core.database import Base


class ApplicationStatus(str, enum.Enum):
    """Status of an application."""

    DRAFT = "draft"
    PENDING = "pending"
    SUBMITTED = "submitted"
    PAYMENT_SUBMITTED = "payment-submitted"
    PAYMENT_VERIFIED = "payment-verified"
    UNDER_REVIEW = "under-review"
    SHORTLISTED = "shortlisted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ApplicationPaymentStatus(str, enum.Enum):
    """Fee payment state as seen from the application."""

    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"
    REJECTED = "rejected"


class ApplicationType(str, enum.Enum):
    INTERNSHIP = "internship"
    INDUSTRIAL_ATTACHMENT = "industrial-attachment"


class IdType(str, enum.Enum):
    NATIONAL_ID = "national-id"
    PASSPORT = "passport"
    ALIEN_ID = "alien-id"


class Application(Base):
    """
    Internship application.

    Unique per (applicant, opportunity). ``mpesa_receipt_number`` is set when
    the fee payment is verified and is unique across all applications.
    """

    __tablename__ = "applications"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Note: applicants live in the identity service, so no FK
    applicant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    opportunity_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("opportunities.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Personal information
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    date_of_birth: Mapped[date] = mapped_column(Date, nullable=False)
    nationality: Mapped[str] = mapped_column(String(100), nullable=False)
    id_type: Mapped[IdType] = mapped_column(Enum(IdType, name="id_type"), nullable=False)
    id_number: Mapped[str] = mapped_column(String(50), nullable=False)

    # Education
    institution: Mapped[str] = mapped_column(String(200), nullable=False)
    course: Mapped[str] = mapped_column(String(200), nullable=False)
    year_of_study: Mapped[int] = mapped_column(Integer, nullable=False)
    student_id: Mapped[str] = mapped_column(String(50), nullable=False)

    application_type: Mapped[ApplicationType] = mapped_column(
        Enum(ApplicationType, name="application_type"), nullable=False
    )

    # Documents: {url, public_id, content_type, size_bytes}
    resume: Mapped[dict] = mapped_column(JSON, nullable=False)
    recommendation_letter: Mapped[dict] = mapped_column(JSON, nullable=False)
    referral_form: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    cover_letter: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Status
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="application_status"),
        nullable=False,
        default=ApplicationStatus.DRAFT,
    )
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Fee payment
    payment_status: Mapped[ApplicationPaymentStatus] = mapped_column(
        Enum(ApplicationPaymentStatus, name="application_payment_status"),
        nullable=False,
        default=ApplicationPaymentStatus.PENDING,
    )
    payment_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payment_phone_number: Mapped[str | None] = mapped_column(String(12), nullable=True)
    mpesa_receipt_number: Mapped[str | None] = mapped_column(String(10), nullable=True)
    payment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    payment_verified_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    timeline: Mapped[list["ApplicationTimelineEntry"]] = relationship(
        "ApplicationTimelineEntry",
        back_populates="application",
        order_by="ApplicationTimelineEntry.id",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint(
            "applicant_id", "opportunity_id", name="uq_applications_applicant_opportunity"
        ),
        # NULLs are distinct in PostgreSQL, so only set receipts collide
        UniqueConstraint("mpesa_receipt_number", name="uq_applications_mpesa_receipt_number"),
        Index("ix_applications_status", "status"),
        Index("ix_applications_opportunity_id", "opportunity_id"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class ApplicationTimelineEntry(Base):
    """
    Append-only audit log of an application's status changes.

    Rows are never updated or deleted. The sequential ``id`` gives the
    insertion order even when two entries share a timestamp.
    """

    __tablename__ = "application_timeline"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    application_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("applications.id", ondelete="RESTRICT"),
        nullable=False,
    )
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="application_status"), nullable=False
    )
    # None for automatic transitions
    actor_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    application: Mapped["Application"] = relationship("Application", back_populates="timeline")

    __table_args__ = (Index("ix_application_timeline_application_id", "application_id", "id"),)
