"""
Payment Models

Ledger of M-Pesa fee payment attempts. One row per attempt; an application
accumulates a new row each time the applicant resubmits after a rejection.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from placement_api.core.database import Base


class PaymentStatus(str, enum.Enum):
    """Status of a payment attempt. Everything except PENDING is final."""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"
    DUPLICATE = "duplicate"


class Payment(Base):
    """
    A manually reported M-Pesa payment.

    ``transaction_code`` is unique across every payment ever recorded; the
    database constraint decides between two concurrent submissions of the
    same code.
    """

    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    application_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("applications.id", ondelete="RESTRICT"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_code: Mapped[str] = mapped_column(String(10), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(12), nullable=False)

    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )

    # Non-blocking findings shown to the reviewing admin (e.g., recent similar payment)
    warnings: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    # Verification
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Rejection (also used for duplicates)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

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
        Index("uq_payments_transaction_code", "transaction_code", unique=True),
        Index("ix_payments_application_id", "application_id"),
        Index("ix_payments_status_created_at", "status", "created_at"),
        Index("ix_payments_phone_amount_created_at", "phone_number", "amount", "created_at"),
    )
