"""initial placement schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000

This migration creates:
1. opportunities
2. applications with its append-only application_timeline
3. payments (ledger of M-Pesa payment attempts)
4. notification_events (transactional outbox and in-app feed)

Uniqueness that protects against concurrent requests lives here:
- payments.transaction_code (uq_payments_transaction_code)
- applications.mpesa_receipt_number (uq_applications_mpesa_receipt_number)
- applications (applicant_id, opportunity_id) (uq_applications_applicant_opportunity)

Enum types store the Python member names.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


ENUMS = {
    "opportunity_type": ("INTERNSHIP", "INDUSTRIAL_ATTACHMENT", "BOTH"),
    "opportunity_status": ("DRAFT", "OPEN", "CLOSED", "ARCHIVED"),
    "id_type": ("NATIONAL_ID", "PASSPORT", "ALIEN_ID"),
    "application_type": ("INTERNSHIP", "INDUSTRIAL_ATTACHMENT"),
    "application_status": (
        "DRAFT",
        "PENDING",
        "SUBMITTED",
        "PAYMENT_SUBMITTED",
        "PAYMENT_VERIFIED",
        "UNDER_REVIEW",
        "SHORTLISTED",
        "ACCEPTED",
        "REJECTED",
    ),
    "application_payment_status": ("PENDING", "VERIFIED", "FAILED", "REJECTED"),
    "payment_status": ("PENDING", "VERIFIED", "REJECTED", "DUPLICATE"),
    "notification_event_type": (
        "PAYMENT_SUBMITTED",
        "PAYMENT_VERIFIED",
        "PAYMENT_REJECTED",
        "PAYMENT_DUPLICATE",
        "APPLICATION_STATUS_CHANGED",
        "OPPORTUNITIES_CLOSED",
    ),
    "notification_status": ("PENDING", "DELIVERED", "FAILED"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create all tables, enum types and indexes."""
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    # ============================================
    # opportunities
    # ============================================
    op.create_table(
        "opportunities",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("company_name", sa.String(length=200), nullable=False),
        sa.Column("company_email", sa.String(length=255), nullable=False),
        sa.Column("company_phone", sa.String(length=20), nullable=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("opportunity_type", _enum("opportunity_type"), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("location", sa.String(length=200), nullable=False),
        sa.Column("duration", sa.String(length=100), nullable=False),
        sa.Column("requirements", postgresql.JSON(), nullable=True),
        sa.Column("benefits", postgresql.JSON(), nullable=True),
        sa.Column("available_slots", sa.Integer(), nullable=False),
        sa.Column("application_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", _enum("opportunity_status"), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("posted_by", postgresql.UUID(as_uuid=True), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("available_slots >= 0", name="ck_opportunities_slots_non_negative"),
    )
    op.create_index(
        "ix_opportunities_status_deadline",
        "opportunities",
        ["status", "application_deadline"],
    )

    # ============================================
    # applications
    # ============================================
    op.create_table(
        "applications",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("applicant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("opportunity_id", postgresql.UUID(as_uuid=True), nullable=False),
        # Personal information
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=False),
        sa.Column("date_of_birth", sa.Date(), nullable=False),
        sa.Column("nationality", sa.String(length=100), nullable=False),
        sa.Column("id_type", _enum("id_type"), nullable=False),
        sa.Column("id_number", sa.String(length=50), nullable=False),
        # Education
        sa.Column("institution", sa.String(length=200), nullable=False),
        sa.Column("course", sa.String(length=200), nullable=False),
        sa.Column("year_of_study", sa.Integer(), nullable=False),
        sa.Column("student_id", sa.String(length=50), nullable=False),
        sa.Column("application_type", _enum("application_type"), nullable=False),
        # Documents
        sa.Column("resume", postgresql.JSON(), nullable=False),
        sa.Column("recommendation_letter", postgresql.JSON(), nullable=False),
        sa.Column("referral_form", postgresql.JSON(), nullable=True),
        sa.Column("cover_letter", sa.Text(), nullable=True),
        # Status
        sa.Column("status", _enum("application_status"), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        # Fee payment
        sa.Column("payment_status", _enum("application_payment_status"), nullable=False),
        sa.Column("payment_amount", sa.Integer(), nullable=True),
        sa.Column("payment_phone_number", sa.String(length=12), nullable=True),
        sa.Column("mpesa_receipt_number", sa.String(length=10), nullable=True),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_verified_by", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["opportunity_id"], ["opportunities.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint(
            "applicant_id", "opportunity_id", name="uq_applications_applicant_opportunity"
        ),
        sa.UniqueConstraint("mpesa_receipt_number", name="uq_applications_mpesa_receipt_number"),
    )
    op.create_index("ix_applications_status", "applications", ["status"])
    op.create_index("ix_applications_opportunity_id", "applications", ["opportunity_id"])

    op.create_table(
        "application_timeline",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", _enum("application_status"), nullable=False),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="RESTRICT"),
    )
    op.create_index(
        "ix_application_timeline_application_id",
        "application_timeline",
        ["application_id", "id"],
    )

    # ============================================
    # payments
    # ============================================
    op.create_table(
        "payments",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("transaction_code", sa.String(length=10), nullable=False),
        sa.Column("phone_number", sa.String(length=12), nullable=False),
        sa.Column("status", _enum("payment_status"), nullable=False),
        sa.Column("warnings", sa.JSON(), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("verification_notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_by", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="RESTRICT"),
    )
    op.create_index("uq_payments_transaction_code", "payments", ["transaction_code"], unique=True)
    op.create_index("ix_payments_application_id", "payments", ["application_id"])
    op.create_index("ix_payments_status_created_at", "payments", ["status", "created_at"])
    op.create_index(
        "ix_payments_phone_amount_created_at",
        "payments",
        ["phone_number", "amount", "created_at"],
    )

    # ============================================
    # notification_events
    # ============================================
    op.create_table(
        "notification_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event_type", _enum("notification_event_type"), nullable=False),
        sa.Column("recipient_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("recipient_role", sa.String(length=50), nullable=True),
        sa.Column("recipient_email", sa.String(length=255), nullable=True),
        sa.Column("channels", postgresql.JSON(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("payload", postgresql.JSON(), nullable=False),
        sa.Column("status", _enum("notification_status"), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column(
            "next_attempt_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_notification_events_due", "notification_events", ["status", "next_attempt_at"]
    )
    op.create_index(
        "ix_notification_events_recipient", "notification_events", ["recipient_id", "created_at"]
    )
    op.create_index(
        "ix_notification_events_role", "notification_events", ["recipient_role", "created_at"]
    )


def downgrade() -> None:
    """Drop all tables and enum types."""
    op.drop_table("notification_events")
    op.drop_table("payments")
    op.drop_table("application_timeline")
    op.drop_table("applications")
    op.drop_table("opportunities")

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
