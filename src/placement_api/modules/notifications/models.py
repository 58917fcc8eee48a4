"""
Notification Models

Transactional outbox for user notifications. Events are written in the
same transaction as the state change they describe and delivered later
by the dispatcher job.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from placement_api.core.database import Base


class NotificationEventType(str, enum.Enum):
    PAYMENT_SUBMITTED = "payment.submitted"
    PAYMENT_VERIFIED = "payment.verified"
    PAYMENT_REJECTED = "payment.rejected"
    PAYMENT_DUPLICATE = "payment.duplicate"
    APPLICATION_STATUS_CHANGED = "application.status_changed"
    OPPORTUNITIES_CLOSED = "opportunities.closed"


class NotificationChannel(str, enum.Enum):
    EMAIL = "email"
    PUSH = "push"


class NotificationStatus(str, enum.Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


class NotificationEvent(Base):
    """
    One notification awaiting (or past) delivery.

    Addressed either to a single user (``recipient_id``) or to every user
    holding ``recipient_role``. The in-app feed reads from this table, so a
    delivered event stays visible until the user marks it read.
    """

    __tablename__ = "notification_events"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    event_type: Mapped[NotificationEventType] = mapped_column(
        Enum(NotificationEventType, name="notification_event_type"), nullable=False
    )
    recipient_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    recipient_role: Mapped[str | None] = mapped_column(String(50), nullable=True)
    recipient_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # List of NotificationChannel values
    channels: Mapped[list] = mapped_column(JSON, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    # Delivery
    status: Mapped[NotificationStatus] = mapped_column(
        Enum(NotificationStatus, name="notification_status"),
        nullable=False,
        default=NotificationStatus.PENDING,
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_attempt_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_notification_events_due", "status", "next_attempt_at"),
        Index("ix_notification_events_recipient", "recipient_id", "created_at"),
        Index("ix_notification_events_role", "recipient_role", "created_at"),
    )
