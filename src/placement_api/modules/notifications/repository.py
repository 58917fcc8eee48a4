"""
Notifications Repository

Outbox writes (called inside other modules' transactions), dispatcher
queries and the in-app feed.

``enqueue`` only adds the row to the session; it is committed together
with the state change that produced it.
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    NotificationChannel,
    NotificationEvent,
    NotificationEventType,
    NotificationStatus,
)

DEFAULT_CHANNELS = [NotificationChannel.EMAIL.value, NotificationChannel.PUSH.value]


def enqueue(
    db: AsyncSession,
    event_type: NotificationEventType,
    *,
    title: str,
    message: str,
    payload: dict,
    recipient_id: UUID | None = None,
    recipient_role: str | None = None,
    recipient_email: str | None = None,
    channels: list[str] | None = None,
) -> NotificationEvent:
    """
    Add a notification event to the current transaction.

    Args:
        db: Database session holding the triggering state change
        event_type: What happened
        title: Short headline for the feed
        message: One-sentence description for the feed
        payload: JSON-serializable data for templates and push clients
        recipient_id: Single recipient user
        recipient_role: Role broadcast (used when recipient_id is None)
        recipient_email: Address for the email channel
        channels: Delivery channels (defaults to email and push)

    Returns:
        The pending NotificationEvent (not yet flushed)
    """
    if recipient_id is None and recipient_role is None:
        raise ValueError("A notification needs a recipient_id or a recipient_role")

    event = NotificationEvent(
        event_type=event_type,
        recipient_id=recipient_id,
        recipient_role=recipient_role,
        recipient_email=recipient_email,
        channels=list(channels if channels is not None else DEFAULT_CHANNELS),
        title=title,
        message=message,
        payload=payload,
        status=NotificationStatus.PENDING,
        attempts=0,
        next_attempt_at=datetime.now(UTC),
    )
    db.add(event)
    return event


# ============================================
# Dispatcher Queries
# ============================================


async def claim_due_events(
    db: AsyncSession,
    now: datetime,
    limit: int,
) -> list[NotificationEvent]:
    """
    Lock and return pending events whose next attempt is due.

    Uses SKIP LOCKED so that concurrent dispatchers never pick up the
    same event.
    """
    result = await db.execute(
        select(NotificationEvent)
        .where(
            NotificationEvent.status == NotificationStatus.PENDING,
            NotificationEvent.next_attempt_at <= now,
        )
        .order_by(NotificationEvent.next_attempt_at)
        .limit(limit)
        .with_for_update(skip_locked=True)
    )
    return list(result.scalars().all())


def mark_delivered(event: NotificationEvent, now: datetime) -> None:
    event.status = NotificationStatus.DELIVERED
    event.attempts += 1
    event.delivered_at = now
    event.last_error = None


def backoff_delay(attempts: int, base_seconds: int) -> timedelta:
    """Exponential backoff: base, 2*base, 4*base, ... for attempts 1, 2, 3, ..."""
    return timedelta(seconds=base_seconds * 2 ** max(attempts - 1, 0))


def mark_attempt_failed(
    event: NotificationEvent,
    error: str,
    now: datetime,
    max_attempts: int,
    backoff_seconds: int,
) -> None:
    """
    Record a failed delivery attempt.

    The event is rescheduled with exponential backoff, or marked FAILED
    once ``max_attempts`` is reached.
    """
    event.attempts += 1
    event.last_error = error[:2000]

    if event.attempts >= max_attempts:
        event.status = NotificationStatus.FAILED
    else:
        event.next_attempt_at = now + backoff_delay(event.attempts, backoff_seconds)


# ============================================
# In-App Feed
# ============================================


def _visible_to(user_id: UUID, role: str):
    return or_(
        NotificationEvent.recipient_id == user_id,
        NotificationEvent.recipient_role == role,
    )


async def list_for_user(
    db: AsyncSession,
    user_id: UUID,
    role: str,
    *,
    unread_only: bool = False,
    skip: int = 0,
    limit: int = 20,
) -> list[NotificationEvent]:
    """List notifications addressed to a user or their role, newest first."""
    query = select(NotificationEvent).where(_visible_to(user_id, role))

    if unread_only:
        query = query.where(NotificationEvent.read_at.is_(None))

    result = await db.execute(
        query.order_by(NotificationEvent.created_at.desc()).offset(skip).limit(limit)
    )
    return list(result.scalars().all())


async def mark_read(
    db: AsyncSession,
    notification_id: UUID,
    user_id: UUID,
    role: str,
) -> bool:
    """
    Mark one notification read. Returns False when it does not exist or is
    not visible to the user.
    """
    result = await db.execute(
        update(NotificationEvent)
        .where(NotificationEvent.id == notification_id, _visible_to(user_id, role))
        .values(read_at=func.coalesce(NotificationEvent.read_at, datetime.now(UTC)))
    )
    await db.commit()
    return result.rowcount > 0
