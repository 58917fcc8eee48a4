"""
Notification Dispatcher Job

Delivers outbox events written by the payment and application workflows.

Design Principles:
- Delivery happens after the triggering transaction has committed, so a
  failed email never undoes a state change
- Failed deliveries are retried with exponential backoff up to a maximum
  number of attempts (at-least-once; no ordering between events)
- Push is best effort: a user with no open connection is not a failure
"""

import logging
from datetime import UTC, datetime
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger

from placement_api.core.config import settings
from placement_api.core.database import async_session_maker
from placement_api.core.email import (
    send_application_status_changed,
    send_payment_received,
    send_payment_rejected,
    send_payment_verified,
)
from placement_api.core.scheduler import register_job
from placement_api.modules.notifications import repository
from placement_api.modules.notifications.models import (
    NotificationChannel,
    NotificationEvent,
    NotificationEventType,
)
from placement_api.modules.notifications.realtime import connection_registry

logger = logging.getLogger(__name__)

JOB_ID_DISPATCH_NOTIFICATIONS = "notifications_dispatch_outbox"


class NotificationDeliveryError(Exception):
    """Raised when a channel fails to deliver an event."""


async def _send_event_email(event: NotificationEvent) -> bool:
    """Render and send the email for an event. Returns the provider result."""
    p = event.payload
    to_email = event.recipient_email

    if event.event_type == NotificationEventType.PAYMENT_SUBMITTED:
        return await send_payment_received(
            to_email=to_email,
            applicant_name=p["applicant_name"],
            opportunity_title=p["opportunity_title"],
            transaction_code=p["transaction_code"],
            amount=p["amount"],
            application_id=p["application_id"],
        )
    if event.event_type == NotificationEventType.PAYMENT_VERIFIED:
        return await send_payment_verified(
            to_email=to_email,
            applicant_name=p["applicant_name"],
            opportunity_title=p["opportunity_title"],
            transaction_code=p["transaction_code"],
            application_id=p["application_id"],
        )
    if event.event_type in (
        NotificationEventType.PAYMENT_REJECTED,
        NotificationEventType.PAYMENT_DUPLICATE,
    ):
        return await send_payment_rejected(
            to_email=to_email,
            applicant_name=p["applicant_name"],
            opportunity_title=p["opportunity_title"],
            transaction_code=p["transaction_code"],
            reason=p["reason"],
            application_id=p["application_id"],
        )
    if event.event_type == NotificationEventType.APPLICATION_STATUS_CHANGED:
        return await send_application_status_changed(
            to_email=to_email,
            applicant_name=p["applicant_name"],
            opportunity_title=p["opportunity_title"],
            new_status=p["status"],
            note=p.get("note"),
            application_id=p["application_id"],
        )

    logger.debug(f"No email template for {event.event_type.value}, skipping email")
    return True


def _push_message(event: NotificationEvent) -> dict[str, Any]:
    return {
        "type": "notification",
        "id": str(event.id),
        "event": event.event_type.value,
        "title": event.title,
        "message": event.message,
        "data": event.payload,
        "created_at": event.created_at.isoformat() if event.created_at else None,
    }


async def deliver_event(event: NotificationEvent) -> None:
    """
    Deliver one event over its channels.

    Raises:
        NotificationDeliveryError: If the email channel fails
    """
    channels = set(event.channels or [])

    if NotificationChannel.EMAIL.value in channels and event.recipient_email:
        try:
            sent = await _send_event_email(event)
        except KeyError as e:
            raise NotificationDeliveryError(f"Payload missing field {e}") from e
        if not sent:
            raise NotificationDeliveryError("Email provider rejected the message")

    if NotificationChannel.PUSH.value in channels and event.recipient_id is not None:
        pushed = await connection_registry.send(event.recipient_id, _push_message(event))
        if not pushed:
            logger.debug(f"No live connection for user {event.recipient_id}; feed only")


async def dispatch_pending_notifications() -> dict[str, Any]:
    """
    Deliver every due outbox event in one batch.

    Returns:
        Dict with counts of delivered, retried and permanently failed events
    """
    now = datetime.now(UTC)
    results: dict[str, Any] = {"delivered": 0, "retrying": 0, "failed": 0, "errors": []}

    async with async_session_maker() as db:
        events = await repository.claim_due_events(db, now, settings.notification_batch_size)

        if not events:
            return results

        logger.info(f"Dispatching {len(events)} notification event(s)")

        for event in events:
            try:
                await deliver_event(event)
                repository.mark_delivered(event, now)
                results["delivered"] += 1
            except Exception as e:
                repository.mark_attempt_failed(
                    event,
                    str(e),
                    now,
                    max_attempts=settings.notification_max_attempts,
                    backoff_seconds=settings.notification_backoff_seconds,
                )
                if event.attempts >= settings.notification_max_attempts:
                    results["failed"] += 1
                    logger.error(
                        f"Notification {event.id} ({event.event_type.value}) failed permanently "
                        f"after {event.attempts} attempts: {e}"
                    )
                else:
                    results["retrying"] += 1
                    logger.warning(
                        f"Notification {event.id} delivery failed (attempt {event.attempts}), "
                        f"retrying at {event.next_attempt_at.isoformat()}: {e}"
                    )
                results["errors"].append({"notification_id": str(event.id), "error": str(e)})

        await db.commit()

    logger.info(
        f"Notification dispatch complete: {results['delivered']} delivered, "
        f"{results['retrying']} retrying, {results['failed']} failed"
    )
    return results


def register_notification_jobs() -> None:
    """Register the outbox dispatcher with the scheduler."""
    register_job(
        job_id=JOB_ID_DISPATCH_NOTIFICATIONS,
        func=dispatch_pending_notifications,
        trigger=IntervalTrigger(seconds=settings.notification_dispatch_interval_seconds),
    )
    logger.info(
        f"Registered notification dispatcher (every {settings.notification_dispatch_interval_seconds}s)"
    )
