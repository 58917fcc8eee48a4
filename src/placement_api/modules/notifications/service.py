"""
Notifications Service

Builds outbox events for applicants from workflow state changes. Called
inside the transaction that makes the change; nothing is sent here.
"""

from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncSession

from placement_api.modules.notifications import repository
from placement_api.modules.notifications.models import NotificationEvent, NotificationEventType

if TYPE_CHECKING:
    from placement_api.modules.applications.models import Application


def notify_applicant(
    db: AsyncSession,
    application: "Application",
    event_type: NotificationEventType,
    *,
    title: str,
    message: str,
    opportunity_title: str,
    **extra: Any,
) -> NotificationEvent:
    """
    Enqueue an email + push notification for the application's owner.

    The payload carries everything the email templates need, so delivery
    does not have to read the application again.
    """
    payload = {
        "application_id": str(application.id),
        "applicant_name": application.full_name,
        "opportunity_title": opportunity_title,
        **{key: _jsonable(value) for key, value in extra.items()},
    }
    return repository.enqueue(
        db,
        event_type,
        title=title,
        message=message,
        payload=payload,
        recipient_id=application.applicant_id,
        recipient_email=application.email,
    )


def _jsonable(value: Any) -> Any:
    if hasattr(value, "value"):  # enums
        return value.value
    if value is None or isinstance(value, str | int | float | bool):
        return value
    return str(value)
