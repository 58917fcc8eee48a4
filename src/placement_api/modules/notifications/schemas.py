"""
Notification Schemas
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from placement_api.modules.notifications.models import NotificationEventType


class NotificationResponse(BaseModel):
    """A notification as shown in the in-app feed."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_type: NotificationEventType
    title: str
    message: str
    payload: dict
    created_at: datetime
    read_at: datetime | None = None


class NotificationListResponse(BaseModel):
    items: list[NotificationResponse]


class MarkReadResponse(BaseModel):
    id: UUID
    read: bool = True
