"""
Notifications Module

Outbox-based notifications for the application and payment workflow:
1. State transitions enqueue NotificationEvent rows in their own transaction
2. A dispatcher job delivers email (Resend) and realtime push
3. Failed deliveries retry with exponential backoff

API Endpoints:
- GET /notifications - In-app feed
- POST /notifications/{id}/read - Mark read
- WS /notifications/ws - Live push channel
"""

from .jobs import register_notification_jobs
from .router import router

__all__ = ["router", "register_notification_jobs"]
