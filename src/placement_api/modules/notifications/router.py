"""
Notifications Router

Endpoints:
- GET /notifications - In-app feed for the caller (newest first)
- POST /notifications/{id}/read - Mark a notification read
- WS /notifications/ws?token=... - Live push channel

The feed is the fallback for clients without a live connection.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from placement_api.core.auth import CurrentUser, get_current_user, resolve_token
from placement_api.core.database import get_db
from placement_api.modules.notifications import repository
from placement_api.modules.notifications.realtime import connection_registry
from placement_api.modules.notifications.schemas import (
    MarkReadResponse,
    NotificationListResponse,
    NotificationResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _feed_role(user: CurrentUser) -> str:
    """Role broadcasts to admins are addressed to 'admin' for every admin role."""
    return "admin" if user.is_admin else user.role


@router.get(
    "",
    response_model=NotificationListResponse,
    summary="List My Notifications",
)
async def list_notifications(
    unread_only: bool = Query(False, description="Only return unread notifications"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> NotificationListResponse:
    events = await repository.list_for_user(
        db, user.id, _feed_role(user), unread_only=unread_only, skip=skip, limit=limit
    )
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(event) for event in events]
    )


@router.post(
    "/{notification_id}/read",
    response_model=MarkReadResponse,
    summary="Mark Notification Read",
    responses={404: {"description": "Notification not found"}},
)
async def mark_notification_read(
    notification_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MarkReadResponse:
    updated = await repository.mark_read(db, notification_id, user.id, _feed_role(user))
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "NOTIFICATION_NOT_FOUND", "message": "Notification not found"},
        )
    return MarkReadResponse(id=notification_id)


@router.websocket("/ws")
async def notifications_websocket(websocket: WebSocket, token: str = Query(...)) -> None:
    """
    Live notification channel.

    Browsers cannot set headers on WebSocket requests, so the access token
    is passed as a query parameter. Clients may send {"type": "ping"}.
    """
    try:
        user = resolve_token(token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    connection_registry.register(user.id, websocket)

    try:
        while True:
            message = await websocket.receive_json()
            if isinstance(message, dict) and message.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        pass
    except ValueError as e:
        logger.warning(f"Malformed realtime message from user {user.id}: {e}")
    finally:
        connection_registry.unregister(user.id, websocket)
