"""Notification inbox routes and the live WebSocket feed."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import AsyncSessionLocal, get_db
from src.core.deps import get_current_user, resolve_user_from_token
from src.modules.notifications.live import hub
from src.modules.notifications.schemas import MarkAllReadResult, NotificationPage, NotificationPublic, UnreadCount
from src.modules.notifications.service import UNREAD_COUNT_EVENT, NotificationService
from src.modules.users.models import User
from src.shared.schemas import PaginationMeta

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


def get_notification_service(db: AsyncSession = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


@router.get("", response_model=NotificationPage)
async def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    unread_only: bool = Query(False, alias="unreadOnly"),
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationPage:
    items, total = await service.list_notifications(current_user.user_id, limit, offset, unread_only)
    return NotificationPage(
        items=[NotificationPublic.model_validate(item) for item in items],
        meta=PaginationMeta(total=total, limit=limit, offset=offset),
        unread_count=await service.unread_count(current_user.user_id),
    )


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> UnreadCount:
    return UnreadCount(unread_count=await service.unread_count(current_user.user_id))


@router.post("/read-all", response_model=MarkAllReadResult)
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> MarkAllReadResult:
    updated = await service.mark_all_read(current_user.user_id)
    await hub.push_to_user(current_user.user_id, UNREAD_COUNT_EVENT, {"unreadCount": 0})
    return MarkAllReadResult(updated=updated)


@router.post("/{notification_id}/read", response_model=NotificationPublic)
async def mark_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationPublic:
    notification = await service.mark_read(notification_id, current_user.user_id)
    remaining = await service.unread_count(current_user.user_id)
    await hub.push_to_user(current_user.user_id, UNREAD_COUNT_EVENT, {"unreadCount": remaining})
    return NotificationPublic.model_validate(notification)


@router.websocket("/ws")
async def notifications_feed(websocket: WebSocket, token: str = Query(...)) -> None:
    async with AsyncSessionLocal() as db:
        try:
            user = await resolve_user_from_token(token, db)
        except HTTPException:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return
        unread = await NotificationService(db).unread_count(user.user_id)

    await hub.connect(user.user_id, websocket)
    try:
        await websocket.send_json({"event": UNREAD_COUNT_EVENT, "data": {"unreadCount": unread}})
        while True:
            # Client frames are keep-alives only.
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("WebSocket disconnected for user %s", user.user_id)
    finally:
        await hub.disconnect(user.user_id, websocket)
