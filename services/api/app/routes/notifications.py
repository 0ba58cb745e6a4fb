"""Notification endpoints (all scoped to the acting user).

GET    /v1/notifications               - paginated list + unread count
GET    /v1/notifications/unread-count  - unread badge
PUT    /v1/notifications/read-all      - mark everything read
PUT    /v1/notifications/{id}/read     - mark one read
DELETE /v1/notifications/{id}          - delete one
"""

import asyncio
import math

from fastapi import APIRouter, Depends, Path, Query

from app.deps import get_current_user, get_dispatcher
from app.schemas import (
    MarkAllReadResponse,
    MessageResponse,
    NotificationListResponse,
    NotificationOut,
    Pagination,
    UnreadCountResponse,
)
from app.services.notifications import NotificationDispatcher
from app.stores.metrics import UserRecord

router = APIRouter()


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    user: UserRecord = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> NotificationListResponse:
    (notifications, total), unread = await asyncio.gather(
        dispatcher.list_for_user(user.id, page=page, limit=limit, unread_only=unread_only),
        dispatcher.unread_count(user.id),
    )
    pages = math.ceil(total / limit) if total else 0
    return NotificationListResponse(
        notifications=[NotificationOut.from_record(n) for n in notifications],
        unread_count=unread,
        pagination=Pagination(
            current=page,
            pages=pages,
            total=total,
            has_next=page < pages,
            has_prev=page > 1,
        ),
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    user: UserRecord = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> UnreadCountResponse:
    return UnreadCountResponse(unread_count=await dispatcher.unread_count(user.id))


@router.put("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    user: UserRecord = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> MarkAllReadResponse:
    modified = await dispatcher.mark_all_read(user.id)
    return MarkAllReadResponse(message="All notifications marked as read", modified=modified)


@router.put("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(
    notification_id: int = Path(ge=1),
    user: UserRecord = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> NotificationOut:
    notification = await dispatcher.mark_read(notification_id, user_id=user.id)
    return NotificationOut.from_record(notification)


@router.delete("/{notification_id}", response_model=MessageResponse)
async def delete_notification(
    notification_id: int = Path(ge=1),
    user: UserRecord = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> MessageResponse:
    await dispatcher.delete(notification_id, user_id=user.id)
    return MessageResponse(message="Notification deleted")
