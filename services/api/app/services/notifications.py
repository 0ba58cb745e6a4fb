"""Notification fan-out for social actions, plus the read path.

Dispatch rules:
- Recipient is the owner of the acted-on entity (project author, parent
  comment author, followed user).
- Recipient == actor -> nothing is dispatched (no self-notifications).
- Creation runs as a detached asyncio task. The caller never awaits it and
  a failure is logged inside the task, never raised into the request that
  triggered it. Delivery is best-effort: no retries.

Read path:
- unread_count / stats / list_for_user
- mark_read (no-op when already read) / mark_all_read / delete
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
from typing import Any

from app.errors import ForbiddenError, NotFoundError
from app.stores.metrics import (
    CommentRecord,
    EntityRef,
    EntityType,
    MetricsStore,
    NotificationDraft,
    NotificationRecord,
    NotificationType,
    ProjectRecord,
    UserRecord,
)

logger = logging.getLogger("uvicorn.error")

TITLE_MAX_LENGTH = 100
MESSAGE_MAX_LENGTH = 500
PREVIEW_LENGTH = 100


class NotificationDispatcher:
    """Creates Notification records in response to social actions."""

    def __init__(self, store: MetricsStore) -> None:
        self._store = store
        # Strong references so pending tasks are not garbage collected mid-flight
        self._pending: set[asyncio.Task[NotificationRecord | None]] = set()

    # ============================================================
    # Dispatch
    # ============================================================

    def notify(
        self,
        kind: NotificationType,
        recipient_id: int,
        actor: UserRecord | None,
        entity: EntityRef | None,
        title: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> asyncio.Task[NotificationRecord | None] | None:
        """Schedule creation of one notification.

        Returns:
            The detached task, or None when dispatch was skipped because the
            recipient is the actor.
        """
        if actor is not None and recipient_id == actor.id:
            return None

        draft = NotificationDraft(
            user_id=recipient_id,
            type=kind,
            title=_truncate(title, TITLE_MAX_LENGTH),
            message=_truncate(message, MESSAGE_MAX_LENGTH),
            data=data or {},
            entity=entity,
            triggered_by_id=actor.id if actor else None,
        )
        task = asyncio.create_task(self._create(draft))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _create(self, draft: NotificationDraft) -> NotificationRecord | None:
        try:
            record = await self._store.insert_notification(draft)
        except Exception:
            logger.exception(
                f"Error creating {draft.type.value} notification for user {draft.user_id}"
            )
            return None
        logger.debug(f"Notification {record.id} ({record.type.value}) -> user {record.user_id}")
        return record

    async def drain(self) -> None:
        """Wait for every in-flight dispatch (shutdown hook, tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def notify_follow(self, followed_user_id: int, follower: UserRecord) -> asyncio.Task | None:
        return self.notify(
            NotificationType.FOLLOW,
            followed_user_id,
            follower,
            EntityRef(EntityType.USER, follower.id),
            "New Follower",
            f"{follower.username} started following you",
            {"followerId": follower.id, "followerUsername": follower.username},
        )

    def notify_star(self, project: ProjectRecord, starrer: UserRecord) -> asyncio.Task | None:
        return self.notify(
            NotificationType.STAR,
            project.author_id,
            starrer,
            EntityRef(EntityType.PROJECT, project.id),
            "Project Starred",
            f'{starrer.username} starred your project "{project.title}"',
            {
                "projectId": project.id,
                "projectTitle": project.title,
                "starrerId": starrer.id,
                "starrerUsername": starrer.username,
            },
        )

    def notify_comment(
        self, project: ProjectRecord, commenter: UserRecord, comment: CommentRecord
    ) -> asyncio.Task | None:
        return self.notify(
            NotificationType.COMMENT,
            project.author_id,
            commenter,
            EntityRef(EntityType.COMMENT, comment.id),
            "New Comment",
            f'{commenter.username} commented on your project "{project.title}"',
            {
                "projectId": project.id,
                "projectTitle": project.title,
                "commentId": comment.id,
                "commentPreview": comment.content[:PREVIEW_LENGTH],
                "commenterId": commenter.id,
                "commenterUsername": commenter.username,
            },
        )

    def notify_reply(
        self,
        parent_author_id: int,
        replier: UserRecord,
        project: ProjectRecord,
        reply: CommentRecord,
    ) -> asyncio.Task | None:
        return self.notify(
            NotificationType.COMMENT,
            parent_author_id,
            replier,
            EntityRef(EntityType.COMMENT, reply.id),
            "Comment Reply",
            f'{replier.username} replied to your comment on "{project.title}"',
            {
                "projectId": project.id,
                "projectTitle": project.title,
                "commentId": reply.id,
                "commentPreview": reply.content[:PREVIEW_LENGTH],
                "replierId": replier.id,
                "replierUsername": replier.username,
            },
        )

    def notify_system(
        self, user_id: int, title: str, message: str, data: dict[str, Any] | None = None
    ) -> asyncio.Task | None:
        return self.notify(NotificationType.SYSTEM, user_id, None, None, title, message, data)

    # ============================================================
    # Read path
    # ============================================================

    async def unread_count(self, user_id: int) -> int:
        return await self._store.count_notifications(user_id, unread_only=True)

    async def stats(self, user_id: int) -> dict[str, int]:
        unread, total = await asyncio.gather(
            self._store.count_notifications(user_id, unread_only=True),
            self._store.count_notifications(user_id),
        )
        return {"unreadCount": unread, "totalCount": total}

    async def list_for_user(
        self, user_id: int, page: int = 1, limit: int = 20, unread_only: bool = False
    ) -> tuple[list[NotificationRecord], int]:
        """One page of notifications, newest first, with the matching total."""
        page = max(page, 1)
        skip = (page - 1) * limit
        notifications, total = await asyncio.gather(
            self._store.find_notifications(user_id, skip, limit, unread_only=unread_only),
            self._store.count_notifications(user_id, unread_only=unread_only),
        )
        return notifications, total

    async def mark_read(self, notification_id: int, user_id: int | None = None) -> NotificationRecord:
        """Mark one notification read. Already-read notifications are left untouched."""
        notification = await self._owned(notification_id, user_id)
        if notification.is_read:
            return notification
        return await self._store.mark_notification_read(notification_id, _now())

    async def mark_all_read(self, user_id: int) -> int:
        return await self._store.mark_all_notifications_read(user_id, _now())

    async def delete(self, notification_id: int, user_id: int | None = None) -> None:
        await self._owned(notification_id, user_id)
        await self._store.delete_notification(notification_id)

    async def _owned(self, notification_id: int, user_id: int | None) -> NotificationRecord:
        notification = await self._store.get_notification(notification_id)
        if notification is None:
            raise NotFoundError(
                f"Notification {notification_id} not found",
                detail={"notification_id": notification_id},
            )
        if user_id is not None and notification.user_id != user_id:
            raise ForbiddenError("Not authorized to modify this notification")
        return notification


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 1] + "…"
