"""PostgreSQL implementation of the MetricsStore.

Atomicity:
- Each public method runs in one session/transaction (`get_session()`
  commits on exit, rolls back on error).
- Toggles and comment inserts lock the owning row(s) with
  SELECT ... FOR UPDATE before touching its membership rows, so two
  requests toggling the same project/comment/user are serialized by
  Postgres instead of racing on a read-modify-write.
- Counters are always recomputed with count(*) from the membership rows.

Driver and connection failures are re-raised as TransientStoreError.
"""

from collections import defaultdict
from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import datetime, timezone
import json
import logging
from typing import Any

from sqlalchemy import Select, delete, func, or_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import NotFoundError, TransientStoreError
from app.models import Comment, CommentLike, Follow, Notification, Project, ProjectUpvote, User
from app.stores.metrics import (
    CommentRecord,
    EntityRef,
    LabelField,
    MetricsStore,
    NotificationDraft,
    NotificationRecord,
    ProjectRecord,
    UserRecord,
)
from app.stores.postgres import get_session

logger = logging.getLogger("uvicorn.error")

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

_PUBLISHED = (Project.status == "published", Project.visibility == "public")


class PostgresMetricsStore(MetricsStore):
    """MetricsStore backed by the application's Postgres database."""

    def __init__(self, session_factory: SessionFactory = get_session) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self._session_factory() as session:
                yield session
        except IntegrityError:
            raise
        except (DBAPIError, OSError) as e:
            logger.warning(f"Metrics store I/O failure: {e}")
            raise TransientStoreError("Metrics store is unavailable, retry later") from e

    # ============================================================
    # Users
    # ============================================================

    async def get_user(self, user_id: int) -> UserRecord | None:
        async with self._session() as session:
            user = await session.get(User, user_id)
            return _user_record(user) if user else None

    async def toggle_follow(self, follower_id: int, followed_id: int) -> bool:
        async with self._session() as session:
            followed = await session.scalar(
                select(User).where(User.id == followed_id).with_for_update()
            )
            if followed is None:
                raise NotFoundError(f"User {followed_id} not found", detail={"user_id": followed_id})

            existing = await session.scalar(
                select(Follow).where(
                    Follow.follower_id == follower_id,
                    Follow.followed_id == followed_id,
                )
            )
            if existing is not None:
                await session.delete(existing)
                return False

            session.add(Follow(follower_id=follower_id, followed_id=followed_id, created_at=_now()))
            return True

    # ============================================================
    # Projects
    # ============================================================

    async def get_project(self, project_id: int) -> ProjectRecord | None:
        async with self._session() as session:
            row = (
                await session.execute(_project_query().where(Project.id == project_id))
            ).one_or_none()
            if row is None:
                return None
            project, username = row
            return _project_record(project, username)

    async def list_recent_published(self, limit: int) -> list[ProjectRecord]:
        query = (
            _project_query()
            .where(*_PUBLISHED)
            .order_by(Project.created_at.desc(), Project.id.desc())
            .limit(limit)
        )
        async with self._session() as session:
            rows = (await session.execute(query)).all()
            return [_project_record(project, username) for project, username in rows]

    async def list_published_labels(self, label_field: LabelField) -> list[list[str]]:
        column = Project.tags_json if label_field is LabelField.TAGS else Project.technologies_json
        query = select(column).where(*_PUBLISHED).order_by(Project.created_at.asc(), Project.id.asc())
        async with self._session() as session:
            result = await session.execute(query)
            return [_load_list(raw) for raw in result.scalars().all()]

    async def toggle_upvote(self, project_id: int, user_id: int) -> tuple[bool, int]:
        async with self._session() as session:
            project = await _lock(session, Project, project_id)

            existing = await session.scalar(
                select(ProjectUpvote).where(
                    ProjectUpvote.project_id == project_id,
                    ProjectUpvote.user_id == user_id,
                )
            )
            if existing is not None:
                await session.delete(existing)
                upvoted = False
            else:
                session.add(ProjectUpvote(project_id=project_id, user_id=user_id, created_at=_now()))
                upvoted = True
            await session.flush()

            project.upvote_count = await _count(
                session, ProjectUpvote, ProjectUpvote.project_id == project_id
            )
            return upvoted, project.upvote_count

    # ============================================================
    # Comments
    # ============================================================

    async def get_comment(self, comment_id: int) -> CommentRecord | None:
        async with self._session() as session:
            records = await _load_comments(session, _comment_query().where(Comment.id == comment_id))
            return records[0] if records else None

    async def insert_comment(
        self,
        project_id: int,
        author_id: int,
        content: str,
        parent_id: int | None = None,
    ) -> CommentRecord:
        async with self._session() as session:
            # Lock order is always project, then comment
            project = await _lock(session, Project, project_id)
            parent = await _lock(session, Comment, parent_id) if parent_id is not None else None

            comment = Comment(
                project_id=project_id,
                author_id=author_id,
                parent_comment_id=parent_id,
                content=content,
                is_edited=False,
                is_deleted=False,
                like_count=0,
                reply_count=0,
                created_at=_now(),
            )
            session.add(comment)
            await session.flush()

            if parent is not None:
                parent.reply_count = await _count(
                    session, Comment, Comment.parent_comment_id == parent.id
                )
            project.comment_count = await _count(session, Comment, Comment.project_id == project_id)
            await session.flush()

            records = await _load_comments(session, _comment_query().where(Comment.id == comment.id))
            return records[0]

    async def update_comment_content(
        self, comment_id: int, content: str, edited_at: datetime
    ) -> CommentRecord:
        async with self._session() as session:
            comment = await _lock(session, Comment, comment_id)
            comment.content = content
            comment.is_edited = True
            comment.edited_at = edited_at
            await session.flush()

            records = await _load_comments(session, _comment_query().where(Comment.id == comment_id))
            return records[0]

    async def mark_comment_deleted(self, comment_id: int, deleted_at: datetime) -> CommentRecord:
        async with self._session() as session:
            comment = await _lock(session, Comment, comment_id)
            if not comment.is_deleted:
                comment.is_deleted = True
                comment.deleted_at = deleted_at
                await session.flush()

            records = await _load_comments(session, _comment_query().where(Comment.id == comment_id))
            return records[0]

    async def toggle_comment_like(self, comment_id: int, user_id: int) -> tuple[bool, int]:
        async with self._session() as session:
            comment = await _lock(session, Comment, comment_id)

            existing = await session.scalar(
                select(CommentLike).where(
                    CommentLike.comment_id == comment_id,
                    CommentLike.user_id == user_id,
                )
            )
            if existing is not None:
                await session.delete(existing)
                liked = False
            else:
                session.add(CommentLike(comment_id=comment_id, user_id=user_id, created_at=_now()))
                liked = True
            await session.flush()

            comment.like_count = await _count(session, CommentLike, CommentLike.comment_id == comment_id)
            return liked, comment.like_count

    async def has_liked(self, comment_id: int, user_id: int) -> bool:
        async with self._session() as session:
            count = await _count(
                session,
                CommentLike,
                CommentLike.comment_id == comment_id,
                CommentLike.user_id == user_id,
            )
            return count > 0

    async def find_top_level_comments(
        self, project_id: int, skip: int, limit: int
    ) -> list[CommentRecord]:
        query = (
            _comment_query()
            .where(*_listable_top_level(project_id))
            .order_by(Comment.created_at.desc(), Comment.id.desc())
            .offset(skip)
            .limit(limit)
        )
        async with self._session() as session:
            return await _load_comments(session, query)

    async def count_top_level_comments(self, project_id: int) -> int:
        async with self._session() as session:
            return await _count(session, Comment, *_listable_top_level(project_id))

    async def find_replies(self, parent_id: int, limit: int) -> list[CommentRecord]:
        query = (
            _comment_query()
            .where(Comment.parent_comment_id == parent_id)
            .order_by(Comment.created_at.asc(), Comment.id.asc())
            .limit(limit)
        )
        async with self._session() as session:
            return await _load_comments(session, query)

    # ============================================================
    # Notifications
    # ============================================================

    async def insert_notification(self, draft: NotificationDraft) -> NotificationRecord:
        async with self._session() as session:
            notification = Notification(
                user_id=draft.user_id,
                type=draft.type,
                title=draft.title,
                message=draft.message,
                data_json=json.dumps(draft.data, default=str),
                entity_type=draft.entity.type if draft.entity else None,
                entity_id=draft.entity.id if draft.entity else None,
                triggered_by_id=draft.triggered_by_id,
                is_read=False,
                created_at=_now(),
            )
            session.add(notification)
            await session.flush()
            return _notification_record(notification)

    async def get_notification(self, notification_id: int) -> NotificationRecord | None:
        async with self._session() as session:
            notification = await session.get(Notification, notification_id)
            return _notification_record(notification) if notification else None

    async def find_notifications(
        self, user_id: int, skip: int, limit: int, unread_only: bool = False
    ) -> list[NotificationRecord]:
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        query = (
            query.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(skip)
            .limit(limit)
        )
        async with self._session() as session:
            result = await session.execute(query)
            return [_notification_record(n) for n in result.scalars().all()]

    async def count_notifications(self, user_id: int, unread_only: bool = False) -> int:
        criteria = [Notification.user_id == user_id]
        if unread_only:
            criteria.append(Notification.is_read.is_(False))
        async with self._session() as session:
            return await _count(session, Notification, *criteria)

    async def mark_notification_read(
        self, notification_id: int, read_at: datetime
    ) -> NotificationRecord:
        async with self._session() as session:
            notification = await _lock(session, Notification, notification_id)
            if not notification.is_read:
                notification.is_read = True
                notification.read_at = read_at
                await session.flush()
            return _notification_record(notification)

    async def mark_all_notifications_read(self, user_id: int, read_at: datetime) -> int:
        statement = (
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=read_at)
        )
        async with self._session() as session:
            result = await session.execute(statement)
            return result.rowcount or 0

    async def delete_notification(self, notification_id: int) -> bool:
        async with self._session() as session:
            result = await session.execute(
                delete(Notification).where(Notification.id == notification_id)
            )
            return (result.rowcount or 0) > 0


# ============================================================
# Helpers
# ============================================================


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def _lock(session: AsyncSession, model: type[Any], entity_id: int) -> Any:
    """Load a row with FOR UPDATE, raising NotFoundError if it is absent."""
    row = await session.scalar(select(model).where(model.id == entity_id).with_for_update())
    if row is None:
        name = model.__name__
        raise NotFoundError(f"{name} {entity_id} not found", detail={f"{name.lower()}_id": entity_id})
    return row


async def _count(session: AsyncSession, model: type[Any], *criteria: Any) -> int:
    result = await session.scalar(select(func.count()).select_from(model).where(*criteria))
    return int(result or 0)


def _project_query() -> Select:
    return select(Project, User.username).join(User, User.id == Project.author_id)


def _comment_query() -> Select:
    return select(Comment, User.username).join(User, User.id == Comment.author_id)


def _listable_top_level(project_id: int) -> tuple[Any, ...]:
    # Deleted top-level comments stay listable while they still hold replies.
    return (
        Comment.project_id == project_id,
        Comment.parent_comment_id.is_(None),
        or_(Comment.is_deleted.is_(False), Comment.reply_count > 0),
    )


async def _load_comments(session: AsyncSession, query: Select) -> list[CommentRecord]:
    rows = (await session.execute(query)).all()
    if not rows:
        return []

    ids = [comment.id for comment, _ in rows]
    children = await session.execute(
        select(Comment.parent_comment_id, Comment.id)
        .where(Comment.parent_comment_id.in_(ids))
        .order_by(Comment.created_at.asc(), Comment.id.asc())
    )
    reply_ids: dict[int, list[int]] = defaultdict(list)
    for parent_id, child_id in children.all():
        reply_ids[parent_id].append(child_id)

    return [_comment_record(comment, username, reply_ids.get(comment.id, [])) for comment, username in rows]


def _load_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return []
    if not isinstance(parsed, list):
        return []
    return [str(item) for item in parsed]


def _load_dict(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _user_record(user: User) -> UserRecord:
    return UserRecord(id=user.id, username=user.username, role=user.role)


def _project_record(project: Project, author_username: str) -> ProjectRecord:
    return ProjectRecord(
        id=project.id,
        author_id=project.author_id,
        author_username=author_username,
        title=project.title,
        short_description=project.short_description or "",
        tags=_load_list(project.tags_json),
        technologies=_load_list(project.technologies_json),
        status=project.status,
        visibility=project.visibility,
        upvote_count=project.upvote_count,
        comment_count=project.comment_count,
        created_at=project.created_at,
    )


def _comment_record(comment: Comment, author_username: str, reply_ids: list[int]) -> CommentRecord:
    return CommentRecord(
        id=comment.id,
        project_id=comment.project_id,
        author_id=comment.author_id,
        author_username=author_username,
        parent_id=comment.parent_comment_id,
        content=comment.content,
        reply_ids=list(reply_ids),
        is_edited=comment.is_edited,
        edited_at=comment.edited_at,
        is_deleted=comment.is_deleted,
        deleted_at=comment.deleted_at,
        like_count=comment.like_count,
        reply_count=comment.reply_count,
        created_at=comment.created_at,
    )


def _notification_record(notification: Notification) -> NotificationRecord:
    entity = None
    if notification.entity_type is not None and notification.entity_id is not None:
        entity = EntityRef(type=notification.entity_type, id=notification.entity_id)
    return NotificationRecord(
        id=notification.id,
        user_id=notification.user_id,
        type=notification.type,
        title=notification.title,
        message=notification.message,
        data=_load_dict(notification.data_json),
        entity=entity,
        triggered_by_id=notification.triggered_by_id,
        is_read=notification.is_read,
        read_at=notification.read_at,
        created_at=notification.created_at,
    )
