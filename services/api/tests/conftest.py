"""Shared fixtures: an in-memory MetricsStore and services wired around it.

The fake store keeps no awaits inside its methods, so each call is atomic
under asyncio just like a single-document update on the real store.
"""

from collections import Counter, defaultdict
from dataclasses import replace
from datetime import datetime, timedelta, timezone
import itertools

import pytest
from httpx import ASGITransport, AsyncClient

from app.deps import close_services, init_services
from app.errors import NotFoundError
from app.services.notifications import NotificationDispatcher
from app.services.ranking_cache import RankingCache
from app.services.social import SocialActions
from app.services.threads import ThreadStore
from app.settings import ReplyDepthPolicy, Settings
from app.stores.metrics import (
    CommentRecord,
    LabelField,
    MetricsStore,
    NotificationDraft,
    NotificationRecord,
    ProjectRecord,
    UserRecord,
    UserRole,
)

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


class InMemoryMetricsStore(MetricsStore):
    def __init__(self) -> None:
        self.calls: Counter[str] = Counter()
        self.users: dict[int, UserRecord] = {}
        self.projects: dict[int, ProjectRecord] = {}
        self.upvotes: dict[int, set[int]] = defaultdict(set)
        self.comments: dict[int, CommentRecord] = {}
        self.likes: dict[int, set[int]] = defaultdict(set)
        self.follows: set[tuple[int, int]] = set()
        self.notifications: dict[int, NotificationRecord] = {}

        # Failure injection
        self.fail_reads: Exception | None = None
        self.fail_notifications: Exception | None = None
        self.fail_comment_writes: Exception | None = None

        self._ids = itertools.count(1)
        self._ticks = itertools.count(1)

    # -- seeding helpers ------------------------------------------------

    def now(self) -> datetime:
        return BASE_TIME + timedelta(seconds=next(self._ticks))

    def add_user(self, username: str, role: UserRole = UserRole.USER) -> UserRecord:
        user = UserRecord(id=next(self._ids), username=username, role=role)
        self.users[user.id] = user
        return user

    def add_project(
        self,
        author: UserRecord,
        title: str = "Project",
        *,
        upvotes: int = 0,
        comments: int = 0,
        tags: list[str] | None = None,
        technologies: list[str] | None = None,
        created_at: datetime | None = None,
        status: str = "published",
        visibility: str = "public",
    ) -> ProjectRecord:
        project = ProjectRecord(
            id=next(self._ids),
            author_id=author.id,
            author_username=author.username,
            title=title,
            tags=tags or [],
            technologies=technologies or [],
            status=status,
            visibility=visibility,
            upvote_count=upvotes,
            comment_count=comments,
            created_at=created_at or self.now(),
        )
        self.projects[project.id] = project
        return project

    def _published(self) -> list[ProjectRecord]:
        return [
            p for p in self.projects.values() if p.status == "published" and p.visibility == "public"
        ]

    # -- users ----------------------------------------------------------

    async def get_user(self, user_id: int) -> UserRecord | None:
        self.calls["get_user"] += 1
        return self.users.get(user_id)

    async def toggle_follow(self, follower_id: int, followed_id: int) -> bool:
        self.calls["toggle_follow"] += 1
        pair = (follower_id, followed_id)
        if pair in self.follows:
            self.follows.discard(pair)
            return False
        self.follows.add(pair)
        return True

    # -- projects -------------------------------------------------------

    async def get_project(self, project_id: int) -> ProjectRecord | None:
        self.calls["get_project"] += 1
        return self.projects.get(project_id)

    async def list_recent_published(self, limit: int) -> list[ProjectRecord]:
        self.calls["list_recent_published"] += 1
        if self.fail_reads:
            raise self.fail_reads
        ordered = sorted(self._published(), key=lambda p: (p.created_at, p.id), reverse=True)
        return ordered[:limit]

    async def list_published_labels(self, label_field: LabelField) -> list[list[str]]:
        self.calls["list_published_labels"] += 1
        if self.fail_reads:
            raise self.fail_reads
        ordered = sorted(self._published(), key=lambda p: (p.created_at, p.id))
        if label_field is LabelField.TAGS:
            return [list(p.tags) for p in ordered]
        return [list(p.technologies) for p in ordered]

    async def toggle_upvote(self, project_id: int, user_id: int) -> tuple[bool, int]:
        self.calls["toggle_upvote"] += 1
        project = self._require(self.projects, project_id)
        voters = self.upvotes[project_id]
        if user_id in voters:
            voters.discard(user_id)
            upvoted = False
        else:
            voters.add(user_id)
            upvoted = True
        self.projects[project_id] = replace(project, upvote_count=len(voters))
        return upvoted, len(voters)

    # -- comments -------------------------------------------------------

    async def get_comment(self, comment_id: int) -> CommentRecord | None:
        self.calls["get_comment"] += 1
        return self.comments.get(comment_id)

    async def insert_comment(
        self,
        project_id: int,
        author_id: int,
        content: str,
        parent_id: int | None = None,
    ) -> CommentRecord:
        self.calls["insert_comment"] += 1
        if self.fail_comment_writes:
            raise self.fail_comment_writes
        project = self._require(self.projects, project_id)
        parent = self._require(self.comments, parent_id) if parent_id is not None else None

        author = self.users.get(author_id)
        comment = CommentRecord(
            id=next(self._ids),
            project_id=project_id,
            author_id=author_id,
            author_username=author.username if author else "",
            parent_id=parent_id,
            content=content,
            created_at=self.now(),
        )
        self.comments[comment.id] = comment

        if parent is not None:
            reply_ids = [*parent.reply_ids, comment.id]
            self.comments[parent.id] = replace(parent, reply_ids=reply_ids, reply_count=len(reply_ids))
        count = sum(1 for c in self.comments.values() if c.project_id == project_id)
        self.projects[project_id] = replace(project, comment_count=count)
        return comment

    async def update_comment_content(
        self, comment_id: int, content: str, edited_at: datetime
    ) -> CommentRecord:
        self.calls["update_comment_content"] += 1
        comment = self._require(self.comments, comment_id)
        updated = replace(comment, content=content, is_edited=True, edited_at=edited_at)
        self.comments[comment_id] = updated
        return updated

    async def mark_comment_deleted(self, comment_id: int, deleted_at: datetime) -> CommentRecord:
        self.calls["mark_comment_deleted"] += 1
        comment = self._require(self.comments, comment_id)
        if not comment.is_deleted:
            comment = replace(comment, is_deleted=True, deleted_at=deleted_at)
            self.comments[comment_id] = comment
        return comment

    async def toggle_comment_like(self, comment_id: int, user_id: int) -> tuple[bool, int]:
        self.calls["toggle_comment_like"] += 1
        comment = self._require(self.comments, comment_id)
        likers = self.likes[comment_id]
        if user_id in likers:
            likers.discard(user_id)
            liked = False
        else:
            likers.add(user_id)
            liked = True
        self.comments[comment_id] = replace(comment, like_count=len(likers))
        return liked, len(likers)

    async def has_liked(self, comment_id: int, user_id: int) -> bool:
        self.calls["has_liked"] += 1
        return user_id in self.likes.get(comment_id, set())

    def _listable_top_level(self, project_id: int) -> list[CommentRecord]:
        return [
            c
            for c in self.comments.values()
            if c.project_id == project_id
            and c.parent_id is None
            and (not c.is_deleted or c.reply_count > 0)
        ]

    async def find_top_level_comments(
        self, project_id: int, skip: int, limit: int
    ) -> list[CommentRecord]:
        self.calls["find_top_level_comments"] += 1
        ordered = sorted(
            self._listable_top_level(project_id), key=lambda c: (c.created_at, c.id), reverse=True
        )
        return ordered[skip : skip + limit]

    async def count_top_level_comments(self, project_id: int) -> int:
        self.calls["count_top_level_comments"] += 1
        return len(self._listable_top_level(project_id))

    async def find_replies(self, parent_id: int, limit: int) -> list[CommentRecord]:
        self.calls["find_replies"] += 1
        replies = [c for c in self.comments.values() if c.parent_id == parent_id]
        return sorted(replies, key=lambda c: (c.created_at, c.id))[:limit]

    # -- notifications --------------------------------------------------

    async def insert_notification(self, draft: NotificationDraft) -> NotificationRecord:
        self.calls["insert_notification"] += 1
        if self.fail_notifications:
            raise self.fail_notifications
        record = NotificationRecord(
            id=next(self._ids),
            user_id=draft.user_id,
            type=draft.type,
            title=draft.title,
            message=draft.message,
            data=dict(draft.data),
            entity=draft.entity,
            triggered_by_id=draft.triggered_by_id,
            created_at=self.now(),
        )
        self.notifications[record.id] = record
        return record

    async def get_notification(self, notification_id: int) -> NotificationRecord | None:
        self.calls["get_notification"] += 1
        return self.notifications.get(notification_id)

    def _for_user(self, user_id: int, unread_only: bool) -> list[NotificationRecord]:
        return [
            n
            for n in self.notifications.values()
            if n.user_id == user_id and (not unread_only or not n.is_read)
        ]

    async def find_notifications(
        self, user_id: int, skip: int, limit: int, unread_only: bool = False
    ) -> list[NotificationRecord]:
        self.calls["find_notifications"] += 1
        ordered = sorted(
            self._for_user(user_id, unread_only), key=lambda n: (n.created_at, n.id), reverse=True
        )
        return ordered[skip : skip + limit]

    async def count_notifications(self, user_id: int, unread_only: bool = False) -> int:
        self.calls["count_notifications"] += 1
        return len(self._for_user(user_id, unread_only))

    async def mark_notification_read(
        self, notification_id: int, read_at: datetime
    ) -> NotificationRecord:
        self.calls["mark_notification_read"] += 1
        notification = self._require(self.notifications, notification_id)
        if not notification.is_read:
            notification = replace(notification, is_read=True, read_at=read_at)
            self.notifications[notification_id] = notification
        return notification

    async def mark_all_notifications_read(self, user_id: int, read_at: datetime) -> int:
        self.calls["mark_all_notifications_read"] += 1
        unread = self._for_user(user_id, unread_only=True)
        for n in unread:
            self.notifications[n.id] = replace(n, is_read=True, read_at=read_at)
        return len(unread)

    async def delete_notification(self, notification_id: int) -> bool:
        self.calls["delete_notification"] += 1
        return self.notifications.pop(notification_id, None) is not None

    # -------------------------------------------------------------------

    @staticmethod
    def _require(table: dict, entity_id: int):
        if entity_id not in table:
            raise NotFoundError(f"{entity_id} not found")
        return table[entity_id]


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def store() -> InMemoryMetricsStore:
    return InMemoryMetricsStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dispatcher(store: InMemoryMetricsStore) -> NotificationDispatcher:
    return NotificationDispatcher(store)


@pytest.fixture
def threads(store: InMemoryMetricsStore, dispatcher: NotificationDispatcher) -> ThreadStore:
    return ThreadStore(store, dispatcher)


@pytest.fixture
def social(store: InMemoryMetricsStore, dispatcher: NotificationDispatcher) -> SocialActions:
    return SocialActions(store, dispatcher)


@pytest.fixture
def ranking_cache(store: InMemoryMetricsStore, clock: FakeClock) -> RankingCache:
    return RankingCache(store, ttl_seconds=3600, trending_window=100, clock=clock)


@pytest.fixture
def settings() -> Settings:
    settings = Settings(_env_file=None)
    assert settings.reply_depth_policy is ReplyDepthPolicy.FLATTEN
    return settings


@pytest.fixture
async def client(store: InMemoryMetricsStore, settings: Settings):
    """Test client with services wired around the in-memory store."""
    from app.main import app

    init_services(store, settings)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    await close_services()


