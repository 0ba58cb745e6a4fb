"""MetricsStore interface and the records it exchanges with services.

The store owns every durable entity (users, projects, comments,
notifications). Services only see the plain records below, never ORM rows,
so they can be exercised against any implementation.

Contract:
- Every method is a single atomic operation at the store.
- Toggles (`toggle_upvote`, `toggle_comment_like`, `toggle_follow`) are
  add-if-absent / remove-if-present and recompute the denormalized counter
  in the same step, so concurrent toggles cannot lose updates.
- I/O failures surface as `TransientStoreError`.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class UserRole(str, Enum):
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


class NotificationType(str, Enum):
    FOLLOW = "follow"
    STAR = "star"
    COMMENT = "comment"
    MENTION = "mention"
    SYSTEM = "system"


class EntityType(str, Enum):
    PROJECT = "project"
    COMMENT = "comment"
    USER = "user"


class LabelField(str, Enum):
    """Project list fields that can be aggregated."""

    TAGS = "tags"
    TECHNOLOGIES = "technologies"


@dataclass(frozen=True)
class EntityRef:
    type: EntityType
    id: int


@dataclass(frozen=True)
class UserRecord:
    id: int
    username: str
    role: UserRole = UserRole.USER

    @property
    def is_moderator(self) -> bool:
        return self.role in (UserRole.MODERATOR, UserRole.ADMIN)


@dataclass(frozen=True)
class ProjectRecord:
    id: int
    author_id: int
    title: str
    created_at: datetime
    short_description: str = ""
    author_username: str = ""
    tags: list[str] = field(default_factory=list)
    technologies: list[str] = field(default_factory=list)
    status: str = "published"
    visibility: str = "public"
    upvote_count: int = 0
    comment_count: int = 0


@dataclass(frozen=True)
class CommentRecord:
    id: int
    project_id: int
    author_id: int
    content: str
    created_at: datetime
    author_username: str = ""
    parent_id: int | None = None
    reply_ids: list[int] = field(default_factory=list)  # ordered oldest first
    is_edited: bool = False
    edited_at: datetime | None = None
    is_deleted: bool = False
    deleted_at: datetime | None = None
    like_count: int = 0
    reply_count: int = 0

    @property
    def is_top_level(self) -> bool:
        return self.parent_id is None


@dataclass(frozen=True)
class NotificationDraft:
    """Everything needed to insert a notification."""

    user_id: int
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    entity: EntityRef | None = None
    triggered_by_id: int | None = None


@dataclass(frozen=True)
class NotificationRecord:
    id: int
    user_id: int
    type: NotificationType
    title: str
    message: str
    created_at: datetime
    data: dict[str, Any] = field(default_factory=dict)
    entity: EntityRef | None = None
    triggered_by_id: int | None = None
    is_read: bool = False
    read_at: datetime | None = None


class MetricsStore(ABC):
    """Durable record store consumed by the engagement services."""

    # ------------------------------------------------------------
    # Users
    # ------------------------------------------------------------

    @abstractmethod
    async def get_user(self, user_id: int) -> UserRecord | None: ...

    @abstractmethod
    async def toggle_follow(self, follower_id: int, followed_id: int) -> bool:
        """Follow if not following, unfollow otherwise. Returns the new state."""

    # ------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------

    @abstractmethod
    async def get_project(self, project_id: int) -> ProjectRecord | None: ...

    @abstractmethod
    async def list_recent_published(self, limit: int) -> list[ProjectRecord]:
        """Most recent published+public projects, created_at descending."""

    @abstractmethod
    async def list_published_labels(self, label_field: LabelField) -> list[list[str]]:
        """The given list field of every published+public project, oldest first."""

    @abstractmethod
    async def toggle_upvote(self, project_id: int, user_id: int) -> tuple[bool, int]:
        """Returns (upvoted, upvote_count) after the toggle."""

    # ------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------

    @abstractmethod
    async def get_comment(self, comment_id: int) -> CommentRecord | None: ...

    @abstractmethod
    async def insert_comment(
        self,
        project_id: int,
        author_id: int,
        content: str,
        parent_id: int | None = None,
    ) -> CommentRecord:
        """Insert a comment and recompute every counter it affects, in one step.

        With `parent_id` the comment joins the parent's replies and the
        parent's reply_count is recomputed. The project's comment_count is
        always recomputed. Either everything is written or nothing is.

        Raises:
            NotFoundError: Project or parent comment does not exist.
        """

    @abstractmethod
    async def update_comment_content(
        self, comment_id: int, content: str, edited_at: datetime
    ) -> CommentRecord: ...

    @abstractmethod
    async def mark_comment_deleted(self, comment_id: int, deleted_at: datetime) -> CommentRecord: ...

    @abstractmethod
    async def toggle_comment_like(self, comment_id: int, user_id: int) -> tuple[bool, int]:
        """Returns (liked, like_count) after the toggle."""

    @abstractmethod
    async def has_liked(self, comment_id: int, user_id: int) -> bool: ...

    @abstractmethod
    async def find_top_level_comments(
        self, project_id: int, skip: int, limit: int
    ) -> list[CommentRecord]:
        """Listable top-level comments, created_at descending.

        Listable means not deleted, or deleted but still holding replies.
        """

    @abstractmethod
    async def count_top_level_comments(self, project_id: int) -> int: ...

    @abstractmethod
    async def find_replies(self, parent_id: int, limit: int) -> list[CommentRecord]:
        """Direct replies (deleted ones included), created_at ascending."""

    # ------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------

    @abstractmethod
    async def insert_notification(self, draft: NotificationDraft) -> NotificationRecord: ...

    @abstractmethod
    async def get_notification(self, notification_id: int) -> NotificationRecord | None: ...

    @abstractmethod
    async def find_notifications(
        self, user_id: int, skip: int, limit: int, unread_only: bool = False
    ) -> list[NotificationRecord]:
        """Newest first."""

    @abstractmethod
    async def count_notifications(self, user_id: int, unread_only: bool = False) -> int: ...

    @abstractmethod
    async def mark_notification_read(
        self, notification_id: int, read_at: datetime
    ) -> NotificationRecord:
        """Set is_read/read_at unless already read."""

    @abstractmethod
    async def mark_all_notifications_read(self, user_id: int, read_at: datetime) -> int:
        """Returns how many notifications changed."""

    @abstractmethod
    async def delete_notification(self, notification_id: int) -> bool: ...
