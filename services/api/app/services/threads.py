"""Two-level comment threads.

State machine per comment:
    active --edit--> active (is_edited=True, re-entrant)
    active --soft_delete--> deleted (terminal: no further edits or likes)

Structure:
- Only top-level comments hold replies. A reply to a reply is handled by
  the configured ReplyDepthPolicy: REJECT raises ValidationError, FLATTEN
  attaches the new comment to the top-level ancestor.
- Soft delete sets the tombstone only. Replies, reply_count and the
  project's comment_count are untouched; children are never cascaded.
- Counters are projections recomputed by the store in the same step as
  the mutation (insert_comment writes row, reply_count and comment_count
  together).

Listing (list_thread):
- Top-level comments newest first; a deleted one is still listed (as a
  tombstone) while it has replies, so those replies stay reachable.
- Up to `replies_per_thread` replies each, oldest first, deleted replies
  rendered as tombstones. No "load more".
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
import math

from app.errors import ForbiddenError, NotFoundError, ValidationError
from app.schemas.comments import CommentOut, CommentThreadResponse, Pagination, ThreadComment
from app.services.notifications import NotificationDispatcher
from app.settings import ReplyDepthPolicy
from app.stores.metrics import CommentRecord, MetricsStore, ProjectRecord, UserRecord

logger = logging.getLogger("uvicorn.error")

DEFAULT_MAX_LENGTH = 1000
DEFAULT_REPLIES_PER_THREAD = 10


class ThreadStore:
    """Comment creation, editing, deletion, likes and threaded listing."""

    def __init__(
        self,
        store: MetricsStore,
        dispatcher: NotificationDispatcher,
        *,
        reply_depth_policy: ReplyDepthPolicy = ReplyDepthPolicy.FLATTEN,
        max_length: int = DEFAULT_MAX_LENGTH,
        replies_per_thread: int = DEFAULT_REPLIES_PER_THREAD,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._reply_depth_policy = reply_depth_policy
        self._max_length = max_length
        self._replies_per_thread = replies_per_thread

    # ============================================================
    # Mutations
    # ============================================================

    async def create(
        self,
        project_id: int,
        author: UserRecord,
        content: str,
        parent_id: int | None = None,
    ) -> CommentRecord:
        """Create a top-level comment or a reply.

        Raises:
            NotFoundError: Project or parent comment does not exist.
            ValidationError: Bad content, parent on another project, or a
                reply to a reply under the REJECT policy.
        """
        content = self._clean_content(content)

        project = await self._store.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found", detail={"project_id": project_id})

        replied_to: CommentRecord | None = None
        thread_root: CommentRecord | None = None
        if parent_id is not None:
            replied_to, thread_root = await self._resolve_parent(project_id, parent_id)

        # Row, parent reply_count and project comment_count land together or not at all
        comment = await self._store.insert_comment(
            project_id=project_id,
            author_id=author.id,
            content=content,
            parent_id=thread_root.id if thread_root else None,
        )

        logger.info(
            f"Comment {comment.id} created on project {project_id} by user {author.id}"
            + (f" (reply to {replied_to.id})" if replied_to else "")
        )
        self._notify_created(project, author, comment, replied_to)
        return comment

    async def edit(self, comment_id: int, actor: UserRecord, content: str) -> CommentRecord:
        """Replace a comment's content. Only its author may edit; tombstones are final."""
        comment = await self._get_live(comment_id)
        if comment.author_id != actor.id:
            raise ForbiddenError("Not authorized to update this comment", detail={"comment_id": comment_id})
        content = self._clean_content(content)
        return await self._store.update_comment_content(comment_id, content, _now())

    async def soft_delete(self, comment_id: int, actor: UserRecord) -> CommentRecord:
        """Tombstone a comment. Author, moderator or admin only; repeat deletes are no-ops."""
        comment = await self._store.get_comment(comment_id)
        if comment is None:
            raise NotFoundError(f"Comment {comment_id} not found", detail={"comment_id": comment_id})
        if comment.author_id != actor.id and not actor.is_moderator:
            raise ForbiddenError("Not authorized to delete this comment", detail={"comment_id": comment_id})
        if comment.is_deleted:
            return comment

        deleted = await self._store.mark_comment_deleted(comment_id, _now())
        logger.info(f"Comment {comment_id} soft-deleted by user {actor.id} ({actor.role.value})")
        return deleted

    async def toggle_like(self, comment_id: int, user_id: int) -> tuple[bool, int]:
        """Like if not liked yet, unlike otherwise.

        Returns:
            (liked, like_count) after the toggle.
        """
        await self._get_live(comment_id)
        return await self._store.toggle_comment_like(comment_id, user_id)

    # ============================================================
    # Query
    # ============================================================

    async def list_thread(self, project_id: int, page: int = 1, limit: int = 20) -> CommentThreadResponse:
        """One page of top-level comments with their first replies attached."""
        page = max(page, 1)
        limit = max(limit, 1)
        skip = (page - 1) * limit

        top_level, total = await asyncio.gather(
            self._store.find_top_level_comments(project_id, skip, limit),
            self._store.count_top_level_comments(project_id),
        )
        reply_lists = await asyncio.gather(
            *(self._store.find_replies(comment.id, self._replies_per_thread) for comment in top_level)
        )

        comments = [
            ThreadComment(
                **CommentOut.from_record(comment).model_dump(),
                replies=[CommentOut.from_record(reply) for reply in replies],
            )
            for comment, replies in zip(top_level, reply_lists)
        ]

        pages = math.ceil(total / limit) if total else 0
        return CommentThreadResponse(
            comments=comments,
            pagination=Pagination(
                current=page,
                pages=pages,
                total=total,
                has_next=page < pages,
                has_prev=page > 1,
            ),
        )

    # ============================================================
    # Helpers
    # ============================================================

    def _clean_content(self, content: str) -> str:
        content = (content or "").strip()
        if not content:
            raise ValidationError("Comment content is required")
        if len(content) > self._max_length:
            raise ValidationError(
                f"Comment cannot exceed {self._max_length} characters",
                detail={"max_length": self._max_length, "length": len(content)},
            )
        return content

    async def _get_live(self, comment_id: int) -> CommentRecord:
        comment = await self._store.get_comment(comment_id)
        if comment is None or comment.is_deleted:
            raise NotFoundError(f"Comment {comment_id} not found", detail={"comment_id": comment_id})
        return comment

    async def _resolve_parent(
        self, project_id: int, parent_id: int
    ) -> tuple[CommentRecord, CommentRecord]:
        """Return (comment being replied to, top-level comment that will hold the reply)."""
        parent = await self._store.get_comment(parent_id)
        if parent is None:
            raise NotFoundError(f"Parent comment {parent_id} not found", detail={"parent_id": parent_id})
        if parent.project_id != project_id:
            raise ValidationError(
                "Parent comment belongs to another project",
                detail={"parent_id": parent_id, "project_id": project_id},
            )
        if parent.is_top_level:
            return parent, parent

        if self._reply_depth_policy is ReplyDepthPolicy.REJECT:
            raise ValidationError(
                "Replies can only be made to top-level comments",
                detail={"parent_id": parent_id},
            )

        # FLATTEN: walk up to the top-level ancestor (legacy data may chain deeper)
        root = parent
        seen = {root.id}
        while root.parent_id is not None:
            ancestor = await self._store.get_comment(root.parent_id)
            if ancestor is None or ancestor.id in seen:
                break
            seen.add(ancestor.id)
            root = ancestor
        if not root.is_top_level:
            raise NotFoundError(
                f"Thread for comment {parent_id} is broken",
                detail={"parent_id": parent_id},
            )
        return parent, root

    def _notify_created(
        self,
        project: ProjectRecord,
        author: UserRecord,
        comment: CommentRecord,
        replied_to: CommentRecord | None,
    ) -> None:
        if replied_to is not None:
            self._dispatcher.notify_reply(replied_to.author_id, author, project, comment)
        else:
            self._dispatcher.notify_comment(project, author, comment)


def _now() -> datetime:
    return datetime.now(timezone.utc)
