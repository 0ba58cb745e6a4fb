"""Schemas for comment threads (/v1/projects/{id}/comments, /v1/comments/{id})."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from app.stores.metrics import CommentRecord


class AuthorRef(BaseModel):
    id: int
    username: str


class CommentMetrics(BaseModel):
    like_count: int = Field(alias="likeCount", ge=0)
    reply_count: int = Field(alias="replyCount", ge=0)

    model_config = {"populate_by_name": True}


class CommentOut(BaseModel):
    """A single comment. Tombstones keep their structure but not their content."""

    id: int
    project_id: int = Field(alias="projectId")
    parent_comment_id: int | None = Field(alias="parentComment", default=None)
    author: AuthorRef
    content: str | None
    is_edited: bool = Field(alias="isEdited", default=False)
    edited_at: datetime | None = Field(alias="editedAt", default=None)
    is_deleted: bool = Field(alias="isDeleted", default=False)
    deleted_at: datetime | None = Field(alias="deletedAt", default=None)
    reply_ids: list[int] = Field(alias="replyIds", default_factory=list)
    metrics: CommentMetrics
    created_at: datetime = Field(alias="createdAt")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_record(cls, record: CommentRecord) -> "CommentOut":
        return cls(
            id=record.id,
            project_id=record.project_id,
            parent_comment_id=record.parent_id,
            author=AuthorRef(id=record.author_id, username=record.author_username),
            content=None if record.is_deleted else record.content,
            is_edited=record.is_edited,
            edited_at=record.edited_at,
            is_deleted=record.is_deleted,
            deleted_at=record.deleted_at,
            reply_ids=list(record.reply_ids),
            metrics=CommentMetrics(like_count=record.like_count, reply_count=record.reply_count),
            created_at=record.created_at,
        )


class ThreadComment(CommentOut):
    """Top-level comment with its first replies attached."""

    replies: list[CommentOut] = Field(default_factory=list)


class Pagination(BaseModel):
    current: int = Field(ge=1)
    pages: int = Field(ge=0)
    total: int = Field(ge=0)
    has_next: bool = Field(alias="hasNext")
    has_prev: bool = Field(alias="hasPrev")

    model_config = {"populate_by_name": True}


class CommentThreadResponse(BaseModel):
    """Response payload for GET /v1/projects/{projectId}/comments."""

    comments: list[ThreadComment]
    pagination: Pagination


class CommentCreateRequest(BaseModel):
    content: str
    parent_comment_id: int | None = Field(alias="parentComment", default=None)

    model_config = {"populate_by_name": True}


class CommentUpdateRequest(BaseModel):
    content: str


class CommentResponse(BaseModel):
    message: str
    comment: CommentOut


class LikeResponse(BaseModel):
    message: str
    liked: bool
    like_count: int = Field(alias="likeCount", ge=0)

    model_config = {"populate_by_name": True}
