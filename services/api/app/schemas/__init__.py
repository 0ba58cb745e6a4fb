"""Pydantic schemas for API request/response validation."""

from app.schemas.comments import (
    CommentCreateRequest,
    CommentOut,
    CommentResponse,
    CommentThreadResponse,
    CommentUpdateRequest,
    LikeResponse,
    Pagination,
    ThreadComment,
)
from app.schemas.common import ErrorDetail, ErrorResponse, MessageResponse
from app.schemas.notifications import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationOut,
    UnreadCountResponse,
)
from app.schemas.social import FollowResponse, UpvoteResponse
from app.schemas.trending import (
    CacheStatsResponse,
    PopularTagsResponse,
    PopularTechnologiesResponse,
    TrendingProjectsResponse,
)

__all__ = [
    "CacheStatsResponse",
    "CommentCreateRequest",
    "CommentOut",
    "CommentResponse",
    "CommentThreadResponse",
    "CommentUpdateRequest",
    "ErrorDetail",
    "ErrorResponse",
    "FollowResponse",
    "LikeResponse",
    "MarkAllReadResponse",
    "MessageResponse",
    "NotificationListResponse",
    "NotificationOut",
    "Pagination",
    "PopularTagsResponse",
    "PopularTechnologiesResponse",
    "ThreadComment",
    "TrendingProjectsResponse",
    "UnreadCountResponse",
    "UpvoteResponse",
]
