"""Comment thread endpoints.

GET    /v1/projects/{projectId}/comments  - threaded listing (public)
POST   /v1/projects/{projectId}/comments  - create comment or reply
PUT    /v1/comments/{commentId}           - edit (author only)
DELETE /v1/comments/{commentId}           - soft delete (author/moderator/admin)
POST   /v1/comments/{commentId}/like      - like/unlike toggle
"""

from fastapi import APIRouter, Depends, Path, Query

from app.deps import get_current_user, get_thread_store
from app.schemas import (
    CommentCreateRequest,
    CommentOut,
    CommentResponse,
    CommentThreadResponse,
    CommentUpdateRequest,
    LikeResponse,
    MessageResponse,
)
from app.services.threads import ThreadStore
from app.stores.metrics import UserRecord

router = APIRouter()


@router.get("/projects/{project_id}/comments", response_model=CommentThreadResponse)
async def list_comments(
    project_id: int = Path(ge=1),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    threads: ThreadStore = Depends(get_thread_store),
) -> CommentThreadResponse:
    return await threads.list_thread(project_id, page=page, limit=limit)


@router.post("/projects/{project_id}/comments", response_model=CommentResponse, status_code=201)
async def create_comment(
    body: CommentCreateRequest,
    project_id: int = Path(ge=1),
    user: UserRecord = Depends(get_current_user),
    threads: ThreadStore = Depends(get_thread_store),
) -> CommentResponse:
    comment = await threads.create(project_id, user, body.content, parent_id=body.parent_comment_id)
    return CommentResponse(message="Comment created successfully", comment=CommentOut.from_record(comment))


@router.put("/comments/{comment_id}", response_model=CommentResponse)
async def update_comment(
    body: CommentUpdateRequest,
    comment_id: int = Path(ge=1),
    user: UserRecord = Depends(get_current_user),
    threads: ThreadStore = Depends(get_thread_store),
) -> CommentResponse:
    comment = await threads.edit(comment_id, user, body.content)
    return CommentResponse(message="Comment updated successfully", comment=CommentOut.from_record(comment))


@router.delete("/comments/{comment_id}", response_model=MessageResponse)
async def delete_comment(
    comment_id: int = Path(ge=1),
    user: UserRecord = Depends(get_current_user),
    threads: ThreadStore = Depends(get_thread_store),
) -> MessageResponse:
    await threads.soft_delete(comment_id, user)
    return MessageResponse(message="Comment deleted successfully")


@router.post("/comments/{comment_id}/like", response_model=LikeResponse)
async def like_comment(
    comment_id: int = Path(ge=1),
    user: UserRecord = Depends(get_current_user),
    threads: ThreadStore = Depends(get_thread_store),
) -> LikeResponse:
    liked, like_count = await threads.toggle_like(comment_id, user.id)
    return LikeResponse(
        message="Comment liked" if liked else "Like removed",
        liked=liked,
        like_count=like_count,
    )
