"""Social action endpoints.

POST /v1/projects/{projectId}/upvote - upvote/un-upvote toggle
POST /v1/users/{userId}/follow       - follow/unfollow toggle
"""

from fastapi import APIRouter, Depends, Path

from app.deps import get_current_user, get_social_actions
from app.schemas import FollowResponse, UpvoteResponse
from app.services.social import SocialActions
from app.stores.metrics import UserRecord

router = APIRouter()


@router.post("/projects/{project_id}/upvote", response_model=UpvoteResponse)
async def upvote_project(
    project_id: int = Path(ge=1),
    user: UserRecord = Depends(get_current_user),
    social: SocialActions = Depends(get_social_actions),
) -> UpvoteResponse:
    upvoted, upvote_count = await social.toggle_upvote(project_id, user)
    return UpvoteResponse(
        message="Project upvoted" if upvoted else "Upvote removed",
        upvoted=upvoted,
        upvote_count=upvote_count,
    )


@router.post("/users/{user_id}/follow", response_model=FollowResponse)
async def follow_user(
    user_id: int = Path(ge=1),
    user: UserRecord = Depends(get_current_user),
    social: SocialActions = Depends(get_social_actions),
) -> FollowResponse:
    following = await social.toggle_follow(user_id, user)
    return FollowResponse(
        message="User followed" if following else "User unfollowed",
        following=following,
    )
