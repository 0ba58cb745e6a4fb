"""Schemas for social actions (upvote, follow)."""

from pydantic import BaseModel, Field


class UpvoteResponse(BaseModel):
    message: str
    upvoted: bool
    upvote_count: int = Field(alias="upvoteCount", ge=0)

    model_config = {"populate_by_name": True}


class FollowResponse(BaseModel):
    message: str
    following: bool
