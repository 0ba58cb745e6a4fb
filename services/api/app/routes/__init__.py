"""API routes."""

from fastapi import APIRouter

from app.routes import comments, notifications, social, trending
from app.schemas import ErrorResponse

# Documented error bodies (see main.domain_exception_handler)
ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}

api_router = APIRouter(responses=ERROR_RESPONSES)

# Rankings (cached)
api_router.include_router(trending.router, prefix="/v1/trending", tags=["trending"])

# Comment threads
api_router.include_router(comments.router, prefix="/v1", tags=["comments"])

# Upvotes and follows
api_router.include_router(social.router, prefix="/v1", tags=["social"])

# Notification inbox
api_router.include_router(notifications.router, prefix="/v1/notifications", tags=["notifications"])
