"""SQLAlchemy ORM models.

Models represent database tables:
- users / follows: identities, moderation roles, follower graph
- projects / project_upvotes: showcased projects and their upvote sets
- comments / comment_likes: two-level comment threads and their like sets
- notifications: per-recipient social-action notifications
"""

from app.models.comment import Comment, CommentLike
from app.models.notification import Notification
from app.models.project import Project, ProjectUpvote
from app.models.user import Follow, User

__all__ = ["Comment", "CommentLike", "Follow", "Notification", "Project", "ProjectUpvote", "User"]
