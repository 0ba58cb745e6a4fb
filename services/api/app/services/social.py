"""Social actions that fan out notifications: project upvotes and follows.

Both are toggles executed atomically by the store. Only the "on" edge
(new upvote, new follow) notifies, and never the actor themselves.
"""

import logging

from app.errors import NotFoundError, ValidationError
from app.services.notifications import NotificationDispatcher
from app.stores.metrics import MetricsStore, UserRecord

logger = logging.getLogger("uvicorn.error")


class SocialActions:
    def __init__(self, store: MetricsStore, dispatcher: NotificationDispatcher) -> None:
        self._store = store
        self._dispatcher = dispatcher

    async def toggle_upvote(self, project_id: int, actor: UserRecord) -> tuple[bool, int]:
        """Upvote ("star") a project, or remove the upvote.

        Returns:
            (upvoted, upvote_count) after the toggle.
        """
        project = await self._store.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found", detail={"project_id": project_id})

        upvoted, upvote_count = await self._store.toggle_upvote(project_id, actor.id)
        logger.info(
            f"Project {project_id} {'upvoted' if upvoted else 'un-upvoted'} by user {actor.id} "
            f"(count={upvote_count})"
        )
        if upvoted:
            self._dispatcher.notify_star(project, actor)
        return upvoted, upvote_count

    async def toggle_follow(self, target_user_id: int, actor: UserRecord) -> bool:
        """Follow a user, or unfollow if already following.

        Returns:
            True if the actor now follows the target.
        """
        if target_user_id == actor.id:
            raise ValidationError("Cannot follow yourself")

        target = await self._store.get_user(target_user_id)
        if target is None:
            raise NotFoundError(f"User {target_user_id} not found", detail={"user_id": target_user_id})

        following = await self._store.toggle_follow(actor.id, target_user_id)
        if following:
            self._dispatcher.notify_follow(target.id, actor)
        return following
