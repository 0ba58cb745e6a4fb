"""Project and ProjectUpvote models.

`upvote_count` and `comment_count` are projections of the
`project_upvotes` rows and of the project's comments; the repository
recomputes them on every mutation and nothing else writes them.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.stores.postgres import Base


class Project(Base):
    """Published (or draft) portfolio project."""

    __tablename__ = "projects"
    __table_args__ = (
        Index("ix_projects_status_visibility_created", "status", "visibility", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    author_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)

    title: Mapped[str] = mapped_column(String(100))
    short_description: Mapped[str] = mapped_column(String(200), default="")

    # JSON arrays kept as text to keep migrations simple
    tags_json: Mapped[str | None] = mapped_column(Text)
    technologies_json: Mapped[str | None] = mapped_column(Text)

    status: Mapped[str] = mapped_column(String(20), default="draft")  # draft/published/archived
    visibility: Mapped[str] = mapped_column(String(20), default="public")  # public/private

    # Denormalized counters
    upvote_count: Mapped[int] = mapped_column(default=0, index=True)
    comment_count: Mapped[int] = mapped_column(default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Project {self.id} {self.title!r}>"


class ProjectUpvote(Base):
    """One user's upvote ("star") on a project."""

    __tablename__ = "project_upvotes"
    __table_args__ = (UniqueConstraint("project_id", "user_id", name="uq_project_upvotes_pair"),)

    id: Mapped[int] = mapped_column(primary_key=True)

    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
