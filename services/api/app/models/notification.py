"""Notification model.

One row per recipient per social action. `data_json` echoes the
identifiers of the triggering entity for the client; `entity_*` points at
the object itself.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.stores.metrics import EntityType, NotificationType
from app.stores.postgres import Base


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_created", "user_id", "created_at"),
        Index("ix_notifications_user_is_read", "user_id", "is_read"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # Recipient
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))

    type: Mapped[NotificationType] = mapped_column(
        Enum(
            NotificationType,
            values_callable=lambda e: [m.value for m in e],
            name="notification_type",
        ),
        index=True,
    )
    title: Mapped[str] = mapped_column(String(100))
    message: Mapped[str] = mapped_column(String(500))
    data_json: Mapped[str | None] = mapped_column(Text)

    # Triggering entity
    entity_type: Mapped[EntityType | None] = mapped_column(
        Enum(EntityType, values_callable=lambda e: [m.value for m in e], name="entity_type"),
    )
    entity_id: Mapped[int | None] = mapped_column()

    # Actor (NULL for system notifications)
    triggered_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))

    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Notification {self.id} {self.type.value} -> user {self.user_id}>"
