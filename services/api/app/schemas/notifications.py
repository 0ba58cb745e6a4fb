"""Schemas for /v1/notifications."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from app.schemas.comments import Pagination
from app.stores.metrics import NotificationRecord


class EntityOut(BaseModel):
    type: str
    id: int


class NotificationOut(BaseModel):
    id: int
    type: str
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    entity: EntityOut | None = None
    triggered_by: int | None = Field(alias="triggeredBy", default=None)
    is_read: bool = Field(alias="isRead", default=False)
    read_at: datetime | None = Field(alias="readAt", default=None)
    created_at: datetime = Field(alias="createdAt")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_record(cls, record: NotificationRecord) -> "NotificationOut":
        return cls(
            id=record.id,
            type=record.type.value,
            title=record.title,
            message=record.message,
            data=record.data,
            entity=EntityOut(type=record.entity.type.value, id=record.entity.id) if record.entity else None,
            triggered_by=record.triggered_by_id,
            is_read=record.is_read,
            read_at=record.read_at,
            created_at=record.created_at,
        )


class NotificationListResponse(BaseModel):
    notifications: list[NotificationOut]
    unread_count: int = Field(alias="unreadCount", ge=0)
    pagination: Pagination

    model_config = {"populate_by_name": True}


class UnreadCountResponse(BaseModel):
    unread_count: int = Field(alias="unreadCount", ge=0)

    model_config = {"populate_by_name": True}


class MarkAllReadResponse(BaseModel):
    message: str
    modified: int = Field(ge=0)
