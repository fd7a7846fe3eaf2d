"""Notification models."""

from datetime import datetime
from typing import Any, ClassVar, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from ownitright.models.record import Record
from ownitright.models.status import (
    NotificationCategory,
    NotificationPriority,
    NotificationStatus,
    NotificationType,
)


class Notification(Record):
    """In-app notification addressed to a user or broadcast to everyone."""
    search_fields: ClassVar[tuple[str, ...]] = ("title", "message")

    kind: Literal["notification"] = "notification"
    user_id: Optional[str] = Field(None, description="Recipient; None for broadcasts")
    user_type: Literal["user", "all"] = Field(default="user")
    title: str = Field(..., description="Notification title")
    message: str = Field(default="")
    type: NotificationType = Field(default=NotificationType.INFO)
    category: NotificationCategory = Field(default=NotificationCategory.SYSTEM)
    priority: NotificationPriority = Field(default=NotificationPriority.MEDIUM)
    is_read: bool = Field(default=False)
    read_at: Optional[datetime] = None
    is_archived: bool = Field(default=False)
    action_url: Optional[str] = None
    action_text: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def status(self) -> NotificationStatus:
        if self.is_archived:
            return NotificationStatus.ARCHIVED
        if self.is_read:
            return NotificationStatus.READ
        return NotificationStatus.UNREAD

    def is_addressed_to(self, user_id: str) -> bool:
        """True for the user's own notifications and for broadcasts."""
        if self.user_id is not None:
            return self.user_id == user_id
        return self.user_type == "all"


class NotificationFeed(BaseModel):
    """Response envelope of GET /api/notifications."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    notifications: tuple[Notification, ...] = Field(default_factory=tuple)
    total: int = Field(default=0, ge=0)

    @computed_field
    @property
    def unread_count(self) -> int:
        return sum(
            1 for n in self.notifications
            if not n.is_read and not n.is_archived
        )

    def find(self, notification_id: str) -> Optional[Notification]:
        for notification in self.notifications:
            if notification.id == notification_id:
                return notification
        return None

    def replace(self, notifications) -> "NotificationFeed":
        """New feed holding the given notifications, total unchanged."""
        return self.model_copy(update={"notifications": tuple(notifications)})
