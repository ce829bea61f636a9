"""
Notification models.

Includes:
- Notifications (one row per recipient)
- Per-user notification preferences
"""

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from bulletin.core.database import Base


class NotificationType(str, PyEnum):
    """Kinds of notification a user can receive."""

    THREAD_REPLY = "THREAD_REPLY"
    THREAD_SUBSCRIBE = "THREAD_SUBSCRIBE"
    POST_REPLY = "POST_REPLY"
    POST_MENTION = "POST_MENTION"
    PRIVATE_MESSAGE = "PRIVATE_MESSAGE"
    MODERATION_ACTION = "MODERATION_ACTION"
    SYSTEM_ALERT = "SYSTEM_ALERT"


class Notification(Base):
    """Notification delivered to one user."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    type: Mapped[NotificationType] = mapped_column(Enum(NotificationType))

    title: Mapped[str] = mapped_column(String(255))
    content: Mapped[str] = mapped_column(Text)
    action_url: Mapped[str | None] = mapped_column(String(500))
    priority: Mapped[str] = mapped_column(String(20), default="NORMAL")

    # What the notification points at
    related_type: Mapped[str | None] = mapped_column(String(20))
    related_id: Mapped[int | None] = mapped_column(Integer)
    triggered_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))

    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Notification {self.type} for user {self.user_id}>"


# Subscriptions share the reply switch
PREFERENCE_FIELDS = {
    NotificationType.THREAD_REPLY: "browser_thread_reply",
    NotificationType.THREAD_SUBSCRIBE: "browser_thread_reply",
    NotificationType.POST_REPLY: "browser_post_reply",
    NotificationType.POST_MENTION: "browser_mentions",
    NotificationType.PRIVATE_MESSAGE: "browser_messages",
    NotificationType.MODERATION_ACTION: "browser_moderation",
    NotificationType.SYSTEM_ALERT: "browser_system",
}


class NotificationPreferences(Base):
    """Per-user opt-outs; a missing row means everything is delivered."""

    __tablename__ = "notification_preferences"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True)

    browser_thread_reply: Mapped[bool | None] = mapped_column(Boolean, default=True)
    browser_post_reply: Mapped[bool | None] = mapped_column(Boolean, default=True)
    browser_mentions: Mapped[bool | None] = mapped_column(Boolean, default=True)
    browser_messages: Mapped[bool | None] = mapped_column(Boolean, default=True)
    browser_moderation: Mapped[bool | None] = mapped_column(Boolean, default=True)
    browser_system: Mapped[bool | None] = mapped_column(Boolean, default=True)

    def allows(self, notification_type: NotificationType) -> bool:
        """Only an explicit False opts out."""
        field = PREFERENCE_FIELDS.get(notification_type)
        if field is None:
            return True
        return getattr(self, field) is not False
