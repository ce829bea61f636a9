"""
ORM models.

Importing this package registers every table on the shared metadata.
"""

from bulletin.models.forum import (
    ForumCategory,
    ForumPost,
    ForumSubject,
    ForumThread,
    ThreadSubscription,
)
from bulletin.models.media import Image, PostImage
from bulletin.models.moderation import FilterAction, ModerationSettings
from bulletin.models.notification import (
    Notification,
    NotificationPreferences,
    NotificationType,
)
from bulletin.models.user import (
    SubjectModerator,
    User,
    UserGroup,
    UserGroupMember,
    UserRole,
)

__all__ = [
    "FilterAction",
    "ForumCategory",
    "ForumPost",
    "ForumSubject",
    "ForumThread",
    "Image",
    "ModerationSettings",
    "Notification",
    "NotificationPreferences",
    "NotificationType",
    "PostImage",
    "SubjectModerator",
    "ThreadSubscription",
    "User",
    "UserGroup",
    "UserGroupMember",
    "UserRole",
]
