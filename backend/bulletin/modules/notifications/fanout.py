"""
Notification Fanout - tells the right people about a new post.

Runs after the publication has committed. Recipients:
- the thread owner (unless they wrote the post)
- every thread subscriber (except the author and the owner)
- every @mentioned user (except the author)

Each notification is written in its own session so one failing recipient
cannot stop the others.
"""

import re
from dataclasses import dataclass

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bulletin.core.events import PostPublished
from bulletin.models.forum import ForumThread, ThreadSubscription
from bulletin.models.notification import (
    Notification,
    NotificationPreferences,
    NotificationType,
)
from bulletin.models.user import User

_MENTION_RE = re.compile(r"@(\w+)")


def extract_mentions(content: str | None) -> list[str]:
    """Usernames mentioned as @name, de-duplicated in order of appearance."""
    if not content:
        return []
    return list(dict.fromkeys(_MENTION_RE.findall(content)))


@dataclass
class NotificationDraft:
    """Notification about to be created for one recipient."""

    user_id: int
    type: NotificationType
    title: str
    content: str
    action_url: str
    related_type: str
    related_id: int
    triggered_by_id: int


class NotificationFanout:
    """
    Creates reply, subscription and mention notifications.

    Usage:
        fanout = NotificationFanout(session_maker)
        dispatcher.subscribe("notifications", fanout.handle)
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.session_maker = session_maker

    async def handle(self, event: PostPublished) -> None:
        """Post-commit dispatcher entry point."""
        await self.on_post_published(
            event.thread_id,
            event.post_id,
            event.author_id,
            content=event.content,
        )

    async def on_post_published(
        self,
        thread_id: int,
        post_id: int,
        author_id: int,
        content: str | None = None,
    ) -> list[Notification]:
        """
        Notify everybody interested in a new post.

        Args:
            thread_id: Thread the post belongs to
            post_id: New post ID
            author_id: Post author (never notified)
            content: Raw post content, scanned for @mentions

        Returns:
            Notifications actually created
        """
        drafts = await self._collect_recipients(thread_id, post_id, author_id, content)

        created: list[Notification] = []
        for draft in drafts:
            notification = await self._deliver(draft)
            if notification is not None:
                created.append(notification)

        if created:
            logger.debug(f"Post {post_id}: {len(created)} notifications created")
        return created

    async def _collect_recipients(
        self,
        thread_id: int,
        post_id: int,
        author_id: int,
        content: str | None,
    ) -> list[NotificationDraft]:
        async with self.session_maker() as session:
            thread = await session.get(ForumThread, thread_id)
            if thread is None:
                logger.warning(f"Thread {thread_id} vanished before notifying post {post_id}")
                return []

            author = await session.get(User, author_id)
            author_name = author.username if author else "Someone"
            action_url = f"/threads/{thread.slug or thread.id}#post-{post_id}"

            drafts: list[NotificationDraft] = []

            if thread.user_id != author_id:
                drafts.append(
                    NotificationDraft(
                        user_id=thread.user_id,
                        type=NotificationType.THREAD_REPLY,
                        title="New reply to your thread",
                        content=f'{author_name} replied to "{thread.title}"',
                        action_url=action_url,
                        related_type="thread",
                        related_id=thread_id,
                        triggered_by_id=author_id,
                    )
                )

            result = await session.execute(
                select(ThreadSubscription.user_id).where(
                    ThreadSubscription.thread_id == thread_id
                )
            )
            for subscriber_id in result.scalars():
                if subscriber_id in (author_id, thread.user_id):
                    continue
                drafts.append(
                    NotificationDraft(
                        user_id=subscriber_id,
                        type=NotificationType.THREAD_SUBSCRIBE,
                        title="New post in subscribed thread",
                        content=f'{author_name} posted in "{thread.title}"',
                        action_url=action_url,
                        related_type="thread",
                        related_id=thread_id,
                        triggered_by_id=author_id,
                    )
                )

            usernames = extract_mentions(content)
            if usernames:
                result = await session.execute(
                    select(User.id).where(
                        User.username.in_(usernames),
                        User.id != author_id,
                    )
                )
                for user_id in result.scalars():
                    drafts.append(
                        NotificationDraft(
                            user_id=user_id,
                            type=NotificationType.POST_MENTION,
                            title="You were mentioned",
                            content=f'{author_name} mentioned you in "{thread.title}"',
                            action_url=action_url,
                            related_type="post",
                            related_id=post_id,
                            triggered_by_id=author_id,
                        )
                    )

        return drafts

    async def _deliver(self, draft: NotificationDraft) -> Notification | None:
        """Create one notification; failures are logged and swallowed."""
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(NotificationPreferences).where(
                        NotificationPreferences.user_id == draft.user_id
                    )
                )
                preferences = result.scalar_one_or_none()
                if preferences is not None and not preferences.allows(draft.type):
                    logger.debug(f"User {draft.user_id} opted out of {draft.type.value}")
                    return None

                notification = Notification(
                    user_id=draft.user_id,
                    type=draft.type,
                    title=draft.title,
                    content=draft.content,
                    action_url=draft.action_url,
                    related_type=draft.related_type,
                    related_id=draft.related_id,
                    triggered_by_id=draft.triggered_by_id,
                )
                session.add(notification)
                await session.commit()
                return notification
        except Exception as e:
            logger.error(
                f"Failed to create {draft.type.value} notification "
                f"for user {draft.user_id}: {e}"
            )
            return None
