"""
Counter Ledger - persists publications together with denormalised counters.

Every write here is part of the caller's transaction: the post (or thread
and first post) row and the thread, subject and user counters commit
together or not at all. Counters are incremented in SQL so concurrent
writers never lose updates.
"""

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from bulletin.models.forum import ForumPost, ForumSubject, ForumThread
from bulletin.models.user import User


class CounterLedger:
    """
    Writes publications and their counter updates.

    Usage:
        ledger = CounterLedger(db_session)
        post = await ledger.record_reply(thread, author_id, content, approved=True)
        await db_session.commit()
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def record_reply(
        self,
        thread: ForumThread,
        author_id: int,
        content: str,
        approved: bool,
        flagged: bool = False,
        reply_to_id: int | None = None,
    ) -> ForumPost:
        """
        Insert a reply and bump thread, subject and author counters.

        Args:
            thread: Thread being replied to
            author_id: Author user ID
            content: Filtered HTML content
            approved: Whether the post is publicly visible
            flagged: Whether the content filter flagged it
            reply_to_id: Post being quoted/answered

        Returns:
            Created post (flushed, not committed)
        """
        now = datetime.utcnow()

        post = ForumPost(
            thread_id=thread.id,
            user_id=author_id,
            content=content,
            reply_to_id=reply_to_id,
            approved=approved,
            flagged=flagged,
            created_at=now,
        )
        self.db.add(post)
        await self.db.flush()

        await self.db.execute(
            update(ForumThread)
            .where(ForumThread.id == thread.id)
            .values(
                post_count=ForumThread.post_count + 1,
                reply_count=ForumThread.reply_count + 1,
                last_post_at=now,
                last_post_user_id=author_id,
            )
        )
        await self._bump_subject(thread.subject_id, posts=1)
        await self._bump_user(author_id, 1)

        return post

    async def record_thread(
        self,
        subject_id: int,
        author_id: int,
        title: str,
        slug: str,
        content: str,
        approved: bool,
        flagged: bool = False,
    ) -> tuple[ForumThread, ForumPost]:
        """
        Insert a thread with its first post and bump subject and author counters.

        Returns:
            Created thread and first post (flushed, not committed)
        """
        now = datetime.utcnow()

        thread = ForumThread(
            subject_id=subject_id,
            user_id=author_id,
            title=title,
            slug=slug,
            approved=approved,
            post_count=1,
            reply_count=0,
            last_post_at=now,
            last_post_user_id=author_id,
            created_at=now,
        )
        self.db.add(thread)
        await self.db.flush()

        post = ForumPost(
            thread_id=thread.id,
            user_id=author_id,
            content=content,
            approved=approved,
            flagged=flagged,
            created_at=now,
        )
        self.db.add(post)
        await self.db.flush()

        await self._bump_subject(subject_id, threads=1, posts=1)
        await self._bump_user(author_id, 1)

        return thread, post

    async def record_removal(self, post: ForumPost, subject_id: int) -> None:
        """Reverse the counters of a post that is being soft-deleted."""
        await self.db.execute(
            update(ForumThread)
            .where(ForumThread.id == post.thread_id)
            .values(
                post_count=ForumThread.post_count - 1,
                reply_count=ForumThread.reply_count - 1,
            )
        )
        await self._bump_subject(subject_id, posts=-1)
        await self._bump_user(post.user_id, -1)

    async def record_thread_removal(
        self,
        thread: ForumThread,
        posts_by_author: dict[int, int],
    ) -> None:
        """
        Reverse the counters of a thread and its remaining posts.

        Args:
            thread: Thread being removed
            posts_by_author: Live post count per author ID
        """
        live_posts = sum(posts_by_author.values())
        await self._bump_subject(thread.subject_id, threads=-1, posts=-live_posts)

        for user_id, count in posts_by_author.items():
            await self._bump_user(user_id, -count)

    async def _bump_subject(self, subject_id: int, threads: int = 0, posts: int = 0) -> None:
        values = {}
        if threads:
            values["thread_count"] = ForumSubject.thread_count + threads
        if posts:
            values["post_count"] = ForumSubject.post_count + posts
        if not values:
            return

        await self.db.execute(
            update(ForumSubject).where(ForumSubject.id == subject_id).values(**values)
        )

    async def _bump_user(self, user_id: int, delta: int) -> None:
        await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(post_count=User.post_count + delta)
        )
