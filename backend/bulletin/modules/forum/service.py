"""
Forum Service - Thread and post lookups and maintenance.
"""

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from bulletin.core.config import settings
from bulletin.models.forum import (
    ForumCategory,
    ForumPost,
    ForumSubject,
    ForumThread,
    ThreadSubscription,
)
from bulletin.modules.forum.ledger import CounterLedger


class ForumService:
    """
    Service for reading and maintaining forum threads and posts.

    Publishing new content goes through PublicationService; this class
    holds the lookups and the moderation-side writes.

    Usage:
        forum = ForumService(db_session)
        thread = await forum.get_thread_by_slug_or_id("hello-world")
    """

    def __init__(self, db: AsyncSession) -> None:
        """Initialize forum service with database session."""
        self.db = db

    # ==================== Categories ====================

    async def get_categories(self) -> list[ForumCategory]:
        """Get all categories with their active subjects."""
        query = (
            select(ForumCategory)
            .options(selectinload(ForumCategory.subjects))
            .order_by(ForumCategory.sort_order)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_subject(self, subject_id: int) -> ForumSubject | None:
        """Get subject by ID."""
        return await self.db.get(ForumSubject, subject_id)

    # ==================== Threads ====================

    async def get_thread(
        self,
        thread_id: int,
        include_deleted: bool = False,
    ) -> ForumThread | None:
        """Get thread by ID with its subject loaded."""
        query = (
            select(ForumThread)
            .options(selectinload(ForumThread.subject))
            .where(ForumThread.id == thread_id)
        )
        if not include_deleted:
            query = query.where(ForumThread.deleted == False)

        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_thread_by_slug(self, slug: str) -> ForumThread | None:
        """Get live thread by slug."""
        query = (
            select(ForumThread)
            .options(selectinload(ForumThread.subject))
            .where(
                ForumThread.slug == slug,
                ForumThread.deleted == False,
            )
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_thread_by_slug_or_id(self, value: str) -> ForumThread | None:
        """
        Resolve a thread from a URL segment.

        Numeric values are tried as IDs first, then as slugs, since a
        title like "2024" slugifies to a number.
        """
        if value.isdigit():
            thread = await self.get_thread(int(value))
            if thread:
                return thread
        return await self.get_thread_by_slug(value)

    async def get_threads(
        self,
        subject_id: int,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[ForumThread]:
        """
        Get approved threads in a subject, sticky first.

        Args:
            subject_id: Subject ID
            limit: Max results
            offset: Pagination offset

        Returns:
            List of threads
        """
        limit = limit or settings.forum_threads_per_page

        query = (
            select(ForumThread)
            .where(
                ForumThread.subject_id == subject_id,
                ForumThread.approved == True,
                ForumThread.deleted == False,
            )
            .order_by(
                ForumThread.is_sticky.desc(),
                ForumThread.last_post_at.desc(),
                ForumThread.id.desc(),
            )
            .limit(limit)
            .offset(offset)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def increment_view_count(self, thread_id: int) -> None:
        """Increment thread view count."""
        await self.db.execute(
            update(ForumThread)
            .where(ForumThread.id == thread_id)
            .values(view_count=ForumThread.view_count + 1)
        )

    async def soft_delete_thread(self, thread: ForumThread) -> int:
        """
        Mark a thread and all its posts deleted and reverse subject and
        author counters.

        Returns:
            Number of posts that were still live
        """
        now = datetime.utcnow()

        result = await self.db.execute(
            select(ForumPost.user_id, func.count(ForumPost.id))
            .where(
                ForumPost.thread_id == thread.id,
                ForumPost.deleted == False,
            )
            .group_by(ForumPost.user_id)
        )
        posts_by_author = {user_id: count for user_id, count in result.all()}
        live_posts = sum(posts_by_author.values())

        await self.db.execute(
            update(ForumPost)
            .where(
                ForumPost.thread_id == thread.id,
                ForumPost.deleted == False,
            )
            .values(deleted=True, deleted_at=now)
        )
        thread.deleted = True
        thread.deleted_at = now

        await CounterLedger(self.db).record_thread_removal(thread, posts_by_author)
        await self.db.flush()
        return live_posts

    # ==================== Posts ====================

    async def get_post(self, post_id: int) -> ForumPost | None:
        """Get live post by ID with its thread and subject loaded."""
        query = (
            select(ForumPost)
            .options(selectinload(ForumPost.thread).selectinload(ForumThread.subject))
            .where(
                ForumPost.id == post_id,
                ForumPost.deleted == False,
            )
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_first_post_id(self, thread_id: int) -> int | None:
        """ID of the post that opened the thread."""
        result = await self.db.execute(
            select(func.min(ForumPost.id)).where(ForumPost.thread_id == thread_id)
        )
        return result.scalar_one_or_none()

    async def get_posts(
        self,
        thread_id: int,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[ForumPost]:
        """
        Get approved posts in a thread, oldest first.

        Args:
            thread_id: Thread ID
            limit: Max results (None for the configured page size)
            offset: Pagination offset

        Returns:
            List of posts
        """
        limit = limit or settings.forum_posts_per_page

        query = (
            select(ForumPost)
            .where(
                ForumPost.thread_id == thread_id,
                ForumPost.approved == True,
                ForumPost.deleted == False,
            )
            .order_by(ForumPost.created_at, ForumPost.id)
            .limit(limit)
            .offset(offset)
        )

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def update_post(
        self,
        post: ForumPost,
        content: str,
        editor_id: int,
        reason: str | None = None,
    ) -> ForumPost:
        """Replace post content and record who edited it."""
        now = datetime.utcnow()

        post.content = content
        post.edited_at = now
        post.edited_by = editor_id
        post.edit_reason = reason
        post.updated_at = now

        await self.db.flush()
        return post

    async def approve_post(self, post: ForumPost) -> ForumPost:
        """
        Make a pending post public.

        Approving the opening post of a pending thread approves the thread too.
        """
        post.approved = True
        post.flagged = False

        thread = post.thread
        if thread is not None and not thread.approved:
            if await self.get_first_post_id(thread.id) == post.id:
                thread.approved = True

        await self.db.flush()
        return post

    async def soft_delete_post(self, post: ForumPost) -> None:
        """Mark a post deleted and reverse its counters."""
        post.deleted = True
        post.deleted_at = datetime.utcnow()

        await CounterLedger(self.db).record_removal(post, post.thread.subject_id)
        await self.db.flush()

    # ==================== Subscriptions ====================

    async def is_subscribed(self, thread_id: int, user_id: int) -> bool:
        result = await self.db.execute(
            select(ThreadSubscription.id).where(
                ThreadSubscription.thread_id == thread_id,
                ThreadSubscription.user_id == user_id,
            )
        )
        return result.first() is not None

    async def subscribe(self, thread_id: int, user_id: int) -> bool:
        """
        Subscribe user to new posts in a thread.

        Returns:
            True if subscription was added (False if already exists)
        """
        if await self.is_subscribed(thread_id, user_id):
            return False

        self.db.add(ThreadSubscription(thread_id=thread_id, user_id=user_id))
        await self.db.flush()
        return True

    async def unsubscribe(self, thread_id: int, user_id: int) -> bool:
        """Remove user's subscription to a thread."""
        result = await self.db.execute(
            select(ThreadSubscription).where(
                ThreadSubscription.thread_id == thread_id,
                ThreadSubscription.user_id == user_id,
            )
        )
        subscription = result.scalar_one_or_none()

        if not subscription:
            return False

        await self.db.delete(subscription)
        await self.db.flush()
        return True
