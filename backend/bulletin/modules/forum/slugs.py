"""
Slug Assigner - unique URL slugs for threads.
"""

import re

from loguru import logger
from slugify import slugify
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from bulletin.models.forum import ForumThread

SLUG_MAX_LENGTH = 100
FALLBACK_SLUG = "thread"

# Punctuation is dropped, not turned into a separator: "Node.js" -> "nodejs"
_NON_WORD_RE = re.compile(r"[^\w\s-]")


def make_slug(title: str | None) -> str:
    """Lowercase, hyphenated, at most 100 characters; never empty."""
    if not title:
        return FALLBACK_SLUG
    cleaned = _NON_WORD_RE.sub("", title)
    return slugify(cleaned, max_length=SLUG_MAX_LENGTH) or FALLBACK_SLUG


class SlugAssigner:
    """
    Derives a unique slug from a thread title.

    Collisions get a numeric suffix: `hello-world`, `hello-world-1`, ...
    The check-then-insert is not atomic; two identical titles committed
    at the same instant are caught by the unique constraint instead.

    Usage:
        slug = await SlugAssigner(db_session).assign("Hello World")
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def assign(self, title: str | None, exclude_thread_id: int | None = None) -> str:
        """
        Find a free slug for a title.

        Args:
            title: Thread title
            exclude_thread_id: Thread whose own slug does not count as taken

        Returns:
            Unique slug
        """
        base_slug = make_slug(title)
        slug = base_slug

        counter = 1
        while await self._is_taken(slug, exclude_thread_id):
            slug = f"{base_slug}-{counter}"
            counter += 1

        return slug

    async def _is_taken(self, slug: str, exclude_thread_id: int | None) -> bool:
        query = select(ForumThread.id).where(ForumThread.slug == slug)
        if exclude_thread_id is not None:
            query = query.where(ForumThread.id != exclude_thread_id)
        result = await self.db.execute(query.limit(1))
        return result.first() is not None

    async def reassign(self, thread: ForumThread) -> str:
        """Recompute a thread's slug after its title changed."""
        thread.slug = await self.assign(thread.title, exclude_thread_id=thread.id)
        await self.db.flush()
        return thread.slug

    async def backfill_missing(self, limit: int = 100) -> int:
        """
        Give slugs to threads created without one.

        Returns:
            Number of threads updated
        """
        result = await self.db.execute(
            select(ForumThread)
            .where(or_(ForumThread.slug.is_(None), ForumThread.slug == ""))
            .order_by(ForumThread.id)
            .limit(limit)
        )
        threads = list(result.scalars().all())

        for thread in threads:
            await self.reassign(thread)

        if threads:
            logger.info(f"Assigned slugs to {len(threads)} threads")
        return len(threads)
