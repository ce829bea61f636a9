"""
Image Association - links uploaded images to the posts that embed them.
"""

import re

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bulletin.core.config import settings
from bulletin.core.events import PostPublished
from bulletin.models.media import Image, PostImage

_IMG_SRC_RE = re.compile(r"""<img[^>]+src\s*=\s*["']([^"']+)["'][^>]*>""", re.IGNORECASE)


def extract_image_urls(content: str | None, prefix: str | None = None) -> list[str]:
    """Uploaded image URLs referenced by <img> tags, in order."""
    if not content:
        return []
    prefix = prefix or settings.forum_upload_image_prefix
    return [url for url in _IMG_SRC_RE.findall(content) if url.startswith(prefix)]


def filename_from_url(url: str) -> str | None:
    filename = url.rsplit("/", 1)[-1]
    return filename or None


class ImageAssociator:
    """
    Post-commit subscriber that marks embedded uploads as in use.

    Usage:
        associator = ImageAssociator(session_maker)
        dispatcher.subscribe("images", associator.handle)
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.session_maker = session_maker

    async def handle(self, event: PostPublished) -> None:
        await self.associate(event.post_id, event.content)

    async def associate(self, post_id: int, content: str | None) -> int:
        """
        Link images found in a post's raw content.

        Args:
            post_id: Post ID
            content: Raw HTML content

        Returns:
            Number of new links created
        """
        filenames = [
            name
            for name in (filename_from_url(url) for url in extract_image_urls(content))
            if name
        ]
        if not filenames:
            return 0

        async with self.session_maker() as session:
            result = await session.execute(select(Image).where(Image.filename.in_(filenames)))
            images = list(result.scalars().all())
            if not images:
                return 0

            result = await session.execute(
                select(PostImage.image_id).where(PostImage.post_id == post_id)
            )
            linked = set(result.scalars().all())

            new_links = [
                PostImage(post_id=post_id, image_id=image.id)
                for image in images
                if image.id not in linked
            ]
            session.add_all(new_links)

            await session.execute(
                update(Image)
                .where(Image.id.in_([image.id for image in images]))
                .values(is_orphaned=False)
            )
            await session.commit()

        logger.info(f"Associated {len(new_links)} images with post {post_id}")
        return len(new_links)
