"""Image association tests."""

import pytest
from sqlalchemy import select

from bulletin.models.media import Image, PostImage
from bulletin.modules.media.images import ImageAssociator, extract_image_urls


def test_extract_image_urls_keeps_uploads_only():
    content = (
        '<p><img src="/uploads/images/a.png"> and '
        "<img alt='x' src='/uploads/images/b.jpg' /> and "
        '<img src="https://elsewhere.example/c.gif"></p>'
    )

    assert extract_image_urls(content) == ["/uploads/images/a.png", "/uploads/images/b.jpg"]


def test_extract_image_urls_empty_content():
    assert extract_image_urls(None) == []
    assert extract_image_urls("<p>no pictures</p>") == []


@pytest.mark.asyncio
async def test_associate_links_images_and_clears_orphan_flag(db, session_maker):
    db.add_all(
        [
            Image(filename="a.png", url="/uploads/images/a.png"),
            Image(filename="b.jpg", url="/uploads/images/b.jpg"),
            Image(filename="unused.png", url="/uploads/images/unused.png"),
        ]
    )
    await db.commit()

    content = '<img src="/uploads/images/a.png"><img src="/uploads/images/b.jpg">'
    associator = ImageAssociator(session_maker)

    assert await associator.associate(42, content) == 2
    # A redelivered event links nothing new
    assert await associator.associate(42, content) == 0

    async with session_maker() as session:
        links = (await session.execute(select(PostImage))).scalars().all()
        images = {
            image.filename: image.is_orphaned
            for image in (await session.execute(select(Image))).scalars().all()
        }

    assert sorted(link.image_id for link in links) == [1, 2]
    assert images == {"a.png": False, "b.jpg": False, "unused.png": True}


@pytest.mark.asyncio
async def test_associate_unknown_files_is_noop(session_maker):
    associator = ImageAssociator(session_maker)

    assert await associator.associate(1, '<img src="/uploads/images/missing.png">') == 0
