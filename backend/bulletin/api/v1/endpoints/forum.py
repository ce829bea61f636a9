"""
Forum API Endpoints.

Thread and post publication, listings and moderation actions.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from bulletin.core.cache import TTLCache, get_cache
from bulletin.core.database import get_db
from bulletin.core.errors import NotFound
from bulletin.core.events import PostCommitDispatcher, get_dispatcher
from bulletin.core.security import Principal, get_current_principal, require_principal
from bulletin.models.forum import ForumPost, ForumThread
from bulletin.modules.forum.publishing import PublicationService
from bulletin.modules.forum.service import ForumService
from bulletin.modules.moderation.permissions import PermissionResolver
from bulletin.modules.moderation.policy import ModerationPolicyStore, get_policy_store

router = APIRouter()


# ==================== Schemas ====================


class CreateThreadRequest(BaseModel):
    """Create new thread with its first post."""

    model_config = ConfigDict(populate_by_name=True)

    subject_id: int = Field(alias="subjectId")
    title: str
    content: str


class CreatePostRequest(BaseModel):
    """Create new post/reply."""

    model_config = ConfigDict(populate_by_name=True)

    thread_id: int = Field(alias="threadId")
    content: str
    reply_to_id: int | None = Field(None, alias="replyToId")


class UpdatePostRequest(BaseModel):
    """Update post content."""

    content: str
    reason: str | None = Field(None, max_length=200)


# ==================== Dependencies ====================


def get_publication_service(
    db: AsyncSession = Depends(get_db),
    policy_store: ModerationPolicyStore = Depends(get_policy_store),
    dispatcher: PostCommitDispatcher = Depends(get_dispatcher),
    cache: TTLCache = Depends(get_cache),
) -> PublicationService:
    return PublicationService(db, policy_store, dispatcher, permission_cache=cache)


# ==================== Serializers ====================


def _thread_to_dict(thread: ForumThread) -> dict[str, Any]:
    return {
        "id": thread.id,
        "subject_id": thread.subject_id,
        "user_id": thread.user_id,
        "title": thread.title,
        "slug": thread.slug,
        "approved": thread.approved,
        "is_locked": thread.is_locked,
        "is_sticky": thread.is_sticky,
        "post_count": thread.post_count,
        "reply_count": thread.reply_count,
        "view_count": thread.view_count,
        "created_at": thread.created_at.isoformat(),
        "last_post_at": thread.last_post_at.isoformat() if thread.last_post_at else None,
    }


def _post_to_dict(post: ForumPost) -> dict[str, Any]:
    return {
        "id": post.id,
        "thread_id": post.thread_id,
        "user_id": post.user_id,
        "reply_to_id": post.reply_to_id,
        "content": post.content,
        "approved": post.approved,
        "flagged": post.flagged,
        "created_at": post.created_at.isoformat(),
        "edited_at": post.edited_at.isoformat() if post.edited_at else None,
        "edit_reason": post.edit_reason,
    }


# ==================== Categories ====================


@router.get("/categories")
async def get_categories(
    db: AsyncSession = Depends(get_db),
) -> list[dict[str, Any]]:
    """Get all forum categories with their subjects."""
    forum = ForumService(db)
    categories = await forum.get_categories()

    return [
        {
            "id": cat.id,
            "name": cat.name,
            "subjects": [
                {
                    "id": subject.id,
                    "name": subject.name,
                    "description": subject.description,
                    "is_locked": subject.is_locked,
                    "thread_count": subject.thread_count,
                    "post_count": subject.post_count,
                }
                for subject in sorted(cat.subjects, key=lambda s: s.sort_order)
                if subject.is_active
            ],
        }
        for cat in categories
    ]


@router.get("/subjects/{subject_id}/threads")
async def get_threads(
    subject_id: int,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Get approved threads in a subject."""
    forum = ForumService(db)
    subject = await forum.get_subject(subject_id)
    if not subject or not subject.is_active:
        raise NotFound("Forum not found")

    threads = await forum.get_threads(subject_id, limit=limit, offset=offset)

    return {
        "items": [_thread_to_dict(t) for t in threads],
        "limit": limit,
        "offset": offset,
    }


# ==================== Threads ====================


@router.post("/threads", status_code=status.HTTP_201_CREATED)
async def create_thread(
    request: CreateThreadRequest,
    principal: Principal = Depends(require_principal),
    service: PublicationService = Depends(get_publication_service),
) -> dict[str, Any]:
    """Create new thread."""
    thread, post = await service.create_thread(
        author_id=principal.user_id,
        subject_id=request.subject_id,
        title=request.title,
        content=request.content,
    )

    return {**_thread_to_dict(thread), "first_post": _post_to_dict(post)}


@router.get("/threads/{id_or_slug}")
async def get_thread(
    id_or_slug: str,
    principal: Principal | None = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_cache),
) -> dict[str, Any]:
    """Get thread details by ID or slug."""
    forum = ForumService(db)
    thread = await forum.get_thread_by_slug_or_id(id_or_slug)

    if not thread:
        raise NotFound("Thread not found")

    if not thread.approved:
        visible = False
        if principal is not None:
            permissions = await PermissionResolver(db, cache=cache).resolve(
                principal.user_id, thread.subject_id, principal.role
            )
            visible = principal.user_id == thread.user_id or permissions.can_moderate
        if not visible:
            raise NotFound("Thread not found")

    await forum.increment_view_count(thread.id)
    await db.commit()

    return {
        **_thread_to_dict(thread),
        "subject": {
            "id": thread.subject.id,
            "name": thread.subject.name,
        },
    }


@router.get("/threads/{thread_id}/posts")
async def get_posts(
    thread_id: int,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Get approved posts in thread."""
    forum = ForumService(db)
    if not await forum.get_thread(thread_id):
        raise NotFound("Thread not found")

    posts = await forum.get_posts(thread_id, limit=limit, offset=offset)

    return {
        "items": [_post_to_dict(p) for p in posts],
        "limit": limit,
        "offset": offset,
    }


@router.delete("/threads/{thread_id}")
async def delete_thread(
    thread_id: int,
    principal: Principal = Depends(require_principal),
    service: PublicationService = Depends(get_publication_service),
) -> dict[str, Any]:
    """Soft-delete a thread."""
    await service.delete_thread(principal.user_id, thread_id)
    return {"deleted": True}


# ==================== Subscriptions ====================


@router.post("/threads/{thread_id}/subscription")
async def subscribe_thread(
    thread_id: int,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Subscribe to new posts in a thread."""
    forum = ForumService(db)
    if not await forum.get_thread(thread_id):
        raise NotFound("Thread not found")

    added = await forum.subscribe(thread_id, principal.user_id)
    await db.commit()

    return {"subscribed": added}


@router.delete("/threads/{thread_id}/subscription")
async def unsubscribe_thread(
    thread_id: int,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Remove subscription from a thread."""
    forum = ForumService(db)
    removed = await forum.unsubscribe(thread_id, principal.user_id)
    await db.commit()

    return {"unsubscribed": removed}


# ==================== Posts ====================


@router.post("/posts", status_code=status.HTTP_201_CREATED)
async def create_post(
    request: CreatePostRequest,
    principal: Principal = Depends(require_principal),
    service: PublicationService = Depends(get_publication_service),
) -> dict[str, Any]:
    """Create new post/reply in thread."""
    post = await service.create_post(
        author_id=principal.user_id,
        thread_id=request.thread_id,
        content=request.content,
        reply_to_id=request.reply_to_id,
    )

    return _post_to_dict(post)


@router.put("/posts/{post_id}")
async def update_post(
    post_id: int,
    request: UpdatePostRequest,
    principal: Principal = Depends(require_principal),
    service: PublicationService = Depends(get_publication_service),
) -> dict[str, Any]:
    """Update post content."""
    post = await service.edit_post(
        principal.user_id,
        post_id,
        request.content,
        reason=request.reason,
    )

    return _post_to_dict(post)


@router.delete("/posts/{post_id}")
async def delete_post(
    post_id: int,
    principal: Principal = Depends(require_principal),
    service: PublicationService = Depends(get_publication_service),
) -> dict[str, Any]:
    """Soft-delete a post."""
    await service.delete_post(principal.user_id, post_id)
    return {"deleted": True}


@router.post("/posts/{post_id}/approve")
async def approve_post(
    post_id: int,
    principal: Principal = Depends(require_principal),
    service: PublicationService = Depends(get_publication_service),
) -> dict[str, Any]:
    """Approve a pending post."""
    post = await service.approve_post(principal.user_id, post_id)
    return _post_to_dict(post)
