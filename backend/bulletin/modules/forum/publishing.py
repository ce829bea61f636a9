"""
Publication Service - the write path for threads and posts.

create_post / create_thread:
    gate decision -> ledger write + commit -> post-commit dispatch

The response to the author depends only on the first two steps.
Notifications and image association run after the commit and cannot
turn a published post into an error.
"""

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bulletin.core.cache import TTLCache
from bulletin.core.errors import Fatal, Forbidden, NotFound, Unauthenticated
from bulletin.core.events import PostCommitDispatcher, PostPublished
from bulletin.models.forum import ForumPost, ForumSubject, ForumThread
from bulletin.models.user import User
from bulletin.modules.forum.ledger import CounterLedger
from bulletin.modules.forum.service import ForumService
from bulletin.modules.forum.slugs import SlugAssigner
from bulletin.modules.moderation.gate import PublicationGate, Submission
from bulletin.modules.moderation.permissions import PermissionResolver
from bulletin.modules.moderation.policy import ModerationPolicyStore


class PublicationService:
    """
    Publishes, edits, approves and deletes forum content.

    Usage:
        service = PublicationService(db_session, policy_store, dispatcher)
        post = await service.create_post(user_id, thread_id, "<p>Hello there</p>")
    """

    def __init__(
        self,
        db: AsyncSession,
        policy_store: ModerationPolicyStore,
        dispatcher: PostCommitDispatcher,
        permission_cache: TTLCache | None = None,
    ) -> None:
        self.db = db
        self.dispatcher = dispatcher
        self.forum = ForumService(db)
        self.ledger = CounterLedger(db)
        self.resolver = PermissionResolver(db, cache=permission_cache)
        self.gate = PublicationGate(self.resolver, policy_store)

    # ==================== Publishing ====================

    async def create_post(
        self,
        author_id: int,
        thread_id: int,
        content: str,
        reply_to_id: int | None = None,
    ) -> ForumPost:
        """
        Publish a reply.

        Args:
            author_id: Authenticated user ID
            thread_id: Thread being replied to
            content: Raw HTML content
            reply_to_id: Post being answered

        Returns:
            Committed post (possibly pending approval)

        Raises:
            ForumError: Rejected by the gate, or the write failed
        """
        author = await self._load_author(author_id)

        thread = await self.forum.get_thread(thread_id, include_deleted=True)
        reply_to = None
        if reply_to_id is not None:
            reply_to = await self.db.get(ForumPost, reply_to_id)

        decision = await self.gate.evaluate(
            Submission(
                kind="post",
                author_id=author.id,
                role=author.role,
                author_post_count=author.post_count,
                content=content,
                subject=thread.subject if thread else None,
                thread=thread,
                reply_to_id=reply_to_id,
                reply_to=reply_to,
            )
        )
        decision.raise_for_rejection()

        try:
            post = await self.ledger.record_reply(
                thread,
                author.id,
                decision.filtered_content,
                approved=decision.approved,
                flagged=decision.flagged,
                reply_to_id=reply_to_id,
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to publish post in thread {thread_id}: {e}")
            raise Fatal("Failed to publish post") from e

        logger.info(
            f"Post {post.id} published in thread {thread.id} by user {author.id} "
            f"({decision.outcome.value})"
        )

        self.dispatcher.publish(
            PostPublished(
                thread_id=thread.id,
                post_id=post.id,
                author_id=author.id,
                content=content,
            )
        )
        return post

    async def create_thread(
        self,
        author_id: int,
        subject_id: int,
        title: str,
        content: str,
    ) -> tuple[ForumThread, ForumPost]:
        """
        Publish a new thread with its opening post.

        Args:
            author_id: Authenticated user ID
            subject_id: Subject the thread goes into
            title: Thread title
            content: Raw HTML content of the first post

        Returns:
            Committed thread and first post
        """
        author = await self._load_author(author_id)
        subject = await self.forum.get_subject(subject_id)

        decision = await self.gate.evaluate(
            Submission(
                kind="thread",
                author_id=author.id,
                role=author.role,
                author_post_count=author.post_count,
                content=content,
                title=title,
                subject=subject,
            )
        )
        decision.raise_for_rejection()

        try:
            slug = await SlugAssigner(self.db).assign(decision.filtered_title)
            thread, post = await self.ledger.record_thread(
                subject.id,
                author.id,
                decision.filtered_title,
                slug,
                decision.filtered_content,
                approved=decision.approved,
                flagged=decision.flagged,
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to create thread in subject {subject_id}: {e}")
            raise Fatal("Failed to create thread") from e

        logger.info(
            f"Thread {thread.id} ({thread.slug}) created in subject {subject.id} "
            f"by user {author.id} ({decision.outcome.value})"
        )

        self.dispatcher.publish(
            PostPublished(
                thread_id=thread.id,
                post_id=post.id,
                author_id=author.id,
                content=content,
                is_new_thread=True,
            )
        )
        return thread, post

    # ==================== Moderation ====================

    async def edit_post(
        self,
        editor_id: int,
        post_id: int,
        content: str,
        reason: str | None = None,
    ) -> ForumPost:
        """
        Edit a post as its owner or a moderator.

        The new content goes through the same length, link and filter
        checks as a new post. Owners lose approval when the filter flags
        their edit; moderator edits keep the current state.
        """
        editor = await self._load_author(editor_id)
        post = await self._load_post(post_id)
        subject = post.thread.subject

        is_moderator = await self._can_moderate(editor, subject)
        if post.user_id != editor.id and not is_moderator:
            raise Forbidden("You can only edit your own posts")
        if post.thread.is_locked and not is_moderator:
            raise Forbidden("Thread is locked")

        check = await self.gate.check_content(content)
        if check.rejection:
            raise check.rejection.to_error()

        try:
            await self.forum.update_post(post, check.content.text, editor.id, reason)
            if check.flagged and not is_moderator:
                post.flagged = True
                post.approved = False
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to edit post {post_id}: {e}")
            raise Fatal("Failed to edit post") from e

        logger.info(f"Post {post.id} edited by user {editor.id}")
        return post

    async def approve_post(self, moderator_id: int, post_id: int) -> ForumPost:
        """Approve a pending post."""
        moderator = await self._load_author(moderator_id)
        post = await self._load_post(post_id)

        if not await self._can_moderate(moderator, post.thread.subject):
            raise Forbidden("Moderator rights required")

        try:
            await self.forum.approve_post(post)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to approve post {post_id}: {e}")
            raise Fatal("Failed to approve post") from e

        logger.info(f"Post {post.id} approved by user {moderator.id}")
        return post

    async def delete_post(self, actor_id: int, post_id: int) -> None:
        """
        Soft-delete a post as its owner or a moderator.

        Deleting the opening post deletes the whole thread.
        """
        actor = await self._load_author(actor_id)
        post = await self._load_post(post_id)
        thread = post.thread

        if post.user_id != actor.id and not await self._can_moderate(actor, thread.subject):
            raise Forbidden("You can only delete your own posts")

        try:
            if await self.forum.get_first_post_id(thread.id) == post.id:
                await self.forum.soft_delete_thread(thread)
            else:
                await self.forum.soft_delete_post(post)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to delete post {post_id}: {e}")
            raise Fatal("Failed to delete post") from e

        logger.info(f"Post {post.id} deleted by user {actor.id}")

    async def delete_thread(self, actor_id: int, thread_id: int) -> None:
        """Soft-delete a thread as its owner or a moderator."""
        actor = await self._load_author(actor_id)
        thread = await self.forum.get_thread(thread_id)
        if thread is None:
            raise NotFound("Thread not found")

        if thread.user_id != actor.id and not await self._can_moderate(actor, thread.subject):
            raise Forbidden("You can only delete your own threads")

        try:
            await self.forum.soft_delete_thread(thread)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to delete thread {thread_id}: {e}")
            raise Fatal("Failed to delete thread") from e

        logger.info(f"Thread {thread.id} deleted by user {actor.id}")

    # ==================== Helpers ====================

    async def _load_author(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if user is None or not user.is_active:
            raise Unauthenticated()
        return user

    async def _load_post(self, post_id: int) -> ForumPost:
        post = await self.forum.get_post(post_id)
        if post is None or post.thread is None or post.thread.deleted:
            raise NotFound("Post not found")
        return post

    async def _can_moderate(self, user: User, subject: ForumSubject | None) -> bool:
        permissions = await self.resolver.resolve(
            user.id,
            subject.id if subject else None,
            user.role,
        )
        return permissions.can_moderate
