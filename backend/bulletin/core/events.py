"""
Post-commit dispatcher.

Side effects of a publication (notifications, image association) are not
part of its transaction. They are queued once the transaction commits and
delivered by a background worker, each subscriber on its own: one failing
subscriber is retried and then logged, and never affects the others or
the response already sent to the publisher.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

from loguru import logger

from bulletin.core.config import settings


@dataclass(frozen=True)
class PostPublished:
    """A post (or a thread's first post) was committed."""

    thread_id: int
    post_id: int
    author_id: int
    content: str
    is_new_thread: bool = False


Handler = Callable[[PostPublished], Awaitable[None]]


class PostCommitDispatcher:
    """
    Queue of committed publications with isolated subscribers.

    Delivery is at-least-once: a subscriber that raises is retried up to
    `max_attempts` times, so subscribers must tolerate duplicates.

    Usage:
        dispatcher = PostCommitDispatcher()
        dispatcher.subscribe("notifications", fanout.on_post_published)
        await dispatcher.start()
        dispatcher.publish(PostPublished(thread_id=1, post_id=2, author_id=3, content="hi"))
    """

    def __init__(
        self,
        max_attempts: int | None = None,
        retry_delay: float | None = None,
        shutdown_timeout: float | None = None,
    ) -> None:
        self.max_attempts = max_attempts or settings.post_commit_max_attempts
        self.retry_delay = (
            retry_delay if retry_delay is not None else settings.post_commit_retry_delay_seconds
        )
        self.shutdown_timeout = (
            shutdown_timeout
            if shutdown_timeout is not None
            else settings.post_commit_shutdown_timeout_seconds
        )

        self._subscribers: dict[str, Handler] = {}
        self._queue: asyncio.Queue[PostPublished] = asyncio.Queue()
        self._worker: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def subscribe(self, name: str, handler: Handler) -> None:
        """Register a subscriber under a unique name."""
        self._subscribers[name] = handler
        logger.debug(f"Post-commit subscriber registered: {name}")

    def publish(self, event: PostPublished) -> None:
        """Queue an event; never blocks and never raises into the caller."""
        self._queue.put_nowait(event)

    async def start(self) -> None:
        """Start the background worker."""
        if self.running:
            return
        self._worker = asyncio.create_task(self._run())
        logger.info("Post-commit dispatcher started")

    async def stop(self) -> None:
        """Deliver what is queued within the shutdown timeout, then stop the worker."""
        if self._worker is None:
            return

        try:
            await asyncio.wait_for(self._queue.join(), timeout=self.shutdown_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Post-commit dispatcher shutdown timed out, {self._queue.qsize()} events still queued"
            )
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Post-commit dispatcher stopped")

    async def join(self) -> None:
        """Wait until every queued event has been delivered."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.dispatch(event)
            finally:
                self._queue.task_done()

    async def dispatch(self, event: PostPublished) -> None:
        """Deliver one event to every subscriber concurrently."""
        await asyncio.gather(
            *(
                self._deliver(name, handler, event)
                for name, handler in self._subscribers.items()
            )
        )

    async def _deliver(self, name: str, handler: Handler, event: PostPublished) -> None:
        for attempt in range(1, self.max_attempts + 1):
            try:
                await handler(event)
                return
            except Exception as e:
                if attempt < self.max_attempts:
                    logger.warning(
                        f"Subscriber {name} failed for post {event.post_id} "
                        f"(attempt {attempt}/{self.max_attempts}): {e}"
                    )
                    await asyncio.sleep(self.retry_delay * attempt)
                else:
                    logger.error(
                        f"Subscriber {name} gave up on post {event.post_id} "
                        f"after {attempt} attempts: {e}"
                    )


# Singleton instance
_dispatcher: PostCommitDispatcher | None = None


def get_dispatcher() -> PostCommitDispatcher:
    """Get or create the post-commit dispatcher singleton."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = PostCommitDispatcher()
    return _dispatcher
