"""PostCommitDispatcher tests."""

import asyncio

import pytest

from bulletin.core.events import PostCommitDispatcher, PostPublished


def make_event(post_id: int = 1) -> PostPublished:
    return PostPublished(thread_id=1, post_id=post_id, author_id=1, content="hello")


@pytest.mark.asyncio
async def test_dispatch_delivers_to_every_subscriber():
    dispatcher = PostCommitDispatcher(max_attempts=1, retry_delay=0)
    seen = []

    async def first(event):
        seen.append(("first", event.post_id))

    async def second(event):
        seen.append(("second", event.post_id))

    dispatcher.subscribe("first", first)
    dispatcher.subscribe("second", second)

    await dispatcher.dispatch(make_event(7))

    assert sorted(seen) == [("first", 7), ("second", 7)]


@pytest.mark.asyncio
async def test_failing_subscriber_is_retried_and_isolated():
    """One subscriber failing does not stop the others."""
    dispatcher = PostCommitDispatcher(max_attempts=3, retry_delay=0)
    attempts = {"broken": 0, "flaky": 0}
    delivered = []

    async def broken(event):
        attempts["broken"] += 1
        raise RuntimeError("always down")

    async def flaky(event):
        attempts["flaky"] += 1
        if attempts["flaky"] < 2:
            raise RuntimeError("first try fails")
        delivered.append(event.post_id)

    async def healthy(event):
        delivered.append(event.post_id)

    dispatcher.subscribe("broken", broken)
    dispatcher.subscribe("flaky", flaky)
    dispatcher.subscribe("healthy", healthy)

    await dispatcher.dispatch(make_event(3))

    assert attempts == {"broken": 3, "flaky": 2}
    assert delivered == [3, 3]


@pytest.mark.asyncio
async def test_worker_drains_queue_on_stop():
    dispatcher = PostCommitDispatcher(max_attempts=1, retry_delay=0)
    delivered = []

    async def handler(event):
        delivered.append(event.post_id)

    dispatcher.subscribe("recorder", handler)
    await dispatcher.start()
    assert dispatcher.running

    dispatcher.publish(make_event(1))
    dispatcher.publish(make_event(2))
    await dispatcher.stop()

    assert delivered == [1, 2]
    assert not dispatcher.running


@pytest.mark.asyncio
async def test_publish_never_raises_into_caller():
    dispatcher = PostCommitDispatcher(max_attempts=1, retry_delay=0)

    async def broken(event):
        raise RuntimeError("boom")

    dispatcher.subscribe("broken", broken)
    await dispatcher.start()

    dispatcher.publish(make_event())
    await dispatcher.join()
    await dispatcher.stop()


@pytest.mark.asyncio
async def test_stop_gives_up_on_hung_subscriber():
    dispatcher = PostCommitDispatcher(max_attempts=1, retry_delay=0, shutdown_timeout=0.05)
    never = asyncio.Event()

    async def hung(event):
        await never.wait()

    dispatcher.subscribe("hung", hung)
    await dispatcher.start()
    dispatcher.publish(make_event())
    dispatcher.publish(make_event(2))
    await asyncio.sleep(0)

    await asyncio.wait_for(dispatcher.stop(), timeout=5)

    assert dispatcher.running is False
