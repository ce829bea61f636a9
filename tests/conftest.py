"""Pytest configuration and shared fixtures."""

from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

import bulletin.models  # noqa: F401
from bulletin.core.cache import MemoryTTLCache
from bulletin.core.database import Base, make_session_maker
from bulletin.core.events import PostCommitDispatcher
from bulletin.models.forum import ForumCategory, ForumPost, ForumSubject, ForumThread
from bulletin.models.moderation import FilterAction, ModerationSettings
from bulletin.models.user import User, UserRole
from bulletin.modules.moderation.policy import ModerationPolicyStore

# ==================== Fakes ====================


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingDispatcher(PostCommitDispatcher):
    """Dispatcher that only records published events."""

    def __init__(self) -> None:
        super().__init__(max_attempts=1, retry_delay=0)
        self.events = []

    def publish(self, event) -> None:
        self.events.append(event)


# ==================== Database ====================


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'bulletin.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return make_session_maker(engine)


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return MemoryTTLCache(clock=clock)


@pytest.fixture
def policy_store(session_maker, cache):
    return ModerationPolicyStore(session_maker, cache)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


# ==================== Factories ====================


async def make_user(db, username: str = "alice", **overrides: Any) -> User:
    """Create a committed user."""
    values = {
        "email": f"{username}@example.com",
        "username": username,
        "role": UserRole.USER,
        "post_count": 100,
    }
    values.update(overrides)
    user = User(**values)
    db.add(user)
    await db.commit()
    return user


async def make_subject(db, **overrides: Any) -> ForumSubject:
    """Create a committed subject inside a fresh category."""
    category = ForumCategory(name="General")
    db.add(category)
    await db.flush()

    values = {"category_id": category.id, "name": "Discussion"}
    values.update(overrides)
    subject = ForumSubject(**values)
    db.add(subject)
    await db.commit()
    return subject


async def make_thread(db, subject: ForumSubject, author: User, **overrides: Any) -> ForumThread:
    """Create a committed thread with an opening post; counters are not touched."""
    values = {
        "subject_id": subject.id,
        "user_id": author.id,
        "title": "Existing thread",
        "slug": "existing-thread",
        "post_count": 1,
    }
    values.update(overrides)
    thread = ForumThread(**values)
    db.add(thread)
    await db.flush()

    db.add(ForumPost(thread_id=thread.id, user_id=author.id, content="<p>Opening post here</p>"))
    await db.commit()
    return thread


async def save_settings(db, **overrides: Any) -> ModerationSettings:
    """Create the active moderation settings row."""
    values = {
        "profanity_filter": True,
        "banned_words": "spam,viagra",
        "filter_action": FilterAction.CENSOR,
        "min_post_length": 10,
        "max_post_length": 10000,
        "max_links_per_post": 3,
        "require_approval": False,
        "moderation_queue": False,
        "trusted_user_post_count": 50,
    }
    values.update(overrides)
    row = ModerationSettings(**values)
    db.add(row)
    await db.commit()
    return row
