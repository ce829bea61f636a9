"""
Moderation Policy Store - cached access to the active moderation settings.
"""

from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bulletin.core.cache import TTLCache, get_cache
from bulletin.core.config import settings
from bulletin.core.database import get_session_maker
from bulletin.models.moderation import FilterAction, ModerationSettings

# Spam/scam terms; admins add their own words through the settings
DEFAULT_BANNED_WORDS = [
    "spam",
    "scam",
    "viagra",
    "cialis",
    "casino",
    "lottery",
    "cryptocurrency giveaway",
    "free bitcoin",
    "click here now",
    "act now",
    "limited time offer",
    "make money fast",
    "work from home opportunity",
    "nigerian prince",
]


class ModerationPolicy(BaseModel):
    """Snapshot of the moderation settings used by one submission."""

    model_config = ConfigDict(from_attributes=True)

    profanity_filter: bool = True
    banned_words: str | None = ",".join(DEFAULT_BANNED_WORDS)
    filter_action: FilterAction = FilterAction.CENSOR
    min_post_length: int = 10
    max_post_length: int = 10000
    max_links_per_post: int = 3
    require_approval: bool = False
    moderation_queue: bool = False
    trusted_user_post_count: int = 50

    @property
    def banned_word_list(self) -> list[str]:
        """Parsed banned words; an empty setting falls back to the defaults."""
        if not self.banned_words:
            return list(DEFAULT_BANNED_WORDS)

        return [
            word.strip().lower()
            for word in self.banned_words.split(",")
            if word.strip()
        ]


class ModerationPolicyUpdate(BaseModel):
    """Settings write payload."""

    profanity_filter: bool = True
    banned_words: str = ""
    filter_action: FilterAction = FilterAction.CENSOR
    min_post_length: int = Field(10, ge=0)
    max_post_length: int = Field(10000, ge=1)
    max_links_per_post: int = Field(3, ge=0)
    require_approval: bool = False
    moderation_queue: bool = False
    trusted_user_post_count: int = Field(50, ge=0)


class ModerationPolicyStore:
    """
    Loads the active moderation settings row through a TTL cache.

    A missing row or a failing query yields the documented defaults,
    which are not cached so the next call retries the database.

    Usage:
        store = ModerationPolicyStore(session_maker, cache)
        policy = await store.get_settings()
    """

    CACHE_KEY = "moderation:settings"

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        cache: TTLCache,
        ttl: float | None = None,
    ) -> None:
        self.session_maker = session_maker
        self.cache = cache
        self.ttl = ttl if ttl is not None else settings.moderation_settings_ttl_seconds

    @staticmethod
    def defaults() -> ModerationPolicy:
        return ModerationPolicy()

    async def get_settings(self) -> ModerationPolicy:
        """Get the current moderation policy."""
        cached = await self.cache.get(self.CACHE_KEY)
        if cached is not None:
            return ModerationPolicy.model_validate(cached)

        try:
            async with self.session_maker() as session:
                row = await self._load_active(session)
        except SQLAlchemyError as e:
            logger.warning(f"Could not load moderation settings, using defaults: {e}")
            return self.defaults()

        if row is None:
            return self.defaults()

        policy = ModerationPolicy.model_validate(row)
        await self.cache.set(self.CACHE_KEY, policy.model_dump(mode="json"), self.ttl)
        return policy

    async def clear_cache(self) -> None:
        """Force the next get_settings() to hit the database."""
        await self.cache.delete(self.CACHE_KEY)

    async def save_settings(
        self,
        db: AsyncSession,
        update: ModerationPolicyUpdate,
    ) -> ModerationPolicy:
        """
        Write the active settings row and invalidate the cache.

        Args:
            db: Session to write with (committed here)
            update: New settings values

        Returns:
            Policy built from the saved row
        """
        row = await self._load_active(db)
        values: dict[str, Any] = update.model_dump()

        if row is None:
            row = ModerationSettings(is_active=True, **values)
            db.add(row)
        else:
            for key, value in values.items():
                setattr(row, key, value)

        await db.commit()
        await self.clear_cache()

        logger.info(f"Moderation settings saved (action={update.filter_action.value})")
        return ModerationPolicy.model_validate(row)

    @staticmethod
    async def _load_active(session: AsyncSession) -> ModerationSettings | None:
        result = await session.execute(
            select(ModerationSettings)
            .where(ModerationSettings.is_active == True)
            .order_by(ModerationSettings.id)
            .limit(1)
        )
        return result.scalar_one_or_none()


# Singleton instance
_policy_store: ModerationPolicyStore | None = None


def get_policy_store() -> ModerationPolicyStore:
    """Get or create the moderation policy store singleton."""
    global _policy_store
    if _policy_store is None:
        _policy_store = ModerationPolicyStore(get_session_maker(), get_cache())
    return _policy_store
