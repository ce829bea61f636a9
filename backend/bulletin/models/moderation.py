"""
Moderation settings model.
"""

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import Boolean, DateTime, Enum, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from bulletin.core.database import Base


class FilterAction(str, PyEnum):
    """What happens to content containing banned words."""

    CENSOR = "CENSOR"
    BLOCK = "BLOCK"
    FLAG = "FLAG"


class ModerationSettings(Base):
    """Site-wide moderation configuration; the first active row wins."""

    __tablename__ = "moderation_settings"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Content filter
    profanity_filter: Mapped[bool] = mapped_column(Boolean, default=True)
    banned_words: Mapped[str | None] = mapped_column(Text)  # Comma separated
    filter_action: Mapped[FilterAction] = mapped_column(
        Enum(FilterAction), default=FilterAction.CENSOR
    )

    # Limits
    min_post_length: Mapped[int] = mapped_column(Integer, default=10)
    max_post_length: Mapped[int] = mapped_column(Integer, default=10000)
    max_links_per_post: Mapped[int] = mapped_column(Integer, default=3)

    # Approval
    require_approval: Mapped[bool] = mapped_column(Boolean, default=False)
    moderation_queue: Mapped[bool] = mapped_column(Boolean, default=False)
    trusted_user_post_count: Mapped[int] = mapped_column(Integer, default=50)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<ModerationSettings {self.id} action={self.filter_action}>"
