"""
Forum models for community discussions.

Includes:
- Categories
- Subjects (forums)
- Threads
- Posts
- Thread subscriptions
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bulletin.core.database import Base


class ForumCategory(Base):
    """Top-level grouping of subjects."""

    __tablename__ = "forum_categories"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100))
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    subjects: Mapped[list["ForumSubject"]] = relationship(back_populates="category")

    def __repr__(self) -> str:
        return f"<ForumCategory {self.name}>"


class ForumSubject(Base):
    """Forum (sub-board) holding threads."""

    __tablename__ = "forum_subjects"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    category_id: Mapped[int] = mapped_column(ForeignKey("forum_categories.id"))
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    # Posting rules
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False)
    can_post: Mapped[bool] = mapped_column(Boolean, default=True)
    can_reply: Mapped[bool] = mapped_column(Boolean, default=True)
    guest_posting: Mapped[bool] = mapped_column(Boolean, default=False)

    # Stats (denormalized)
    thread_count: Mapped[int] = mapped_column(Integer, default=0)
    post_count: Mapped[int] = mapped_column(Integer, default=0)

    category: Mapped["ForumCategory"] = relationship(back_populates="subjects")
    threads: Mapped[list["ForumThread"]] = relationship(back_populates="subject")

    def __repr__(self) -> str:
        return f"<ForumSubject {self.name}>"


class ForumThread(Base):
    """Forum thread."""

    __tablename__ = "forum_threads"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    subject_id: Mapped[int] = mapped_column(ForeignKey("forum_subjects.id"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"))

    title: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str | None] = mapped_column(String(120), unique=True, index=True)
    thread_type: Mapped[str] = mapped_column(String(20), default="NORMAL")

    # Status
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False)
    is_sticky: Mapped[bool] = mapped_column(Boolean, default=False)
    approved: Mapped[bool] = mapped_column(Boolean, default=True)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime)

    # Stats
    post_count: Mapped[int] = mapped_column(Integer, default=0)
    reply_count: Mapped[int] = mapped_column(Integer, default=0)
    view_count: Mapped[int] = mapped_column(Integer, default=0)

    # Last activity
    last_post_at: Mapped[datetime | None] = mapped_column(DateTime)
    last_post_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    subject: Mapped["ForumSubject"] = relationship(back_populates="threads")
    posts: Mapped[list["ForumPost"]] = relationship(back_populates="thread")

    def __repr__(self) -> str:
        return f"<ForumThread {self.title[:30]}>"


class ForumPost(Base):
    """Post inside a thread."""

    __tablename__ = "forum_posts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    thread_id: Mapped[int] = mapped_column(ForeignKey("forum_threads.id"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    reply_to_id: Mapped[int | None] = mapped_column(ForeignKey("forum_posts.id"))

    content: Mapped[str] = mapped_column(Text)  # HTML

    # Status
    approved: Mapped[bool] = mapped_column(Boolean, default=True)
    flagged: Mapped[bool] = mapped_column(Boolean, default=False)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime)

    # Edit audit
    edited_at: Mapped[datetime | None] = mapped_column(DateTime)
    edited_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    edit_reason: Mapped[str | None] = mapped_column(String(200))

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    thread: Mapped["ForumThread"] = relationship(back_populates="posts")

    def __repr__(self) -> str:
        return f"<ForumPost {self.id} in thread {self.thread_id}>"


class ThreadSubscription(Base):
    """User subscribed to new posts in a thread."""

    __tablename__ = "forum_thread_subscriptions"
    __table_args__ = (UniqueConstraint("thread_id", "user_id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    thread_id: Mapped[int] = mapped_column(ForeignKey("forum_threads.id"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
