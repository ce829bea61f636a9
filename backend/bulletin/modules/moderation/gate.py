"""
Publication Gate - decides whether a new thread or post may be published.

Checks run in a fixed order and the first failure wins:

1. thread / subject / reply target exist
2. thread and subject are open
3. the author may post or reply here
4. plain-text length (and title length) within limits
5. link count within limit
6. banned-word filter allows the content
7. approval flag is decided

The gate only reads permission and settings sources; persisting the
result is the counter ledger's job.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from loguru import logger

from bulletin.core.errors import (
    Forbidden,
    ForumError,
    NotFound,
    ValidationFailed,
)
from bulletin.models.forum import ForumPost, ForumSubject, ForumThread
from bulletin.models.user import UserRole
from bulletin.modules.moderation.content_filter import (
    ContentFilter,
    FilterResult,
    strip_html,
)
from bulletin.modules.moderation.permissions import PermissionResolver
from bulletin.modules.moderation.policy import ModerationPolicy, ModerationPolicyStore

_LINK_RE = re.compile(r"https?://", re.IGNORECASE)

TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 200


class GateState(str, Enum):
    """Progress of a submission through the gate."""

    RECEIVED = "RECEIVED"
    PERMISSION_CHECKED = "PERMISSION_CHECKED"
    FORUM_STATE_CHECKED = "FORUM_STATE_CHECKED"
    LENGTH_CHECKED = "LENGTH_CHECKED"
    FILTERED = "FILTERED"
    DECIDED = "DECIDED"


class Outcome(str, Enum):
    """Final decision for a submission."""

    ACCEPTED = "ACCEPTED"
    ACCEPTED_PENDING_APPROVAL = "ACCEPTED_PENDING_APPROVAL"
    REJECTED = "REJECTED"


class RejectionReason(str, Enum):
    """Why a submission was refused."""

    NOT_FOUND = "NOT_FOUND"
    LOCKED = "LOCKED"
    INACTIVE = "INACTIVE"
    NO_PERMISSION = "NO_PERMISSION"
    LENGTH = "LENGTH"
    TOO_MANY_LINKS = "TOO_MANY_LINKS"
    PROHIBITED_CONTENT = "PROHIBITED_CONTENT"


_ERRORS: dict[RejectionReason, type[ForumError]] = {
    RejectionReason.NOT_FOUND: NotFound,
    RejectionReason.LOCKED: Forbidden,
    RejectionReason.INACTIVE: Forbidden,
    RejectionReason.NO_PERMISSION: Forbidden,
    RejectionReason.LENGTH: ValidationFailed,
    RejectionReason.TOO_MANY_LINKS: ValidationFailed,
    RejectionReason.PROHIBITED_CONTENT: ValidationFailed,
}


@dataclass
class Rejection:
    """Refusal with the HTTP status it maps to."""

    reason: RejectionReason
    message: str

    @property
    def status_code(self) -> int:
        return _ERRORS[self.reason].status_code

    def to_error(self) -> ForumError:
        return _ERRORS[self.reason](self.message)


@dataclass
class Submission:
    """A thread or post somebody is trying to publish."""

    kind: Literal["thread", "post"]
    author_id: int
    role: UserRole | str
    author_post_count: int
    content: str
    title: str | None = None
    subject: ForumSubject | None = None
    thread: ForumThread | None = None
    reply_to_id: int | None = None
    reply_to: ForumPost | None = None


@dataclass
class ContentCheck:
    """Result of the length, link and filter checks."""

    rejection: Rejection | None = None
    content: FilterResult | None = None
    title: FilterResult | None = None

    @property
    def flagged(self) -> bool:
        return bool(
            (self.content and self.content.flagged) or (self.title and self.title.flagged)
        )

    @property
    def flag_reason(self) -> str | None:
        for result in (self.content, self.title):
            if result and result.flagged:
                return result.reason
        return None


@dataclass
class GateDecision:
    """Gate output: a rejection, or content ready for persistence."""

    outcome: Outcome
    trail: list[GateState] = field(default_factory=list)
    rejection: Rejection | None = None
    filtered_content: str | None = None
    filtered_title: str | None = None
    approved: bool = False
    flagged: bool = False
    flag_reason: str | None = None

    @property
    def state(self) -> GateState:
        return self.trail[-1] if self.trail else GateState.RECEIVED

    @property
    def accepted(self) -> bool:
        return self.outcome != Outcome.REJECTED

    def raise_for_rejection(self) -> None:
        """Raise the mapped ForumError when the submission was rejected."""
        if self.rejection is not None:
            raise self.rejection.to_error()


def decide_approval(
    policy: ModerationPolicy,
    flagged: bool,
    author_post_count: int,
) -> bool:
    """Whether content goes live immediately or waits for a moderator."""
    untrusted = policy.moderation_queue and author_post_count < policy.trusted_user_post_count
    return not (flagged or policy.require_approval or untrusted)


class PublicationGate:
    """
    Runs the publication checks for one submission.

    Usage:
        gate = PublicationGate(resolver, policy_store)
        decision = await gate.evaluate(submission)
        decision.raise_for_rejection()
    """

    def __init__(
        self,
        resolver: PermissionResolver,
        policy_store: ModerationPolicyStore,
    ) -> None:
        self.resolver = resolver
        self.policy_store = policy_store

    async def evaluate(self, submission: Submission) -> GateDecision:
        """
        Decide a submission.

        Args:
            submission: The thread or post being published

        Returns:
            Decision with either a rejection or filtered content
        """
        trail = [GateState.RECEIVED]

        def reject(reason: RejectionReason, message: str) -> GateDecision:
            trail.append(GateState.DECIDED)
            logger.info(
                f"Rejected {submission.kind} by user {submission.author_id}: "
                f"{reason.value} ({message})"
            )
            return GateDecision(
                outcome=Outcome.REJECTED,
                trail=trail,
                rejection=Rejection(reason, message),
            )

        rejection = self._check_forum_state(submission)
        if rejection:
            return reject(rejection.reason, rejection.message)
        trail.append(GateState.FORUM_STATE_CHECKED)

        rejection = await self._check_permission(submission)
        if rejection:
            return reject(rejection.reason, rejection.message)
        trail.append(GateState.PERMISSION_CHECKED)

        policy = await self.policy_store.get_settings()

        rejection = self._check_length(submission.content, submission.title, policy)
        if rejection:
            return reject(rejection.reason, rejection.message)
        trail.append(GateState.LENGTH_CHECKED)

        check = self._filter(submission.content, submission.title, policy)
        if check.rejection:
            return reject(check.rejection.reason, check.rejection.message)
        trail.append(GateState.FILTERED)

        approved = decide_approval(policy, check.flagged, submission.author_post_count)
        trail.append(GateState.DECIDED)

        return GateDecision(
            outcome=Outcome.ACCEPTED if approved else Outcome.ACCEPTED_PENDING_APPROVAL,
            trail=trail,
            filtered_content=check.content.text,
            filtered_title=check.title.text if check.title else None,
            approved=approved,
            flagged=check.flagged,
            flag_reason=check.flag_reason,
        )

    async def check_content(
        self,
        content: str,
        title: str | None = None,
    ) -> ContentCheck:
        """Length, link and filter checks alone, as used by edits."""
        policy = await self.policy_store.get_settings()

        rejection = self._check_length(content, title, policy)
        if rejection:
            return ContentCheck(rejection=rejection)
        return self._filter(content, title, policy)

    # ==================== Stages ====================

    @staticmethod
    def _check_forum_state(submission: Submission) -> Rejection | None:
        subject = submission.subject
        thread = submission.thread

        if submission.kind == "post":
            if thread is None or thread.deleted:
                return Rejection(RejectionReason.NOT_FOUND, "Thread not found")
            if submission.reply_to_id is not None:
                target = submission.reply_to
                if target is None or target.deleted or target.thread_id != thread.id:
                    return Rejection(RejectionReason.NOT_FOUND, "Reply target not found")

        if subject is None:
            return Rejection(RejectionReason.NOT_FOUND, "Forum not found")

        if thread is not None and thread.is_locked:
            return Rejection(RejectionReason.LOCKED, "Thread is locked")
        if subject.is_locked:
            return Rejection(RejectionReason.LOCKED, "Forum is locked")
        if not subject.is_active:
            return Rejection(RejectionReason.INACTIVE, "Forum is not active")

        return None

    async def _check_permission(self, submission: Submission) -> Rejection | None:
        subject = submission.subject
        permissions = await self.resolver.resolve(
            submission.author_id,
            subject.id,
            submission.role,
        )

        if submission.kind == "post":
            allowed = permissions.can_reply and subject.can_reply
            message = "You do not have permission to reply in this forum"
        else:
            allowed = permissions.can_post and subject.can_post
            message = "You do not have permission to create threads in this forum"

        if allowed and submission.role == UserRole.GUEST:
            allowed = subject.guest_posting

        if not allowed:
            return Rejection(RejectionReason.NO_PERMISSION, message)
        return None

    @staticmethod
    def _check_length(
        content: str,
        title: str | None,
        policy: ModerationPolicy,
    ) -> Rejection | None:
        if title is not None:
            title_length = len(title.strip())
            if not TITLE_MIN_LENGTH <= title_length <= TITLE_MAX_LENGTH:
                return Rejection(
                    RejectionReason.LENGTH,
                    f"Title must be between {TITLE_MIN_LENGTH} and "
                    f"{TITLE_MAX_LENGTH} characters",
                )

        length = len(strip_html(content))
        if length < policy.min_post_length or length > policy.max_post_length:
            return Rejection(
                RejectionReason.LENGTH,
                f"Content length must be between {policy.min_post_length} and "
                f"{policy.max_post_length} characters",
            )

        links = len(_LINK_RE.findall(content or ""))
        if links > policy.max_links_per_post:
            return Rejection(
                RejectionReason.TOO_MANY_LINKS,
                f"Too many links: at most {policy.max_links_per_post} allowed",
            )

        return None

    @staticmethod
    def _filter(
        content: str,
        title: str | None,
        policy: ModerationPolicy,
    ) -> ContentCheck:
        content_filter = ContentFilter.from_policy(policy)

        content_result = content_filter.apply((content or "").strip())
        if not content_result.allowed:
            return ContentCheck(
                rejection=Rejection(
                    RejectionReason.PROHIBITED_CONTENT,
                    content_result.reason or "Content contains prohibited words",
                )
            )

        title_result = None
        if title is not None:
            title_result = content_filter.apply_plain(title.strip())
            if not title_result.allowed:
                return ContentCheck(
                    rejection=Rejection(
                        RejectionReason.PROHIBITED_CONTENT,
                        title_result.reason or "Title contains prohibited words",
                    )
                )

        return ContentCheck(content=content_result, title=title_result)
