"""
Content Filter - banned word detection and censor/block/flag actions.
"""

import re
from dataclasses import dataclass, field

from bulletin.models.moderation import FilterAction
from bulletin.modules.moderation.policy import ModerationPolicy

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")

# Only these entities are decoded for analysis
_ENTITIES = (
    ("&nbsp;", " "),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
)


def strip_html(html: str | None) -> str:
    """
    Plain-text view of HTML for length and banned-word analysis.

    Never store the result; tags are replaced by spaces.
    """
    if not html:
        return ""

    text = _TAG_RE.sub(" ", html)
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    return _WHITESPACE_RE.sub(" ", text).strip()


def _word_pattern(word: str) -> re.Pattern[str]:
    return re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE)


def _censor(match: re.Match[str]) -> str:
    return "*" * len(match.group(0))


@dataclass
class FilterCheck:
    """Result of scanning text for banned words."""

    has_banned_words: bool
    matches: list[str] = field(default_factory=list)
    filtered: str = ""


@dataclass
class FilterResult:
    """Outcome of applying the configured filter action."""

    allowed: bool
    text: str
    flagged: bool = False
    reason: str | None = None


class ContentFilter:
    """
    Applies the banned-word policy to submitted content.

    Usage:
        content_filter = ContentFilter.from_policy(policy)
        result = content_filter.apply("<p>buy viagra now</p>")
    """

    def __init__(
        self,
        banned_words: list[str],
        action: FilterAction = FilterAction.CENSOR,
        enabled: bool = True,
    ) -> None:
        self.action = action
        self.enabled = enabled
        self._patterns = [
            (word, _word_pattern(word)) for word in banned_words if word
        ]

    @classmethod
    def from_policy(cls, policy: ModerationPolicy) -> "ContentFilter":
        return cls(
            banned_words=policy.banned_word_list,
            action=policy.filter_action,
            enabled=policy.profanity_filter,
        )

    def check(self, text: str | None) -> FilterCheck:
        """
        Find banned words in text.

        Matches whole words only, case-insensitively. `filtered` has every
        match replaced by asterisks of the same length.
        """
        if not text or not self.enabled:
            return FilterCheck(has_banned_words=False, matches=[], filtered=text or "")

        matches: list[str] = []
        filtered = text
        for word, pattern in self._patterns:
            if pattern.search(text):
                matches.append(word)
                filtered = pattern.sub(_censor, filtered)

        return FilterCheck(
            has_banned_words=bool(matches),
            matches=matches,
            filtered=filtered,
        )

    def _dispatch(self, text: str, check: FilterCheck, censored: str) -> FilterResult:
        if not check.has_banned_words:
            return FilterResult(allowed=True, text=text)

        words = ", ".join(check.matches)

        if self.action == FilterAction.BLOCK:
            return FilterResult(
                allowed=False,
                text=text,
                reason=f"Content contains prohibited words: {words}",
            )

        if self.action == FilterAction.FLAG:
            return FilterResult(
                allowed=True,
                text=text,
                flagged=True,
                reason=f"Content flagged for review - contains: {words}",
            )

        return FilterResult(allowed=True, text=censored)

    def apply(self, content: str | None) -> FilterResult:
        """
        Filter raw HTML (or plain text) content.

        Banned words are detected on the plain-text view; censoring
        re-runs the same per-word substitution over the raw markup.
        """
        content = content or ""
        if not self.enabled:
            return FilterResult(allowed=True, text=content)

        check = self.check(strip_html(content))
        if not check.has_banned_words:
            return FilterResult(allowed=True, text=content)

        censored = content
        for word, pattern in self._patterns:
            if word in check.matches:
                censored = pattern.sub(_censor, censored)

        return self._dispatch(content, check, censored)

    def apply_plain(self, text: str | None) -> FilterResult:
        """Filter plain text such as a thread title."""
        text = text or ""
        if not self.enabled:
            return FilterResult(allowed=True, text=text)

        check = self.check(text)
        return self._dispatch(text, check, check.filtered)
