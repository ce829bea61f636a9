"""
Moderation Module - Deciding what may be published.

Features:
- Effective permissions from role, moderator assignment and groups
- Cached site-wide moderation settings
- Banned-word filter (censor, block or flag)
- Publication gate combining all of the above
"""

from bulletin.modules.moderation.content_filter import ContentFilter, strip_html
from bulletin.modules.moderation.gate import (
    GateDecision,
    GateState,
    Outcome,
    PublicationGate,
    RejectionReason,
    Submission,
)
from bulletin.modules.moderation.permissions import EffectivePermissions, PermissionResolver
from bulletin.modules.moderation.policy import (
    ModerationPolicy,
    ModerationPolicyStore,
    ModerationPolicyUpdate,
    get_policy_store,
)

__all__ = [
    "ContentFilter",
    "EffectivePermissions",
    "GateDecision",
    "GateState",
    "ModerationPolicy",
    "ModerationPolicyStore",
    "ModerationPolicyUpdate",
    "Outcome",
    "PermissionResolver",
    "PublicationGate",
    "RejectionReason",
    "Submission",
    "get_policy_store",
    "strip_html",
]
