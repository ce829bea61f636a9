"""
Forum Module - Threads, posts and their publication.

Features:
- Thread and post publication through the moderation gate
- Denormalised counters kept in the same transaction
- Unique thread slugs
- Edits, approval and soft delete
- Thread subscriptions
"""

from bulletin.modules.forum.ledger import CounterLedger
from bulletin.modules.forum.publishing import PublicationService
from bulletin.modules.forum.service import ForumService
from bulletin.modules.forum.slugs import SlugAssigner, make_slug

__all__ = [
    "CounterLedger",
    "ForumService",
    "PublicationService",
    "SlugAssigner",
    "make_slug",
]
