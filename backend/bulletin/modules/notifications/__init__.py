"""
Notifications Module - Reply, subscription and mention notifications.
"""

from bulletin.modules.notifications.fanout import NotificationFanout, extract_mentions

__all__ = ["NotificationFanout", "extract_mentions"]
