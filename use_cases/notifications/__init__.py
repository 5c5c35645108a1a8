"""
Notifications Use Case.

Per-user notifications fanned out when chat messages are sent.
"""

from .service import NotificationService, CHAT_NOTIFICATION

__all__ = [
    "NotificationService",
    "CHAT_NOTIFICATION",
]
