"""
Notification Service.

Stores per-user notifications in the notifications collection and exposes
them as lists or live subscriptions.
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from core.data import SERVER_TIMESTAMP, DocumentStore, QueryOptions
from shared.cosmos_config import NOTIFICATIONS

logger = logging.getLogger(__name__)

CHAT_NOTIFICATION = "chat"


class NotificationService:
    """Create, read and acknowledge user notifications."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def create(
        self,
        user_id: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        notification_type: str = CHAT_NOTIFICATION,
        **fields: Any,
    ) -> str:
        """
        Create an unread notification for a user.

        Args:
            user_id: The user the notification is addressed to
            message: Notification text
            metadata: Display details (sender, patient, appointment)
            notification_type: Kind of notification ("chat" for messages)
            **fields: Extra top-level fields (threadId, chatType, appointmentId...)

        Returns:
            The new notification id
        """
        document = {
            "userId": user_id,
            "type": notification_type,
            "message": message,
            **fields,
            "createdAt": SERVER_TIMESTAMP,
            "read": False,
            "metadata": metadata or {},
        }
        try:
            notification_id = await self.store.add(NOTIFICATIONS, document)
        except Exception as e:
            logger.error(f"Failed to create notification for user {user_id}: {e}")
            raise
        logger.info(f"Created {notification_type} notification {notification_id} for user {user_id}")
        return notification_id

    def _user_query(self, user_id: str) -> QueryOptions:
        return QueryOptions(filters={"userId": user_id}, order_by="createdAt", order_desc=True)

    async def list_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        """All notifications of a user, newest first."""
        return await self.store.query(NOTIFICATIONS, self._user_query(user_id))

    async def subscribe(self, user_id: str) -> AsyncIterator[List[Dict[str, Any]]]:
        """Yield the user's notifications, newest first, whenever they change."""
        async for documents in self.store.watch(NOTIFICATIONS, self._user_query(user_id)):
            yield documents

    async def mark_read(self, notification_id: str) -> None:
        """Mark one notification read. Raises KeyError if it does not exist."""
        await self.store.update(NOTIFICATIONS, notification_id, {"read": True})

    async def mark_all_read(self, user_id: str) -> int:
        """Mark every unread notification of a user read and return how many changed."""
        unread = await self.store.query(
            NOTIFICATIONS,
            QueryOptions(filters={"userId": user_id, "read": False}),
        )
        for document in unread:
            await self.store.update(NOTIFICATIONS, document["id"], {"read": True})
        logger.info(f"Marked {len(unread)} notifications read for user {user_id}")
        return len(unread)
