"""
Chat Service.

Thread lifecycle and message flow for the two chat flavours:

- appointment chats: one thread per appointment and patient, per-user unread
  counters, messages stored as text/sentAt/readBy
- member chats: one thread per member, a single unread counter for the
  member, messages stored as message/timestamp/read

Sending a message updates the thread's last-message cache, bumps exactly one
recipient's unread counter and notifies that recipient.
"""

import logging
from typing import AsyncIterator, List, Optional, Tuple

from core.data import SERVER_TIMESTAMP, DocumentStore, Increment, QueryOptions, field_path
from shared.cosmos_config import (
    APPOINTMENT_CHATS,
    APPOINTMENT_CHAT_MESSAGES,
    MEMBER_CHATS,
    MEMBER_CHAT_MESSAGES,
)
from use_cases.notifications import NotificationService

from .domain.policies import (
    ThreadResolutionError,
    appointment_thread_from_document,
    initial_participants,
    merge_participant_profiles,
    normalize_member_chat,
    normalize_message,
    normalize_unread_count,
    resolve_appointment_thread_id,
    resolve_chat_type,
    resolve_member_id,
    resolve_member_name,
    resolve_recipient,
)
from .types import (
    MEMBER_CHAT_STAFF_ROLE,
    ChatDrawerContext,
    ChatMessage,
    ChatParticipantRole,
    ChatSenderInfo,
    ChatThreadMetadata,
    ChatType,
    MemberChatSummary,
)

logger = logging.getLogger(__name__)


class ChatService:
    """Chat operations over the document store."""

    def __init__(self, store: DocumentStore, notifications: NotificationService):
        """
        Initialize the chat service.

        Args:
            store: Document store holding threads and messages
            notifications: Service used to notify message recipients
        """
        self.store = store
        self.notifications = notifications

    # =========================================================================
    # THREADS
    # =========================================================================

    async def ensure_thread(
        self,
        context: ChatDrawerContext,
        sender: ChatSenderInfo,
    ) -> ChatThreadMetadata:
        """
        Find or create the thread a chat context points at.

        Raises:
            ThreadResolutionError: If the context does not identify a thread
        """
        try:
            if resolve_chat_type(context=context) == ChatType.MEMBER:
                return await self._ensure_member_thread(context, sender)
            return await self._ensure_appointment_thread(context, sender)
        except ThreadResolutionError:
            raise
        except Exception as e:
            logger.error(f"Failed to open chat thread: {e}")
            raise

    async def _ensure_member_thread(
        self,
        context: ChatDrawerContext,
        sender: ChatSenderInfo,
    ) -> ChatThreadMetadata:
        member_id = resolve_member_id(context)
        chat = await self.store.get(MEMBER_CHATS, member_id)

        if chat is None:
            await self.store.set(MEMBER_CHATS, member_id, {
                "memberId": member_id,
                "memberName": resolve_member_name(context),
                "createdAt": SERVER_TIMESTAMP,
                "lastMessage": "",
                "lastMessageTime": SERVER_TIMESTAMP,
                "unreadCount": 0,
            })
            logger.info(f"Created member chat {member_id}")
            chat = await self.store.get(MEMBER_CHATS, member_id) or {}

        member_name = resolve_member_name(context, chat)
        participants = [member_id] if sender.uid == member_id else [member_id, sender.uid]
        return ChatThreadMetadata(
            id=member_id,
            chat_type=ChatType.MEMBER,
            member_id=member_id,
            member_name=member_name,
            participants=participants,
            participant_profiles={
                member_id: {
                    "id": member_id,
                    "name": member_name,
                    "email": context.patient_email,
                    "role": ChatParticipantRole.PATIENT.value,
                },
                sender.uid: {
                    "id": sender.uid,
                    "name": sender.name,
                    "email": sender.email,
                    "role": sender.role or ChatParticipantRole.SECRETARY.value,
                },
            },
            last_message=chat.get("lastMessage") or "",
            last_message_at=chat.get("lastMessageTime"),
            unread_count=normalize_unread_count(chat.get("unreadCount") or 0),
        )

    async def _ensure_appointment_thread(
        self,
        context: ChatDrawerContext,
        sender: ChatSenderInfo,
    ) -> ChatThreadMetadata:
        thread_id = resolve_appointment_thread_id(context)
        existing = await self.store.get(APPOINTMENT_CHATS, thread_id)
        profiles = merge_participant_profiles(
            (existing or {}).get("participantProfiles"), sender, context
        )

        if existing is None:
            await self.store.set(APPOINTMENT_CHATS, thread_id, {
                "appointmentId": context.appointment_id,
                "patientId": context.patient_id,
                "participants": initial_participants(sender, context),
                "participantProfiles": profiles,
                "appointmentMeta": {
                    "date": context.appointment_date,
                    "time": context.appointment_time,
                    "service": context.appointment_service,
                },
                "createdAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
                "lastMessage": "",
                "lastSenderId": "",
                "lastMessageAt": None,
                "unreadCount": {},
            }, merge=True)
            logger.info(f"Created appointment chat {thread_id}")
        else:
            meta = existing.get("appointmentMeta") or {}
            await self.store.update(APPOINTMENT_CHATS, thread_id, {
                "participantProfiles": profiles,
                "appointmentMeta": {
                    **meta,
                    "date": context.appointment_date or meta.get("date"),
                    "time": context.appointment_time or meta.get("time"),
                    "service": context.appointment_service or meta.get("service"),
                },
            })

        document = await self.store.get(APPOINTMENT_CHATS, thread_id) or {}
        return appointment_thread_from_document(thread_id, document)

    # =========================================================================
    # MESSAGES
    # =========================================================================

    async def send_message(
        self,
        thread: ChatThreadMetadata,
        message_text: str,
        sender: ChatSenderInfo,
        context: ChatDrawerContext,
    ) -> Optional[str]:
        """
        Post a message to a thread.

        Blank messages are ignored.

        Returns:
            The new message id, or None if nothing was sent
        """
        if thread is None or not thread.id:
            raise ThreadResolutionError("Cannot send message without thread id.")
        trimmed = (message_text or "").strip()
        if not trimmed:
            return None

        try:
            if resolve_chat_type(thread, context) == ChatType.MEMBER:
                return await self._send_member_message(thread, trimmed, sender, context)
            return await self._send_appointment_message(thread, trimmed, sender, context)
        except Exception as e:
            logger.error(f"Failed to send message to thread {thread.id}: {e}")
            raise

    async def _send_member_message(
        self,
        thread: ChatThreadMetadata,
        text: str,
        sender: ChatSenderInfo,
        context: ChatDrawerContext,
    ) -> str:
        message_id = await self.store.add(MEMBER_CHAT_MESSAGES, {
            "threadId": thread.id,
            "senderId": sender.uid,
            "senderName": sender.name,
            "senderRole": MEMBER_CHAT_STAFF_ROLE,
            "message": text,
            "timestamp": SERVER_TIMESTAMP,
            "read": False,
        })

        await self.store.update(MEMBER_CHATS, thread.id, {
            "lastMessage": text,
            "lastMessageTime": SERVER_TIMESTAMP,
            "unreadCount": Increment(1),
        })

        member_id = thread.member_id or thread.id
        await self.notifications.create(
            member_id,
            text,
            metadata={
                "senderName": sender.name,
                "senderId": sender.uid,
                "patientName": thread.member_name or context.patient_name or "Member",
            },
            threadId=thread.id,
            chatType=ChatType.MEMBER.value,
        )
        logger.info(f"Sent member message {message_id} in chat {thread.id}")
        return message_id

    async def _send_appointment_message(
        self,
        thread: ChatThreadMetadata,
        text: str,
        sender: ChatSenderInfo,
        context: ChatDrawerContext,
    ) -> str:
        message_id = await self.store.add(APPOINTMENT_CHAT_MESSAGES, {
            "threadId": thread.id,
            "text": text,
            "senderId": sender.uid,
            "senderName": sender.name,
            "senderRole": sender.role or ChatParticipantRole.UNKNOWN.value,
            "sentAt": SERVER_TIMESTAMP,
            "readBy": [sender.uid],
        })

        updates = {
            "lastMessage": text,
            "lastSenderId": sender.uid,
            "lastMessageAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
            field_path("unreadCount", sender.uid): 0,
        }
        recipient_id = resolve_recipient(thread, sender.uid, context)
        if recipient_id:
            updates[field_path("unreadCount", recipient_id)] = Increment(1)
        await self.store.update(APPOINTMENT_CHATS, thread.id, updates)

        if recipient_id:
            meta = thread.appointment_meta
            patient_profile = thread.participant_profiles.get(thread.patient_id) if thread.patient_id else None
            await self.notifications.create(
                recipient_id,
                text,
                metadata={
                    "senderName": sender.name,
                    "senderId": sender.uid,
                    "appointmentDate": context.appointment_date or (meta.date if meta else None),
                    "appointmentTime": context.appointment_time or (meta.time if meta else None),
                    "patientName": context.patient_name or (patient_profile.name if patient_profile else None),
                },
                threadId=thread.id,
                appointmentId=thread.appointment_id or context.appointment_id,
                patientId=thread.patient_id or context.patient_id,
            )
        else:
            logger.warning(f"No recipient for message {message_id} in thread {thread.id}")

        logger.info(f"Sent appointment message {message_id} in thread {thread.id}")
        return message_id

    def _messages_query(self, thread_id: str, chat_type: ChatType) -> Tuple[str, QueryOptions]:
        if ChatType(chat_type) == ChatType.MEMBER:
            return MEMBER_CHAT_MESSAGES, QueryOptions(
                filters={"threadId": thread_id}, order_by="timestamp", order_desc=True
            )
        return APPOINTMENT_CHAT_MESSAGES, QueryOptions(
            filters={"threadId": thread_id}, order_by="sentAt", order_desc=True
        )

    async def list_messages(
        self,
        thread_id: str,
        chat_type: ChatType = ChatType.APPOINTMENT,
    ) -> List[ChatMessage]:
        """Messages of a thread, newest first, in the normalized shape."""
        collection, options = self._messages_query(thread_id, chat_type)
        documents = await self.store.query(collection, options)
        return [normalize_message(document) for document in documents]

    async def subscribe_to_messages(
        self,
        thread_id: str,
        chat_type: ChatType = ChatType.APPOINTMENT,
    ) -> AsyncIterator[List[ChatMessage]]:
        """Yield the thread's normalized messages, newest first, whenever they change."""
        collection, options = self._messages_query(thread_id, chat_type)
        async for documents in self.store.watch(collection, options):
            yield [normalize_message(document) for document in documents]

    async def mark_thread_read(
        self,
        thread_id: str,
        user_id: str,
        chat_type: ChatType = ChatType.APPOINTMENT,
    ) -> None:
        """
        Clear a reader's unread state.

        Member chats mark the staff messages read and reset the member
        counter; appointment chats reset the reader's own counter.
        """
        try:
            if ChatType(chat_type) == ChatType.MEMBER:
                unread = await self.store.query(MEMBER_CHAT_MESSAGES, QueryOptions(
                    filters={"threadId": thread_id, "senderRole": MEMBER_CHAT_STAFF_ROLE, "read": False},
                    order_by="timestamp",
                    order_desc=True,
                ))
                for document in unread:
                    await self.store.update(MEMBER_CHAT_MESSAGES, document["id"], {"read": True})
                await self.store.update(MEMBER_CHATS, thread_id, {"unreadCount": 0})
            else:
                await self.store.update(APPOINTMENT_CHATS, thread_id, {
                    field_path("unreadCount", user_id): 0,
                    "updatedAt": SERVER_TIMESTAMP,
                })
        except Exception as e:
            logger.error(f"Failed to mark thread {thread_id} read for {user_id}: {e}")
            raise

    # =========================================================================
    # MEMBER CHAT LIST
    # =========================================================================

    _member_chats_query = QueryOptions(order_by="lastMessageTime", order_desc=True)

    async def list_member_chats(self) -> List[MemberChatSummary]:
        """All member chats, most recently active first."""
        documents = await self.store.query(MEMBER_CHATS, self._member_chats_query)
        return [normalize_member_chat(document) for document in documents]

    async def subscribe_to_member_chats(self) -> AsyncIterator[List[MemberChatSummary]]:
        """Yield the member chat list whenever it changes."""
        async for documents in self.store.watch(MEMBER_CHATS, self._member_chats_query):
            yield [normalize_member_chat(document) for document in documents]
