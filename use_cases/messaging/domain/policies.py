"""
Messaging Domain Policies.

Pure rules for resolving which thread a chat belongs to, who receives a
message, and how stored documents map onto the public models.
These functions have NO I/O dependencies - they can be unit tested in isolation.
"""

from typing import Any, Dict, Optional

from ..types import (
    ChatDrawerContext,
    ChatMessage,
    ChatParticipantRole,
    ChatSenderInfo,
    ChatThreadMetadata,
    ChatType,
    MemberChatSummary,
)

DEFAULT_MEMBER_NAME = "Member"


class ThreadResolutionError(ValueError):
    """Raised when a chat context does not identify a thread."""


# =============================================================================
# THREAD RESOLUTION
# =============================================================================

def build_thread_id(appointment_id: Optional[str], patient_id: Optional[str]) -> str:
    """Derive the appointment thread id from the appointment and patient ids."""
    if not appointment_id or not patient_id:
        raise ThreadResolutionError("Missing appointmentId or patientId for chat thread.")
    return f"{appointment_id}_{patient_id}"


def resolve_chat_type(
    thread: Optional[ChatThreadMetadata] = None,
    context: Optional[ChatDrawerContext] = None,
) -> ChatType:
    """The thread's own type wins, then the context's, then appointment."""
    if thread is not None and thread.chat_type:
        return ChatType(thread.chat_type)
    if context is not None and context.chat_type:
        return ChatType(context.chat_type)
    return ChatType.APPOINTMENT


def resolve_member_id(context: ChatDrawerContext) -> str:
    """A member chat is keyed by the member: the patient, else the recipient."""
    member_id = context.patient_id or context.recipient_id
    if not member_id:
        raise ThreadResolutionError("Member chat requires patientId or recipientId.")
    return member_id


def resolve_member_name(context: ChatDrawerContext, stored: Optional[Dict[str, Any]] = None) -> str:
    stored = stored or {}
    return stored.get("memberName") or context.patient_name or context.recipient_name or DEFAULT_MEMBER_NAME


def resolve_appointment_thread_id(context: ChatDrawerContext) -> str:
    """An explicit thread id wins over one derived from the appointment."""
    if not context.appointment_id and not context.thread_id:
        raise ThreadResolutionError("Appointment chat requires appointmentId or threadId.")
    if context.thread_id:
        return context.thread_id
    return build_thread_id(context.appointment_id, context.patient_id)


def merge_participant_profiles(
    existing: Optional[Dict[str, Dict[str, Any]]],
    sender: ChatSenderInfo,
    context: ChatDrawerContext,
) -> Dict[str, Dict[str, Any]]:
    """
    Refresh the sender's profile and fill in the patient's.

    Patient details from the context override stored ones; stored ones are
    kept when the context is silent.
    """
    profiles = {uid: dict(profile) for uid, profile in (existing or {}).items()}
    profiles[sender.uid] = {
        "id": sender.uid,
        "name": sender.name,
        "email": sender.email,
        "role": sender.role or ChatParticipantRole.UNKNOWN.value,
    }

    if context.patient_id:
        stored = profiles.get(context.patient_id, {})
        profiles[context.patient_id] = {
            "id": context.patient_id,
            "name": context.patient_name or stored.get("name") or DEFAULT_MEMBER_NAME,
            "email": context.patient_email or stored.get("email"),
            "role": stored.get("role") or ChatParticipantRole.PATIENT.value,
        }
    return profiles


def initial_participants(sender: ChatSenderInfo, context: ChatDrawerContext) -> list:
    """Sender, patient and recipient, deduplicated, in that order."""
    participants = []
    for uid in (sender.uid, context.patient_id, context.recipient_id):
        if uid and str(uid) not in participants:
            participants.append(str(uid))
    return participants


def resolve_recipient(
    thread: ChatThreadMetadata,
    sender_uid: str,
    context: ChatDrawerContext,
) -> Optional[str]:
    """
    Pick the single user whose unread counter a new message increments.

    Candidates in order: the context's recipient, the context's patient, then
    the other thread participants. The sender is never the recipient.
    """
    candidates = [context.recipient_id, context.patient_id, *thread.participants]
    for candidate in candidates:
        if candidate and candidate != sender_uid:
            return candidate
    return None


# =============================================================================
# NORMALIZATION
# =============================================================================

def _count(value: Any) -> int:
    # Malformed stored counters read as 0
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def normalize_unread_count(value: Any) -> Any:
    """Clamp stored unread counters (single or per-user) to non-negative ints."""
    if isinstance(value, dict):
        return {uid: _count(count) for uid, count in value.items()}
    if value is None:
        return None
    return _count(value)


def normalize_message(document: Dict[str, Any]) -> ChatMessage:
    """
    Map either message schema onto one shape.

    Appointment messages store text/sentAt/readBy, member messages store
    message/timestamp/read; each pair is mirrored so readers can use either.
    """
    text = document.get("text") or document.get("message") or ""
    sent_at = document.get("sentAt") or document.get("timestamp")
    return ChatMessage(
        id=document["id"],
        text=text,
        message=text,
        sender_id=document.get("senderId"),
        sender_name=document.get("senderName"),
        sender_role=document.get("senderRole"),
        sent_at=sent_at,
        timestamp=sent_at,
        read_by=document.get("readBy") or [],
        read=bool(document.get("read", False)),
    )


def normalize_member_chat(document: Dict[str, Any]) -> MemberChatSummary:
    return MemberChatSummary(
        id=document["id"],
        member_id=document.get("memberId") or document["id"],
        member_name=document.get("memberName") or DEFAULT_MEMBER_NAME,
        last_message=document.get("lastMessage") or "",
        last_message_time=document.get("lastMessageTime"),
        unread_count=normalize_unread_count(document.get("unreadCount") or 0),
    )


def appointment_thread_from_document(thread_id: str, document: Dict[str, Any]) -> ChatThreadMetadata:
    data = {key: value for key, value in document.items() if key not in ("id", "chatType")}
    data["unreadCount"] = normalize_unread_count(data.get("unreadCount") or {})
    return ChatThreadMetadata.model_validate(
        {**data, "id": thread_id, "chatType": ChatType.APPOINTMENT.value}
    )
