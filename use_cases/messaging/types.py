"""
Messaging data models.

Pydantic models for chat threads, messages and the context a chat is opened
from. Field names are snake_case in Python and camelCase on the wire and in
the stored documents.
"""

from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ChatType(str, Enum):
    """Which document schema a thread uses."""
    APPOINTMENT = "appointment"
    MEMBER = "member"


class ChatParticipantRole(str, Enum):
    """Roles a chat participant can have."""
    ADMIN = "userAdmin"
    SECRETARY = "userSecretary"
    DENTIST = "userDentist"
    PATIENT = "userPatient"
    SYSTEM = "system"
    UNKNOWN = "unknown"


# Role stored on messages staff send into member chats
MEMBER_CHAT_STAFF_ROLE = "admin"


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


class ChatParticipantProfile(CamelModel):
    id: str
    name: str
    email: Optional[str] = None
    role: Optional[str] = None
    avatar_url: Optional[str] = None


class AppointmentMeta(CamelModel):
    date: Optional[str] = None
    time: Optional[str] = None
    service: Optional[str] = None


class ChatThreadMetadata(CamelModel):
    """
    A chat thread as seen by callers.

    Appointment threads carry per-user unread counts (a map); member threads
    carry a single counter for the member.
    """
    id: str
    chat_type: ChatType = ChatType.APPOINTMENT
    appointment_id: Optional[str] = None
    patient_id: Optional[str] = None
    member_id: Optional[str] = None
    member_name: Optional[str] = None
    participants: List[str] = []
    participant_profiles: Dict[str, ChatParticipantProfile] = {}
    appointment_meta: Optional[AppointmentMeta] = None
    last_message: Optional[str] = None
    last_sender_id: Optional[str] = None
    last_message_at: Optional[str] = None
    unread_count: Union[Dict[str, int], int, None] = None


class ChatMessage(CamelModel):
    """A message normalized from either stored schema variant."""
    id: str
    text: str = ""
    message: str = ""
    sender_id: Optional[str] = None
    sender_name: Optional[str] = None
    sender_role: Optional[str] = None
    sent_at: Optional[str] = None
    timestamp: Optional[str] = None
    read_by: List[str] = []
    read: bool = False


class ChatDrawerContext(CamelModel):
    """Where a chat was opened from and who it concerns."""
    chat_type: Optional[ChatType] = None
    appointment_id: Optional[str] = None
    appointment_date: Optional[str] = None
    appointment_time: Optional[str] = None
    appointment_service: Optional[str] = None
    patient_id: Optional[str] = None
    patient_name: Optional[str] = None
    patient_email: Optional[str] = None
    thread_id: Optional[str] = None
    recipient_id: Optional[str] = None
    recipient_name: Optional[str] = None
    source: Optional[str] = None


class ChatSenderInfo(CamelModel):
    uid: str
    name: str
    email: Optional[str] = None
    role: Optional[str] = None


class MemberChatSummary(CamelModel):
    """Row of the staff-side member chat list."""
    id: str
    member_id: str
    member_name: str = "Member"
    last_message: str = ""
    last_message_time: Optional[str] = None
    unread_count: int = 0
