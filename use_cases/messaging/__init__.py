"""
Messaging Use Case.

Patient/staff chat tied to appointments or member accounts.

Structure:
- domain/: Pure business logic (no I/O)
  - policies.py: thread resolution, recipient choice, message normalization
- types.py: Pydantic models for threads, messages and chat contexts
- service.py: ChatService (thread lifecycle, send, read markers, subscriptions)
- session.py: ChatDrawerStateManager (per-user open chat)
"""

from .service import ChatService
from .session import ChatDrawerState, ChatDrawerStateManager
from .types import (
    ChatDrawerContext,
    ChatMessage,
    ChatSenderInfo,
    ChatThreadMetadata,
    ChatType,
    MemberChatSummary,
)

__all__ = [
    "ChatService",
    "ChatDrawerState",
    "ChatDrawerStateManager",
    "ChatDrawerContext",
    "ChatMessage",
    "ChatSenderInfo",
    "ChatThreadMetadata",
    "ChatType",
    "MemberChatSummary",
]
