"""
Chat Drawer Session State.

Tracks, per signed-in user, whether the chat drawer is open and which chat
context it shows, so that every client of the same user opens the same
conversation.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from .types import ChatDrawerContext

logger = logging.getLogger(__name__)


@dataclass
class ChatDrawerState:
    """Open/closed flag plus the context the drawer was opened with."""
    open: bool = False
    context: Optional[ChatDrawerContext] = None
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def _touch(self):
        """Update the timestamp."""
        self.updated_at = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "open": self.open,
            "context": self.context.model_dump(by_alias=True, exclude_none=True) if self.context else None,
            "updatedAt": self.updated_at.isoformat(),
        }


class ChatDrawerStateManager:
    """
    Manages drawer state across users.

    This is a simple in-memory manager; state is lost on restart.
    """

    def __init__(self):
        self._states: Dict[str, ChatDrawerState] = {}

    def get(self, user_id: str) -> ChatDrawerState:
        """Get the user's drawer state (closed if never opened)."""
        return self._states.get(user_id) or ChatDrawerState()

    def open(self, user_id: str, context: Optional[ChatDrawerContext]) -> ChatDrawerState:
        """
        Open the drawer on a context.

        An empty context leaves the current state untouched.
        """
        if context is None or not context.model_dump(exclude_none=True):
            return self.get(user_id)
        state = ChatDrawerState(open=True, context=context)
        self._states[user_id] = state
        logger.debug(f"Opened chat drawer for user {user_id}")
        return state

    def close(self, user_id: str) -> ChatDrawerState:
        """Close the drawer and forget its context."""
        if user_id in self._states:
            del self._states[user_id]
            logger.debug(f"Closed chat drawer for user {user_id}")
        return ChatDrawerState()

    def patch(self, user_id: str, updates: Dict[str, Any]) -> ChatDrawerState:
        """
        Merge fields into the current context without changing open/closed.

        Args:
            user_id: The user whose drawer to update
            updates: Context fields (camelCase or snake_case)
        """
        state = self._states.setdefault(user_id, ChatDrawerState())
        base = state.context.model_dump(exclude_none=True) if state.context else {}
        changes = ChatDrawerContext.model_validate(updates).model_dump(exclude_unset=True)
        state.context = ChatDrawerContext.model_validate({**base, **changes})
        state._touch()
        return state

    def clear_all(self):
        """Clear all drawer states."""
        self._states.clear()
