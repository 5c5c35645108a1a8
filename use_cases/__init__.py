"""
Use Cases Package.

Each use case is a self-contained module with its own models, pure domain
rules and a service that talks to the document store:

- messaging: appointment and member chats, read markers, chat drawer state
- notifications: per-user notifications fanned out on new messages
- appointments: status changes and patient status emails
"""

from use_cases.messaging import ChatService, ChatDrawerStateManager
from use_cases.notifications import NotificationService
from use_cases.appointments import AppointmentService, AppointmentMailer

__all__ = [
    "ChatService",
    "ChatDrawerStateManager",
    "NotificationService",
    "AppointmentService",
    "AppointmentMailer",
]
