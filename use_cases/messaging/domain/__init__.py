"""Messaging domain layer - pure business logic."""

from .policies import (
    ThreadResolutionError,
    appointment_thread_from_document,
    build_thread_id,
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

__all__ = [
    "ThreadResolutionError",
    "appointment_thread_from_document",
    "build_thread_id",
    "initial_participants",
    "merge_participant_profiles",
    "normalize_member_chat",
    "normalize_message",
    "normalize_unread_count",
    "resolve_appointment_thread_id",
    "resolve_chat_type",
    "resolve_member_id",
    "resolve_member_name",
    "resolve_recipient",
]
