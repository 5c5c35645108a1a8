"""
Azure Cosmos DB Configuration.

Centralized configuration for all Cosmos DB settings used across the application.
This keeps the service, the document stores and the provisioning script in sync.

Environment Variables (optional overrides):
    COSMOS_ENDPOINT - Override the default Cosmos DB endpoint
    COSMOS_DATABASE - Override the default database name
"""

import os

# =============================================================================
# COSMOS DB CONNECTION
# =============================================================================

COSMOS_ENDPOINT = os.getenv(
    "COSMOS_ENDPOINT",
    "https://dental-clinic-db.documents.azure.com:443/"
)

DATABASE_NAME = os.getenv(
    "COSMOS_DATABASE",
    "dentalclinic"
)

# =============================================================================
# CLINIC CONTAINERS
# =============================================================================

# Format: logical_name -> (container_name, partition_key_path)
# Message "subcollections" are flattened into sibling containers and point
# back to their thread through the threadId field.
CLINIC_CONTAINERS = {
    "appointment_chats": ("appointmentChats", "/id"),
    "appointment_chat_messages": ("appointmentChats_messages", "/id"),
    "member_chats": ("chats", "/id"),
    "member_chat_messages": ("chats_messages", "/id"),
    "notifications": ("notifications", "/id"),
    "appointments": ("appointments", "/id"),
}

# Simple container name lookup (without partition key)
CLINIC_CONTAINER_NAMES = {
    key: name for key, (name, _) in CLINIC_CONTAINERS.items()
}

# Logical names used by the services
APPOINTMENT_CHATS = "appointment_chats"
APPOINTMENT_CHAT_MESSAGES = "appointment_chat_messages"
MEMBER_CHATS = "member_chats"
MEMBER_CHAT_MESSAGES = "member_chat_messages"
NOTIFICATIONS = "notifications"
APPOINTMENTS = "appointments"

# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_container_name(logical_name: str) -> str:
    """Get the actual container name for a logical container name."""
    if logical_name in CLINIC_CONTAINER_NAMES:
        return CLINIC_CONTAINER_NAMES[logical_name]
    return logical_name

