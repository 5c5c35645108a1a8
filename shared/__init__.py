"""
Shared modules for the dental clinic messaging service.

This package contains shared configuration and utilities used across the application.
"""

from shared.cosmos_config import (
    COSMOS_ENDPOINT,
    DATABASE_NAME,
    CLINIC_CONTAINERS,
)

__all__ = [
    "COSMOS_ENDPOINT",
    "DATABASE_NAME",
    "CLINIC_CONTAINERS",
]
