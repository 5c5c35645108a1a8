"""
Core Framework for the clinic use cases.

1. Domain Layer - Validation helpers, no I/O
2. Data Layer - Document store contract and its backends

Each use case builds its services on a DocumentStore so the backend can be
swapped at startup.
"""

from .data import DocumentStore, QueryOptions, Increment, SERVER_TIMESTAMP
from .domain import Validator, ValidationError
from .memory_store import MemoryDocumentStore

__all__ = [
    # Data
    "DocumentStore",
    "QueryOptions",
    "Increment",
    "SERVER_TIMESTAMP",
    "MemoryDocumentStore",
    # Domain
    "Validator",
    "ValidationError",
]
