"""
Data Layer Base Classes.

The data layer provides a document-store abstraction over the hosted
database. Services talk to a DocumentStore; the concrete backend (Cosmos DB
in production, in-process memory for development and tests) is chosen at
startup.

Key principles:
- Stores handle document CRUD, queries and change notification only
- No business logic in stores
- Documents are plain dicts with camelCase keys, always carrying their "id"
- Nested map fields are addressed with dotted paths ("unreadCount.user-1");
  field_path() escapes dots inside keys
"""

import asyncio
import copy
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

logger = logging.getLogger(__name__)

# Fixed-width so that timestamps sort lexicographically
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    """Return the canonical UTC timestamp string for a moment (default: now)."""
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


@dataclass
class QueryOptions:
    """Options for document queries."""
    limit: Optional[int] = None
    offset: int = 0
    order_by: Optional[str] = None
    order_desc: bool = False
    filters: Dict[str, Any] = field(default_factory=dict)


# =============================================================================
# FIELD TRANSFORMS
# =============================================================================

@dataclass(frozen=True)
class Increment:
    """Atomically add `amount` to a numeric field (missing fields count as 0)."""
    amount: int = 1


class _ServerTimestamp:
    """Sentinel replaced with the write time when a document is stored."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def resolve_transforms(value: Any, now: Optional[str] = None) -> Any:
    """
    Resolve field transforms inside a document that is written as a whole.

    SERVER_TIMESTAMP becomes the write time and Increment(n) becomes n, which
    is what an increment against a missing field yields.
    """
    now = now or utc_timestamp()
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, Increment):
        return value.amount
    if isinstance(value, dict):
        return {key: resolve_transforms(item, now) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_transforms(item, now) for item in value]
    return value


def field_path(*segments: str) -> str:
    """
    Join segments into a dotted field path.

    Dots and backslashes inside a segment are escaped, so keys such as
    email-shaped user ids stay a single map key.
    """
    return ".".join(
        str(segment).replace("\\", "\\\\").replace(".", "\\.") for segment in segments
    )


def split_path(path: str) -> List[str]:
    """Split a dotted field path into its segments, honouring escapes."""
    segments = []
    current = []
    escaped = False
    for char in path:
        if escaped:
            current.append(char)
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == ".":
            segments.append("".join(current))
            current = []
        else:
            current.append(char)
    segments.append("".join(current))
    return [segment for segment in segments if segment]


def get_path(document: Dict[str, Any], path: str) -> Any:
    """Read a dotted field path from a document, None if any segment is missing."""
    current: Any = document
    for segment in split_path(path):
        if not isinstance(current, dict) or segment not in current:
            return None
        current = current[segment]
    return current


def deep_merge(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """Merge `updates` into a copy of `base`, recursing into nested maps."""
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


# =============================================================================
# DOCUMENT STORE
# =============================================================================

class DocumentStore(ABC):
    """
    Abstract base class for document stores.

    Collections are addressed by their logical name (see shared.cosmos_config).
    All methods are async so that services read the same regardless of the
    backend.
    """

    def __init__(self, poll_interval: float = 1.0):
        """
        Initialize the store.

        Args:
            poll_interval: Seconds between change checks while watching a query
        """
        self.poll_interval = poll_interval

    @staticmethod
    def new_id() -> str:
        """Generate an id for an added document."""
        return uuid.uuid4().hex[:20]

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """
        Get a document by id.

        Returns:
            The document (including "id") if found, None otherwise
        """
        pass

    @abstractmethod
    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False,
    ) -> None:
        """
        Create or overwrite a document.

        Args:
            collection: Logical collection name
            doc_id: Document id
            data: Document body (field transforms allowed)
            merge: Merge into an existing document instead of replacing it
        """
        pass

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """
        Update fields of an existing document.

        Keys may be dotted paths into nested maps; values may be Increment or
        SERVER_TIMESTAMP. Build paths from untrusted keys with field_path()
        so a dot inside a key is not read as nesting.

        Raises:
            KeyError: If the document does not exist
        """
        pass

    @abstractmethod
    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        """Add a document with a generated id and return the id."""
        pass

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns False if it did not exist."""
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        options: Optional[QueryOptions] = None,
    ) -> List[Dict[str, Any]]:
        """
        Find documents matching equality filters.

        Args:
            collection: Logical collection name
            options: Filters, ordering and pagination

        Returns:
            Matching documents, each including its "id"
        """
        pass

    async def wait_for_change(self, collection: str) -> None:
        """Block until the collection may have changed."""
        await asyncio.sleep(self.poll_interval)

    async def watch(
        self,
        collection: str,
        options: Optional[QueryOptions] = None,
    ) -> AsyncIterator[List[Dict[str, Any]]]:
        """
        Subscribe to a query.

        Yields the current result immediately, then a new snapshot every time
        the result differs from the previous one.
        """
        last: Optional[List[Dict[str, Any]]] = None
        while True:
            documents = await self.query(collection, options)
            if documents != last:
                last = documents
                yield documents
            await self.wait_for_change(collection)

    async def close(self) -> None:
        """Release backend resources."""
        pass
