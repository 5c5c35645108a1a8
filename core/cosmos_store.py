"""
Azure Cosmos DB-based document store.

Implements the DocumentStore contract against the clinic's Cosmos DB account.
Containers must exist beforehand (see scripts/create_containers.py).
"""

import json
import logging
from typing import Any, Dict, List, Optional

from azure.cosmos import CosmosClient
from azure.cosmos.exceptions import CosmosResourceNotFoundError
from azure.identity import DefaultAzureCredential

# Import shared configuration
from shared.cosmos_config import (
    COSMOS_ENDPOINT,
    DATABASE_NAME,
    get_container_name,
)

from .data import (
    SERVER_TIMESTAMP,
    DocumentStore,
    Increment,
    QueryOptions,
    deep_merge,
    resolve_transforms,
    split_path,
    utc_timestamp,
)

logger = logging.getLogger(__name__)

# Properties Cosmos DB adds to every stored item
SYSTEM_PROPERTIES = ("_rid", "_self", "_etag", "_attachments", "_ts")


def _strip_system_properties(item: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in item.items() if key not in SYSTEM_PROPERTIES}


def _field_ref(path: str) -> str:
    """Build a Cosmos SQL property reference for a dotted path: c["a"]["b"]."""
    return "c" + "".join(f"[{json.dumps(segment)}]" for segment in split_path(path))


def _json_pointer(path: str) -> str:
    """RFC 6901 pointer for a dotted path ("~" and "/" escaped inside segments)."""
    return "".join(
        "/" + segment.replace("~", "~0").replace("/", "~1") for segment in split_path(path)
    )


def build_patch_operations(fields: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Translate an update dict into Cosmos DB patch operations.

    Dotted paths become JSON pointers, Increment becomes "incr" and every
    other value (SERVER_TIMESTAMP resolved) becomes "set".
    """
    now = utc_timestamp()
    operations = []
    for path, value in fields.items():
        pointer = _json_pointer(path)
        if isinstance(value, Increment):
            operations.append({"op": "incr", "path": pointer, "value": value.amount})
        elif value is SERVER_TIMESTAMP:
            operations.append({"op": "set", "path": pointer, "value": now})
        else:
            operations.append({"op": "set", "path": pointer, "value": resolve_transforms(value, now)})
    return operations


def build_query(options: QueryOptions) -> tuple:
    """Build a parameterized Cosmos SQL query from query options."""
    clauses = []
    params = []
    for index, (path, value) in enumerate(options.filters.items()):
        name = f"@p{index}"
        clauses.append(f"{_field_ref(path)} = {name}")
        params.append({"name": name, "value": value})

    query = "SELECT * FROM c"
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    if options.order_by:
        query += f" ORDER BY {_field_ref(options.order_by)} {'DESC' if options.order_desc else 'ASC'}"
    if options.limit is not None:
        query += f" OFFSET {int(options.offset)} LIMIT {int(options.limit)}"
    return query, params


class CosmosDocumentStore(DocumentStore):
    """
    Azure Cosmos DB-based persistent store for threads, messages,
    notifications and appointments.
    """

    def __init__(
        self,
        endpoint: str = COSMOS_ENDPOINT,
        database_name: str = DATABASE_NAME,
        poll_interval: float = 1.0,
        client: Optional[CosmosClient] = None,
    ):
        """
        Initialize the Cosmos DB store.

        Args:
            endpoint: Cosmos DB endpoint URL
            database_name: Database name
            poll_interval: Seconds between re-queries while watching
            client: Pre-built client (a DefaultAzureCredential client is created otherwise)
        """
        super().__init__(poll_interval)
        self.endpoint = endpoint
        self.database_name = database_name

        if client is None:
            # This supports multiple auth methods with fallback
            logger.info("Initializing Cosmos DB connection...")
            self._credential = DefaultAzureCredential(
                exclude_interactive_browser_credential=False,
                exclude_shared_token_cache_credential=False,
            )
            client = CosmosClient(endpoint, credential=self._credential)
        self._client = client
        self._database = self._client.get_database_client(database_name)
        self._containers = {}
        logger.info(f"Connected to Cosmos DB: {database_name}")

    def _get_container(self, name: str):
        """Get a container client, caching for reuse."""
        if name not in self._containers:
            self._containers[name] = self._database.get_container_client(get_container_name(name))
        return self._containers[name]

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        container = self._get_container(collection)
        try:
            item = container.read_item(item=doc_id, partition_key=doc_id)
        except CosmosResourceNotFoundError:
            return None
        return _strip_system_properties(item)

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False,
    ) -> None:
        container = self._get_container(collection)
        body = resolve_transforms(data)
        if merge:
            existing = await self.get(collection, doc_id)
            if existing:
                body = deep_merge(existing, body)
        body["id"] = doc_id
        container.upsert_item(body)

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        container = self._get_container(collection)
        try:
            container.patch_item(
                item=doc_id,
                partition_key=doc_id,
                patch_operations=build_patch_operations(fields),
            )
        except CosmosResourceNotFoundError:
            raise KeyError(f"Document {doc_id} not found in {collection}")

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        container = self._get_container(collection)
        doc_id = self.new_id()
        body = resolve_transforms(data)
        body["id"] = doc_id
        container.create_item(body)
        return doc_id

    async def delete(self, collection: str, doc_id: str) -> bool:
        container = self._get_container(collection)
        try:
            container.delete_item(item=doc_id, partition_key=doc_id)
        except CosmosResourceNotFoundError:
            return False
        return True

    async def query(
        self,
        collection: str,
        options: Optional[QueryOptions] = None,
    ) -> List[Dict[str, Any]]:
        container = self._get_container(collection)
        query, params = build_query(options or QueryOptions())
        logger.debug(f"Querying {collection}: {query}")

        items = container.query_items(
            query=query,
            parameters=params,
            enable_cross_partition_query=True,
        )
        return [_strip_system_properties(item) for item in items]
