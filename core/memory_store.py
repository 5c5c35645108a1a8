"""
In-process document store.

Implements the DocumentStore contract on plain dicts. Used for local
development (DOCUMENT_STORE=memory) and by the test suite. Data is lost when
the process exits.
"""

import asyncio
import copy
import logging
from typing import Any, Dict, List, Optional

from .data import (
    SERVER_TIMESTAMP,
    DocumentStore,
    Increment,
    QueryOptions,
    deep_merge,
    get_path,
    resolve_transforms,
    split_path,
    utc_timestamp,
)

logger = logging.getLogger(__name__)


class MemoryDocumentStore(DocumentStore):
    """Dict-backed store with change wakeups for watchers."""

    def __init__(self, poll_interval: float = 1.0, tick: float = 0.01):
        super().__init__(poll_interval)
        self._tick = tick
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._versions: Dict[str, int] = {}

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def _touch(self, collection: str):
        self._versions[collection] = self._versions.get(collection, 0) + 1

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        document = self._collection(collection).get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False,
    ) -> None:
        documents = self._collection(collection)
        body = resolve_transforms(data)
        if merge and doc_id in documents:
            body = deep_merge(documents[doc_id], body)
        body["id"] = doc_id
        documents[doc_id] = copy.deepcopy(body)
        self._touch(collection)

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        documents = self._collection(collection)
        if doc_id not in documents:
            raise KeyError(f"Document {doc_id} not found in {collection}")

        now = utc_timestamp()
        document = copy.deepcopy(documents[doc_id])
        for path, value in fields.items():
            *parents, leaf = split_path(path)
            target = document
            for segment in parents:
                if not isinstance(target.get(segment), dict):
                    target[segment] = {}
                target = target[segment]

            if isinstance(value, Increment):
                target[leaf] = (target.get(leaf) or 0) + value.amount
            elif value is SERVER_TIMESTAMP:
                target[leaf] = now
            else:
                target[leaf] = resolve_transforms(copy.deepcopy(value), now)

        documents[doc_id] = document
        self._touch(collection)

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = self.new_id()
        await self.set(collection, doc_id, data)
        return doc_id

    async def delete(self, collection: str, doc_id: str) -> bool:
        documents = self._collection(collection)
        if doc_id not in documents:
            return False
        del documents[doc_id]
        self._touch(collection)
        return True

    async def query(
        self,
        collection: str,
        options: Optional[QueryOptions] = None,
    ) -> List[Dict[str, Any]]:
        options = options or QueryOptions()
        results = [
            copy.deepcopy(document)
            for document in self._collection(collection).values()
            if all(get_path(document, path) == value for path, value in options.filters.items())
        ]

        if options.order_by:
            # Missing values sort first ascending, last descending
            def sort_key(doc: Dict[str, Any]):
                value = get_path(doc, options.order_by)
                return (0, "") if value is None else (1, value)

            results.sort(key=sort_key, reverse=options.order_desc)

        results = results[options.offset:]
        if options.limit is not None:
            results = results[:options.limit]
        return results

    async def wait_for_change(self, collection: str) -> None:
        seen = self._versions.get(collection, 0)
        waited = 0.0
        while self._versions.get(collection, 0) == seen and waited < self.poll_interval:
            await asyncio.sleep(self._tick)
            waited += self._tick
