from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Callable, Dict, List, Optional, Type

from pydantic import BaseModel

from core.errors import StoreError
from models.models import Room, RoomMessage, User, utcnow

logger = logging.getLogger(__name__)

Predicate = Callable[[BaseModel], bool]

# ============================================================================
# DOCUMENT STORE
# ============================================================================
class DocumentStore:
    """
    Async document store holding the users, rooms and room_messages collections.

    Documents live in memory, keyed by id, in insertion order. When a data
    file is configured every write is mirrored to it so state survives
    restarts; for multi-instance deployments swap this class for a real
    database with the same interface.

    Callers always receive copies: mutating a returned document never changes
    the stored one until it is written back with ``replace``.

    Storage Format (data file):
        {
            "users": {"u1": {"id": "u1", "displayName": "Ada", ...}},
            "rooms": {"<id>": {"id": "<id>", "name": "rust-study", ...}},
            "room_messages": {"<id>": {"id": "<id>", "roomId": "<id>", ...}}
        }
    """

    MODELS: Dict[str, Type[BaseModel]] = {
        "users": User,
        "rooms": Room,
        "room_messages": RoomMessage,
    }

    def __init__(self, data_file: str = "") -> None:
        self.data_file = data_file
        self.collections: Dict[str, Dict[str, BaseModel]] = {name: {} for name in self.MODELS}
        self._lock = asyncio.Lock()

    def load(self) -> None:
        """
        Load collections from the data file, if one is configured and exists.

        Runs once on application startup, before any request is served.
        """
        if not self.data_file or not os.path.exists(self.data_file):
            return
        try:
            with open(self.data_file, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.exception("Load error from %s", self.data_file)
            raise StoreError("Failed to load data") from e

        for name, model in self.MODELS.items():
            self.collections[name] = {
                doc_id: model.model_validate(doc) for doc_id, doc in data.get(name, {}).items()
            }
        logger.info(
            "✓ Loaded %d users, %d rooms, %d messages from %s",
            len(self.collections["users"]),
            len(self.collections["rooms"]),
            len(self.collections["room_messages"]),
            self.data_file,
        )

    def _write(self, data: dict) -> None:
        tmp_path = f"{self.data_file}.tmp"
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.data_file)

    async def _persist(self) -> None:
        if not self.data_file:
            return
        data = {
            name: {doc_id: doc.model_dump(mode="json", by_alias=True) for doc_id, doc in docs.items()}
            for name, docs in self.collections.items()
        }
        try:
            await asyncio.to_thread(self._write, data)
        except OSError as e:
            logger.exception("Save error to %s", self.data_file)
            raise StoreError("Failed to persist data") from e

    def _collection(self, name: str) -> Dict[str, BaseModel]:
        try:
            return self.collections[name]
        except KeyError:
            raise StoreError(f"Unknown collection: {name}") from None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def get(self, collection: str, doc_id: str) -> Optional[BaseModel]:
        doc = self._collection(collection).get(doc_id)
        return doc.model_copy(deep=True) if doc is not None else None

    async def get_many(self, collection: str, doc_ids: List[str]) -> Dict[str, BaseModel]:
        docs = self._collection(collection)
        return {
            doc_id: docs[doc_id].model_copy(deep=True) for doc_id in doc_ids if doc_id in docs
        }

    async def find(
        self,
        collection: str,
        predicate: Optional[Predicate] = None,
        newest_first: bool = False,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[BaseModel]:
        """
        Return matching documents, optionally sorted by createdAt descending.

        Documents with equal createdAt keep reverse insertion order when
        sorted newest-first, so paging over them is stable.
        """
        docs = list(self._collection(collection).values())
        if predicate is not None:
            docs = [doc for doc in docs if predicate(doc)]
        if newest_first:
            docs.reverse()
            docs.sort(key=lambda doc: doc.created_at, reverse=True)
        end = None if limit is None else skip + limit
        return [doc.model_copy(deep=True) for doc in docs[skip:end]]

    async def count(self, collection: str, predicate: Optional[Predicate] = None) -> int:
        docs = self._collection(collection).values()
        if predicate is None:
            return len(docs)
        return sum(1 for doc in docs if predicate(doc))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def insert(self, collection: str, doc: BaseModel) -> BaseModel:
        async with self._lock:
            docs = self._collection(collection)
            if doc.id in docs:
                raise StoreError(f"Duplicate id in {collection}")
            docs[doc.id] = doc.model_copy(deep=True)
            await self._persist()
        return doc.model_copy(deep=True)

    async def upsert(self, collection: str, doc: BaseModel) -> BaseModel:
        async with self._lock:
            self._collection(collection)[doc.id] = doc.model_copy(deep=True)
            await self._persist()
        return doc.model_copy(deep=True)

    async def replace(self, collection: str, doc: BaseModel) -> BaseModel:
        """Write back a modified document, bumping updatedAt where the model has one."""
        async with self._lock:
            docs = self._collection(collection)
            if doc.id not in docs:
                raise StoreError(f"Document vanished from {collection}")
            stored = doc.model_copy(deep=True)
            if hasattr(stored, "updated_at"):
                stored.updated_at = utcnow()
            docs[doc.id] = stored
            await self._persist()
        return stored.model_copy(deep=True)

    async def push(self, collection: str, doc_id: str, field: str, value) -> bool:
        """Append ``value`` to a list field in place. Returns False if the document is gone."""
        async with self._lock:
            doc = self._collection(collection).get(doc_id)
            if doc is None:
                return False
            getattr(doc, field).append(value)
            if hasattr(doc, "updated_at"):
                doc.updated_at = utcnow()
            await self._persist()
        return True

    async def delete(self, collection: str, doc_id: str) -> bool:
        async with self._lock:
            removed = self._collection(collection).pop(doc_id, None)
            if removed is not None:
                await self._persist()
        return removed is not None

    async def delete_many(self, collection: str, predicate: Predicate) -> int:
        async with self._lock:
            docs = self._collection(collection)
            doomed = [doc_id for doc_id, doc in docs.items() if predicate(doc)]
            for doc_id in doomed:
                del docs[doc_id]
            if doomed:
                await self._persist()
        return len(doomed)
