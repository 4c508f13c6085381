"""
MongoDB gateway for the Entity Service.
"""

import asyncio
from typing import Any, Awaitable, Dict, List, Optional

from bson import ObjectId
from pymongo import AsyncMongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from shared.logging import get_logger
from shared.errors import EncodingError, MalformedInputError, NotFoundError, StoreUnavailableError
from shared.metrics import MetricsCollector
from ..models import Entity


def parse_entity_id(entity_id: str) -> ObjectId:
    """Parse a 24-hex-character id, raising ``MalformedInputError`` otherwise."""
    # ObjectId.is_valid also accepts 12-byte strings; only the hex form is an id here
    if not isinstance(entity_id, str) or len(entity_id) != 24 or not ObjectId.is_valid(entity_id):
        raise MalformedInputError("Malformed entity id", details={"id": str(entity_id)})
    return ObjectId(entity_id)


def document_to_entity(document: Dict[str, Any]) -> Entity:
    """Map a stored ``{_id, title}`` document to an Entity."""
    try:
        return Entity(id=str(document["_id"]), title=document["title"])
    except (KeyError, TypeError, ValueError) as e:
        raise EncodingError(
            "Stored entity could not be decoded",
            details={"id": str(document.get("_id")) if isinstance(document, dict) else None}
        ) from e


class MongoEntityStore:
    """
    Thin adapter over one MongoDB collection.

    Every call makes a single attempt bounded by ``timeout_seconds``; driver
    failures and timeouts surface as ``StoreUnavailableError``.
    """

    def __init__(
        self,
        uri: str,
        database_name: str = "main",
        collection_name: str = "entity",
        timeout_seconds: float = 5.0,
        connect_timeout_seconds: float = 10.0,
        metrics: Optional[MetricsCollector] = None,
        client: Optional[AsyncMongoClient] = None,
    ):
        self.uri = uri
        self.database_name = database_name
        self.collection_name = collection_name
        self.timeout_seconds = timeout_seconds
        self.connect_timeout_seconds = connect_timeout_seconds
        self.metrics = metrics
        self.logger = get_logger("entities.persistence.mongo")
        self.client: Optional[AsyncMongoClient] = client
        self.collection = None

    async def start(self):
        """Connect and verify the store is reachable. Failure is fatal to startup."""
        try:
            if self.client is None:
                self.client = AsyncMongoClient(
                    self.uri,
                    serverSelectionTimeoutMS=int(self.connect_timeout_seconds * 1000),
                    connectTimeoutMS=int(self.connect_timeout_seconds * 1000),
                )
            self.collection = self.client[self.database_name][self.collection_name]
            await asyncio.wait_for(
                self.client.admin.command("ping"),
                timeout=self.connect_timeout_seconds
            )
        except (PyMongoError, asyncio.TimeoutError) as e:
            self.logger.error("Failed to connect to MongoDB", error=str(e))
            raise StoreUnavailableError("Failed to connect to document store", details={"error": str(e)}) from e

        self.logger.info(
            "MongoDB store started",
            database=self.database_name,
            collection=self.collection_name
        )

    async def stop(self):
        """Release the client connection."""
        if self.client is not None:
            await self.client.close()
            self.client = None
            self.collection = None
            self.logger.info("MongoDB store stopped")

    async def fetch_all(self) -> List[Entity]:
        """Return every entity in store order."""
        documents = await self._call("fetch_all", self._collection().find({}).to_list(None))
        return [document_to_entity(document) for document in documents]

    async def insert_one(self, title: str) -> Entity:
        """Insert a new entity; the store assigns its id."""
        result = await self._call("insert_one", self._collection().insert_one({"title": title}))
        entity = Entity(id=str(result.inserted_id), title=title)
        self.logger.info("Entity inserted", entity_id=entity.id)
        return entity

    async def find_and_replace_one(self, entity_id: str, title: str) -> Entity:
        """Replace the title of ``entity_id`` and return the updated entity."""
        object_id = parse_entity_id(entity_id)
        document = await self._call(
            "find_and_replace_one",
            self._collection().find_one_and_replace(
                {"_id": object_id},
                {"title": title},
                return_document=ReturnDocument.AFTER,
            )
        )
        if document is None:
            raise NotFoundError(f"No entity with id {entity_id}", details={"id": entity_id})

        entity = document_to_entity(document)
        self.logger.info("Entity updated", entity_id=entity.id)
        return entity

    async def health_check(self) -> bool:
        """Ping the store within the operation timeout."""
        if self.client is None:
            return False
        try:
            await asyncio.wait_for(self.client.admin.command("ping"), timeout=self.timeout_seconds)
            return True
        except (PyMongoError, asyncio.TimeoutError) as e:
            self.logger.warning("MongoDB health check failed", error=str(e))
            return False

    def _collection(self):
        if self.collection is None:
            raise StoreUnavailableError("Document store is not connected")
        return self.collection

    async def _call(self, operation: str, awaitable: Awaitable):
        """Await one store call under the timeout and translate driver errors."""
        try:
            result = await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            self._record(operation, "timeout")
            raise StoreUnavailableError(
                f"{operation} timed out after {self.timeout_seconds}s",
                details={"operation": operation}
            ) from e
        except PyMongoError as e:
            self._record(operation, "error")
            raise StoreUnavailableError(
                f"{operation} failed: {e}",
                details={"operation": operation}
            ) from e

        self._record(operation, "ok")
        return result

    def _record(self, operation: str, status: str):
        if self.metrics:
            self.metrics.increment_counter("store_operations_total", operation=operation, status=status)
