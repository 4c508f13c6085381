"""
Unit tests for the MongoDB store gateway.
"""

import pytest
import pytest_asyncio
from bson import ObjectId

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import EncodingError, MalformedInputError, NotFoundError, StoreUnavailableError
from shared.metrics import MetricsCollector
from shared.test_helpers import FakeMongoClient
from service_entities.app.models import Entity
from service_entities.app.persistence.mongo import MongoEntityStore, document_to_entity, parse_entity_id


class TestParseEntityId:
    """Test cases for id parsing."""

    def test_accepts_hex_object_id(self):
        value = "64b7f0c2a1b2c3d4e5f60718"
        assert parse_entity_id(value) == ObjectId(value)

    @pytest.mark.parametrize("value", ["", "xyz", "64b7f0c2a1b2c3d4e5f6071", "64b7f0c2a1b2c3d4e5f6071z", "abcdefghijkl"])
    def test_rejects_malformed_ids(self, value):
        with pytest.raises(MalformedInputError):
            parse_entity_id(value)


class TestDocumentToEntity:
    """Test cases for document mapping."""

    def test_maps_id_and_title(self):
        object_id = ObjectId()
        entity = document_to_entity({"_id": object_id, "title": "a"})
        assert entity == Entity(id=str(object_id), title="a")

    def test_missing_title_is_encoding_error(self):
        with pytest.raises(EncodingError):
            document_to_entity({"_id": ObjectId()})

    def test_non_string_title_is_encoding_error(self):
        with pytest.raises(EncodingError):
            document_to_entity({"_id": ObjectId(), "title": 5})


class TestMongoEntityStore:
    """Test cases for MongoEntityStore."""

    @pytest.fixture
    def client(self):
        return FakeMongoClient()

    @pytest.fixture
    def collection(self, client):
        return client.collection("main", "entity")

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("entities")

    @pytest_asyncio.fixture
    async def store(self, client, metrics):
        store = MongoEntityStore(
            "mongodb://localhost:27017",
            timeout_seconds=0.2,
            connect_timeout_seconds=0.2,
            metrics=metrics,
            client=client,
        )
        await store.start()
        yield store
        await store.stop()

    @pytest.mark.asyncio
    async def test_start_fails_when_unreachable(self):
        """An unreachable store is fatal at startup."""
        store = MongoEntityStore("mongodb://localhost:27017", client=FakeMongoClient(reachable=False))

        with pytest.raises(StoreUnavailableError):
            await store.start()

    @pytest.mark.asyncio
    async def test_stop_closes_client(self, client):
        store = MongoEntityStore("mongodb://localhost:27017", client=client)
        await store.start()

        await store.stop()

        assert client.closed
        assert store.client is None

    @pytest.mark.asyncio
    async def test_operations_before_start_are_unavailable(self):
        store = MongoEntityStore("mongodb://localhost:27017", client=FakeMongoClient())

        with pytest.raises(StoreUnavailableError):
            await store.fetch_all()

    @pytest.mark.asyncio
    async def test_fetch_all_returns_store_order(self, store, collection):
        ids = collection.seed("a", "b", "c")

        entities = await store.fetch_all()

        assert [e.title for e in entities] == ["a", "b", "c"]
        assert [e.id for e in entities] == [str(i) for i in ids]

    @pytest.mark.asyncio
    async def test_fetch_all_empty_collection(self, store):
        assert await store.fetch_all() == []

    @pytest.mark.asyncio
    async def test_fetch_all_failure_is_store_unavailable(self, store, collection, metrics):
        collection.fail_operations.add("find")

        with pytest.raises(StoreUnavailableError):
            await store.fetch_all()

        counter = metrics.get_metric("store_operations_total")
        assert counter.labels(operation="fetch_all", status="error")._value.get() == 1

    @pytest.mark.asyncio
    async def test_slow_store_times_out(self, store, collection, metrics):
        """Calls are bounded by the gateway timeout."""
        collection.delay_seconds = 1.0

        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.fetch_all()

        assert "timed out" in exc_info.value.message
        counter = metrics.get_metric("store_operations_total")
        assert counter.labels(operation="fetch_all", status="timeout")._value.get() == 1

    @pytest.mark.asyncio
    async def test_insert_one_assigns_id(self, store, collection):
        entity = await store.insert_one("a")

        assert entity.title == "a"
        assert ObjectId.is_valid(entity.id)
        assert collection.documents[ObjectId(entity.id)]["title"] == "a"

    @pytest.mark.asyncio
    async def test_insert_one_failure(self, store, collection):
        collection.fail_operations.add("insert_one")

        with pytest.raises(StoreUnavailableError):
            await store.insert_one("a")

        assert collection.documents == {}

    @pytest.mark.asyncio
    async def test_find_and_replace_one_returns_updated(self, store, collection):
        (object_id,) = collection.seed("old")

        entity = await store.find_and_replace_one(str(object_id), "new")

        assert entity == Entity(id=str(object_id), title="new")
        assert collection.documents[object_id]["title"] == "new"
        assert collection.calls == ["find_one_and_replace"]

    @pytest.mark.asyncio
    async def test_find_and_replace_one_not_found(self, store, collection):
        collection.seed("old")

        with pytest.raises(NotFoundError) as exc_info:
            await store.find_and_replace_one(str(ObjectId()), "new")

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_find_and_replace_one_malformed_id_skips_store(self, store, collection):
        with pytest.raises(MalformedInputError):
            await store.find_and_replace_one("not-an-id", "new")

        assert collection.calls == []

    @pytest.mark.asyncio
    async def test_health_check(self, store, client):
        assert await store.health_check() is True

        client.reachable = False
        assert await store.health_check() is False
