"""
Unit tests for the Entity Cache.
"""

import threading
import time

import pytest
from pydantic import ValidationError

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_entities.app.cache.entity_cache import EntityCache
from service_entities.app.models import Entity, Snapshot


def make_entities(prefix: str, count: int):
    return [Entity(id=f"{i:024x}", title=f"{prefix}-{i}") for i in range(count)]


class TestEntityCache:
    """Test cases for EntityCache."""

    @pytest.fixture
    def cache(self):
        """Create an empty cache."""
        return EntityCache()

    def test_starts_empty(self, cache):
        """A new cache holds the empty version-0 snapshot."""
        snapshot = cache.read()

        assert isinstance(snapshot, Snapshot)
        assert snapshot.entities == ()
        assert snapshot.version == 0
        assert snapshot.refreshed_at is None
        assert len(cache) == 0

    def test_replace_installs_snapshot(self, cache):
        """Reads after replace observe the new entities in store order."""
        entities = make_entities("a", 3)

        installed = cache.replace(entities)

        assert cache.read() is installed
        assert list(cache.entities()) == entities
        assert installed.version == 1
        assert installed.refreshed_at is not None

    def test_versions_increase_per_replace(self, cache):
        """Each replace bumps the version by one."""
        cache.replace(make_entities("a", 1))
        cache.replace(make_entities("b", 2))
        cache.replace([])

        assert cache.read().version == 3
        assert cache.entities() == ()

    def test_snapshot_is_isolated_from_caller_list(self, cache):
        """Mutating the list passed to replace does not leak into the cache."""
        entities = make_entities("a", 2)
        cache.replace(entities)

        entities.append(Entity(id="f" * 24, title="late"))

        assert len(cache) == 2
        assert isinstance(cache.entities(), tuple)

    def test_held_snapshot_survives_replace(self, cache):
        """A reader's snapshot keeps its contents after a later replace."""
        cache.replace(make_entities("old", 2))
        held = cache.read()

        cache.replace(make_entities("new", 5))

        assert [e.title for e in held] == ["old-0", "old-1"]
        assert len(cache) == 5

    def test_entities_are_immutable(self, cache):
        """Cached entities cannot be modified in place."""
        cache.replace(make_entities("a", 1))
        entity = cache.entities()[0]

        with pytest.raises(ValidationError):
            entity.title = "changed"

    def test_read_does_not_wait_for_writer_lock(self, cache):
        """read() completes while a writer holds the write lock."""
        cache.replace(make_entities("a", 1))
        finished = threading.Event()

        with cache._write_lock:
            reader = threading.Thread(target=lambda: (cache.read(), finished.set()))
            reader.start()
            assert finished.wait(timeout=1.0)
        reader.join()

    def test_concurrent_reads_never_observe_mixed_snapshot(self, cache):
        """Readers see either the old or the new snapshot, never a mix."""
        old = make_entities("old", 50)
        new = make_entities("new", 80)
        cache.replace(old)

        errors = []
        stop = threading.Event()

        def reader():
            while not stop.is_set():
                snapshot = cache.read()
                prefixes = {entity.title.split("-")[0] for entity in snapshot}
                if len(prefixes) != 1:
                    errors.append(prefixes)
                expected = 50 if prefixes == {"old"} else 80
                if len(snapshot) != expected:
                    errors.append(("length", len(snapshot)))

        def writer():
            for i in range(500):
                cache.replace(new if i % 2 == 0 else old)

        readers = [threading.Thread(target=reader) for _ in range(8)]
        for thread in readers:
            thread.start()
        writer_thread = threading.Thread(target=writer)
        writer_thread.start()
        writer_thread.join(timeout=10)
        stop.set()
        for thread in readers:
            thread.join(timeout=10)

        assert errors == []
        assert cache.read().version == 501

    def test_concurrent_writers_are_serialized(self, cache):
        """Versions stay unique when several threads replace at once."""
        versions = []
        lock = threading.Lock()

        def writer(prefix):
            for _ in range(100):
                snapshot = cache.replace(make_entities(prefix, 3))
                with lock:
                    versions.append(snapshot.version)

        threads = [threading.Thread(target=writer, args=(f"w{i}",)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert sorted(versions) == list(range(1, 401))
        assert cache.read().version == 400

    def test_read_is_fast_under_write_load(self, cache):
        """Many reads finish quickly while a writer keeps replacing."""
        stop = threading.Event()

        def writer():
            while not stop.is_set():
                cache.replace(make_entities("x", 10))

        thread = threading.Thread(target=writer)
        thread.start()
        try:
            start = time.monotonic()
            for _ in range(10000):
                cache.read()
            elapsed = time.monotonic() - start
        finally:
            stop.set()
            thread.join(timeout=10)

        assert elapsed < 5.0
