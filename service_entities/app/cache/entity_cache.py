"""
In-memory read cache holding the last full snapshot of all entities.
"""

from datetime import datetime, timezone
from typing import Iterable, Tuple
import threading

from ..models import Entity, Snapshot


class EntityCache:
    """
    Serves every entity read from memory.

    The live snapshot is an immutable object that is swapped as a whole, so
    readers only dereference one attribute and never wait on a writer. Writers
    build the new snapshot first and are serialized by ``_write_lock``, which
    keeps versions strictly increasing even with several concurrent writers.
    """

    def __init__(self):
        self._write_lock = threading.Lock()
        self._snapshot = Snapshot()

    def read(self) -> Snapshot:
        """Return the current snapshot. Never blocks and never fails."""
        return self._snapshot

    def entities(self) -> Tuple[Entity, ...]:
        """Return the entities of the current snapshot."""
        return self._snapshot.entities

    def replace(self, entities: Iterable[Entity]) -> Snapshot:
        """Install ``entities`` as the new snapshot and return it."""
        frozen = tuple(entities)

        with self._write_lock:
            snapshot = Snapshot(
                entities=frozen,
                version=self._snapshot.version + 1,
                refreshed_at=datetime.now(timezone.utc),
            )
            self._snapshot = snapshot

        return snapshot

    def __len__(self) -> int:
        return len(self._snapshot)
