"""
Background task that periodically reloads the entity cache from the store.
"""

import asyncio
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from shared.logging import get_logger
from shared.errors import StoreError
from shared.metrics import MetricsCollector
from .entity_cache import EntityCache


class RefresherState(str, Enum):
    """Lifecycle states of the refresher."""
    IDLE = "idle"
    FETCHING = "fetching"
    STOPPED = "stopped"


class RefreshOutcome(str, Enum):
    """Result of a single refresh tick."""
    INSTALLED = "installed"
    FETCH_FAILED = "fetch_failed"


class CacheRefresher:
    """
    Pulls a fresh snapshot from the store every ``revalidate_interval`` seconds.

    A failed fetch leaves the cache untouched and is not retried before the
    next scheduled tick. The loop exits within one tick of ``stop()``.
    """

    def __init__(
        self,
        store,
        cache: EntityCache,
        revalidate_interval: float = 5.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        if revalidate_interval <= 0:
            raise ValueError("revalidate_interval must be positive")

        self.store = store
        self.cache = cache
        self.revalidate_interval = revalidate_interval
        self.metrics = metrics
        self.logger = get_logger("entities.cache.refresher")

        self.state = RefresherState.IDLE
        self.ticks = 0
        self.consecutive_failures = 0
        self.last_success_at: Optional[datetime] = None
        self.last_failure_at: Optional[datetime] = None

        self._stop_event = asyncio.Event()
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    async def warm_up(self) -> RefreshOutcome:
        """Best-effort cold-start load; on failure the cache stays empty."""
        outcome = await self.tick()
        if outcome is RefreshOutcome.FETCH_FAILED:
            self.logger.warning("Initial cache load failed, starting with an empty cache")
        return outcome

    async def start(self):
        """Start the refresh loop."""
        if self.state is RefresherState.STOPPED:
            raise RuntimeError("A stopped refresher cannot be restarted")
        if self.running:
            return

        self._refresh_task = asyncio.create_task(self._refresh_loop())
        self.logger.info("Cache refresher started", interval_seconds=self.revalidate_interval)

    async def stop(self):
        """Signal shutdown and wait for the loop to exit."""
        self._stop_event.set()
        if self._refresh_task:
            await self._refresh_task
            self._refresh_task = None

        if self.state is not RefresherState.STOPPED:
            self.state = RefresherState.STOPPED
            self.logger.info("Cache refresher stopped", ticks=self.ticks)

    async def tick(self) -> RefreshOutcome:
        """Run one fetch-and-install cycle."""
        if self.state is RefresherState.STOPPED:
            raise RuntimeError("Refresher is stopped")

        self.state = RefresherState.FETCHING
        start_time = time.time()

        try:
            entities = await self.store.fetch_all()
            snapshot = self.cache.replace(entities)
            if self.metrics:
                self.metrics.set_gauge("cache_entities", len(snapshot))
        except StoreError as e:
            outcome = self._record_failure()
            self.logger.warning(
                "Couldn't refresh entity cache",
                code=e.code,
                error=e.message,
                consecutive_failures=self.consecutive_failures
            )
        except Exception as e:
            outcome = self._record_failure()
            self.logger.error(
                "Unexpected error while refreshing entity cache",
                error=str(e),
                consecutive_failures=self.consecutive_failures,
                exc_info=True
            )
        else:
            outcome = RefreshOutcome.INSTALLED
            self.consecutive_failures = 0
            self.last_success_at = snapshot.refreshed_at
            self.logger.debug("Entity cache refreshed", version=snapshot.version, entities=len(snapshot))
        finally:
            self.ticks += 1
            if self.state is RefresherState.FETCHING:
                self.state = RefresherState.IDLE

        if self.metrics:
            self.metrics.increment_counter("cache_refresh_total", outcome=outcome.value)
            self.metrics.observe_histogram("cache_refresh_duration_seconds", time.time() - start_time)

        return outcome

    def _record_failure(self) -> RefreshOutcome:
        self.consecutive_failures += 1
        self.last_failure_at = datetime.now(timezone.utc)
        return RefreshOutcome.FETCH_FAILED

    async def _refresh_loop(self):
        """Wait one interval, refresh, repeat until shutdown is signalled."""
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.revalidate_interval)
            except asyncio.TimeoutError:
                await self.tick()

    def status(self) -> dict:
        """Summarize refresher and cache state for health reporting."""
        snapshot = self.cache.read()
        return {
            "state": self.state.value,
            "interval_seconds": self.revalidate_interval,
            "ticks": self.ticks,
            "consecutive_failures": self.consecutive_failures,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "last_failure_at": self.last_failure_at.isoformat() if self.last_failure_at else None,
            "snapshot_version": snapshot.version,
            "entities": len(snapshot),
        }
