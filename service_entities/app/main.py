"""
Entity service: list, create and rename entities.

Reads are served from the in-memory cache; writes go straight to the store
and show up in ``GET /`` after the next refresh tick.
"""

import sys
import os
from typing import Dict, List, Optional

# Add shared directory to path
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import EncodingError

from .models import Entity, EntityWriteRequest
from .cache.entity_cache import EntityCache
from .cache.refresher import CacheRefresher
from .persistence.mongo import MongoEntityStore, parse_entity_id


class EntitiesService(BaseService):
    """Entity service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        store: Optional[MongoEntityStore] = None,
        cache: Optional[EntityCache] = None,
    ):
        super().__init__("entities", config=config)

        if store is None:
            store = MongoEntityStore(
                self.config.mongodb_uri,
                database_name=self.config.database_name,
                collection_name=self.config.collection_name,
                timeout_seconds=self.config.store_timeout_seconds,
                connect_timeout_seconds=self.config.connect_timeout_seconds,
                metrics=self.metrics,
            )
        self.store = store
        # An empty cache is falsy, so compare against None
        self.cache = cache if cache is not None else EntityCache()
        self.refresher = CacheRefresher(
            self.store,
            self.cache,
            revalidate_interval=self.config.revalidate_interval,
            metrics=self.metrics,
        )

        @self.app.on_event("startup")
        async def _startup():
            await self.start()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.stop()

        self._setup_entities_routes()

        self.app.state.entities_service = self

    def _setup_entities_routes(self):
        """Set up entity routes."""

        @self.app.get("/", response_model=List[Entity])
        async def list_entities():
            """Return all entities as of the last cache refresh."""
            snapshot = self.cache.read()
            try:
                content = jsonable_encoder(snapshot.entities)
            except (TypeError, ValueError) as e:
                raise EncodingError("Couldn't encode entities", details={"error": str(e)}) from e
            return JSONResponse(content=content)

        @self.app.post("/", response_model=Entity, status_code=201)
        async def create_entity(request: EntityWriteRequest):
            """Insert a new entity; the store assigns its id."""
            entity = await self.store.insert_one(request.title)
            return entity

        @self.app.put("/{entity_id}", response_model=Entity)
        async def update_entity(entity_id: str, request: EntityWriteRequest):
            """Replace the title of an existing entity."""
            # Reject malformed ids before touching the store
            parse_entity_id(entity_id)
            entity = await self.store.find_and_replace_one(entity_id, request.title)
            return entity

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check entity service dependencies."""
        return {"mongodb": "ok" if await self.store.health_check() else "error"}

    def _health_details(self):
        return {"cache": self.refresher.status()}

    async def start(self):
        """Connect to the store, load the cache and start refreshing."""
        await self.store.start()
        await self.refresher.warm_up()
        await self.refresher.start()

        self.logger.info("Entity service started", entities=len(self.cache))

    async def stop(self):
        """Stop refreshing and release the store connection."""
        await self.refresher.stop()
        await self.store.stop()

        self.logger.info("Entity service stopped")


def create_app():
    """Create entity service application."""
    service = EntitiesService()
    return service.app


def run():
    """Run the entity service under uvicorn."""
    service = EntitiesService()
    service.run()


if __name__ == "__main__":
    run()
