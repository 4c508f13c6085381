"""
Entity Service package.

Exposes a collection of named records over a small REST surface:

- app.main: API surface (list, create, rename) and service lifecycle.
- app.cache: In-memory snapshot cache and the background refresher.
- app.persistence: MongoDB gateway for reads and writes.

Guidelines:
- All reads come from the cache; writes go straight to the store.
- The cache catches up with writes on its next refresh tick.
"""
