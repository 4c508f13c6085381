"""
Cache package for the Entity Service.

Holds the in-memory snapshot of all entities and the background task that
reloads it from the store on a fixed interval.
"""
