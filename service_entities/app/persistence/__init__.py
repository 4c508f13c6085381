"""
Persistence package for the Entity Service (MongoDB).
"""
