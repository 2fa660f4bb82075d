"""
Repository Pattern Implementation

Entity stores wrapped by the cache synchronization layer.
"""

from .base import EntityNotFoundError, EntityStore
from .sqlalchemy_store import SqlAlchemyEntityStore

__all__ = [
    "EntityNotFoundError",
    "EntityStore",
    "SqlAlchemyEntityStore",
]
