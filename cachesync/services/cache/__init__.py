"""
Cache synchronization services.

OperationDispatcher routes declared store operations through the cache;
CachedEntityService exposes one entry point per operation kind.
"""

from .cache_reader import CacheReader
from .cache_writer import CacheWriter
from .dispatcher import OperationDispatcher
from .entity_service import CachedEntityService

__all__ = [
    "CacheReader",
    "CacheWriter",
    "CachedEntityService",
    "OperationDispatcher",
]
