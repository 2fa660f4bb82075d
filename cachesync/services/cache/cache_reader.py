"""
Cache Reader

Looks entities up in the cache before the store is consulted.
"""

from typing import Any, List, Optional

import structlog

from ...domain.key_resolver import CacheKeyResolver
from ...domain.repository_interfaces import CacheBackend

logger = structlog.get_logger()


class CacheReader:
    """Singleton and collection reads; a miss is None, never an exception."""

    def __init__(self, backend: CacheBackend, resolver: CacheKeyResolver):
        self.backend = backend
        self.resolver = resolver

    def read_singleton(self, entity: Any) -> Optional[Any]:
        """Cached entity with the same key as ``entity``, or None on miss."""
        key = self.resolver.singleton_key(entity)
        result = self.backend.get_object(key.value, type(entity))
        logger.debug("Cache: Singleton read", key=key.value, hit=result is not None)
        return result

    def read_collection(self, entity: Any) -> Optional[List[Any]]:
        """
        All cached members of the collection ``entity`` belongs to.

        Returns None when the collection key is absent, so "not cached" is
        distinguishable from "cached and empty".
        """
        key = self.resolver.collection_key(entity)
        members = self.backend.get_collection_members(key.value, type(entity))
        logger.debug(
            "Cache: Collection read",
            key=key.value,
            hit=members is not None,
            count=len(members) if members is not None else 0,
        )
        return members
