"""
Cache Writer

Applies write-through and delete effects to the cache backend for single
entities and batches. Batches are routed by the shape of their first element.
"""

from typing import Any, List, Optional, Sequence

import structlog

from ...domain.entities import EntityDescriptor
from ...domain.key_resolver import CacheKeyResolver
from ...domain.repository_interfaces import CacheBackend
from ...domain.value_objects import ChangeSet
from ...exceptions import CacheException

logger = structlog.get_logger()


class CacheWriter:
    """
    Full and changed-field writes of entities into the cache.

    Raises CacheException on backend failure; callers decide whether to
    swallow it.
    """

    def __init__(self, backend: CacheBackend, resolver: CacheKeyResolver):
        self.backend = backend
        self.resolver = resolver

    def _describe(self, entity: Any) -> Optional[EntityDescriptor]:
        descriptor = self.resolver.describe(entity)
        if descriptor is None or not descriptor.is_cached:
            logger.debug(
                "Cache: Entity has no cache shape, skipping write",
                entity=type(entity).__name__,
            )
            return None
        return descriptor

    # Single entity

    def write_full(self, entity: Any) -> None:
        """Replace the cached value of ``entity`` with the whole entity."""
        if entity is None:
            return
        descriptor = self._describe(entity)
        if descriptor is None:
            return

        if descriptor.is_singleton:
            key = self.resolver.singleton_key(entity)
            self.backend.set_object(key.value, entity)
        else:
            key = self.resolver.collection_key(entity)
            self.backend.set_collection_members(key.value, {key.sub_key: entity})

        logger.debug("Cache: Full write", key=str(key))

    def write_changed(self, entity: Any, changes: Optional[ChangeSet]) -> None:
        """
        Write only the changed fields of a singleton entity.

        Collection members are cached whole, so they are fully replaced.
        An empty change set on a singleton writes nothing.
        """
        if entity is None:
            return
        descriptor = self._describe(entity)
        if descriptor is None:
            return

        if descriptor.is_collection:
            self.write_full(entity)
            return

        if not changes:
            logger.debug(
                "Cache: No changed fields, skipping write",
                entity=descriptor.name,
            )
            return

        key = self.resolver.singleton_key(entity)
        self.backend.merge_fields(key.value, dict(changes))
        logger.debug("Cache: Changed-field write", key=str(key), fields=sorted(changes))

    def delete(self, entity: Any) -> None:
        """Remove the cached key (singleton) or hash field (collection)."""
        if entity is None:
            return
        descriptor = self._describe(entity)
        if descriptor is None:
            return

        if descriptor.is_singleton:
            key = self.resolver.singleton_key(entity)
            self.backend.delete_key(key.value)
        else:
            key = self.resolver.collection_key(entity)
            self.backend.delete_collection_members(key.value, [key.sub_key])

        logger.debug("Cache: Entry deleted", key=str(key))

    # Batches

    def _batch_descriptor(self, entities: Sequence[Any]) -> Optional[EntityDescriptor]:
        if not entities or entities[0] is None:
            return None
        return self._describe(entities[0])

    def _each(self, action, entities: Sequence[Any]) -> None:
        # Attempt every element, then surface the first failure
        failures: List[CacheException] = []
        for entity in entities:
            try:
                action(entity)
            except CacheException as e:
                failures.append(e)
        if failures:
            logger.warning(
                "Cache: Batch write partially failed",
                failed=len(failures),
                total=len(entities),
            )
            raise failures[0]

    def write_full_batch(self, entities: Sequence[Any]) -> None:
        """
        Full write of a homogeneous batch.

        Singleton batches issue one write per element; collection batches
        issue one aggregate write under the first element's collection key.
        """
        descriptor = self._batch_descriptor(entities)
        if descriptor is None:
            return

        if descriptor.is_singleton:
            self._each(self.write_full, entities)
            return

        collection = self.resolver.collection_key(entities[0])
        members = {
            self.resolver.collection_key(entity).sub_key: entity
            for entity in entities
        }
        self.backend.set_collection_members(collection.value, members)
        logger.debug(
            "Cache: Collection batch write", key=collection.value, count=len(members)
        )

    def write_changed_batch(
        self,
        entities: Sequence[Any],
        change_sets: Sequence[Optional[ChangeSet]],
    ) -> None:
        """Changed-field write of a batch; collection batches are fully replaced."""
        descriptor = self._batch_descriptor(entities)
        if descriptor is None:
            return

        if descriptor.is_collection:
            self.write_full_batch(entities)
            return

        pairs = list(zip(entities, change_sets))
        self._each(lambda pair: self.write_changed(pair[0], pair[1]), pairs)

    def delete_batch(self, entities: Sequence[Any]) -> None:
        descriptor = self._batch_descriptor(entities)
        if descriptor is None:
            return

        if descriptor.is_singleton:
            self._each(self.delete, entities)
            return

        collection = self.resolver.collection_key(entities[0])
        sub_keys = [self.resolver.collection_key(entity).sub_key for entity in entities]
        self.backend.delete_collection_members(collection.value, sub_keys)
        logger.debug(
            "Cache: Collection batch delete", key=collection.value, count=len(sub_keys)
        )
