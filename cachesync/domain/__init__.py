"""
Cache synchronization domain: entity shapes, keys, change sets and filters.
"""

from .change_tracker import ChangeTracker, SnapshotChangeTracker
from .entities import (
    CacheShape,
    CollectionShape,
    EntityDescriptor,
    EntityRegistry,
    SingletonShape,
    cached_entity,
    entity_registry,
)
from .key_resolver import CacheKeyResolver
from .predicate_filter import canonical_str, filter_members, matches
from .repository_interfaces import CacheBackend
from .value_objects import CacheKey, ChangeSet, CollectionKey, OperationKind

__all__ = [
    "CacheBackend",
    "CacheKey",
    "CacheKeyResolver",
    "CacheShape",
    "ChangeSet",
    "ChangeTracker",
    "CollectionKey",
    "CollectionShape",
    "EntityDescriptor",
    "EntityRegistry",
    "OperationKind",
    "SingletonShape",
    "SnapshotChangeTracker",
    "cached_entity",
    "canonical_str",
    "entity_registry",
    "filter_members",
    "matches",
]
