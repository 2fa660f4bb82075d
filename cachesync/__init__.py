"""
cachesync

Keeps a Redis cache consistent with an authoritative entity store.

Typical wiring::

    from cachesync import (
        CachedEntityService, OperationDispatcher, RedisCacheBackend,
        SingletonShape, cached_entity,
    )

    @cached_entity(SingletonShape(("player_id",)))
    @dataclass
    class Player:
        player_id: int
        name: str
        level: int = 1

    dispatcher = OperationDispatcher(RedisCacheBackend())
    players = CachedEntityService(store, dispatcher)
"""

from .constants import APP_NAME, APP_VERSION
from .domain import (
    CacheBackend,
    CacheKey,
    CacheKeyResolver,
    ChangeSet,
    CollectionKey,
    CollectionShape,
    EntityRegistry,
    OperationKind,
    SingletonShape,
    SnapshotChangeTracker,
    cached_entity,
    entity_registry,
    filter_members,
)
from .exceptions import (
    CacheCircuitOpenException,
    CacheConnectionException,
    CacheException,
    CacheKeyException,
    CacheOperationException,
    CacheSerializationException,
    EntityShapeException,
)
from .infrastructure.redis import RedisCacheBackend
from .repositories import EntityNotFoundError, EntityStore, SqlAlchemyEntityStore
from .services.cache import CachedEntityService, OperationDispatcher

__version__ = APP_VERSION

__all__ = [
    "APP_NAME",
    "CacheBackend",
    "CacheCircuitOpenException",
    "CacheConnectionException",
    "CacheException",
    "CacheKey",
    "CacheKeyException",
    "CacheKeyResolver",
    "CacheOperationException",
    "CacheSerializationException",
    "CachedEntityService",
    "ChangeSet",
    "CollectionKey",
    "CollectionShape",
    "EntityNotFoundError",
    "EntityRegistry",
    "EntityShapeException",
    "EntityStore",
    "OperationDispatcher",
    "OperationKind",
    "RedisCacheBackend",
    "SingletonShape",
    "SnapshotChangeTracker",
    "SqlAlchemyEntityStore",
    "cached_entity",
    "entity_registry",
    "filter_members",
]
