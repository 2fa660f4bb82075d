"""
Main pytest configuration for cachesync tests.

Provides a fresh entity registry per test plus in-memory cache and store
doubles wired into a dispatcher.
"""

import pytest

from cachesync.domain.change_tracker import SnapshotChangeTracker
from cachesync.domain.entities import CollectionShape, EntityRegistry, SingletonShape
from cachesync.domain.key_resolver import CacheKeyResolver
from cachesync.services.cache.dispatcher import OperationDispatcher
from cachesync.services.cache.entity_service import CachedEntityService
from tests.fixtures.backends import InMemoryCacheBackend, InMemoryEntityStore
from tests.fixtures.entities import Account, AuditNote, Item, Member, Player, Tag


@pytest.fixture
def registry():
    """Registry with the test entity types registered."""
    registry = EntityRegistry()
    registry.register(Player, SingletonShape(("player_id",)))
    registry.register(Item, CollectionShape(("owner_id",), ("item_id",)))
    registry.register(Member, CollectionShape(("group_id",), ("member_id",)))
    registry.register(Account, SingletonShape(("username",)))
    registry.register(Tag, CollectionShape(("owner",), ("label",)))
    registry.register(AuditNote, identity=("note_id",))
    return registry


@pytest.fixture
def resolver(registry):
    return CacheKeyResolver(registry=registry, prefix="test")


@pytest.fixture
def cache():
    return InMemoryCacheBackend()


@pytest.fixture
def tracker():
    return SnapshotChangeTracker()


@pytest.fixture
def dispatcher(cache, resolver, tracker):
    return OperationDispatcher(
        cache, resolver=resolver, change_tracker=tracker, enabled=True
    )


@pytest.fixture
def player_store(registry):
    return InMemoryEntityStore(Player, registry)


@pytest.fixture
def item_store(registry):
    return InMemoryEntityStore(Item, registry)


@pytest.fixture
def player_service(player_store, dispatcher, tracker):
    return CachedEntityService(player_store, dispatcher, change_tracker=tracker)


@pytest.fixture
def item_service(item_store, dispatcher, tracker):
    return CachedEntityService(item_store, dispatcher, change_tracker=tracker)
