"""
Cached Entity Service

Application-facing entry points, one per operation kind. Each method
declares its kind and hands the matching store call to the dispatcher.
"""

import dataclasses
from typing import Any, Generic, List, Optional, Sequence, TypeVar

from ...domain.change_tracker import SnapshotChangeTracker
from ...domain.value_objects import ChangeSet, OperationKind
from ...repositories.base import EntityStore
from .dispatcher import OperationDispatcher

E = TypeVar("E")


class CachedEntityService(Generic[E]):
    """
    Entity store wrapped with read-through and write-through caching.

    Entities returned by the store or the cache are tracked, so a caller can
    load an entity, mutate it and call ``update`` without building the
    change set by hand.

    Example::

        service = CachedEntityService(store, dispatcher)
        player = service.query(Player(player_id=7))
        player.level += 1
        service.update(player)              # writes only "level" to the cache
    """

    def __init__(
        self,
        store: EntityStore[E],
        dispatcher: OperationDispatcher,
        change_tracker: Optional[SnapshotChangeTracker] = None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.change_tracker = change_tracker or SnapshotChangeTracker()
        if dispatcher.change_tracker is None:
            dispatcher.change_tracker = self.change_tracker

    def _track(self, entity: Any) -> Any:
        if entity is not None:
            self.change_tracker.track(entity)
        return entity

    def _track_all(self, entities: Any) -> Any:
        if entities:
            self.change_tracker.track_all(entities)
        return entities

    def _changes(self, entity: Any, changes: Optional[ChangeSet]) -> ChangeSet:
        if changes is not None:
            return ChangeSet(changes)
        return self.change_tracker.changes(entity)

    def _update_changes(self, entity: Any, changes: Optional[ChangeSet]) -> ChangeSet:
        if changes is not None or self.change_tracker.is_tracked(entity):
            return self._changes(entity, changes)
        # Never loaded, so every field is written
        return ChangeSet(
            {f.name: getattr(entity, f.name) for f in dataclasses.fields(entity)}
        )

    def insert(self, entity: E) -> E:
        result = self.dispatcher.dispatch(
            OperationKind.INSERT, lambda: self.store.insert(entity), entity
        )
        self._track(entity)
        return result

    def update(self, entity: E, changes: Optional[ChangeSet] = None) -> E:
        """
        Persist an entity, then write its changed fields to the cache.

        Without explicit ``changes`` the tracked changes are used; an entity
        that was never loaded through this service is written in full.
        """
        change_set = self._update_changes(entity, changes)
        result = self.dispatcher.dispatch(
            OperationKind.UPDATE,
            lambda: self.store.update(entity, change_set or None),
            entity,
            change_set,
        )
        self._track(entity)
        return result

    def query(self, entity: E) -> Optional[E]:
        result = self.dispatcher.dispatch(
            OperationKind.QUERY, lambda: self.store.query(entity), entity
        )
        return self._track(result)

    def query_list(
        self, entity: E, constraints: Optional[ChangeSet] = None
    ) -> List[E]:
        """
        Members of the collection ``entity`` belongs to.

        ``constraints`` (or, when omitted, the tracked changes of ``entity``)
        restrict the result to members whose fields equal the given values.
        """
        constraint_set = self._changes(entity, constraints)
        result = self.dispatcher.dispatch(
            OperationKind.QUERY_LIST,
            lambda: self.store.query_list(entity, constraint_set or None),
            entity,
            constraint_set,
        )
        return self._track_all(result)

    def delete(self, entity: E) -> bool:
        result = self.dispatcher.dispatch(
            OperationKind.DELETE, lambda: self.store.delete(entity), entity
        )
        self.change_tracker.forget(entity)
        return result

    def insert_batch(self, entities: Sequence[E]) -> List[E]:
        entities = list(entities)
        result = self.dispatcher.dispatch(
            OperationKind.INSERT_BATCH,
            lambda: self.store.insert_batch(entities),
            entities,
        )
        self._track_all(entities)
        return result

    def update_batch(
        self,
        entities: Sequence[E],
        change_sets: Optional[Sequence[Optional[ChangeSet]]] = None,
    ) -> List[E]:
        entities = list(entities)
        if change_sets is not None and len(change_sets) != len(entities):
            raise ValueError("change_sets must align with entities")

        resolved = [
            self._update_changes(
                entity, change_sets[i] if change_sets is not None else None
            )
            for i, entity in enumerate(entities)
        ]
        result = self.dispatcher.dispatch(
            OperationKind.UPDATE_BATCH,
            lambda: self.store.update_batch(
                entities, [change_set or None for change_set in resolved]
            ),
            entities,
            resolved,
        )
        self._track_all(entities)
        return result

    def delete_batch(self, entities: Sequence[E]) -> Any:
        entities = list(entities)
        result = self.dispatcher.dispatch(
            OperationKind.DELETE_BATCH,
            lambda: self.store.delete_batch(entities),
            entities,
        )
        for entity in entities:
            self.change_tracker.forget(entity)
        return result
