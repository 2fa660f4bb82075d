"""
Entity Store Interface

The persistence service the synchronization layer wraps. A store performs
the durable operation only; it never touches the cache.
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, List, Optional, Sequence, TypeVar

from ..domain.value_objects import ChangeSet

E = TypeVar("E")


class EntityStore(ABC, Generic[E]):
    """
    Authoritative store for one entity type.

    Failures are raised to the caller as-is.
    """

    @abstractmethod
    def insert(self, entity: E) -> E:
        """Persist a new entity."""
        pass

    @abstractmethod
    def update(self, entity: E, changes: Optional[ChangeSet] = None) -> E:
        """Persist changed fields of an existing entity (all fields if none given)."""
        pass

    @abstractmethod
    def query(self, entity: E) -> Optional[E]:
        """Load the entity identified by the identity fields of ``entity``."""
        pass

    @abstractmethod
    def query_list(
        self, entity: E, constraints: Optional[ChangeSet] = None
    ) -> List[E]:
        """Load all members of the collection ``entity`` belongs to."""
        pass

    @abstractmethod
    def delete(self, entity: E) -> bool:
        """Delete the entity; False when it did not exist."""
        pass

    @abstractmethod
    def insert_batch(self, entities: Sequence[E]) -> List[E]:
        pass

    @abstractmethod
    def update_batch(
        self,
        entities: Sequence[E],
        change_sets: Optional[Sequence[Optional[ChangeSet]]] = None,
    ) -> List[E]:
        pass

    @abstractmethod
    def delete_batch(self, entities: Sequence[E]) -> int:
        pass


class EntityNotFoundError(LookupError):
    """Raised by a store when an update targets a missing entity."""

    def __init__(self, entity_name: str, identity: Any):
        self.entity_name = entity_name
        self.identity = identity
        super().__init__(f"{entity_name} not found: {identity}")
