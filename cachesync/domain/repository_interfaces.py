"""
Cache Repository Interfaces

Abstract contract of the key-value backend the synchronization layer
writes to and reads from. Implementations raise CacheException subclasses
on backend failure and never raise on a plain miss.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional, Sequence, Type, TypeVar

E = TypeVar("E")


class CacheBackend(ABC):
    """
    Key-value cache operations needed for entity synchronization.

    Singleton entities live under one key as a field -> value hash.
    Collection entities live as sub-key -> member entries of one hash.
    """

    @abstractmethod
    def get_object(self, key: str, entity_type: Type[E]) -> Optional[E]:
        """Get a whole entity by key, or None if the key is absent."""
        pass

    @abstractmethod
    def set_object(self, key: str, entity: Any) -> None:
        """Store a whole entity under key, replacing the previous value."""
        pass

    @abstractmethod
    def merge_fields(self, key: str, fields: Mapping[str, Any]) -> None:
        """Overwrite only the given fields of the value under key."""
        pass

    @abstractmethod
    def get_collection(
        self, key: str, entity_type: Type[E]
    ) -> Optional[Mapping[str, E]]:
        """Get all members of a collection, or None if the key is absent."""
        pass

    @abstractmethod
    def set_collection_members(
        self, key: str, members: Mapping[str, Any]
    ) -> None:
        """Store members (sub-key -> entity), replacing same sub-keys only."""
        pass

    @abstractmethod
    def delete_key(self, key: str) -> None:
        """Delete the whole value under key."""
        pass

    @abstractmethod
    def delete_collection_members(self, key: str, sub_keys: Sequence[str]) -> None:
        """Delete members of a collection by sub-key."""
        pass

    def get_collection_members(
        self, key: str, entity_type: Type[E]
    ) -> Optional[List[E]]:
        """Members of a collection as a list, or None if the key is absent."""
        collection = self.get_collection(key, entity_type)
        if collection is None:
            return None
        return list(collection.values())
