"""
Cache Value Objects

Immutable value objects for the cache synchronization domain.
Provides type safety for operation kinds, change sets and cache keys.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, Optional

KEY_SEPARATOR = ":"
LIST_SEGMENT = "list"
MAX_KEY_LENGTH = 512


class OperationKind(str, Enum):
    """Declared kind of a store operation routed through the cache."""

    INSERT = "insert"
    UPDATE = "update"
    QUERY = "query"
    QUERY_LIST = "queryList"
    DELETE = "delete"
    INSERT_BATCH = "insertBatch"
    UPDATE_BATCH = "updateBatch"
    DELETE_BATCH = "deleteBatch"

    @property
    def is_batch(self) -> bool:
        return self in (
            OperationKind.INSERT_BATCH,
            OperationKind.UPDATE_BATCH,
            OperationKind.DELETE_BATCH,
        )


class ChangeSet(Mapping):
    """
    Immutable mapping of field name to new value.

    Produced by a change tracker for an entity that was loaded and then
    mutated. Also used as the constraint set of a list query.
    """

    __slots__ = ("_fields",)

    def __init__(self, fields: Optional[Mapping] = None, **kwargs: Any):
        merged: Dict[str, Any] = dict(fields or {})
        merged.update(kwargs)
        self._fields = MappingProxyType(merged)

    @classmethod
    def empty(cls) -> "ChangeSet":
        return cls()

    def __getitem__(self, field_name: str) -> Any:
        return self._fields[field_name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"ChangeSet({dict(self._fields)!r})"


def _validate_key(value: str) -> None:
    if not value:
        raise ValueError("Cache key cannot be empty")

    if len(value) > MAX_KEY_LENGTH:
        raise ValueError(f"Cache key too long (max {MAX_KEY_LENGTH} characters)")

    if any(char.isspace() for char in value):
        raise ValueError("Cache key cannot contain whitespace")


@dataclass(frozen=True)
class CacheKey:
    """
    Immutable cache key for a singleton-shaped entity.

    The cached value under this key is the whole entity.
    """

    value: str

    def __post_init__(self) -> None:
        _validate_key(self.value)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class CollectionKey:
    """
    Collection key plus member sub-key for a collection-shaped entity.

    ``value`` addresses the whole hash; ``sub_key`` addresses one member.
    """

    value: str
    sub_key: str

    def __post_init__(self) -> None:
        _validate_key(self.value)
        if not self.sub_key:
            raise ValueError("Collection sub-key cannot be empty")

    def __str__(self) -> str:
        return f"{self.value}[{self.sub_key}]"
