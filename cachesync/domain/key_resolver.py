"""
Cache key derivation for registered entities.

Keys are namespaced by prefix and registered entity name:

    singleton:   {prefix}:{Entity}:{id1}:{id2}
    collection:  {prefix}:{Entity}:list:{group1}   (hash field: {m1}:{m2})
"""

import re
from typing import Any, Callable, Iterable, Optional, TypeVar

from ..core.config import settings
from ..exceptions import CacheKeyException
from .entities import (
    CollectionShape,
    EntityDescriptor,
    EntityRegistry,
    SingletonShape,
    entity_registry,
)
from .predicate_filter import canonical_str
from .value_objects import KEY_SEPARATOR, LIST_SEGMENT, CacheKey, CollectionKey


K = TypeVar("K")

# Marks an identity value that renders to the empty string
EMPTY_SEGMENT = "%00"

_ESCAPED = re.compile(r"[%:\s]")


def _escape(match: "re.Match[str]") -> str:
    return "".join(f"%{byte:02X}" for byte in match.group().encode("utf-8"))


def _segment(value: Any) -> str:
    # Percent-escape "%", the separator and whitespace so that distinct
    # identity tuples never share a key and keys stay single tokens
    text = canonical_str(value)
    if not text:
        return EMPTY_SEGMENT
    return _ESCAPED.sub(_escape, text)


def _join(parts: Iterable[str]) -> str:
    return KEY_SEPARATOR.join(parts)


def _build(factory: Callable[..., K], entity: Any, *parts: str) -> K:
    try:
        return factory(*parts)
    except ValueError as e:
        raise CacheKeyException(
            str(e), key=parts[0], entity=type(entity).__name__, original_error=e
        ) from e


class CacheKeyResolver:
    """Derives cache keys from entity identity fields."""

    def __init__(
        self,
        registry: Optional[EntityRegistry] = None,
        prefix: Optional[str] = None,
    ):
        self.registry = registry or entity_registry
        self.prefix = prefix or settings.CACHE_KEY_PREFIX

    def describe(self, entity: Any) -> Optional[EntityDescriptor]:
        return self.registry.describe_entity(entity)

    def singleton_key(self, entity: Any) -> CacheKey:
        """
        Key of a singleton-shaped entity.

        Raises:
            TypeError: If the entity is not registered with a SingletonShape
            CacheKeyException: If the derived key is not a valid cache key
        """
        descriptor = self.describe(entity)
        if descriptor is None or not isinstance(descriptor.shape, SingletonShape):
            raise TypeError(
                f"{type(entity).__name__} is not registered as a singleton entity"
            )

        parts = [self.prefix, descriptor.name]
        parts.extend(_segment(getattr(entity, f)) for f in descriptor.shape.key_fields)
        return _build(CacheKey, entity, _join(parts))

    def collection_key(self, entity: Any) -> CollectionKey:
        """
        Collection key and member sub-key of a collection-shaped entity.

        Raises:
            TypeError: If the entity is not registered with a CollectionShape
            CacheKeyException: If the derived key is not a valid cache key
        """
        descriptor = self.describe(entity)
        if descriptor is None or not isinstance(descriptor.shape, CollectionShape):
            raise TypeError(
                f"{type(entity).__name__} is not registered as a collection entity"
            )

        shape = descriptor.shape
        parts = [self.prefix, descriptor.name, LIST_SEGMENT]
        parts.extend(_segment(getattr(entity, f)) for f in shape.collection_fields)
        sub_key = _join(_segment(getattr(entity, f)) for f in shape.member_fields)
        return _build(CollectionKey, entity, _join(parts), sub_key)
