"""
Cache Domain Entities

Entity storage shapes and the registry that binds each entity type to
exactly one shape. Shapes are resolved once, at registration time.
"""

import dataclasses
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple, Type, TypeVar, Union

import structlog

from ..exceptions import EntityShapeException

logger = structlog.get_logger()

E = TypeVar("E")


@dataclass(frozen=True)
class SingletonShape:
    """
    Entity cached as one whole value under one key.

    key_fields: identity fields the key is derived from, in key order.
    """

    key_fields: Tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.key_fields:
            raise EntityShapeException("SingletonShape requires at least one key field")

    @property
    def identity_fields(self) -> Tuple[str, ...]:
        return self.key_fields


@dataclass(frozen=True)
class CollectionShape:
    """
    Entity cached as a member of a hash under a shared collection key.

    collection_fields: grouping fields shared by all members of a collection.
    member_fields: fields that make a member unique within its collection.
    """

    collection_fields: Tuple[str, ...]
    member_fields: Tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.collection_fields:
            raise EntityShapeException(
                "CollectionShape requires at least one collection field"
            )
        if not self.member_fields:
            raise EntityShapeException(
                "CollectionShape requires at least one member field"
            )
        overlap = set(self.collection_fields) & set(self.member_fields)
        if overlap:
            raise EntityShapeException(
                f"Fields cannot be both collection and member fields: {sorted(overlap)}"
            )

    @property
    def identity_fields(self) -> Tuple[str, ...]:
        return self.collection_fields + self.member_fields


CacheShape = Union[SingletonShape, CollectionShape]


@dataclass(frozen=True)
class EntityDescriptor:
    """Registration record for one entity type."""

    entity_type: type
    name: str
    shape: Optional[CacheShape] = None
    identity: Tuple[str, ...] = ()

    @property
    def is_cached(self) -> bool:
        return self.shape is not None

    @property
    def is_singleton(self) -> bool:
        return isinstance(self.shape, SingletonShape)

    @property
    def is_collection(self) -> bool:
        return isinstance(self.shape, CollectionShape)

    @property
    def identity_fields(self) -> Tuple[str, ...]:
        if self.shape is not None:
            return self.shape.identity_fields
        return self.identity

    def field_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in dataclasses.fields(self.entity_type))

    def identity_of(self, entity: Any) -> Dict[str, Any]:
        return {name: getattr(entity, name) for name in self.identity_fields}


class EntityRegistry:
    """
    Maps entity types to their descriptors.

    An entity type is registered once; a second registration is rejected so
    that a type can never declare two shapes.
    """

    def __init__(self) -> None:
        self._descriptors: Dict[type, EntityDescriptor] = {}

    def register(
        self,
        entity_type: type,
        shape: Optional[CacheShape] = None,
        name: Optional[str] = None,
        identity: Tuple[str, ...] = (),
    ) -> EntityDescriptor:
        """
        Register an entity type with at most one cache shape.

        Args:
            entity_type: Dataclass type of the entity
            shape: SingletonShape, CollectionShape, or None for no caching
            name: Key namespace for the type (defaults to the class name)
            identity: Identity fields for uncached entities

        Returns:
            The stored descriptor

        Raises:
            EntityShapeException: If the type is not a dataclass, cannot be
                weakly referenced, is already registered, or the shape names
                unknown fields
        """
        if not dataclasses.is_dataclass(entity_type) or not isinstance(
            entity_type, type
        ):
            raise EntityShapeException(
                f"Entity type must be a dataclass, got {entity_type!r}"
            )

        # Change tracking holds loaded entities through weak references
        if not hasattr(entity_type, "__weakref__"):
            raise EntityShapeException(
                f"Entity type {entity_type.__name__} must support weak references; "
                "use @dataclass(slots=True, weakref_slot=True) or drop slots=True",
                entity=entity_type.__name__,
            )

        if entity_type in self._descriptors:
            raise EntityShapeException(
                f"Entity type {entity_type.__name__} is already registered",
                entity=entity_type.__name__,
            )

        descriptor = EntityDescriptor(
            entity_type=entity_type,
            name=name or entity_type.__name__,
            shape=shape,
            identity=tuple(identity),
        )

        if ":" in descriptor.name or any(c.isspace() for c in descriptor.name):
            raise EntityShapeException(
                f"Entity name cannot contain ':' or whitespace: {descriptor.name!r}",
                entity=entity_type.__name__,
            )

        unknown = set(descriptor.identity_fields) - set(descriptor.field_names())
        if unknown:
            raise EntityShapeException(
                f"Unknown identity fields for {entity_type.__name__}: {sorted(unknown)}",
                entity=entity_type.__name__,
            )

        for other in self._descriptors.values():
            if other.name == descriptor.name:
                raise EntityShapeException(
                    f"Entity name '{descriptor.name}' already used by "
                    f"{other.entity_type.__name__}",
                    entity=entity_type.__name__,
                )

        self._descriptors[entity_type] = descriptor

        logger.debug(
            "Registry: Entity registered",
            entity=descriptor.name,
            shape=type(shape).__name__ if shape else None,
        )

        return descriptor

    def describe(self, entity_type: type) -> Optional[EntityDescriptor]:
        """Get the descriptor for a type, or None if it was never registered."""
        return self._descriptors.get(entity_type)

    def describe_entity(self, entity: Any) -> Optional[EntityDescriptor]:
        if entity is None:
            return None
        return self.describe(type(entity))

    def __contains__(self, entity_type: type) -> bool:
        return entity_type in self._descriptors


# Global registry instance
entity_registry = EntityRegistry()


def cached_entity(
    shape: Optional[CacheShape] = None,
    name: Optional[str] = None,
    identity: Tuple[str, ...] = (),
    registry: Optional[EntityRegistry] = None,
) -> Callable[[Type[E]], Type[E]]:
    """
    Class decorator registering a dataclass entity with a cache shape.

    Apply it above ``@dataclass``::

        @cached_entity(SingletonShape(("player_id",)))
        @dataclass
        class Player:
            player_id: int
            name: str
    """

    def decorator(entity_type: Type[E]) -> Type[E]:
        (registry or entity_registry).register(
            entity_type, shape=shape, name=name, identity=identity
        )
        return entity_type

    return decorator
