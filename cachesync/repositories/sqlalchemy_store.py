"""
SQLAlchemy Entity Store

Reference EntityStore backed by a SQLAlchemy ORM model. Dataclass entities
are copied field by field to and from ORM rows; each call runs in its own
transaction.
"""

from typing import Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from ..domain.entities import CollectionShape, EntityRegistry, entity_registry
from ..domain.value_objects import ChangeSet
from .base import EntityNotFoundError, EntityStore

logger = structlog.get_logger()

E = TypeVar("E")


class SqlAlchemyEntityStore(EntityStore[E], Generic[E]):
    """
    EntityStore for one registered dataclass entity and its ORM model.

    The ORM model must expose a column attribute for every dataclass field.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        entity_type: Type[E],
        orm_model: type,
        registry: Optional[EntityRegistry] = None,
    ):
        """
        Initialize store with strict input validation.

        Args:
            session_factory: sessionmaker bound to the target engine
            entity_type: Registered dataclass entity type
            orm_model: SQLAlchemy mapped class with matching columns

        Raises:
            TypeError: If the entity is unregistered or the model lacks columns
        """
        descriptor = (registry or entity_registry).describe(entity_type)
        if descriptor is None:
            raise TypeError(f"{entity_type.__name__} is not a registered entity")

        if not hasattr(orm_model, "__tablename__"):
            raise TypeError(
                f"orm_model must be a mapped SQLAlchemy class, got {orm_model!r}"
            )

        missing = [name for name in descriptor.field_names() if not hasattr(orm_model, name)]
        if missing:
            raise TypeError(f"{orm_model.__name__} is missing columns: {missing}")

        if not descriptor.identity_fields:
            raise TypeError(f"{entity_type.__name__} declares no identity fields")

        self.session_factory = session_factory
        self.entity_type = entity_type
        self.orm_model = orm_model
        self.descriptor = descriptor
        self._fields = descriptor.field_names()

    # Row mapping

    def _to_row(self, entity: E) -> Any:
        return self.orm_model(**{name: getattr(entity, name) for name in self._fields})

    def _to_entity(self, row: Any) -> E:
        return self.entity_type(**{name: getattr(row, name) for name in self._fields})

    def _identity(self, entity: E) -> Dict[str, Any]:
        return self.descriptor.identity_of(entity)

    def _find_row(self, session: Session, entity: E) -> Any:
        stmt = select(self.orm_model).filter_by(**self._identity(entity))
        return session.execute(stmt).scalar_one_or_none()

    def _apply(self, row: Any, entity: E, changes: Optional[ChangeSet]) -> None:
        if changes:
            names = [name for name in changes if name in self._fields]
        else:
            identity = set(self.descriptor.identity_fields)
            names = [name for name in self._fields if name not in identity]
        for name in names:
            setattr(row, name, getattr(entity, name))

    # EntityStore

    def insert(self, entity: E) -> E:
        try:
            with self.session_factory.begin() as session:
                session.add(self._to_row(entity))

            logger.info(
                "Repository: Entity created",
                model=self.descriptor.name,
                identity=self._identity(entity),
            )
            return entity

        except Exception as e:
            logger.error(
                "Repository: Failed to create entity",
                model=self.descriptor.name,
                error=str(e),
                exc_info=True,
            )
            raise

    def update(self, entity: E, changes: Optional[ChangeSet] = None) -> E:
        try:
            with self.session_factory.begin() as session:
                row = self._find_row(session, entity)
                if row is None:
                    raise EntityNotFoundError(
                        self.descriptor.name, self._identity(entity)
                    )
                self._apply(row, entity, changes)

            logger.info(
                "Repository: Entity updated",
                model=self.descriptor.name,
                identity=self._identity(entity),
                fields=sorted(changes) if changes else "all",
            )
            return entity

        except Exception as e:
            logger.error(
                "Repository: Failed to update entity",
                model=self.descriptor.name,
                error=str(e),
                exc_info=True,
            )
            raise

    def query(self, entity: E) -> Optional[E]:
        try:
            with self.session_factory() as session:
                row = self._find_row(session, entity)
                result = self._to_entity(row) if row is not None else None

            if result is not None:
                logger.debug(
                    "Repository: Entity retrieved",
                    model=self.descriptor.name,
                    identity=self._identity(entity),
                )
            return result

        except Exception as e:
            logger.error(
                "Repository: Failed to get entity",
                model=self.descriptor.name,
                error=str(e),
                exc_info=True,
            )
            raise

    def query_list(
        self, entity: E, constraints: Optional[ChangeSet] = None
    ) -> List[E]:
        criteria: Dict[str, Any] = {}
        if isinstance(self.descriptor.shape, CollectionShape):
            criteria.update(
                {f: getattr(entity, f) for f in self.descriptor.shape.collection_fields}
            )
        criteria.update(constraints or {})

        try:
            with self.session_factory() as session:
                stmt = select(self.orm_model).filter_by(**criteria)
                rows = session.execute(stmt).scalars().all()
                entities = [self._to_entity(row) for row in rows]

            logger.debug(
                "Repository: Entities listed",
                model=self.descriptor.name,
                count=len(entities),
            )
            return entities

        except Exception as e:
            logger.error(
                "Repository: Failed to list entities",
                model=self.descriptor.name,
                error=str(e),
                exc_info=True,
            )
            raise

    def delete(self, entity: E) -> bool:
        try:
            with self.session_factory.begin() as session:
                row = self._find_row(session, entity)
                if row is None:
                    logger.warning(
                        "Repository: Entity not found for deletion",
                        model=self.descriptor.name,
                        identity=self._identity(entity),
                    )
                    return False
                session.delete(row)

            logger.info(
                "Repository: Entity deleted",
                model=self.descriptor.name,
                identity=self._identity(entity),
            )
            return True

        except Exception as e:
            logger.error(
                "Repository: Failed to delete entity",
                model=self.descriptor.name,
                error=str(e),
                exc_info=True,
            )
            raise

    def insert_batch(self, entities: Sequence[E]) -> List[E]:
        try:
            with self.session_factory.begin() as session:
                session.add_all([self._to_row(entity) for entity in entities])

            logger.info(
                "Repository: Entities created",
                model=self.descriptor.name,
                count=len(entities),
            )
            return list(entities)

        except Exception as e:
            logger.error(
                "Repository: Failed to create entities",
                model=self.descriptor.name,
                error=str(e),
                exc_info=True,
            )
            raise

    def update_batch(
        self,
        entities: Sequence[E],
        change_sets: Optional[Sequence[Optional[ChangeSet]]] = None,
    ) -> List[E]:
        if change_sets is not None and len(change_sets) != len(entities):
            raise ValueError("change_sets must align with entities")

        try:
            with self.session_factory.begin() as session:
                for index, entity in enumerate(entities):
                    row = self._find_row(session, entity)
                    if row is None:
                        raise EntityNotFoundError(
                            self.descriptor.name, self._identity(entity)
                        )
                    changes = change_sets[index] if change_sets is not None else None
                    self._apply(row, entity, changes)

            logger.info(
                "Repository: Entities updated",
                model=self.descriptor.name,
                count=len(entities),
            )
            return list(entities)

        except Exception as e:
            logger.error(
                "Repository: Failed to update entities",
                model=self.descriptor.name,
                error=str(e),
                exc_info=True,
            )
            raise

    def delete_batch(self, entities: Sequence[E]) -> int:
        try:
            deleted = 0
            with self.session_factory.begin() as session:
                for entity in entities:
                    row = self._find_row(session, entity)
                    if row is not None:
                        session.delete(row)
                        deleted += 1

            logger.info(
                "Repository: Entities deleted",
                model=self.descriptor.name,
                count=deleted,
            )
            return deleted

        except Exception as e:
            logger.error(
                "Repository: Failed to delete entities",
                model=self.descriptor.name,
                error=str(e),
                exc_info=True,
            )
            raise
