"""
Operation Dispatcher

Routes each declared store operation to the right combination of store
call, cache read and cache write. Store mutations always complete before
the matching cache mutation; queries consult the cache before the store.

Cache failures never reach the caller: read failures count as misses and
write-through failures are logged and swallowed. Store failures propagate
unchanged and suppress the cache effect of the failed call.
"""

from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

import structlog
from opentelemetry import trace

from ...core.config import settings
from ...domain.change_tracker import ChangeTracker
from ...domain.entities import EntityRegistry
from ...domain.key_resolver import CacheKeyResolver
from ...domain.predicate_filter import filter_members
from ...domain.repository_interfaces import CacheBackend
from ...domain.value_objects import ChangeSet, OperationKind
from ...exceptions import CacheException
from .cache_reader import CacheReader
from .cache_writer import CacheWriter

logger = structlog.get_logger()
tracer = trace.get_tracer(__name__)

T = TypeVar("T")

Handler = Callable[[Callable[[], Any], Any, Any, Any], Any]


class OperationDispatcher:
    """
    Cache-synchronizing wrapper around store invocations.

    ``dispatch(kind, invoke, argument)`` runs ``invoke()`` (the store call)
    with the cache effects of ``kind``. With no kind, or caching disabled,
    it is a plain ``invoke()``.
    """

    def __init__(
        self,
        backend: CacheBackend,
        resolver: Optional[CacheKeyResolver] = None,
        change_tracker: Optional[ChangeTracker] = None,
        registry: Optional[EntityRegistry] = None,
        enabled: Optional[bool] = None,
    ):
        self.resolver = resolver or CacheKeyResolver(registry=registry)
        self.reader = CacheReader(backend, self.resolver)
        self.writer = CacheWriter(backend, self.resolver)
        self.change_tracker = change_tracker
        self.enabled = settings.CACHE_ENABLED if enabled is None else enabled

        self._handlers: Dict[OperationKind, Handler] = {
            OperationKind.INSERT: self._insert,
            OperationKind.UPDATE: self._update,
            OperationKind.QUERY: self._query,
            OperationKind.QUERY_LIST: self._query_list,
            OperationKind.DELETE: self._delete,
            OperationKind.INSERT_BATCH: self._insert_batch,
            OperationKind.UPDATE_BATCH: self._update_batch,
            OperationKind.DELETE_BATCH: self._delete_batch,
        }

    def dispatch(
        self,
        kind: Optional[OperationKind],
        invoke: Callable[[], T],
        argument: Any = None,
        changes: Any = None,
    ) -> T:
        """
        Run a store call with the cache effects of its operation kind.

        Args:
            kind: Declared operation kind, or None for an undeclared call
            invoke: Zero-argument callable performing the store call
            argument: Entity (or entity list for batch kinds) of the call
            changes: ChangeSet for UPDATE / QUERY_LIST, a sequence of change
                sets for UPDATE_BATCH; looked up from the change tracker
                when omitted

        Returns:
            The store result, or the cached result on a query hit
        """
        if kind is None or not self.enabled:
            return invoke()

        handler = self._handlers[kind]

        if kind.is_batch and not argument:
            logger.debug("Dispatcher: Empty batch, nothing to do", operation=kind.value)
            return []

        with tracer.start_as_current_span(f"cache_dispatcher.{kind.value}") as span:
            span.set_attribute("operation", kind.value)
            entity = argument[0] if kind.is_batch else argument
            if entity is not None:
                span.set_attribute("entity", type(entity).__name__)
            return handler(invoke, argument, changes, span)

    # Change sets

    def _changes_of(self, entity: Any, changes: Optional[ChangeSet]) -> ChangeSet:
        if changes is not None:
            return ChangeSet(changes)
        if self.change_tracker is None or entity is None:
            return ChangeSet.empty()
        return self.change_tracker.changes(entity)

    def _batch_changes(
        self, entities: Sequence[Any], changes: Optional[Sequence[Optional[ChangeSet]]]
    ) -> List[ChangeSet]:
        if changes is not None and len(changes) != len(entities):
            raise ValueError("change sets must align with the batch entities")
        return [
            self._changes_of(entity, changes[index] if changes is not None else None)
            for index, entity in enumerate(entities)
        ]

    # Failure policy

    def _read(self, operation: str, action: Callable[[], Optional[T]]) -> Optional[T]:
        try:
            return action()
        except CacheException as e:
            logger.warning(
                "Dispatcher: Cache read failed, falling back to store",
                operation=operation,
                error_code=e.error_code,
                error=str(e),
            )
            return None

    def _write_through(self, operation: str, action: Callable[[], None]) -> None:
        try:
            action()
        except CacheException as e:
            logger.error(
                "Dispatcher: Cache write-through failed, cache may be stale",
                operation=operation,
                error_code=e.error_code,
                error=str(e),
                exc_info=True,
            )

    def _shape_mismatch(self, operation: str, expected: str, entity: Any) -> None:
        descriptor = self.resolver.describe(entity)
        logger.error(
            "Dispatcher: Entity shape does not match operation",
            operation=operation,
            expected=expected,
            entity=type(entity).__name__,
            shape=type(descriptor.shape).__name__
            if descriptor is not None and descriptor.shape is not None
            else None,
        )

    # Handlers

    def _insert(self, invoke, entity, changes, span):
        result = invoke()
        self._write_through("insert", lambda: self.writer.write_full(entity))
        return result

    def _update(self, invoke, entity, changes, span):
        change_set = self._changes_of(entity, changes)
        result = invoke()
        self._write_through(
            "update", lambda: self.writer.write_changed(entity, change_set)
        )
        return result

    def _query(self, invoke, entity, changes, span):
        result = None
        if entity is not None:
            descriptor = self.resolver.describe(entity)
            if descriptor is not None and descriptor.is_singleton:
                result = self._read("query", lambda: self.reader.read_singleton(entity))
            else:
                self._shape_mismatch("query", "SingletonShape", entity)

        span.set_attribute("cache_hit", result is not None)
        if result is not None:
            return result

        result = invoke()
        if result is not None:
            self._write_through("query", lambda: self.writer.write_full(result))
        return result

    def _query_list(self, invoke, entity, changes, span):
        constraints = self._changes_of(entity, changes)
        members = None
        if entity is not None:
            descriptor = self.resolver.describe(entity)
            if descriptor is not None and descriptor.is_collection:
                members = self._read(
                    "queryList", lambda: self.reader.read_collection(entity)
                )
            else:
                self._shape_mismatch("queryList", "CollectionShape", entity)

        span.set_attribute("cache_hit", members is not None)
        if members is not None:
            # No constraints means the whole collection was asked for
            if not constraints:
                return members
            return filter_members(members, constraints)

        result = invoke()
        if result is None:
            return result

        if constraints:
            # A filtered subset must never be cached as the whole collection
            logger.debug(
                "Dispatcher: Constrained list result not backfilled",
                fields=sorted(constraints),
            )
        else:
            self._write_through(
                "queryList", lambda: self.writer.write_full_batch(list(result))
            )
        return result

    def _delete(self, invoke, entity, changes, span):
        result = invoke()
        self._write_through("delete", lambda: self.writer.delete(entity))
        return result

    def _insert_batch(self, invoke, entities, changes, span):
        result = invoke()
        self._write_through(
            "insertBatch", lambda: self.writer.write_full_batch(list(entities))
        )
        return result

    def _update_batch(self, invoke, entities, changes, span):
        entities = list(entities)
        change_sets = self._batch_changes(entities, changes)
        result = invoke()
        self._write_through(
            "updateBatch",
            lambda: self.writer.write_changed_batch(entities, change_sets),
        )
        return result

    def _delete_batch(self, invoke, entities, changes, span):
        result = invoke()
        self._write_through(
            "deleteBatch", lambda: self.writer.delete_batch(list(entities))
        )
        return result
