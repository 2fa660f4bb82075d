"""
Change tracking for loaded entities.

A tracker owns a snapshot of each entity taken when it was loaded and
reports the fields whose value differs from that snapshot. The change set is
a separate value handed alongside the entity; entities carry no hidden state.
"""

import copy
import dataclasses
import threading
import weakref
from typing import Any, Dict, Protocol, Tuple, runtime_checkable

from .value_objects import ChangeSet


@runtime_checkable
class ChangeTracker(Protocol):
    """Read-only view of the fields mutated since an entity was loaded."""

    def changes(self, entity: Any) -> ChangeSet:
        ...


class SnapshotChangeTracker:
    """
    Change tracker comparing entities against a snapshot taken at load time.

    Entities that were never tracked (for example freshly constructed ones)
    report an empty change set. Snapshots of garbage collected entities are
    pruned as new entities are tracked. Entity classes must support weak
    references; the registry rejects ``slots=True`` dataclasses that lack a
    ``__weakref__`` slot.
    """

    def __init__(self) -> None:
        self._snapshots: Dict[int, Tuple[weakref.ref, Dict[str, Any]]] = {}
        self._lock = threading.Lock()
        self._prune_at = 1024

    def track(self, entity: Any) -> Any:
        """Record the current field values of ``entity`` as its baseline."""
        if entity is None:
            return entity

        snapshot = {
            f.name: copy.deepcopy(getattr(entity, f.name))
            for f in dataclasses.fields(entity)
        }

        with self._lock:
            if len(self._snapshots) >= self._prune_at:
                self._prune()
                self._prune_at = max(1024, 2 * len(self._snapshots))
            self._snapshots[id(entity)] = (weakref.ref(entity), snapshot)
        return entity

    def _prune(self) -> None:
        dead = [key for key, (ref, _) in self._snapshots.items() if ref() is None]
        for key in dead:
            del self._snapshots[key]

    def track_all(self, entities: Any) -> Any:
        for entity in entities or ():
            self.track(entity)
        return entities

    def changes(self, entity: Any) -> ChangeSet:
        """Fields whose value differs from the snapshot, mapped to the new value."""
        if entity is None:
            return ChangeSet.empty()

        with self._lock:
            entry = self._snapshots.get(id(entity))

        if entry is None or entry[0]() is not entity:
            return ChangeSet.empty()

        snapshot = entry[1]
        changed = {}
        for name, original in snapshot.items():
            value = getattr(entity, name)
            if value != original:
                changed[name] = value
        return ChangeSet(changed)

    def is_tracked(self, entity: Any) -> bool:
        with self._lock:
            entry = self._snapshots.get(id(entity))
        return entry is not None and entry[0]() is entity

    def reset(self, entity: Any) -> None:
        """Take a fresh baseline, typically after a successful update."""
        if self.is_tracked(entity):
            self.track(entity)

    def forget(self, entity: Any) -> None:
        with self._lock:
            self._snapshots.pop(id(entity), None)
