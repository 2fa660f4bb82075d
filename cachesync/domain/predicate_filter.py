"""
Predicate filtering of cached collection members.

Members are matched against the field=value constraints of a change set by
comparing canonical string renderings of both sides.
"""

from enum import Enum
from typing import Any, Iterable, List, Mapping, TypeVar

E = TypeVar("E")

_MISSING = object()


def canonical_str(value: Any) -> str:
    """Render a field or constraint value to its canonical string form."""
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def matches(candidate: Any, constraints: Mapping[str, Any]) -> bool:
    """
    True when every constrained field of ``candidate`` equals the constraint.

    An empty constraint mapping never matches.
    """
    if not constraints:
        return False

    for field_name, expected in constraints.items():
        actual = getattr(candidate, field_name, _MISSING)
        if actual is _MISSING or canonical_str(actual) != canonical_str(expected):
            return False
    return True


def filter_members(candidates: Iterable[E], constraints: Mapping[str, Any]) -> List[E]:
    """
    Keep the candidates whose fields match all constraints.

    Args:
        candidates: Cached collection members
        constraints: Change set of the query entity (field -> required value)

    Returns:
        Matching members in candidate order; empty when ``constraints`` is empty
    """
    if not constraints:
        return []
    return [candidate for candidate in candidates if matches(candidate, constraints)]
