"""
Property paths
==============

Resolves dotted key paths such as ``"value.foo"`` or ``"items.0.name"`` against
rows, and compares resolved values the way ``Store.find`` needs them compared.

Segments are looked up as mapping keys first, then as sequence indexes (for
all-digit segments) and finally as attributes. A path that cannot be followed
resolves to ``MISSING`` rather than raising.
"""

from collections.abc import Mapping, Sequence
from typing import Any, Tuple

import numpy as np
from cachetools import LRUCache, cached


class _Missing:
    """Sentinel for a path that does not resolve."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


@cached(cache=LRUCache(maxsize=1024))
def split_path(key: str) -> Tuple[str, ...]:
    """Split a dotted key into its segments. Results are cached."""
    return tuple(key.split("."))


def is_structured(value: Any) -> bool:
    """Whether ``value`` can be a row: a mapping or an object with instance state."""
    if value is None or isinstance(value, (str, bytes, bytearray)):
        return False
    if isinstance(value, Mapping):
        return True
    return hasattr(value, "__dict__") and not callable(value) and not isinstance(value, type)


def _step(current: Any, segment: str) -> Any:
    if isinstance(current, Mapping):
        if segment in current:
            return current[segment]
        return MISSING
    if (
        segment.isdigit()
        and isinstance(current, Sequence)
        and not isinstance(current, (str, bytes, bytearray))
    ):
        index = int(segment)
        if index < len(current):
            return current[index]
        return MISSING
    return getattr(current, segment, MISSING)


def resolve(row: Any, key: str) -> Any:
    """
    Resolve ``key`` against ``row``.

    Args:
        row: A mapping, object or sequence.
        key: Field name or dotted path.

    Returns:
        The value at the path, or ``MISSING`` when any segment is absent.
    """
    if row is None or key is None:
        return MISSING
    current = row
    for segment in split_path(key):
        current = _step(current, segment)
        if current is MISSING:
            return MISSING
    return current


def strict_equal(left: Any, right: Any) -> bool:
    """
    Equality without coercion between booleans and numbers.

    ``True`` does not match ``1``, arrays are compared by shape and content, and
    any other pair is compared with ``==``. ``MISSING`` never matches anything,
    itself included. Comparisons with no single truth value, such as lists
    holding arrays, do not match.
    """
    if left is MISSING or right is MISSING:
        return False
    if left is right:
        return True
    if isinstance(left, np.ndarray) or isinstance(right, np.ndarray):
        if not (isinstance(left, np.ndarray) and isinstance(right, np.ndarray)):
            return False
        return bool(np.array_equal(left, right))
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    try:
        return bool(left == right)
    except ValueError:
        # numpy refuses to reduce an elementwise result to one bool
        return False
