"""
Truth Pipeline - Phased Row Transformations
===========================================

A store reshapes its rows through three ordered phases:

- **before**: runs on each candidate row at ``add()`` time, and on the rows
  pulled from a followed store before they are deduplicated.
- **transform**: runs once per recomputation over the combined sequence of
  owned and merged rows; its output is the store's published ``data``.
- **after**: runs on a copy of ``data`` every time ``get()`` is called.

Operations
----------

The set of operations is closed. Each is a small class carrying the caller's
function and knowing how to apply it to a list of rows:

| Name     | Argument                          | Result                        |
|----------|-----------------------------------|-------------------------------|
| ``map``    | ``fn(row) -> new_row``              | one output row per input row  |
| ``filter`` | ``fn(row) -> bool``                 | rows where ``fn`` is truthy   |
| ``sort``   | ``fn(row) -> sort key``             | stable ascending order        |
| ``slice``  | ``slice`` or ``fn(rows) -> slice``  | the selected window           |

During the transform phase ``Map`` copies the identity tag of each input row to
the row it produced, so a projection can always be traced back to its owned row.
The other operations return the very same row objects, which keep their tags.

Usage:
    pipeline = Pipeline()
    pipeline.register(Phase.TRANSFORM, "filter", lambda row: row["active"])
    pipeline.register(Phase.TRANSFORM, "map", lambda row: {"value": row})
    rows = pipeline.run(Phase.TRANSFORM, rows, identity)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from .errors import UnknownOperationError
from .identity import IdentityTable


class Phase(Enum):
    """When a transform runs relative to recomputation."""

    BEFORE = "before"
    TRANSFORM = "transform"
    AFTER = "after"


class Operation(ABC):
    """A bulk operation over an ordered list of rows."""

    name: str = ""

    def __init__(self, fn: Any):
        self._validate(fn)
        self.fn = fn

    def _validate(self, fn: Any) -> None:
        if not callable(fn):
            raise TypeError(
                f"{self.name!r} expects a callable, got {type(fn).__name__}"
            )

    @abstractmethod
    def apply(self, rows: List[Any], identity: Optional[IdentityTable] = None) -> List[Any]:
        """Apply the operation, returning a new list."""
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({getattr(self.fn, '__name__', self.fn)!r})"


class Map(Operation):
    """Project every row; carries identity tags over to the projections."""

    name = "map"

    def apply(self, rows: List[Any], identity: Optional[IdentityTable] = None) -> List[Any]:
        projected = [self.fn(row) for row in rows]
        if identity is not None:
            for row, result in zip(rows, projected):
                if result is row:
                    continue
                owner = identity.owner(row)
                if owner is not None:
                    identity.link(result, owner)
        return projected


class Filter(Operation):
    name = "filter"

    def apply(self, rows: List[Any], identity: Optional[IdentityTable] = None) -> List[Any]:
        return [row for row in rows if self.fn(row)]


class Sort(Operation):
    name = "sort"

    def apply(self, rows: List[Any], identity: Optional[IdentityTable] = None) -> List[Any]:
        return sorted(rows, key=self.fn)


class Slice(Operation):
    """Select a window; the argument is a ``slice`` or a callable producing one."""

    name = "slice"

    def _validate(self, fn: Any) -> None:
        if not isinstance(fn, slice):
            super()._validate(fn)

    def apply(self, rows: List[Any], identity: Optional[IdentityTable] = None) -> List[Any]:
        window = self.fn if isinstance(self.fn, slice) else self.fn(rows)
        if not isinstance(window, slice):
            raise TypeError(
                f"slice function must return a slice, got {type(window).__name__}"
            )
        return rows[window]


OPERATIONS: Dict[str, Type[Operation]] = {
    op.name: op for op in (Map, Filter, Sort, Slice)
}


def make_operation(name: str, fn: Any) -> Operation:
    """
    Build the operation registered under ``name``.

    Raises:
        UnknownOperationError: If no operation has that name.
        TypeError: If ``fn`` is not an acceptable argument for the operation.
    """
    try:
        factory = OPERATIONS[name]
    except (KeyError, TypeError):
        raise UnknownOperationError(
            f"Unknown operation {name!r}; expected one of {sorted(OPERATIONS)}"
        ) from None
    return factory(fn)


def default_name(fn: Any) -> Optional[str]:
    """Name a transform registers under when none is given."""
    if isinstance(fn, slice):
        return repr(fn)
    return getattr(fn, "__name__", None)


@dataclass(frozen=True)
class Transform:
    """One registered ``(phase, operation, name)`` entry."""

    phase: Phase
    operation: Operation
    name: Optional[str]

    @property
    def method(self) -> str:
        return self.operation.name

    @property
    def fn(self) -> Any:
        return self.operation.fn

    def matches(self, method: str, name: Optional[str]) -> bool:
        return self.operation.name == method and self.name == name


class Pipeline:
    """
    Ordered transforms across all three phases.

    Registration order is kept across phases so that ``undo`` always removes the
    earliest matching entry, whichever phase it belongs to.
    """

    def __init__(self, transforms: Optional[List[Transform]] = None):
        self._transforms: List[Transform] = list(transforms or [])

    def register(
        self, phase: Phase, method: str, fn: Any, name: Optional[str] = None
    ) -> Transform:
        operation = make_operation(method, fn)
        transform = Transform(
            phase=phase,
            operation=operation,
            name=name if name is not None else default_name(fn),
        )
        self._transforms.append(transform)
        return transform

    def undo(self, method: str, name: Optional[str]) -> Optional[Transform]:
        """Remove and return the first transform matching ``(method, name)``."""
        for index, transform in enumerate(self._transforms):
            if transform.matches(method, name):
                return self._transforms.pop(index)
        return None

    def phase(self, phase: Phase) -> List[Transform]:
        return [t for t in self._transforms if t.phase is phase]

    def run(
        self,
        phase: Phase,
        rows: List[Any],
        identity: Optional[IdentityTable] = None,
    ) -> List[Any]:
        """
        Apply every transform of ``phase`` to ``rows`` in registration order.

        ``identity`` is only consulted in the transform phase; the other phases
        never copy tags.
        """
        result = list(rows)
        tags = identity if phase is Phase.TRANSFORM else None
        for transform in self._transforms:
            if transform.phase is phase:
                result = transform.operation.apply(result, tags)
        return result

    def copy(self) -> "Pipeline":
        return Pipeline(self._transforms)

    def clear(self) -> None:
        self._transforms.clear()

    def __iter__(self):
        return iter(list(self._transforms))

    def __len__(self) -> int:
        return len(self._transforms)

    def __repr__(self) -> str:
        counts = {p.value: len(self.phase(p)) for p in Phase}
        return f"Pipeline({counts})"
