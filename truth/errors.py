"""
Exceptions raised by the truth store.

Invalid rows, unresolvable removals and unknown undo/find keys are not errors; they
are absorbed as no-ops. The classes below cover programmer mistakes only.
"""

from typing import List, Optional


class TruthError(Exception):
    """Base class for all store errors."""

    pass


class CircularMergeError(TruthError):
    """Raised when a merge would make a store follow itself."""

    def __init__(self, message: str, path: Optional[List[str]] = None):
        super().__init__(message)
        self.path = path or []


class UnknownOperationError(TruthError, ValueError):
    """Raised when a transform names an operation that does not exist."""

    pass


class StoreDestroyedError(TruthError):
    """Raised when a destroyed store is mutated."""

    pass
