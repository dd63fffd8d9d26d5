"""
Truth - Reactive Materialized Views

An in-memory store of rows that merges rows from other stores, runs them through
a phased transform pipeline and republishes an immutable snapshot whenever any
input changes.
"""

from .config import StoreOptions
from .errors import (
    CircularMergeError,
    StoreDestroyedError,
    TruthError,
    UnknownOperationError,
)
from .events import EventEmitter, Subscription
from .identity import IdentityTable
from .pipeline import (
    OPERATIONS,
    Filter,
    Map,
    Operation,
    Phase,
    Pipeline,
    Slice,
    Sort,
    Transform,
)
from .registry import _reset_registry, get_registry
from .store import FollowLink, Store
from .util.path import MISSING

__all__ = [
    # Store
    "Store",
    "FollowLink",
    "StoreOptions",
    # Pipeline
    "Phase",
    "Pipeline",
    "Transform",
    "Operation",
    "Map",
    "Filter",
    "Sort",
    "Slice",
    "OPERATIONS",
    # Collaborators
    "EventEmitter",
    "Subscription",
    "IdentityTable",
    "get_registry",
    # Exceptions
    "TruthError",
    "CircularMergeError",
    "StoreDestroyedError",
    "UnknownOperationError",
    # Sentinel
    "MISSING",
    # Testing utilities (internal use)
    "_reset_registry",
]
