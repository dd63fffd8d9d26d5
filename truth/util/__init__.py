"""
Truth utilities - collaborators of the store core.

Modules:
- path: dotted property-path resolution and strict equality used by ``find``
- cycle_detector: reachability search used to reject cyclic merges
"""

from .cycle_detector import find_path, would_create_cycle
from .path import MISSING, is_structured, resolve, split_path, strict_equal

__all__ = [
    "MISSING",
    "find_path",
    "is_structured",
    "resolve",
    "split_path",
    "strict_equal",
    "would_create_cycle",
]
