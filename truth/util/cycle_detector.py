"""
Cycle detection for follow graphs
=================================

Stores form a directed graph: an edge ``source -> follower`` exists for every
follow link. Recomputation walks that graph synchronously, so a cycle recurses
without bound. ``would_create_cycle`` answers, before a new edge is added,
whether the edge would close a cycle.

The graph is never materialised. Callers pass a ``sources`` function returning
the nodes a given node follows, and the search walks it depth first, tracking
visited nodes by ``id()`` so that unhashable nodes work too.

Usage:
    def sources(store):
        return [link.source for link in store.following]

    if would_create_cycle(other, store, sources):
        raise CircularMergeError(...)
"""

from typing import Callable, Iterable, List, Optional, Set, TypeVar

T = TypeVar("T")


def find_path(
    start: T, target: T, sources: Callable[[T], Iterable[T]]
) -> Optional[List[T]]:
    """
    Find a chain of follow edges leading from ``start`` back to ``target``.

    ``start`` reaches ``target`` when ``start`` is ``target`` or when one of the
    nodes ``start`` follows (transitively) is.

    Returns:
        The nodes visited from ``start`` to ``target`` inclusive, or None.
    """
    visited: Set[int] = set()
    stack = [(start, [start])]

    while stack:
        node, path = stack.pop()
        if node is target:
            return path

        node_id = id(node)
        if node_id in visited:
            continue
        visited.add(node_id)

        for upstream in reversed(list(sources(node))):
            if id(upstream) not in visited:
                stack.append((upstream, path + [upstream]))

    return None


def would_create_cycle(
    source: T, follower: T, sources: Callable[[T], Iterable[T]]
) -> bool:
    """
    Check if adding edge source -> follower would create a cycle.

    That is the case exactly when ``source`` already follows ``follower``,
    directly or transitively, or when both are the same node.
    """
    return find_path(source, follower, sources) is not None
