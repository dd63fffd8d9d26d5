"""
Identity Tags
=============

A store must be able to map any value it publishes back to the row it owns, even
after a ``map`` transform has replaced the row with a differently shaped object.
Rows are never modified to make this work. Instead each store keeps an
``IdentityTable``: a side-table from tagged object to owning row.

Entries are keyed by ``id()`` and hold a strong reference to the tagged object,
so an id cannot be recycled by another object while its entry exists. Only
structured values (see ``truth.util.path.is_structured``) are tagged; scalars
produced by a map share ids too freely to be trusted.

Lifetime:
    - ``tag`` on add: an owned row points to itself
    - ``link`` during a map transform: the projection points to the owner
    - ``prune`` after each recomputation: entries whose owner is no longer
      owned are dropped; projections of owned rows keep resolving, even ones
      from an earlier snapshot
    - ``untag_owner`` on remove: the row and all its projections are dropped
    - ``clear`` on empty and destroy
"""

from typing import Any, Dict, Iterable, Optional, Tuple

from .util.path import is_structured


class IdentityTable:
    """Store-scoped mapping from tagged object to owned row."""

    __slots__ = ("namespace", "_entries")

    def __init__(self, namespace: str):
        self.namespace = namespace
        self._entries: Dict[int, Tuple[Any, Any]] = {}

    def tag(self, row: Any) -> None:
        """Mark ``row`` as owned."""
        self._entries[id(row)] = (row, row)

    def link(self, projection: Any, owner: Any) -> bool:
        """Point ``projection`` at ``owner``. Scalars are not linked."""
        if not is_structured(projection):
            return False
        self._entries[id(projection)] = (projection, owner)
        return True

    def owner(self, value: Any) -> Optional[Any]:
        """Return the owned row behind ``value``, or None if it carries no tag."""
        entry = self._entries.get(id(value))
        if entry is None or entry[0] is not value:
            return None
        return entry[1]

    def untag(self, value: Any) -> None:
        entry = self._entries.get(id(value))
        if entry is not None and entry[0] is value:
            del self._entries[id(value)]

    def untag_owner(self, owner: Any) -> None:
        """Drop ``owner`` and every projection linked to it."""
        stale = [key for key, (_, row) in self._entries.items() if row is owner]
        for key in stale:
            del self._entries[key]

    def prune(self, owned: Iterable[Any]) -> None:
        """Keep only entries whose owner is one of ``owned``."""
        keep = {id(row) for row in owned}
        self._entries = {
            key: entry for key, entry in self._entries.items() if id(entry[1]) in keep
        }

    def copy(self) -> "IdentityTable":
        clone = IdentityTable(self.namespace)
        clone._entries = dict(self._entries)
        return clone

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"IdentityTable({self.namespace!r}, entries={len(self._entries)})"
