"""
Truth Store - Reactive Materialized Views
=========================================

A ``Store`` holds a list of rows, optionally merges in the rows of other stores,
runs everything through a transform pipeline and publishes the result as an
immutable snapshot. Every mutation recomputes the snapshot synchronously and
emits a ``change`` event, so a store that merges another one stays current
without any polling.

Basic Usage
-----------

```python
from truth import Store

users = Store("users", key="id")
users.add({"id": 1, "name": "Alice"}, {"id": 2, "name": "Bob"})

users.transform("filter", lambda row: row["name"].startswith("A"))
users.get()                    # [{"id": 1, "name": "Alice"}]

users.undo("filter", "<lambda>")
users.get()                    # both rows again
```

Merging
-------

```python
local = Store("local", key="id")
remote = Store("remote", key="id")

local.merge(remote)            # dedup on "id", local rows win
remote.add({"id": 3, "name": "Carol"})
local.get()                    # includes Carol, recomputed on remote's change
remote.destroy()               # Carol disappears from local; local survives
```

Identity
--------

Rows handed to ``add`` are *owned*. A ``map`` transform may replace each row
with an object of a completely different shape; the store still knows which
owned row every projection came from, so ``remove(projection)`` removes the
original row:

```python
store = Store()
store.transform("map", lambda row: {"value": row})
store.add({"foo": "bar"})

projection = store.find("value.foo", "bar")
store.remove(projection)       # True, the store is empty again
```

Recomputation
-------------

``change()`` is the single recomputation path:

1. copy the owned rows and make sure each is tagged as owned
2. for every follow link, in registration order, read ``source.get()``, run it
   through this store's *before* phase and append the rows that are not
   duplicates of rows already collected
3. run the combined rows through the *transform* phase
4. publish the result as ``data`` and emit ``change(removed, added, data)``

Steps 1-3 work on copies; if any caller-supplied function raises, nothing is
published and the mutation that triggered the recomputation is rolled back.

Follow graphs must be acyclic. With ``check_cycles`` enabled (the default)
``merge`` refuses to create a cycle; without it a cycle recurses until the
interpreter's recursion limit is hit.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple

from .config import StoreOptions
from .errors import CircularMergeError, StoreDestroyedError
from .events import EventEmitter, Subscription
from .identity import IdentityTable
from .pipeline import Phase, Pipeline, Transform
from .registry import get_registry
from .util.cycle_detector import find_path
from .util.path import MISSING, is_structured, resolve, strict_equal

ExcludePredicate = Callable[[Any, List[Any]], bool]


@dataclass(eq=False)
class FollowLink:
    """
    A live dependency on another store.

    Attributes:
        source: The followed store.
        key: Dedup field for rows pulled from ``source``; None disables
            key based dedup.
        exclude: Predicate ``(row, rows) -> bool`` replacing key based dedup.
        subscriptions: Handles on ``source``'s change and destroy events.
    """

    source: "Store"
    key: Optional[str] = None
    exclude: Optional[ExcludePredicate] = None
    subscriptions: Tuple[Subscription, ...] = field(default_factory=tuple)

    def release(self) -> None:
        for subscription in self.subscriptions:
            subscription.unsubscribe()

    def __repr__(self) -> str:
        dedup = "exclude" if self.exclude is not None else repr(self.key)
        return f"FollowLink({self.source.name!r}, {dedup})"


class Store:
    """
    Reactive, in-memory materialized view over owned and merged rows.

    Args:
        name: Display name. Defaults to a generated unique name.
        key: Unique field of owned rows; also the default merge dedup key.
        check_cycles: Reject merges that would make this store follow itself.

    Events:
        change(removed, added, data): after every recomputation
        destroy(): once, when the store is destroyed
        empty(): after ``empty()`` finished its recomputation
    """

    def __init__(
        self,
        name: Optional[str] = None,
        key: Optional[str] = None,
        *,
        check_cycles: bool = True,
    ) -> None:
        generated = get_registry()._gen_key("truth")
        self.name = name if name is not None else generated
        self.options = StoreOptions(key=key, check_cycles=check_cycles)
        self.events = EventEmitter()

        self._identity = IdentityTable(generated)
        self._pipeline = Pipeline()
        self._following: List[FollowLink] = []
        self._rows: List[Any] = []
        self._data: Tuple[Any, ...] = ()
        self._destroyed = False

        logging.debug(f"Store '{self.name}' created (key={key!r}, namespace={generated})")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def unique_key(self) -> Optional[str]:
        return self.options.key

    @property
    def length(self) -> int:
        """Number of owned rows; merged rows are not counted."""
        return len(self._rows)

    @property
    def rows(self) -> Tuple[Any, ...]:
        return tuple(self._rows)

    @property
    def data(self) -> Tuple[Any, ...]:
        """Last published view: owned plus merged rows after the transform phase."""
        return self._data

    @property
    def following(self) -> Tuple[FollowLink, ...]:
        return tuple(self._following)

    @property
    def transforms(self) -> Tuple[Transform, ...]:
        return tuple(self._pipeline)

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def __repr__(self) -> str:
        state = "destroyed" if self._destroyed else f"rows={len(self._rows)}, data={len(self._data)}"
        return f"Store({self.name!r}, {state})"

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: str, callback: Callable[..., Any]) -> Subscription:
        return self.events.on(event, callback)

    def once(self, event: str, callback: Callable[..., Any]) -> Subscription:
        return self.events.once(event, callback)

    def off(self, event: str, callback: Optional[Callable[..., Any]] = None) -> int:
        return self.events.off(event, callback)

    # ------------------------------------------------------------------
    # Row set
    # ------------------------------------------------------------------

    def add(self, *rows: Any) -> bool:
        """
        Add rows to the store.

        Each row is run through the *before* phase on its own. Rows that end up
        as something other than a structured object, that are already owned,
        or whose unique key value is already owned are skipped silently.

        Returns:
            True if at least one row was added (and a recomputation ran).
        """
        self._ensure_alive("add rows to")

        with self._rollback():
            accepted = self._accept(rows)
            if not accepted:
                return False
            self._adopt(accepted)
            computed = self._compute()

        self._publish(computed, removed=[], added=accepted)
        return True

    def remove(self, *values: Any) -> bool:
        """
        Remove owned rows.

        A value may be an owned row, any projection of one published by this
        store, or (when a unique key is set) any object carrying the same unique
        key value as an owned row. Values that resolve to nothing are ignored.

        Returns:
            True if at least one row was removed (and a recomputation ran).
        """
        self._ensure_alive("remove rows from")

        removed: List[Any] = []
        with self._rollback():
            for value in values:
                row = self._resolve_owned(value)
                if row is None:
                    continue
                index = self._index_of(row)
                if index is None:
                    continue
                del self._rows[index]
                self._identity.untag_owner(row)
                self._identity.untag(value)
                removed.append(row)

            if not removed:
                return False
            computed = self._compute()

        self._publish(computed, removed=removed, added=[])
        return True

    def find(self, key: str, value: Any, rows: Optional[Sequence[Any]] = None) -> Optional[Any]:
        """
        Return the first row whose ``key`` path equals ``value``.

        Searches the published ``data`` unless ``rows`` is given. ``key`` may be a
        dotted path. Rows where the path does not resolve never match.
        """
        source = self._data if rows is None else rows
        for row in source:
            found = resolve(row, key)
            if found is not MISSING and strict_equal(found, value):
                return row
        return None

    def has(self, key: str, value: Any = MISSING) -> bool:
        """Whether an owned row defines ``key`` (holding ``value``, if given)."""
        for row in self._rows:
            found = resolve(row, key)
            if found is MISSING:
                continue
            if value is MISSING or strict_equal(found, value):
                return True
        return False

    def origin(self, value: Any) -> Optional[Any]:
        """Return the owned row ``value`` was derived from, if any."""
        owner = self._identity.owner(value)
        if owner is None or self._index_of(owner) is None:
            return None
        return owner

    def get(self) -> List[Any]:
        """Fresh copy of ``data`` with the *after* phase applied."""
        if self._destroyed:
            return []
        return self._pipeline.run(Phase.AFTER, list(self._data))

    # ------------------------------------------------------------------
    # Follow graph
    # ------------------------------------------------------------------

    def merge(
        self,
        other: "Store",
        key: Any = None,
        exclude: Optional[ExcludePredicate] = None,
    ) -> "Store":
        """
        Follow ``other``: its published rows become part of this store's view.

        Args:
            other: Store to follow.
            key: Dedup field. Defaults to this store's unique key; when that is
                None too, every followed row is kept. A callable here is taken
                as ``exclude``.
            exclude: ``exclude(row, rows)`` returning True drops ``row``. ``rows``
                is the sequence collected so far (owned rows first). Replaces
                key based dedup for this link.

        Raises:
            CircularMergeError: If ``check_cycles`` is on and ``other`` is this
                store or already follows it.
        """
        self._ensure_alive("merge into")
        if not isinstance(other, Store):
            raise TypeError(f"Can only merge another Store, got {type(other).__name__}")
        if other.destroyed:
            raise StoreDestroyedError(f"Cannot merge destroyed store '{other.name}'")

        if callable(key) and exclude is None:
            key, exclude = None, key
        if key is None:
            key = self.unique_key

        if self.options.check_cycles:
            path = find_path(other, self, _followed_stores)
            if path is not None:
                chain = " follows ".join(f"'{store.name}'" for store in path)
                logging.warning(f"Rejected merge of '{other.name}' into '{self.name}': {chain}")
                raise CircularMergeError(
                    f"Merging '{other.name}' into '{self.name}' would create a cycle "
                    f"({chain})",
                    path=[store.name for store in path],
                )

        link = FollowLink(source=other, key=key, exclude=exclude)

        def on_change(*_: Any) -> None:
            self.change()

        def on_destroy() -> None:
            self._unlink(link)

        with self._rollback():
            link.subscriptions = (
                other.on("change", on_change),
                other.once("destroy", on_destroy),
            )
            self._following.append(link)
            computed = self._compute()

        logging.debug(f"Store '{self.name}' now follows '{other.name}' (key={key!r})")
        self._publish(computed, removed=[], added=[])
        return self

    def unmerge(self, other: "Store") -> bool:
        """Stop following ``other``. Returns whether any link was removed."""
        self._ensure_alive("unmerge from")
        links = [link for link in self._following if link.source is other]
        if not links:
            return False
        for link in links:
            self._detach(link)
        self.change()
        return True

    # ------------------------------------------------------------------
    # Transform pipeline
    # ------------------------------------------------------------------

    def transform(self, method: str, fn: Any, name: Optional[str] = None) -> "Store":
        """Register ``method`` over the combined rows, producing ``data``."""
        return self._register(Phase.TRANSFORM, method, fn, name)

    def before(self, method: str, fn: Any, name: Optional[str] = None) -> "Store":
        """Register ``method`` on rows being added or pulled from followed stores."""
        return self._register(Phase.BEFORE, method, fn, name)

    def after(self, method: str, fn: Any, name: Optional[str] = None) -> "Store":
        """Register ``method`` on the copy returned by ``get()``."""
        return self._register(Phase.AFTER, method, fn, name)

    def undo(self, method: str, name: Optional[str]) -> "Store":
        """
        Remove the earliest transform registered as ``(method, name)``.

        The phase does not matter. A recomputation runs even when nothing
        matched.
        """
        self._ensure_alive("undo transforms on")
        with self._rollback():
            removed = self._pipeline.undo(method, name)
            computed = self._compute()

        if removed is not None:
            logging.debug(f"Store '{self.name}' undid {removed.phase.value} {method} '{name}'")
        self._publish(computed, removed=[], added=[])
        return self

    # ------------------------------------------------------------------
    # Recomputation
    # ------------------------------------------------------------------

    def change(
        self,
        removed: Optional[List[Any]] = None,
        added: Optional[List[Any]] = None,
    ) -> "Store":
        """
        Recompute ``data`` from scratch and emit ``change``.

        ``removed`` and ``added`` are only forwarded to listeners.
        """
        self._ensure_alive("recompute")
        computed = self._compute()
        self._publish(computed, removed=removed or [], added=added or [])
        return self

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def empty(self, *rows: Any) -> "Store":
        """
        Drop every owned row, then add ``rows``.

        Exactly one recomputation runs whether or not any row is added, followed
        by an ``empty`` event.
        """
        self._ensure_alive("empty")

        removed = list(self._rows)
        with self._rollback():
            self._rows = []
            self._identity.clear()
            accepted = self._accept(rows)
            self._adopt(accepted)
            computed = self._compute()

        self._publish(computed, removed=removed, added=accepted)
        self.events.emit("empty")
        return self

    def clone(self, name: Optional[str] = None, **overrides: Any) -> "Store":
        """
        Create an empty store sharing this store's transforms.

        Options not overridden (``key``, ``check_cycles``) are inherited. The
        clone has its own rows, follow links and identity namespace.
        """
        self._ensure_alive("clone")
        options = self.options.derive(**overrides)
        clone = type(self)(name, key=options.key, check_cycles=options.check_cycles)
        clone._pipeline = self._pipeline.copy()
        return clone

    def destroy(self) -> bool:
        """
        Tear the store down.

        Releases every follow link, emits ``destroy`` and drops all listeners and
        state. Stores following this one unlink themselves and recompute. If a
        listener raises, teardown still completes before the error propagates.

        Returns:
            True the first time, False on every later call.
        """
        if self._destroyed:
            return False
        self._destroyed = True

        try:
            for link in self._following:
                link.release()
            self.events.emit("destroy")
        finally:
            self.events.clear()
            self._following = []
            self._rows = []
            self._data = ()
            self._pipeline.clear()
            self._identity.clear()
            logging.debug(f"Store '{self.name}' destroyed")
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_alive(self, action: str) -> None:
        if self._destroyed:
            raise StoreDestroyedError(f"Cannot {action} destroyed store '{self.name}'")

    def _register(self, phase: Phase, method: str, fn: Any, name: Optional[str]) -> "Store":
        self._ensure_alive(f"register a {phase.value} transform on")
        with self._rollback():
            transform = self._pipeline.register(phase, method, fn, name)
            computed = self._compute()

        logging.debug(
            f"Store '{self.name}' registered {phase.value} {method} '{transform.name}'"
        )
        self._publish(computed, removed=[], added=[])
        return self

    def _accept(self, rows: Sequence[Any]) -> List[Any]:
        accepted: List[Any] = []
        for row in rows:
            if not is_structured(row):
                continue
            for candidate in self._pipeline.run(Phase.BEFORE, [row]):
                if not is_structured(candidate):
                    continue
                if self._is_owned_duplicate(candidate, accepted):
                    continue
                accepted.append(candidate)
        return accepted

    def _is_owned_duplicate(self, candidate: Any, pending: List[Any]) -> bool:
        if self._index_of(candidate) is not None:
            return True
        if any(row is candidate for row in pending):
            return True

        key = self.unique_key
        if key is None:
            return False
        value = resolve(candidate, key)
        if value is MISSING:
            return False
        return (
            self.find(key, value, self._rows) is not None
            or self.find(key, value, pending) is not None
        )

    def _adopt(self, rows: List[Any]) -> None:
        for row in rows:
            self._rows.append(row)
            self._identity.tag(row)

    def _index_of(self, row: Any) -> Optional[int]:
        for index, owned in enumerate(self._rows):
            if owned is row:
                return index
        return None

    def _resolve_owned(self, value: Any) -> Optional[Any]:
        if value is None:
            return None

        owner = self._identity.owner(value)
        if owner is not None and self._index_of(owner) is not None:
            return owner

        key = self.unique_key
        if key is None or not is_structured(value):
            return None
        wanted = resolve(value, key)
        if wanted is MISSING:
            return None
        return self.find(key, wanted, self._rows)

    def _is_merged_duplicate(self, link: FollowLink, candidate: Any, rows: List[Any]) -> bool:
        if link.exclude is not None:
            return bool(link.exclude(candidate, rows))
        if link.key is None:
            return False
        value = resolve(candidate, link.key)
        if value is MISSING:
            return False
        return self.find(link.key, value, rows) is not None

    def _compute(self) -> Tuple[Tuple[Any, ...], IdentityTable]:
        identity = self._identity.copy()
        combined = list(self._rows)
        for row in combined:
            if identity.owner(row) is not row:
                identity.tag(row)

        for link in self._following:
            pulled = self._pipeline.run(Phase.BEFORE, link.source.get())
            for candidate in pulled:
                if self._is_merged_duplicate(link, candidate, combined):
                    continue
                combined.append(candidate)

        data = self._pipeline.run(Phase.TRANSFORM, combined, identity)
        identity.prune(self._rows)
        return tuple(data), identity

    def _publish(
        self,
        computed: Tuple[Tuple[Any, ...], IdentityTable],
        removed: List[Any],
        added: List[Any],
    ) -> None:
        self._data, self._identity = computed
        logging.debug(
            f"Store '{self.name}' recomputed: {len(self._rows)} owned, "
            f"{len(self._data)} published (+{len(added)} -{len(removed)})"
        )
        self.events.emit("change", list(removed), list(added), self._data)

    def _detach(self, link: FollowLink) -> bool:
        for index, candidate in enumerate(self._following):
            if candidate is link:
                del self._following[index]
                link.release()
                logging.debug(f"Store '{self.name}' stopped following '{link.source.name}'")
                return True
        return False

    def _unlink(self, link: FollowLink) -> None:
        if self._detach(link) and not self._destroyed:
            self.change()

    @contextmanager
    def _rollback(self) -> Iterator[None]:
        rows = list(self._rows)
        identity = self._identity.copy()
        pipeline = self._pipeline.copy()
        following = list(self._following)
        try:
            yield
        except Exception:
            for link in self._following:
                if not any(link is kept for kept in following):
                    link.release()
            self._rows = rows
            self._identity = identity
            self._pipeline = pipeline
            self._following = following
            raise


def _followed_stores(store: Store) -> List[Store]:
    return [link.source for link in store.following]
