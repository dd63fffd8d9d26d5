"""Integration tests for follow graphs: merging, propagation and teardown."""

import pytest

from truth import CircularMergeError, Store, StoreDestroyedError


@pytest.mark.integration
@pytest.mark.merge
def test_merge_returns_the_store_and_recomputes(store, other, recorder):
    """merge() is chainable and recomputes immediately."""
    other.add({"foo": "bar"})
    calls = recorder(store)

    assert store.merge(other, "foo") is store

    assert len(calls) == 1
    assert store.get() == [{"foo": "bar"}]
    assert len(store.following) == 1


@pytest.mark.integration
@pytest.mark.merge
def test_change_in_source_propagates(store, other, recorder):
    """Adding to the followed store triggers exactly one change on the follower."""
    store.merge(other, "foo")
    calls = recorder(store)

    other.add({"foo": "bar"})

    assert len(calls) == 1
    assert calls[0][2] == ({"foo": "bar"},)
    assert other.get() == [{"foo": "bar"}]
    assert store.get() == [{"foo": "bar"}]


@pytest.mark.integration
@pytest.mark.merge
def test_owned_rows_win_over_merged_duplicates():
    """Rows owned by the follower take precedence under the dedup key."""
    a = Store("A")
    b = Store("B")
    a.add({"k": 1, "tag": "A"})
    b.add({"k": 1, "tag": "B"})

    a.merge(b, "k")

    assert a.get() == [{"k": 1, "tag": "A"}]


@pytest.mark.integration
@pytest.mark.merge
def test_merged_rows_follow_owned_rows(store, other):
    """Non-duplicate merged rows are appended after the owned rows."""
    store.add({"foo": "foo"})
    store.merge(other, "foo")

    other.add({"foo": "bar"})

    assert store.get() == [{"foo": "foo"}, {"foo": "bar"}]


@pytest.mark.integration
@pytest.mark.merge
def test_merge_defaults_to_unique_key(store, other):
    """Without an explicit key the follower's unique key is used."""
    store.add({"foo": "bar", "bar": "bar"})
    store.merge(other)

    other.add({"foo": "bar"}, {"foo": "baz"})

    assert store.get() == [{"foo": "bar", "bar": "bar"}, {"foo": "baz"}]


@pytest.mark.integration
@pytest.mark.merge
def test_merge_without_any_key_keeps_everything():
    """No dedup key at all means every followed row is kept."""
    follower = Store("follower")
    source = Store("source")
    follower.add({"id": 1})
    source.add({"id": 1})

    follower.merge(source)

    assert follower.get() == [{"id": 1}, {"id": 1}]


@pytest.mark.integration
@pytest.mark.merge
def test_add_wins_over_existing_merged_row(store, other):
    """Adding an owned row hides the merged row with the same key."""
    store.merge(other, "foo")
    other.add({"foo": "bar"})
    assert store.get() == [{"foo": "bar"}]

    store.add({"foo": "bar", "bar": "banana"})

    assert store.get() == [{"foo": "bar", "bar": "banana"}]
    assert other.get() == [{"foo": "bar"}]


@pytest.mark.integration
@pytest.mark.merge
def test_custom_exclude_predicate(store, other):
    """A predicate replaces key based dedup and sees the collected rows."""
    store.add({"foo": "foo"})
    seen = []

    def exclude(row, rows):
        seen.append((row, list(rows)))
        return False

    store.merge(other, exclude=exclude)
    other.add({"foo": "foo", "banana": True})

    assert len(store.get()) == 2
    row, rows = seen[-1]
    assert row == {"foo": "foo", "banana": True}
    assert rows == [{"foo": "foo"}]


@pytest.mark.integration
@pytest.mark.merge
def test_predicate_in_key_position(store, other):
    """A callable passed as key is used as the exclude predicate."""
    store.merge(other, lambda row, rows: row.get("hidden", False))

    other.add({"foo": "a"}, {"foo": "b", "hidden": True})

    assert store.get() == [{"foo": "a"}]


@pytest.mark.integration
@pytest.mark.merge
def test_earlier_links_win_over_later_links():
    """Dedup is first-writer-wins across links in registration order."""
    target = Store("target", key="id")
    first = Store("first")
    second = Store("second")
    first.add({"id": 1, "src": "first"})
    second.add({"id": 1, "src": "second"}, {"id": 2, "src": "second"})

    target.merge(first).merge(second)

    assert target.get() == [
        {"id": 1, "src": "first"},
        {"id": 2, "src": "second"},
    ]


@pytest.mark.integration
@pytest.mark.merge
def test_same_source_with_different_keys():
    """Several links to one source are allowed, each with its own key."""
    target = Store("target")
    source = Store("source")
    source.add({"a": 1, "b": 2})

    target.merge(source, "a").merge(source, "b")

    assert len(target.following) == 2
    assert target.get() == [{"a": 1, "b": 2}]


@pytest.mark.integration
@pytest.mark.merge
def test_follower_sees_source_after_phase(store, other):
    """Merged rows are read through the source's get()."""
    other.after("map", lambda row: {"foo": row["foo"].upper()}, "upper")
    store.merge(other)

    other.add({"foo": "bar"})

    assert store.get() == [{"foo": "BAR"}]


@pytest.mark.integration
@pytest.mark.merge
def test_before_phase_applies_to_merged_rows(store, other):
    """The follower's before phase reshapes rows before dedup."""
    store.before("map", lambda row: {"foo": row["name"]}, "rename")
    store.add({"name": "taken"})
    store.merge(other)

    other.add({"foo": "x", "name": "taken"}, {"foo": "y", "name": "free"})

    assert store.get() == [{"foo": "taken"}, {"foo": "free"}]


@pytest.mark.integration
@pytest.mark.merge
def test_merged_rows_are_not_owned(store, other):
    """Rows contributed by another store cannot be removed by the follower."""
    store.merge(other)
    row = {"foo": "bar"}
    other.add(row)

    assert store.length == 0
    assert store.origin(row) is None
    assert store.remove(row) is False
    assert store.get() == [row]


@pytest.mark.integration
@pytest.mark.merge
def test_merged_rows_flow_through_transforms(store, other):
    """The transform phase runs over owned and merged rows together."""
    store.transform("filter", lambda row: row["foo"] != "skip", "no_skip")
    store.transform("map", lambda row: {"value": row["foo"]}, "project")
    store.add({"foo": "own"})
    store.merge(other)

    other.add({"foo": "skip"}, {"foo": "merged"})

    assert store.get() == [{"value": "own"}, {"value": "merged"}]
    assert store.origin(store.find("value", "own")) == {"foo": "own"}
    assert store.origin(store.find("value", "merged")) is None


@pytest.mark.integration
@pytest.mark.merge
def test_projection_survives_source_change(store, other):
    """A projection found before the source changed still removes its row."""
    store.transform("map", lambda row: {"value": row}, "wrap")
    store.merge(other)
    owned = {"foo": "bar"}
    store.add(owned)
    projection = store.find("value.foo", "bar")

    other.add({"foo": "baz"})

    assert store.origin(projection) is owned
    assert store.remove(projection) is True
    assert store.get() == [{"value": {"foo": "baz"}}]


@pytest.mark.integration
@pytest.mark.merge
def test_chained_propagation():
    """Changes travel through several levels synchronously."""
    root = Store("root", key="id")
    middle = Store("middle", key="id").merge(root)
    leaf = Store("leaf", key="id").merge(middle)

    root.add({"id": 1})

    assert leaf.get() == [{"id": 1}]


@pytest.mark.integration
@pytest.mark.merge
def test_diamond_recomputes_once_per_path(recorder):
    """A store reached by two paths recomputes once for each path."""
    root = Store("root", key="id")
    left = Store("left", key="id").merge(root)
    right = Store("right", key="id").merge(root)
    bottom = Store("bottom", key="id").merge(left).merge(right)
    calls = recorder(bottom)

    root.add({"id": 1})

    assert len(calls) == 2
    assert bottom.get() == [{"id": 1}]


@pytest.mark.integration
@pytest.mark.merge
def test_unmerge_stops_following(store, other, recorder):
    """unmerge() drops every link to the source and recomputes."""
    store.merge(other).merge(other, "bar")
    other.add({"foo": "bar"})
    calls = recorder(store)

    assert store.unmerge(other) is True
    assert store.unmerge(other) is False

    assert store.following == ()
    assert store.get() == []
    assert len(calls) == 1
    other.add({"foo": "again"})
    assert len(calls) == 1


@pytest.mark.integration
@pytest.mark.merge
def test_failing_exclude_predicate_rolls_back_the_link(store, other):
    """A raising predicate during merge leaves no link behind."""
    other.add({"foo": "bar"})

    def explode(row, rows):
        raise ValueError("bad predicate")

    with pytest.raises(ValueError, match="bad predicate"):
        store.merge(other, exclude=explode)

    assert store.following == ()
    assert other.events.listener_count("change") == 0
    assert other.events.listener_count("destroy") == 0


@pytest.mark.integration
@pytest.mark.merge
def test_merge_rejects_non_stores(store):
    """Only stores can be followed."""
    with pytest.raises(TypeError):
        store.merge([{"foo": "bar"}])


@pytest.mark.integration
@pytest.mark.merge
def test_merge_rejects_destroyed_source(store, other):
    """A destroyed store cannot be followed."""
    other.destroy()

    with pytest.raises(StoreDestroyedError):
        store.merge(other)


# ----------------------------------------------------------------------
# cycles
# ----------------------------------------------------------------------


@pytest.mark.integration
@pytest.mark.merge
def test_self_merge_is_rejected(store):
    """A store cannot follow itself."""
    with pytest.raises(CircularMergeError):
        store.merge(store)

    assert store.following == ()


@pytest.mark.integration
@pytest.mark.merge
def test_transitive_cycle_is_rejected():
    """Closing a chain of merges raises before anything is subscribed."""
    a = Store("a")
    b = Store("b").merge(a)
    c = Store("c").merge(b)

    with pytest.raises(CircularMergeError) as excinfo:
        a.merge(c)

    assert excinfo.value.path == ["c", "b", "a"]
    assert a.following == ()
    assert c.events.listener_count("change") == 0


@pytest.mark.integration
@pytest.mark.merge
def test_cycle_check_can_be_disabled():
    """With check_cycles off a cycle recurses until Python gives up."""
    a = Store("a", check_cycles=False)
    b = Store("b", check_cycles=False).merge(a)

    with pytest.raises(RecursionError):
        a.merge(b)


# ----------------------------------------------------------------------
# destroy
# ----------------------------------------------------------------------


@pytest.mark.integration
@pytest.mark.merge
def test_destroying_source_removes_its_rows(store, other):
    """A destroyed source stops contributing rows."""
    store.merge(other, "foo")
    other.add({"foo": "bar"})
    assert store.get() == [{"foo": "bar"}]
    assert len(store.following) == 1

    other.destroy()

    assert store.following == ()
    assert store.get() == []


@pytest.mark.integration
@pytest.mark.merge
def test_destroying_source_triggers_change_not_destroy(store, other, recorder):
    """The follower recomputes and survives its source's destruction."""
    store.merge(other, "foo")
    other.add({"foo": "bar"})
    changes = recorder(store)
    destroys = recorder(store, "destroy")

    other.destroy()

    assert len(changes) == 1
    assert destroys == []
    assert not store.destroyed
    assert store.add({"foo": "own"}) is True


@pytest.mark.integration
@pytest.mark.merge
def test_destroyed_follower_stops_listening(store, other, recorder):
    """Destroying the follower releases its subscriptions on the source."""
    store.merge(other, "foo")
    other.add({"foo": "bar"})
    calls = recorder(store)

    assert store.destroy() is True
    other.add({"foo": "baz"})

    assert calls == []
    assert other.events.listener_count("change") == 0
    assert other.events.listener_count("destroy") == 0


@pytest.mark.integration
@pytest.mark.merge
def test_destroy_cascade_through_chain():
    """Destroying the root empties every level but destroys none."""
    root = Store("root", key="id")
    middle = Store("middle", key="id").merge(root)
    leaf = Store("leaf", key="id").merge(middle)
    root.add({"id": 1})

    root.destroy()

    assert middle.get() == []
    assert leaf.get() == []
    assert not middle.destroyed
    assert not leaf.destroyed
    assert len(leaf.following) == 1


@pytest.mark.integration
@pytest.mark.merge
def test_second_destroy_emits_nothing(store, other, recorder):
    """Only the first destroy notifies anyone."""
    store.merge(other)
    destroys = recorder(other, "destroy")

    assert other.destroy() is True
    assert other.destroy() is False

    assert destroys == [()]


@pytest.mark.integration
@pytest.mark.merge
def test_source_destroy_completes_when_follower_fails(store, other):
    """A follower failing to recompute does not leave its source half torn down."""
    other.add({"foo": "source"})
    store.merge(other)
    store.add({"foo": "own"})
    failing = []

    def guard(row):
        if failing:
            raise RuntimeError("follower failed")
        return True

    store.transform("filter", guard, "guard")
    failing.append(True)

    with pytest.raises(RuntimeError, match="follower failed"):
        other.destroy()

    assert other.destroyed
    assert other.destroy() is False
    assert other.length == 0
    assert other.get() == []
    assert other.events.listener_count("change") == 0
    assert store.following == ()
